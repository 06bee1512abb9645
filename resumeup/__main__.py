"""Command line entry point for resumeup."""

from __future__ import annotations

import sys  # sys 用于访问 argv 与退出状态

from .cli import main as cli_main  # CLI 主函数


def main(argv: list[str] | None = None) -> int:
    """入口函数，供 python -m resumeup 调用。"""
    return cli_main(argv)


if __name__ == "__main__":
    sys.exit(main())  # 将返回值作为进程退出码
