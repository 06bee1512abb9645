"""Logging helper used by the resumeup CLI."""

from __future__ import annotations

import logging  # 标准库 logging 提供灵活的日志框架
from pathlib import Path  # Path 便于跨平台处理文件路径
from typing import Optional  # Optional 用于类型提示

from rich.console import Console  # Console 指定输出到 stderr
from rich.logging import RichHandler  # RichHandler 提供彩色控制台输出

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def init_logging(level: str, logfile: Optional[str] = None) -> None:
    """初始化 resumeup 的日志系统。"""
    resolved_level = (level or "").upper()
    fallback = resolved_level not in _LEVELS
    if fallback:
        resolved_level = "INFO"
    # 日志写到 stderr，stdout 留给命令输出
    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_time=True)
    ]
    if logfile:
        log_path = Path(logfile)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, resolved_level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=handlers,
        force=True,  # force 确保多次调用时覆盖旧配置
    )
    # httpx 每个请求都会打一条 INFO，调低以免刷屏
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLogger().level))
    if fallback:
        logging.getLogger(__name__).warning("Unsupported log level %r, fallback to INFO", level)
