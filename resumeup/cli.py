"""Command line interface for resumeup."""

from __future__ import annotations

import argparse  # argparse 用于解析命令行参数
import asyncio  # asyncio 用于运行异步上传
import json  # json 用于格式化状态输出
import logging  # logging 提供日志支持
from dataclasses import asdict  # asdict 序列化状态对象
from pathlib import Path  # Path 便于处理文件系统
from typing import Any, Awaitable, Callable, Iterable  # 类型提示

from rich.console import Console  # 进度条输出到 stderr
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn  # 终端进度条

from .config import CHUNK_ENCODINGS, ResumeUpConfig, load_config  # 导入配置加载逻辑
from .constants import DEFAULT_CONFIG_FILE  # 默认常量
from .errors import UploadError
from .logging_setup import init_logging
from .net.http import ApiClient
from .transfer import UploadOrchestrator, UploadProgress, UploadResult

LOGGER = logging.getLogger(__name__)  # 获取模块级日志记录器


def _make_client(cfg: ResumeUpConfig) -> ApiClient:
    """根据配置创建 HTTP 客户端。"""

    return ApiClient.from_config(cfg.server)


def _make_orchestrator(cfg: ResumeUpConfig, api: ApiClient, encoding: str | None = None) -> UploadOrchestrator:
    return UploadOrchestrator(
        api,
        chunk_size=cfg.upload.chunk_size,
        encoding=encoding or cfg.upload.encoding,
        audit_dir=cfg.upload.audit_log_dir,
    )


async def _with_orchestrator(
    cfg: ResumeUpConfig,
    action: Callable[[UploadOrchestrator], Awaitable[Any]],
    *,
    encoding: str | None = None,
) -> Any:
    async with _make_client(cfg) as api:
        return await action(_make_orchestrator(cfg, api, encoding))


def _print_result(result: UploadResult) -> None:
    print(json.dumps(asdict(result), indent=2, ensure_ascii=False, default=str))


def _run_with_progress(
    cfg: ResumeUpConfig,
    label: str,
    call: Callable[[UploadOrchestrator, Callable[[UploadProgress], None]], Awaitable[UploadResult]],
    *,
    encoding: str | None = None,
) -> UploadResult:
    """执行上传并渲染进度条。"""

    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.completed}/{task.total} chunks"),
        console=Console(stderr=True),
        transient=True,
    ) as progress:
        task_id = progress.add_task(label, total=None)

        def _on_progress(update: UploadProgress) -> None:
            progress.update(task_id, total=update.total_chunks, completed=update.delivered)

        return asyncio.run(
            _with_orchestrator(cfg, lambda orch: call(orch, _on_progress), encoding=encoding)
        )


def _report_failure(exc: UploadError, source: str) -> int:
    LOGGER.error("upload failed: %s", exc)
    if exc.session_id:
        print(f"Upload interrupted. Resume with: resumeup resume {exc.session_id} {source}")
    return 1


def command_upload(args: argparse.Namespace) -> int:
    """处理 upload 子命令。"""

    cfg = load_config(args.config)
    if args.chunk_mb is not None and args.chunk_mb <= 0:
        LOGGER.error("--chunk-mb must be positive, got %s", args.chunk_mb)
        return 1
    chunk_size = args.chunk_mb * 1024 * 1024 if args.chunk_mb is not None else cfg.upload.chunk_size
    project_id = args.project or cfg.server.project_id
    verify = cfg.upload.verify_checksum and not args.no_checksum
    try:
        result = _run_with_progress(
            cfg,
            Path(args.file).name,
            lambda orch, cb: orch.upload(args.file, project_id, chunk_size, verify, on_progress=cb),
            encoding=args.encoding,
        )
    except UploadError as exc:
        return _report_failure(exc, args.file)
    _print_result(result)
    return 0


def command_resume(args: argparse.Namespace) -> int:
    """处理 resume 子命令。"""

    cfg = load_config(args.config)
    try:
        result = _run_with_progress(
            cfg,
            Path(args.file).name,
            lambda orch, cb: orch.resume(args.session_id, args.file, on_progress=cb),
        )
    except UploadError as exc:
        return _report_failure(exc, args.file)
    _print_result(result)
    return 0


def command_status(args: argparse.Namespace) -> int:
    """输出会话状态。"""

    cfg = load_config(args.config)
    try:
        state = asyncio.run(_with_orchestrator(cfg, lambda orch: orch.status(args.session_id)))
    except UploadError as exc:
        LOGGER.error("failed to query session %s: %s", args.session_id, exc)
        return 1
    payload = asdict(state)
    payload["status"] = state.status.value
    payload["progress"] = round(state.progress.fraction, 4)
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def command_cancel(args: argparse.Namespace) -> int:
    """取消上传会话。"""

    cfg = load_config(args.config)
    try:
        asyncio.run(_with_orchestrator(cfg, lambda orch: orch.cancel(args.session_id)))
    except UploadError as exc:
        LOGGER.error("failed to cancel session %s: %s", args.session_id, exc)
        return 1
    print(f"Session {args.session_id} cancelled.")
    return 0


def command_check(args: argparse.Namespace) -> int:
    """处理 check 子命令。"""

    try:
        cfg = load_config(args.config)
    except FileNotFoundError as exc:  # 配置缺失
        LOGGER.error(str(exc))
        return 1
    except ValueError as exc:  # 校验错误
        LOGGER.error("configuration error: %s", exc)
        return 1
    print(f"Server: {cfg.server.base_url}")
    print(f"Chunk size: {cfg.upload.chunk_mb} MB ({cfg.upload.encoding})")
    print("Configuration check passed.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """构建顶层解析器。"""

    parser = argparse.ArgumentParser(prog="resumeup", description="Resumable chunked uploads")
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="path to config file")
    subparsers = parser.add_subparsers(dest="command", required=True)
    upload_parser = subparsers.add_parser("upload", help="upload a file in chunks")
    upload_parser.add_argument("file", help="file to upload")
    upload_parser.add_argument("--project", help="target project id")
    upload_parser.add_argument("--chunk-mb", type=int, help="override chunk size in MB")
    upload_parser.add_argument("--encoding", choices=CHUNK_ENCODINGS, help="chunk wire encoding")
    upload_parser.add_argument("--no-checksum", action="store_true", help="skip the whole-file SHA-256")
    upload_parser.set_defaults(func=command_upload)
    resume_parser = subparsers.add_parser("resume", help="resume an interrupted upload")
    resume_parser.add_argument("session_id", help="upload session id")
    resume_parser.add_argument("file", help="the same file that was being uploaded")
    resume_parser.set_defaults(func=command_resume)
    status_parser = subparsers.add_parser("status", help="show upload session status")
    status_parser.add_argument("session_id", help="upload session id")
    status_parser.set_defaults(func=command_status)
    cancel_parser = subparsers.add_parser("cancel", help="cancel an upload session")
    cancel_parser.add_argument("session_id", help="upload session id")
    cancel_parser.set_defaults(func=command_cancel)
    check_parser = subparsers.add_parser("check", help="validate config.yaml")
    check_parser.set_defaults(func=command_check)
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    """CLI 主入口。"""

    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        cfg = load_config(args.config)  # 尝试加载配置用于日志设定
        init_logging(cfg.logging.level, str(cfg.logging.file) if cfg.logging.file else None)
    except (FileNotFoundError, ValueError):
        init_logging("INFO")
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error("failed to load config: %s", exc)
        return 1
