"""Audit logging helpers for upload outcomes."""

from __future__ import annotations

import datetime as _dt  # 日期时间格式化
from pathlib import Path  # Path 处理路径


def log_event(
    session_id: str,
    filename: str,
    action: str,
    status: str,
    bytes_sent: int,
    elapsed: float,
    *,
    base_dir: Path,
) -> Path:
    """Append an audit entry to the daily upload log and return its path."""

    now = _dt.datetime.now(_dt.timezone.utc)
    timestamp = now.isoformat(timespec="seconds").replace("+00:00", "Z")
    log_dir = Path(base_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{now.date().isoformat()}.log"
    line = (
        f"[{timestamp}] session={session_id} file={filename} "
        f"action={action} status={status} size={bytes_sent} time={elapsed:.2f}s\n"
    )
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(line)
        handle.flush()
    return log_path
