"""Upload orchestration: fresh uploads, resume and cancellation."""

from __future__ import annotations

import asyncio  # 判断回调是否为协程
import enum  # enum 定义客户端视角的上传阶段
import logging  # 日志记录
import os  # 检查源文件可读性
import time  # 统计耗时
from dataclasses import dataclass, field  # 数据类定义上传结果
from pathlib import Path  # 路径处理
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import aiofiles  # aiofiles 支持异步读取文件

from ..constants import DEFAULT_CHUNK_SIZE
from ..errors import AlreadyCompleted, ApiError, SizeMismatch, SourceNotFound, UploadError
from ..hash_policy import digest_bytes, digest_stream
from ..net.http import ApiClient
from .audit import log_event
from .chunker import ChunkRange, chunk_count, chunk_range, plan_chunks, read_chunk, slice_chunk
from .protocol import ChunkEncoding, ChunkTransmitter
from .session import SessionCoordinator, SessionState, SessionStatus, UploadProgress, UploadSession

ProgressCallback = Callable[[UploadProgress], Optional[Awaitable[None]]]
ChunkReader = Callable[[ChunkRange], Awaitable[bytes]]


class UploadPhase(str, enum.Enum):
    """Client view of one upload or resume call."""

    INIT = "init"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_PHASE_TRANSITIONS: Dict[UploadPhase, frozenset[UploadPhase]] = {
    UploadPhase.INIT: frozenset({UploadPhase.UPLOADING, UploadPhase.COMPLETING, UploadPhase.FAILED, UploadPhase.CANCELLED}),
    UploadPhase.UPLOADING: frozenset({UploadPhase.COMPLETING, UploadPhase.FAILED, UploadPhase.CANCELLED}),
    UploadPhase.COMPLETING: frozenset({UploadPhase.COMPLETED, UploadPhase.FAILED, UploadPhase.CANCELLED}),
    UploadPhase.FAILED: frozenset({UploadPhase.UPLOADING, UploadPhase.COMPLETING, UploadPhase.CANCELLED}),
    UploadPhase.COMPLETED: frozenset(),
    UploadPhase.CANCELLED: frozenset(),
}


def can_transition(current: UploadPhase, target: UploadPhase) -> bool:
    return target in _PHASE_TRANSITIONS[current]


def _require_readable(path: Path, session_id: str | None = None) -> None:
    if not path.is_file():
        raise SourceNotFound(f"source file not found: {path}", session_id=session_id)
    if not os.access(path, os.R_OK):
        raise SourceNotFound(f"source file is not readable: {path}", session_id=session_id)


@dataclass(slots=True)
class _SendTally:
    """Chunks and bytes acknowledged so far; survives a failed send."""

    chunks: int = 0
    bytes: int = 0


@dataclass(slots=True)
class UploadResult:
    """Summary of a finished upload or resume."""

    session_id: str
    total_chunks: int
    chunks_sent: int
    bytes_sent: int
    elapsed: float
    file: Dict[str, Any] = field(default_factory=dict)  # complete 接口返回的文件描述


class UploadOrchestrator:
    """Drive chunked uploads end to end.

    Chunks are sent one at a time in ascending index order. A failure while
    sending leaves the remote session in place so :meth:`resume` can pick it
    up; the raised error carries the ``session_id``.
    """

    def __init__(
        self,
        api: ApiClient,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        encoding: "ChunkEncoding | str" = ChunkEncoding.MULTIPART,
        audit_dir: Path | None = None,
    ) -> None:
        self.logger = logging.getLogger("resumeup.transfer")
        self.chunk_size = chunk_size
        self.coordinator = SessionCoordinator(api)
        self.transmitter = ChunkTransmitter(api, encoding)
        self.audit_dir = Path(audit_dir).expanduser() if audit_dir else None
        self._phases: Dict[str, UploadPhase] = {}

    def phase_of(self, session_id: str) -> UploadPhase | None:
        return self._phases.get(session_id)

    def _enter(self, session_id: str, phase: UploadPhase) -> None:
        current = self._phases.get(session_id, UploadPhase.INIT)
        if current is not phase and not can_transition(current, phase):
            raise UploadError(
                f"invalid upload phase change {current.value} -> {phase.value}",
                session_id=session_id,
            )
        self._phases[session_id] = phase
        self.logger.debug("session %s: %s -> %s", session_id, current.value, phase.value)

    def _audit(self, session_id: str, filename: str, action: str, status: str, size: int, elapsed: float) -> None:
        if self.audit_dir is None:
            return
        log_event(session_id, filename, action, status, size, elapsed, base_dir=self.audit_dir)

    async def _notify(self, on_progress: ProgressCallback | None, progress: UploadProgress) -> None:
        if on_progress is None:
            return
        maybe_coro = on_progress(progress)
        if asyncio.iscoroutine(maybe_coro):
            await maybe_coro

    async def _send_chunks(
        self,
        session_id: str,
        chunks: Iterable[ChunkRange],
        reader: ChunkReader,
        tally: _SendTally,
        *,
        delivered: int,
        total_chunks: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        for chunk in chunks:
            data = await reader(chunk)
            ack = await self.transmitter.send(session_id, chunk.index, data)
            if not ack.accepted:
                raise ApiError(ack.message or f"chunk {chunk.index} was not accepted", session_id=session_id)
            tally.chunks += 1
            tally.bytes += len(data)
            delivered += 1
            progress = UploadProgress(session_id=session_id, delivered=delivered, total_chunks=total_chunks)
            self.logger.debug(
                "session %s chunk %s acknowledged (%s, server progress %s)",
                session_id,
                chunk.index,
                progress,
                ack.progress,
            )
            await self._notify(on_progress, progress)

    async def _drive(
        self,
        session_id: str,
        filename: str,
        action: str,
        chunks: List[ChunkRange],
        reader: ChunkReader | None,
        *,
        delivered: int,
        total_chunks: int,
        on_progress: ProgressCallback | None,
    ) -> UploadResult:
        """Send ``chunks`` then complete; failures are logged and re-raised.

        ``reader`` may be ``None`` only when ``chunks`` is empty.
        """

        start_ts = time.perf_counter()
        tally = _SendTally()
        try:
            if chunks:
                self._enter(session_id, UploadPhase.UPLOADING)
                await self._send_chunks(
                    session_id,
                    chunks,
                    reader,
                    tally,
                    delivered=delivered,
                    total_chunks=total_chunks,
                    on_progress=on_progress,
                )
            self._enter(session_id, UploadPhase.COMPLETING)
            file_info = await self.coordinator.complete(session_id)
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, UploadError) and exc.session_id is None:
                exc.session_id = session_id
            self._phases[session_id] = UploadPhase.FAILED
            elapsed = time.perf_counter() - start_ts
            self._audit(session_id, filename, action, "failed", tally.bytes, elapsed)
            self.logger.error(
                "%s of %s failed in session %s after %s chunk(s): %s; resume with session id %s",
                action,
                filename,
                session_id,
                tally.chunks,
                exc,
                session_id,
            )
            raise
        self._enter(session_id, UploadPhase.COMPLETED)
        elapsed = time.perf_counter() - start_ts
        self._audit(session_id, filename, action, "success", tally.bytes, elapsed)
        self.logger.info(
            "%s of %s finished: session=%s chunks=%s bytes=%s time=%.2fs",
            action,
            filename,
            session_id,
            tally.chunks,
            tally.bytes,
            elapsed,
        )
        return UploadResult(
            session_id=session_id,
            total_chunks=total_chunks,
            chunks_sent=tally.chunks,
            bytes_sent=tally.bytes,
            elapsed=elapsed,
            file=file_info,
        )

    async def _open(
        self,
        filename: str,
        total_size: int,
        chunk_size: int,
        project_id: str | None,
        checksum: str | None,
        content_type: str | None,
    ) -> UploadSession:
        session = await self.coordinator.open(
            filename,
            total_size,
            chunk_size,
            project_id,
            checksum=checksum,
            content_type=content_type,
        )
        self._phases[session.session_id] = UploadPhase.INIT
        return session

    async def upload(
        self,
        source: str | Path,
        project_id: str | None,
        chunk_size: int | None = None,
        verify_checksum: bool = True,
        *,
        on_progress: ProgressCallback | None = None,
        content_type: str | None = None,
    ) -> UploadResult:
        """Upload a local file from scratch.

        Parameters
        ----------
        source:
            Path of the file to upload.
        project_id:
            Target project on the server.
        chunk_size:
            Bytes per chunk; defaults to the orchestrator's ``chunk_size``.
        verify_checksum:
            Compute a SHA-256 digest of the whole file and send it when the
            session is opened. Costs one extra read pass.
        on_progress:
            Called once per acknowledged chunk with an :class:`UploadProgress`.

        Returns
        -------
        UploadResult
            Summary including the file descriptor returned on completion.
        """

        path = Path(source).expanduser()
        _require_readable(path)
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        total_size = path.stat().st_size
        chunks = plan_chunks(total_size, chunk_size)
        async with aiofiles.open(path, "rb") as handle:
            checksum = await digest_stream(handle) if verify_checksum else None
            session = await self._open(path.name, total_size, chunk_size, project_id, checksum, content_type)
            return await self._drive(
                session.session_id,
                path.name,
                "upload",
                chunks,
                lambda chunk: read_chunk(handle, chunk),
                delivered=0,
                total_chunks=session.total_chunks,
                on_progress=on_progress,
            )

    async def upload_bytes(
        self,
        data: bytes,
        filename: str,
        project_id: str | None,
        chunk_size: int | None = None,
        verify_checksum: bool = True,
        *,
        on_progress: ProgressCallback | None = None,
        content_type: str | None = None,
    ) -> UploadResult:
        """Upload an in-memory buffer; same semantics as :meth:`upload`."""

        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        chunks = plan_chunks(len(data), chunk_size)
        checksum = digest_bytes(data) if verify_checksum else None
        session = await self._open(filename, len(data), chunk_size, project_id, checksum, content_type)

        async def _reader(chunk: ChunkRange) -> bytes:
            return slice_chunk(data, chunk)

        return await self._drive(
            session.session_id,
            filename,
            "upload",
            chunks,
            _reader,
            delivered=0,
            total_chunks=session.total_chunks,
            on_progress=on_progress,
        )

    async def resume(
        self,
        session_id: str,
        source: str | Path,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        """Send only the chunks the server is still missing, then complete.

        Progress fractions are reported against the session's total chunk
        count, continuing from what the server already holds.
        """

        state = await self.coordinator.status(session_id)
        path = Path(source).expanduser()
        if state.status is SessionStatus.COMPLETED:
            raise AlreadyCompleted("upload already completed", session_id=session_id)
        if state.status is SessionStatus.CANCELLED:
            raise UploadError("upload session was cancelled", session_id=session_id)
        self._phases.setdefault(session_id, UploadPhase.INIT)
        delivered = state.total_chunks - len(state.missing)
        if not state.missing:
            self.logger.info("session %s has every chunk, completing", session_id)
            return await self._drive(
                session_id,
                path.name,
                "resume",
                [],
                None,
                delivered=delivered,
                total_chunks=state.total_chunks,
                on_progress=on_progress,
            )
        self._check_source(state, path)
        chunks = [chunk_range(index, state.total_size, state.chunk_size) for index in state.missing]
        self.logger.info(
            "resuming session %s: %s/%s chunks delivered, %s missing",
            session_id,
            delivered,
            state.total_chunks,
            len(chunks),
        )
        async with aiofiles.open(path, "rb") as handle:
            return await self._drive(
                session_id,
                path.name,
                "resume",
                chunks,
                lambda chunk: read_chunk(handle, chunk),
                delivered=delivered,
                total_chunks=state.total_chunks,
                on_progress=on_progress,
            )

    def _check_source(self, state: SessionState, path: Path) -> None:
        _require_readable(path, state.session_id)
        size = path.stat().st_size
        if size != state.total_size:
            raise SizeMismatch(
                f"file is {size} bytes but session expects {state.total_size}; cannot resume with a different file",
                session_id=state.session_id,
            )
        # 布局必须与服务端记录一致
        expected = chunk_count(state.total_size, state.chunk_size)
        if expected != state.total_chunks:
            raise SizeMismatch(
                f"session reports {state.total_chunks} chunks but layout has {expected}",
                session_id=state.session_id,
            )

    async def status(self, session_id: str) -> SessionState:
        return await self.coordinator.status(session_id)

    async def cancel(self, session_id: str) -> None:
        """Discard a session and its partial data on the server."""

        await self.coordinator.cancel(session_id)
        current = self._phases.get(session_id)
        if current is None or can_transition(current, UploadPhase.CANCELLED):
            self._phases[session_id] = UploadPhase.CANCELLED
        self._audit(session_id, "-", "cancel", "success", 0, 0.0)
