"""Remote upload session bookkeeping.

The server is the source of truth for which chunk indices have been
delivered; nothing here is persisted locally between runs.
"""

from __future__ import annotations

import enum  # enum 定义会话状态
import logging  # logging 输出运行日志
from dataclasses import dataclass, field  # dataclass 便于定义数据结构
from typing import Any, Dict, Iterable, List

from ..constants import UPLOAD_API_PREFIX
from ..errors import AlreadyCompleted, ApiError, IncompleteUpload, InvalidConfiguration, RemoteRejected
from ..net.http import ApiClient
from .chunker import chunk_count

LOGGER = logging.getLogger(__name__)


class SessionStatus(str, enum.Enum):
    """Server-side lifecycle of an upload session."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)

    @classmethod
    def parse(cls, value: Any) -> "SessionStatus":
        """将服务端状态字符串映射为枚举，未知值视为上传中。"""

        text = str(value or "").strip().lower()
        aliases = {
            "in_progress": cls.UPLOADING,
            "active": cls.UPLOADING,
            "complete": cls.COMPLETED,
            "merged": cls.COMPLETED,
            "canceled": cls.CANCELLED,
        }
        if text in aliases:
            return aliases[text]
        try:
            return cls(text)
        except ValueError:
            LOGGER.debug("unknown session status %r, treating as uploading", value)
            return cls.UPLOADING


@dataclass(slots=True)
class UploadProgress:
    """Client-side view of how far a session has come."""

    session_id: str
    delivered: int
    total_chunks: int
    status: SessionStatus = SessionStatus.UPLOADING

    @property
    def fraction(self) -> float:
        if self.total_chunks == 0:
            return 1.0
        return self.delivered / self.total_chunks

    @property
    def is_complete(self) -> bool:
        return self.delivered == self.total_chunks

    def __str__(self) -> str:
        return f"UploadProgress({self.delivered}/{self.total_chunks}, {self.fraction * 100:.1f}%)"


@dataclass(slots=True)
class UploadSession:
    """An opened session as returned by ``POST /api/upload/init``."""

    session_id: str
    filename: str
    total_size: int
    chunk_size: int
    total_chunks: int
    project_id: str | None = None
    checksum: str | None = None
    content_type: str | None = None
    status: SessionStatus = SessionStatus.PENDING


@dataclass(slots=True)
class SessionState:
    """Snapshot returned by ``GET /api/upload/<id>/status``."""

    session_id: str
    status: SessionStatus
    total_chunks: int
    chunk_size: int
    total_size: int
    delivered: List[int] = field(default_factory=list)
    missing: List[int] = field(default_factory=list)

    @property
    def progress(self) -> UploadProgress:
        return UploadProgress(
            session_id=self.session_id,
            delivered=len(self.delivered),
            total_chunks=self.total_chunks,
            status=self.status,
        )


def missing_indices(total_chunks: int, delivered: Iterable[int]) -> List[int]:
    """Return the ascending indices in ``[0, total_chunks)`` not yet delivered."""

    have = {int(index) for index in delivered if 0 <= int(index) < total_chunks}
    return [index for index in range(total_chunks) if index not in have]


def _parse_state(session_id: str, payload: Dict[str, Any]) -> SessionState:
    total_chunks = int(payload.get("total_chunks", 0))
    delivered = sorted(
        {int(i) for i in payload.get("uploaded_chunks") or [] if 0 <= int(i) < total_chunks}
    )
    raw_missing = payload.get("missing_chunks")
    if raw_missing is None:
        # 服务端未返回缺失列表时自行推导
        missing = missing_indices(total_chunks, delivered)
    else:
        missing = sorted({int(i) for i in raw_missing if 0 <= int(i) < total_chunks})
    return SessionState(
        session_id=session_id,
        status=SessionStatus.parse(payload.get("status")),
        total_chunks=total_chunks,
        chunk_size=int(payload.get("chunk_size", 0)),
        total_size=int(payload.get("total_size", 0)),
        delivered=delivered,
        missing=missing,
    )


class SessionCoordinator:
    """Open, inspect, finalize and cancel remote upload sessions."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def open(
        self,
        filename: str,
        total_size: int,
        chunk_size: int,
        project_id: str | None,
        checksum: str | None = None,
        content_type: str | None = None,
    ) -> UploadSession:
        """Create a session and return its id together with the chunk count.

        Raises
        ------
        InvalidConfiguration
            If ``chunk_size`` is not positive (checked before any request).
        RemoteRejected
            If the server answers with a 4xx other than 401/403.
        """

        expected = chunk_count(total_size, chunk_size)
        body: Dict[str, Any] = {
            "filename": filename,
            "total_size": total_size,
            "chunk_size": chunk_size,
            "project_id": project_id,
        }
        if content_type is not None:
            body["content_type"] = content_type
        if checksum is not None:
            body["checksum"] = checksum
        try:
            payload = await self.api.post(f"{UPLOAD_API_PREFIX}/init", body)
        except ApiError as exc:
            raise RemoteRejected(exc.message, status_code=exc.status_code) from exc
        payload = payload or {}
        session_id = payload.get("session_id")
        if not session_id:
            raise RemoteRejected("server did not return a session_id")
        total_chunks = int(payload.get("total_chunks", expected))
        if total_chunks != expected:
            raise InvalidConfiguration(
                f"server expects {total_chunks} chunks, local layout has {expected}",
                session_id=session_id,
            )
        LOGGER.info(
            "opened upload session %s for %s (%s bytes, %s chunks)",
            session_id,
            filename,
            total_size,
            total_chunks,
        )
        return UploadSession(
            session_id=session_id,
            filename=filename,
            total_size=total_size,
            chunk_size=chunk_size,
            total_chunks=total_chunks,
            project_id=project_id,
            checksum=checksum,
            content_type=content_type,
        )

    async def status(self, session_id: str) -> SessionState:
        payload = await self.api.get(f"{UPLOAD_API_PREFIX}/{session_id}/status")
        return _parse_state(session_id, payload or {})

    async def complete(self, session_id: str) -> Dict[str, Any]:
        """Ask the server to merge all chunks and return the file descriptor."""

        try:
            payload = await self.api.post(f"{UPLOAD_API_PREFIX}/{session_id}/complete", {})
        except ApiError as exc:
            text = exc.message.lower()
            if exc.status_code == 409 or "already" in text:
                raise AlreadyCompleted(exc.message, status_code=exc.status_code, session_id=session_id) from exc
            if "missing" in text or "incomplete" in text:
                raise IncompleteUpload(exc.message, status_code=exc.status_code, session_id=session_id) from exc
            raise
        LOGGER.info("upload session %s completed", session_id)
        return payload or {}

    async def complete_checked(self, session_id: str) -> Dict[str, Any]:
        """Complete after confirming with the server that nothing is missing."""

        state = await self.status(session_id)
        if state.status is SessionStatus.COMPLETED:
            raise AlreadyCompleted("upload already completed", session_id=session_id)
        if state.missing:
            raise IncompleteUpload(
                f"{len(state.missing)} chunk(s) still missing",
                missing=state.missing,
                session_id=session_id,
            )
        return await self.complete(session_id)

    async def cancel(self, session_id: str) -> None:
        """Discard the session remotely; cancelling twice is not an error."""

        try:
            await self.api.delete(f"{UPLOAD_API_PREFIX}/{session_id}")
        except ApiError as exc:
            if not exc.is_not_found:
                raise
            LOGGER.debug("session %s already gone", session_id)
        LOGGER.info("upload session %s cancelled", session_id)
