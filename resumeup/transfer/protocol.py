"""Chunk transmission over the upload HTTP API.

One chunk is sent per request to ``/api/upload/<session>/chunk/<index>``
using one of three interchangeable encodings::

    multipart  POST, form field "chunk", filename "chunk_<index>.bin"
    post       POST, raw body, Content-Type: application/octet-stream
    put        PUT,  raw body, Content-Type: application/octet-stream

The server answers every encoding with the same body::

    {"message": "Chunk 3 uploaded", "progress": 50.0}
"""

from __future__ import annotations

import enum  # enum 定义传输编码
import logging  # logging 输出调试信息
from dataclasses import dataclass  # dataclass 描述确认结果
from typing import Any

from ..constants import UPLOAD_API_PREFIX
from ..errors import InvalidConfiguration
from ..net.http import ApiClient

LOGGER = logging.getLogger(__name__)


class ChunkEncoding(str, enum.Enum):
    """Wire encoding used to carry chunk bytes."""

    MULTIPART = "multipart"
    PUT = "put"
    POST = "post"

    @classmethod
    def parse(cls, value: "str | ChunkEncoding") -> "ChunkEncoding":
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidConfiguration(f"unknown chunk encoding: {value}") from exc


@dataclass(slots=True)
class ChunkAck:
    """Server acknowledgement for a single chunk."""

    index: int
    accepted: bool
    message: str | None = None
    progress: float | None = None  # 服务端报告的进度


def chunk_path(session_id: str, index: int) -> str:
    return f"{UPLOAD_API_PREFIX}/{session_id}/chunk/{index}"


def chunk_filename(index: int) -> str:
    return f"chunk_{index}.bin"


def _parse_ack(index: int, payload: Any) -> ChunkAck:
    if not isinstance(payload, dict):
        return ChunkAck(index=index, accepted=True)
    progress = payload.get("progress")
    # 2xx 响应默认视为已接收，除非服务端显式声明 accepted/success 为 false
    accepted = payload.get("accepted", payload.get("success", True))
    return ChunkAck(
        index=index,
        accepted=accepted is not False,
        message=payload.get("message"),
        progress=float(progress) if progress is not None else None,
    )


class ChunkTransmitter:
    """Send chunk bytes to an open session.

    No retries happen here: transport and server errors propagate to the
    caller untouched and the session stays valid for a later resume.
    """

    def __init__(
        self,
        api: ApiClient,
        encoding: "ChunkEncoding | str" = ChunkEncoding.MULTIPART,
    ) -> None:
        self.api = api
        self.encoding = ChunkEncoding.parse(encoding)

    async def send(self, session_id: str, index: int, data: bytes) -> ChunkAck:
        """Transmit one chunk and return the server acknowledgement."""

        path = chunk_path(session_id, index)
        LOGGER.debug(
            "sending chunk %s of session %s (%s bytes, %s)",
            index,
            session_id,
            len(data),
            self.encoding.value,
        )
        if self.encoding is ChunkEncoding.MULTIPART:
            payload = await self.api.post_multipart_bytes(
                path,
                data,
                chunk_filename(index),
                field_name="chunk",
            )
        elif self.encoding is ChunkEncoding.POST:
            payload = await self.api.post_bytes(path, data)
        else:
            payload = await self.api.put_bytes(path, data)
        return _parse_ack(index, payload)
