"""Chunk layout helpers used by the upload engine.

A source of ``total_size`` bytes is split into ``ceil(total_size / chunk_size)``
half-open byte ranges. For example a 1000 byte file with a 300 byte chunk size
yields::

    [0, 300) [300, 600) [600, 900) [900, 1000)

The ranges are addressed by zero-based index on the wire
(``/api/upload/<session>/chunk/<index>``).
"""

from __future__ import annotations

from dataclasses import dataclass  # dataclass 描述单个分块
from typing import Any, List  # 类型提示让接口更清晰

from ..constants import DEFAULT_CHUNK_SIZE
from ..errors import InvalidConfiguration, SizeMismatch

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "ChunkRange",
    "chunk_count",
    "chunk_range",
    "plan_chunks",
    "read_chunk",
    "slice_chunk",
]


@dataclass(slots=True, frozen=True)
class ChunkRange:
    """A half-open byte range ``[offset, offset + length)`` of the source."""

    index: int  # 分块编号，从 0 开始
    offset: int  # 起始字节偏移
    length: int  # 分块字节数

    @property
    def end(self) -> int:
        return self.offset + self.length


def _validate(total_size: int, chunk_size: int) -> None:
    # 分块大小必须为正数
    if chunk_size <= 0:
        raise InvalidConfiguration(f"chunk size must be positive, got {chunk_size}")
    # 文件大小不能为负
    if total_size < 0:
        raise InvalidConfiguration(f"total size must not be negative, got {total_size}")


def chunk_count(total_size: int, chunk_size: int) -> int:
    """Return ``ceil(total_size / chunk_size)``; zero for an empty source."""

    _validate(total_size, chunk_size)
    return -(-total_size // chunk_size)


def chunk_range(index: int, total_size: int, chunk_size: int) -> ChunkRange:
    """Return the byte range for a single chunk index.

    Raises
    ------
    InvalidConfiguration
        If ``index`` is outside ``[0, chunk_count)``.
    """

    count = chunk_count(total_size, chunk_size)
    if index < 0 or index >= count:
        raise InvalidConfiguration(f"chunk index {index} outside [0, {count})")
    offset = index * chunk_size
    # 最后一块可能不足 chunk_size
    length = min(chunk_size, total_size - offset)
    return ChunkRange(index=index, offset=offset, length=length)


def plan_chunks(total_size: int, chunk_size: int) -> List[ChunkRange]:
    """Compute the ordered chunk layout for a source.

    Parameters
    ----------
    total_size:
        Size of the source in bytes, ``>= 0``.
    chunk_size:
        Size of each chunk in bytes, ``> 0``.

    Returns
    -------
    list
        :class:`ChunkRange` items in ascending index order. Every range has a
        length in ``(0, chunk_size]`` and the lengths sum to ``total_size``.
        An empty source yields an empty list.
    """

    count = chunk_count(total_size, chunk_size)
    return [chunk_range(index, total_size, chunk_size) for index in range(count)]


async def read_chunk(handle: Any, chunk: ChunkRange) -> bytes:
    """Read exactly the bytes of ``chunk`` from an open aiofiles handle.

    A short read means the file changed size since the layout was computed
    and is reported as :class:`SizeMismatch`.
    """

    # 定位到分块起点
    await handle.seek(chunk.offset)
    data = await handle.read(chunk.length)
    if len(data) != chunk.length:
        raise SizeMismatch(
            f"chunk {chunk.index} expected {chunk.length} bytes, read {len(data)}"
        )
    return data


def slice_chunk(data: bytes, chunk: ChunkRange) -> bytes:
    """Return the bytes of ``chunk`` from an in-memory source."""

    return bytes(data[chunk.offset : chunk.end])
