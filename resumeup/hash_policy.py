"""Integrity digests sent to the server when a session is opened."""

from __future__ import annotations

from hashlib import sha256  # hashlib 提供跨平台哈希实现
from pathlib import Path  # Path 用于处理文件系统路径
from typing import Any, BinaryIO, Iterator  # 类型提示

import aiofiles  # aiofiles 支持异步读取文件

from .errors import SourceNotFound

# 读取文件时使用的块大小，1 MiB 保证内存占用有界
_READ_CHUNK_SIZE = 1024 * 1024


def new_hasher() -> Any:
    """创建新的哈希上下文。"""

    return sha256()


def _iter_file_chunks(handle: BinaryIO) -> Iterator[bytes]:
    """生成器：按块读取文件直到末尾。"""

    while True:
        chunk = handle.read(_READ_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


def digest_bytes(data: bytes) -> str:
    """计算内存数据的十六进制 SHA-256 摘要。"""

    return sha256(data).hexdigest()


def compute_file_hash(path: Path) -> str:
    """计算文件内容哈希。

    Args:
        path: 目标文件路径。

    Returns:
        小写十六进制的 SHA-256 摘要。

    Raises:
        SourceNotFound: 文件不存在时抛出。
    """

    path = Path(path)
    if not path.is_file():
        raise SourceNotFound(f"source file not found: {path}")
    hasher = new_hasher()
    with path.open("rb") as handle:
        for chunk in _iter_file_chunks(handle):
            hasher.update(chunk)
    return hasher.hexdigest()


async def compute_file_hash_async(path: Path) -> str:
    """异步计算文件内容哈希，使用 aiofiles 逐块读取。

    Args:
        path: 目标文件路径。

    Returns:
        与 :func:`compute_file_hash` 相同的十六进制摘要。
    """

    path = Path(path)
    if not path.is_file():
        raise SourceNotFound(f"source file not found: {path}")
    async with aiofiles.open(path, "rb") as handle:
        return await digest_stream(handle)


async def digest_stream(handle: Any) -> str:
    """从异步文件句柄开头读取到末尾并返回摘要，读取后句柄位于文件末尾。"""

    hasher = new_hasher()
    await handle.seek(0)
    while True:
        chunk = await handle.read(_READ_CHUNK_SIZE)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.hexdigest()
