"""Authenticated HTTP request layer shared by the upload components."""

from __future__ import annotations

import json  # json 解析错误响应
import logging  # logging 输出调试信息
from typing import Any, Dict, Mapping, Optional

import httpx  # httpx 提供异步 HTTP 客户端

from ..config import ServerConfig
from ..errors import TransientNetworkFailure, error_from_response

LOGGER = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"


def extract_message(response: httpx.Response) -> str:
    """从错误响应中提取服务端消息。"""

    text = response.text
    try:
        decoded = json.loads(text) if text else None
    except ValueError:
        return text or response.reason_phrase
    if isinstance(decoded, dict):
        for key in ("error", "message", "detail"):
            value = decoded.get(key)
            if value:
                return value if isinstance(value, str) else json.dumps(value)
    return text or response.reason_phrase


class ApiClient:
    """Thin wrapper around :class:`httpx.AsyncClient` adding identity headers.

    Any non-2xx response is raised as a typed :class:`UploadError`;
    connectivity failures become :class:`TransientNetworkFailure`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        token: str | None = None,
        project_id: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or None
        self.token = token or None
        self.project_id = project_id or None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        server: ServerConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ApiClient":
        return cls(
            server.base_url,
            api_key=server.api_key,
            token=server.token,
            project_id=server.project_id,
            timeout=server.timeout_sec,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        # API Key 优先于 Bearer token
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        elif self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.project_id:
            headers["X-Project-ID"] = self.project_id
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: bytes | None = None,
        files: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (or ``None``)."""

        LOGGER.debug("%s %s", method, path)
        try:
            response = await self._client.request(
                method,
                path,
                json=json_body,
                content=content,
                files=files,
                headers=self._headers(headers),
            )
        except httpx.HTTPError as exc:
            # 连接、解码、重定向等错误统一映射为可重试的网络错误
            raise TransientNetworkFailure(f"{method} {path} failed: {exc}") from exc
        if not response.is_success:
            raise error_from_response(response.status_code, extract_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, json_body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def post_bytes(self, path: str, data: bytes) -> Any:
        return await self.request("POST", path, content=data, headers={"Content-Type": OCTET_STREAM})

    async def put_bytes(self, path: str, data: bytes) -> Any:
        return await self.request("PUT", path, content=data, headers={"Content-Type": OCTET_STREAM})

    async def post_multipart_bytes(
        self,
        path: str,
        data: bytes,
        filename: str,
        *,
        field_name: str = "file",
        content_type: str = OCTET_STREAM,
    ) -> Any:
        files = {field_name: (filename, data, content_type)}
        return await self.request("POST", path, files=files)


__all__ = ["ApiClient", "OCTET_STREAM", "extract_message"]
