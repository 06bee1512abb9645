"""Typed errors raised by the upload client.

Every failure carries a ``kind`` discriminant, the originating HTTP status
(when one exists) and the server message. Errors raised while chunks are
being sent also carry the ``session_id`` so callers can resume.
"""

from __future__ import annotations

from typing import Iterable  # Iterable 用于类型提示


class UploadError(Exception):
    """Base class for every error surfaced by resumeup."""

    kind = "upload_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.session_id = session_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.session_id:
            parts.append(f"session={self.session_id}")
        return " ".join(parts)

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    @property
    def is_forbidden(self) -> bool:
        return self.status_code == 403

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class InvalidConfiguration(UploadError):
    """Chunk size or other local parameters are unusable."""

    kind = "invalid_configuration"


class SourceNotFound(UploadError):
    """The local source file does not exist or cannot be read."""

    kind = "source_not_found"


class SizeMismatch(UploadError):
    """The local file does not match the size recorded for the session."""

    kind = "size_mismatch"


class AlreadyCompleted(UploadError):
    """The session has already been finalized."""

    kind = "already_completed"


class IncompleteUpload(UploadError):
    """Completion was requested while chunks are still missing."""

    kind = "incomplete_upload"

    def __init__(
        self,
        message: str,
        *,
        missing: Iterable[int] = (),
        status_code: int | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, session_id=session_id)
        self.missing = sorted(missing)


class RemoteRejected(UploadError):
    """The server refused to open a session (4xx)."""

    kind = "remote_rejected"


class TransientNetworkFailure(UploadError):
    """Connectivity problem or 5xx response; the session stays resumable."""

    kind = "transient_network_failure"


class Unauthorized(UploadError):
    kind = "unauthorized"


class Forbidden(UploadError):
    kind = "forbidden"


class ApiError(UploadError):
    """Any other non-2xx response."""

    kind = "api_error"


def error_from_response(status_code: int, message: str) -> UploadError:
    """Map an HTTP status to the matching error type."""

    if status_code == 401:
        return Unauthorized(message, status_code=status_code)
    if status_code == 403:
        return Forbidden(message, status_code=status_code)
    if status_code >= 500:
        return TransientNetworkFailure(message, status_code=status_code)
    return ApiError(message, status_code=status_code)
