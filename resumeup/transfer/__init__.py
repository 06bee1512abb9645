"""Chunked upload engine package for resumeup."""

from .engine import UploadOrchestrator, UploadPhase, UploadResult
from .session import SessionCoordinator, SessionState, SessionStatus, UploadProgress, UploadSession

__all__ = [
    "SessionCoordinator",
    "SessionState",
    "SessionStatus",
    "UploadOrchestrator",
    "UploadPhase",
    "UploadProgress",
    "UploadResult",
    "UploadSession",
]
