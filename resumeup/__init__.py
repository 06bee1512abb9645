"""Resumable chunked uploads to a remote storage endpoint."""

from .errors import UploadError
from .transfer import UploadOrchestrator, UploadProgress, UploadResult

__all__ = ["UploadError", "UploadOrchestrator", "UploadProgress", "UploadResult"]
__version__ = "0.1.0"
