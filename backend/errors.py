"""
Exception hierarchy for report rendering and upstream calls.
"""
from typing import Any, Dict, Optional


class RaizesError(Exception):
    """Base exception for all backend errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses and logs."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class RenderError(RaizesError):
    """Errors while producing a report document."""


class AssetMissing(RenderError):
    """A bundled image or font could not be opened.

    Raised before the document touches the sink, so nothing has been written.
    """

    def __init__(self, message: str, asset: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="ASSET_MISSING",
            details={"asset": asset, **(details or {})},
        )
        self.asset = asset


class StreamWriteError(RenderError):
    """The sink rejected a write or the final close.

    Part of the document may already be on the sink; callers must discard it.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="STREAM_WRITE_ERROR", details=details)


class UpstreamError(RaizesError):
    """Transport failure talking to the upstream REST API."""

    def __init__(self, message: str, url: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code="UPSTREAM_ERROR",
            details={"url": url, **(details or {})},
        )
        self.url = url
