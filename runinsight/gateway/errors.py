"""
Upstream Errors
===============

Error taxonomy for calls made to upstream record sources.
"""

from typing import Optional


class UpstreamError(Exception):
    """Base class for failures talking to an upstream service."""

    kind = "upstream"

    def __init__(self, message: str, path: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class TransientUpstreamError(UpstreamError):
    """429, 5xx, timeouts and reset connections. Retried within the attempt budget."""

    kind = "transient"


class PermanentUpstreamError(UpstreamError):
    """Any 4xx other than 429. Never retried."""

    kind = "permanent"


class UpstreamUnavailableError(UpstreamError):
    """Connection refused or host not resolvable. Never retried."""

    kind = "unavailable"


class UnexpectedShapeError(UpstreamError):
    """The upstream answered, but with a payload we cannot interpret."""

    kind = "unexpected_shape"
