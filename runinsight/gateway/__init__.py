"""Upstream gateway access."""

from .client import GatewayClient, UpstreamRequest
from .errors import (
    PermanentUpstreamError,
    TransientUpstreamError,
    UnexpectedShapeError,
    UpstreamError,
    UpstreamUnavailableError,
)

__all__ = [
    "GatewayClient",
    "UpstreamRequest",
    "UpstreamError",
    "TransientUpstreamError",
    "PermanentUpstreamError",
    "UpstreamUnavailableError",
    "UnexpectedShapeError",
]
