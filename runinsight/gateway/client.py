"""
Gateway Client
==============

Outbound HTTP client for the upstream API gateway with classified
retry and exponential backoff.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from loguru import logger

from config import get_config
from .errors import (
    PermanentUpstreamError,
    TransientUpstreamError,
    UnexpectedShapeError,
    UpstreamError,
    UpstreamUnavailableError,
)


@dataclass(frozen=True)
class UpstreamRequest:
    """A single outbound call, minus credentials."""

    path: str
    method: str = "GET"
    params: Dict[str, Any] = field(default_factory=dict)
    json: Optional[Any] = None


class GatewayClient:
    """Execute upstream calls, retrying only transient failures."""

    def __init__(
        self,
        config: Optional[dict] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize GatewayClient.

        Args:
            config: Configuration dictionary
            http_client: Preconfigured httpx client (tests inject a mock transport)
            sleep: Coroutine used to wait between attempts
        """
        self.config = config or get_config()
        gateway_config = self.config.get("gateway", {})

        self.base_url = gateway_config.get("base_url", "")
        self.timeout = float(gateway_config.get("timeout_seconds", 15))
        self.retry_attempts = int(gateway_config.get("retry_attempts", 2))
        self.retry_base_delay = float(gateway_config.get("retry_base_delay_seconds", 1.0))
        self.token_header = gateway_config.get("token_header", "token")

        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={
                "Content-Type": "application/json",
                "User-Agent": gateway_config.get("user_agent", "PredictionService/1.0.0"),
            },
        )
        self._sleep = sleep

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (attempts are numbered from 1)."""
        if attempt < 2:
            return 0.0
        return self.retry_base_delay * 2 ** (attempt - 2)

    def backoff_schedule(self, max_attempts: Optional[int] = None) -> List[float]:
        """Waits preceding attempts 2..N."""
        attempts = max_attempts or self.retry_attempts
        return [self.backoff_delay(attempt) for attempt in range(2, attempts + 1)]

    async def execute(
        self,
        request: UpstreamRequest,
        token: str,
        max_attempts: Optional[int] = None,
    ) -> Any:
        """
        Execute a request, forwarding the caller's token.

        Args:
            request: The call to make
            token: Caller credential, forwarded as-is
            max_attempts: Total attempts including the first one

        Returns:
            Decoded JSON body

        Raises:
            TransientUpstreamError: when every attempt failed transiently
            UpstreamError: on the first non-transient failure
        """
        if not token:
            raise ValueError("An auth token is required for upstream calls")

        attempts = max_attempts or self.retry_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {attempts}")

        last_error: Optional[TransientUpstreamError] = None
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                delay = self.backoff_delay(attempt)
                logger.debug(f"Waiting {delay}s before attempt {attempt}/{attempts} for {request.path}")
                await self._sleep(delay)

            try:
                return await self._send(request, token)
            except TransientUpstreamError as e:
                last_error = e
                if attempt < attempts:
                    logger.warning(f"Retrying {request.method} {request.path} ({attempt}/{attempts}): {e}")

        logger.error(f"Giving up on {request.method} {request.path} after {attempts} attempts: {last_error}")
        raise last_error

    async def _send(self, request: UpstreamRequest, token: str) -> Any:
        logger.debug(f"Gateway request: {request.method} {request.path}")
        try:
            response = await self._client.request(
                request.method,
                request.path,
                params=request.params or None,
                json=request.json,
                headers={self.token_header: token},
            )
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"Timeout calling {request.path}", path=request.path) from e
        except httpx.ConnectError as e:
            raise UpstreamUnavailableError(f"Cannot connect for {request.path}: {e}", path=request.path) from e
        except (httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransientUpstreamError(f"Connection reset on {request.path}: {e}", path=request.path) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"HTTP failure on {request.path}: {e}", path=request.path) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientUpstreamError(
                f"HTTP {status} from {request.path}", path=request.path, status_code=status
            )
        if status >= 400:
            raise PermanentUpstreamError(
                f"HTTP {status} from {request.path}", path=request.path, status_code=status
            )

        logger.debug(f"Gateway response: {status} {request.path}")
        try:
            return response.json()
        except ValueError as e:
            raise UnexpectedShapeError(
                f"Non-JSON body from {request.path}", path=request.path, status_code=status
            ) from e
