import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from .config import DEFAULT_TIMEOUT
from .errors import UpstreamUnavailableError
from .types import WireRequest

logger = logging.getLogger(__name__)

FragmentHandler = Callable[[bytes], Awaitable[None]]


class TransportError(UpstreamUnavailableError):
    """The request could not be delivered or the connection broke."""


@dataclass(frozen=True)
class TransportResponse:
    """Status and buffered body of a finished request."""
    status: int
    body: bytes = b""


class Transport(ABC):
    """
    Moves a :class:`WireRequest` over the network.

    Transports never interpret vendor payloads; that is the adapters' job.
    """

    @abstractmethod
    async def send(self, wire: WireRequest) -> TransportResponse:
        """Send a request and buffer the whole response body."""

    @abstractmethod
    async def stream(self, wire: WireRequest, on_fragment: FragmentHandler) -> TransportResponse:
        """
        Send a request and hand every network read to ``on_fragment``.

        For error statuses (>= 400) nothing is streamed; the error body is
        buffered and returned instead, so it can be normalized like any other
        failure.
        """

    async def aclose(self) -> None:
        return None


class HttpxTransport(Transport):
    """
    Transport backed by ``httpx.AsyncClient``.

    Args:
        client (httpx.AsyncClient, optional): Client to use. One is created
            (and owned) when omitted.
        timeout (float): Request timeout in seconds for an owned client.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = DEFAULT_TIMEOUT):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, wire: WireRequest) -> TransportResponse:
        try:
            response = await self._client.request(
                wire.method,
                wire.url,
                content=wire.json(),
                headers=dict(wire.headers),
            )
        except httpx.HTTPError as exc:
            raise TransportError(
                f"{wire.provider} request failed: {exc}", provider=wire.provider
            ) from exc
        logger.debug("%s responded with HTTP %s", wire.provider, response.status_code)
        return TransportResponse(status=response.status_code, body=response.content)

    async def stream(self, wire: WireRequest, on_fragment: FragmentHandler) -> TransportResponse:
        try:
            async with self._client.stream(
                wire.method,
                wire.url,
                content=wire.json(),
                headers=dict(wire.headers),
            ) as response:
                # Check for HTTP errors before streaming
                if response.status_code >= 400:
                    body = await response.aread()
                    logger.debug("%s stream refused with HTTP %s", wire.provider, response.status_code)
                    return TransportResponse(status=response.status_code, body=body)

                async for fragment in response.aiter_bytes():
                    await on_fragment(fragment)
                return TransportResponse(status=response.status_code)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"{wire.provider} stream failed: {exc}", provider=wire.provider
            ) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
