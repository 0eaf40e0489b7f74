"""HTTP transport used for token exchange and batch delivery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol
from urllib.parse import urlsplit

import httpx

from .errors import TransportError


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Status and body of a completed HTTP call."""
    status_code: int
    text: str = ""
    reason_phrase: str = ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    """A blocking POST primitive."""

    def post(self, url: str, headers: Mapping[str, str], body: bytes) -> TransportResponse:
        """
        Send ``body`` to ``url``.

        Raises:
            TransportError: If no HTTP response was received
        """
        ...

    def close(self) -> None:
        ...


class HttpxTransport:
    """
    Transport backed by a shared :class:`httpx.Client`.

    The request timeout is enforced here; callers never wait longer than
    ``timeout`` seconds for one call. Error messages never include the
    request URL, which carries tenant and stream identifiers.
    """

    def __init__(self, timeout: float = 30.0, client: httpx.Client | None = None):
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def post(self, url: str, headers: Mapping[str, str], body: bytes) -> TransportResponse:
        try:
            response = self._client.post(url, headers=dict(headers), content=body)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out ({type(e).__name__})") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"HTTP request failed ({type(e).__name__}): {_scrub(str(e), url)}") from e

        return TransportResponse(
            status_code=response.status_code,
            text=response.text,
            reason_phrase=response.reason_phrase,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def _scrub(message: str, url: str) -> str:
    """Remove every piece of the request URL from an error message."""
    parts = urlsplit(url)
    secrets = [url, f"{parts.scheme}://{parts.netloc}{parts.path}", parts.netloc, parts.path, parts.query]
    secrets += [segment for segment in parts.path.split("/") if len(segment) > 2]
    for secret in sorted(filter(None, set(secrets)), key=len, reverse=True):
        message = message.replace(secret, "<redacted>")
    return message
