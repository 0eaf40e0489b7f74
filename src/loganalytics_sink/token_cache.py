"""Bearer token cache backed by the OAuth2 client-credentials grant."""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from urllib.parse import urlencode

from .config import LoggerCredential
from .diagnostics import delivering
from .errors import AuthError, TransportError
from .transport import Transport


logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
MONITOR_SCOPE = "https://monitor.azure.com//.default"


class TokenCache:
    """
    Holds the current bearer token for one sink.

    Tokens carry no tracked expiry: a failed delivery invalidates the token
    and the next use fetches a fresh one. Readers see either the old or the
    new token, never a partial one.

    Usage:
        tokens = TokenCache(credential, transport)
        tokens.prime(timeout=30)      # block until the first token exists
        token = tokens.current()
        tokens.invalidate()
        tokens.refresh_async()
    """

    def __init__(
        self,
        credential: LoggerCredential,
        transport: Transport,
        authority: str = DEFAULT_AUTHORITY,
        scope: str = MONITOR_SCOPE,
    ):
        self._credential = credential
        self._transport = transport
        self._authority = authority.rstrip("/")
        self._scope = scope

        self._lock = threading.Lock()
        self._token: str | None = None
        self._refresh: Future | None = None
        self._last_error: AuthError | None = None
        self._closed = False
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="loganalytics-token")

        self._stats = {
            "fetches": 0,
            "fetch_failures": 0,
            "invalidations": 0,
        }

    @property
    def token_url(self) -> str:
        return f"{self._authority}/{self._credential.tenant_id}/oauth2/v2.0/token"

    def fetch(self) -> str | None:
        """
        Exchange the client credentials for a new access token.

        Returns the token, or None when the exchange failed. The failure is
        logged and kept as ``last_error``; it is never raised.
        """
        try:
            token = self._exchange()
        except AuthError as e:
            logger.error(f"Token request failed: {e}")
            with self._lock:
                self._last_error = e
                self._stats["fetch_failures"] += 1
            return None

        with self._lock:
            self._token = token
            self._last_error = None
            self._stats["fetches"] += 1
        logger.debug("Access token refreshed")
        return token

    def current(self) -> str | None:
        """
        The cached token, fetching one if none is cached.

        Joins a refresh already in flight rather than starting a second
        exchange.
        """
        with self._lock:
            token = self._token
            pending = self._refresh

        if token:
            return token
        if pending is not None and not pending.done():
            return pending.result()
        return self.fetch()

    def invalidate(self) -> None:
        """Mark the cached token stale so the next use re-fetches."""
        with self._lock:
            self._token = None
            self._stats["invalidations"] += 1
        logger.debug("Access token invalidated")

    def refresh_async(self) -> Future | None:
        """Schedule a background fetch; concurrent calls share one refresh."""
        with self._lock:
            if self._closed:
                return None
            if self._refresh is None or self._refresh.done():
                self._refresh = self._executor.submit(self.fetch)
            return self._refresh

    def prime(self, timeout: float) -> str:
        """
        Block until the first token is available.

        Raises:
            AuthError: If the exchange failed or did not finish within ``timeout``
        """
        future = self.refresh_async()
        if future is None:
            raise AuthError("Token cache is closed")

        try:
            token = future.result(timeout=timeout)
        except FutureTimeout:
            raise AuthError(f"No access token within {timeout}s") from None

        if token is None:
            raise AuthError(f"Could not obtain access token: {self._last_error}") from self._last_error
        return token

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)

    @property
    def has_token(self) -> bool:
        return self._token is not None

    @property
    def last_error(self) -> AuthError | None:
        return self._last_error

    @property
    def stats(self) -> dict:
        """Get token cache statistics."""
        with self._lock:
            return {**self._stats, "has_token": self._token is not None}

    def _exchange(self) -> str:
        body = urlencode({
            "client_id": self._credential.client_id,
            "scope": self._scope,
            "client_secret": self._credential.client_secret,
            "grant_type": "client_credentials",
        }).encode("utf-8")
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            with delivering():
                response = self._transport.post(self.token_url, headers, body)
        except TransportError as e:
            raise AuthError(f"Token endpoint unreachable: {e}") from e

        if not response.is_success:
            raise AuthError(
                f"Token endpoint returned {response.status_code} {response.reason_phrase}".rstrip()
            )

        try:
            data = json.loads(response.text)
        except ValueError as e:
            raise AuthError("Invalid token response: body is not JSON") from e

        if not isinstance(data, dict):
            raise AuthError("Invalid token response: expected a JSON object")

        token = data.get("access_token")
        if not isinstance(token, str) or not token:
            raise AuthError("Invalid token response: no access_token")
        return token
