"""HTTP transports for Solana JSON-RPC requests.

``HTTPTransport`` performs exactly one POST per request. ``RetryingTransport``
wraps any transport in a tenacity retry policy with bounded exponential
backoff. Only transport-level failures are retried; a JSON-RPC error body is
a completed round trip and is handed back to the caller untouched.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Protocol

import requests
from requests import RequestException
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 4
BASE_DELAY_MS = 100
MAX_DELAY_MS = 1500
REQUEST_TIMEOUT_SECONDS = 30


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportExhausted(RPCTransportError):
    """Raised when every attempt of a single RPC request failed."""

    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(
            f"RPC request failed after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )
        self.attempts = attempts
        self.last_error = last_error


class Transport(Protocol):
    def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HTTPTransport:
    """One-shot JSON-RPC transport backed by a shared ``requests.Session``."""

    def __init__(self, url: str, *, timeout: float = REQUEST_TIMEOUT_SECONDS) -> None:
        self.url = url
        self.timeout = timeout
        self._session = requests.Session()

    def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._session.post(
                self.url,
                data=json.dumps(request),
                headers={"content-type": "application/json"},
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.debug(
                "RPC connection to %s failed: %s",
                self.url,
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection failed. Ensure {self.url} is reachable and SOLANA_RPC_URL "
                "(or ~/.spl-token-tools.yaml) points to the right cluster."
            ) from exc

        if not response.ok:
            logger.debug("RPC HTTP error %s from %s: %s", response.status_code, self.url, response.text)
            if response.status_code == 429:
                raise RPCTransportError(
                    "RPC node is rate limiting requests (429).", status_code=response.status_code
                )
            raise RPCTransportError(
                f"RPC server returned HTTP {response.status_code}.",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(payload, dict):
            raise RPCTransportError("RPC server returned a non-object JSON response")
        return payload

    def close(self) -> None:
        self._session.close()


class RetryingTransport:
    """Retry a transport up to ``max_attempts`` times with capped backoff.

    Delays double from ``2 * BASE_DELAY_MS`` and never exceed ``MAX_DELAY_MS``.
    """

    def __init__(
        self,
        inner: Transport,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.inner = inner
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=BASE_DELAY_MS * 2 / 1000, max=MAX_DELAY_MS / 1000),
            retry=retry_if_exception_type(RPCTransportError),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.DEBUG),
        )

    def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._retrying()(self.inner.send, request)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            logger.debug(
                "RPC %s failed after %d attempts: %s", request.get("method"), self.max_attempts, last_error
            )
            raise TransportExhausted(self.max_attempts, last_error) from last_error

    def close(self) -> None:
        close = getattr(self.inner, "close", None)
        if close is not None:
            close()
