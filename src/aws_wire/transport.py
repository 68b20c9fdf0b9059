# src/aws_wire/transport.py

"""
HTTP transport with retry, backoff and deadlines.

The transport knows nothing about protocols. Callers hand it a logical
request, a function that signs that request, and a function that turns a
non-2xx response into a typed ServiceError. Signing happens once per attempt
so every retry carries a fresh timestamp.
"""

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import requests

from .config import ClientConfig
from .exceptions import (
    DeadlineExceededError,
    NonRetryableError,
    RetryableError,
    ServiceError,
    TransportError,
    get_error_context,
)
from .signing import HttpRequest, SignedRequest, get_header

logger = logging.getLogger(__name__)

Signer = Callable[[HttpRequest], SignedRequest]
ErrorParser = Callable[["HttpResponse"], ServiceError]


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    headers: Mapping[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        return get_header(self.headers, name)

    def json(self) -> Any:
        if not self.body or not self.body.strip():
            return {}
        return json.loads(self.body)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with full jitter, capped at ``max_delay`` seconds."""

    max_attempts: int = 3
    base_delay: float = 0.1
    max_delay: float = 5.0

    def backoff(
        self, attempt: int, uniform: Callable[[float, float], float] = random.uniform
    ) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` is zero-based)."""
        ceiling = min(self.max_delay, self.base_delay * (2**attempt))
        return uniform(0, ceiling)

    @classmethod
    def from_config(cls, config: ClientConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_base_seconds,
            max_delay=config.max_backoff_seconds,
        )


class HttpTransport:
    def __init__(
        self,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        uniform: Callable[[float, float], float] = random.uniform,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            session: Shared ``requests.Session``; one is created when omitted.
            retry_policy: Attempt cap and backoff parameters.
            timeout: Per-attempt timeout in seconds, shortened by any deadline.
            sleep, uniform, clock: Injectable for tests.
        """
        self._session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self._timeout = timeout
        self._sleep = sleep
        self._uniform = uniform
        self._clock = clock

    @classmethod
    def from_config(
        cls, config: ClientConfig, session: requests.Session | None = None
    ) -> "HttpTransport":
        return cls(
            session=session,
            retry_policy=RetryPolicy.from_config(config),
            timeout=config.timeout_seconds,
        )

    def send(
        self,
        request: HttpRequest,
        sign: Signer,
        parse_error: ErrorParser,
        deadline: float | None = None,
    ) -> HttpResponse:
        """
        Sends ``request``, retrying retryable failures.

        ``deadline`` is an absolute ``time.monotonic()`` value. Once it passes,
        DeadlineExceededError is raised and the outcome of any in-flight
        attempt is unknown.
        """
        started = self._clock()
        max_attempts = self.retry_policy.max_attempts

        for attempt in range(max_attempts):
            timeout = self._attempt_timeout(deadline, started)
            try:
                return self._attempt(request, sign, parse_error, timeout, attempt)
            except RetryableError as e:
                if deadline is not None and self._clock() >= deadline:
                    raise DeadlineExceededError(
                        deadline - started, context=self._describe(request)
                    ) from e
                if attempt + 1 >= max_attempts:
                    logger.error(
                        "Request failed after final attempt",
                        extra={
                            **self._describe(request),
                            "attempts": attempt + 1,
                            **get_error_context(e),
                        },
                    )
                    raise

                delay = self.retry_policy.backoff(attempt, self._uniform)
                if deadline is not None and self._clock() + delay >= deadline:
                    raise DeadlineExceededError(
                        deadline - started, context=self._describe(request)
                    ) from e

                logger.warning(
                    "Retrying request after retryable error",
                    extra={
                        **self._describe(request),
                        "attempt": attempt + 1,
                        "delay_seconds": round(delay, 3),
                        "error_code": e.error_code,
                    },
                )
                self._sleep(delay)

        raise TransportError("Retry policy allows no attempts", context=self._describe(request))

    def _attempt(
        self,
        request: HttpRequest,
        sign: Signer,
        parse_error: ErrorParser,
        timeout: float,
        attempt: int,
    ) -> HttpResponse:
        signed = sign(request)
        logger.debug(
            "Sending request",
            extra={**self._describe(request), "attempt": attempt + 1, "timeout": timeout},
        )
        try:
            raw = self._session.request(
                signed.request.method,
                signed.url,
                headers=signed.headers,
                data=signed.request.body or None,
                timeout=timeout,
            )
            body = raw.content
        except requests.Timeout as e:
            raise TransportError(
                "Request timed out",
                context={**self._describe(request), "transport_error": str(e)},
            ) from e
        except (
            requests.ConnectionError,
            requests.exceptions.ChunkedEncodingError,
            requests.exceptions.ContentDecodingError,
        ) as e:
            raise TransportError(
                "Connection to the service failed",
                context={**self._describe(request), "transport_error": str(e)},
            ) from e
        except requests.RequestException as e:
            # Malformed URLs and the like.
            raise NonRetryableError(
                "Request could not be sent",
                error_code="REQUEST_FAILED",
                context={**self._describe(request), "transport_error": str(e)},
            ) from e

        response = HttpResponse(status_code=raw.status_code, headers=raw.headers, body=body)
        if response.ok:
            return response
        raise parse_error(response)

    def _attempt_timeout(self, deadline: float | None, started: float) -> float:
        if deadline is None:
            return self._timeout
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise DeadlineExceededError(deadline - started)
        return min(self._timeout, remaining)

    @staticmethod
    def _describe(request: HttpRequest) -> dict:
        return {"method": request.method, "host": request.host, "path": request.path}
