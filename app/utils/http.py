"""HTTP utilities providing upstream error mapping and retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Any, Awaitable, Callable

import httpx

from app.core.errors import UpstreamError
from app.core.logging import redact_secrets

logger = logging.getLogger(__name__)

_MAX_BODY_CHARS = 2000


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


def raise_for_upstream(response: httpx.Response, action: str) -> None:
    """Translate a non-2xx response into ``UpstreamError`` carrying status and body."""
    if response.is_success:
        return
    body = redact_secrets(response.text[:_MAX_BODY_CHARS])
    raise UpstreamError(
        f"{action} failed: {response.status_code} {body}".strip(),
        status=response.status_code,
        body=body,
    )


async def send(
    func: Callable[..., Awaitable[httpx.Response]], *args: Any, action: str, **kwargs: Any
) -> httpx.Response:
    """Perform one request, mapping transport failures and error statuses."""
    try:
        response = await func(*args, **kwargs)
    except httpx.TimeoutException as exc:
        raise UpstreamError(f"{action} timed out.", status=HTTPStatus.GATEWAY_TIMEOUT) from exc
    except httpx.HTTPError as exc:
        raise UpstreamError(f"{action} failed: {exc.__class__.__name__}") from exc
    raise_for_upstream(response, action)
    return response


def _is_retryable(exc: UpstreamError) -> bool:
    return exc.status is None or exc.status >= HTTPStatus.INTERNAL_SERVER_ERROR


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args: Any,
    action: str,
    retry_config: RetryConfig | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """``send`` with bounded retries on transport errors and 5xx responses."""
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: UpstreamError | None = None

    while attempt < config.attempts:
        try:
            return await send(func, *args, action=action, **kwargs)
        except UpstreamError as exc:
            if not _is_retryable(exc):
                raise
            last_exception = exc
            attempt += 1
            if attempt >= config.attempts:
                break
            logger.info("%s attempt %s failed; retrying.", action, attempt)
            await asyncio.sleep(config.backoff_seconds * attempt)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RetryConfig", "raise_for_upstream", "request_with_retry", "send"]
