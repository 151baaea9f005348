from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp

from ..domain.errors import ErrorKind, UpstreamError
from ..domain.models import CharacterDescriptor

T = TypeVar("T")

log = logging.getLogger(__name__)

USER_AGENT = "mplusbot/1.0"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    request_timeout: float = 10.0  # seconds, per attempt

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * 2 ** (attempt - 1)


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float,
    descriptor: CharacterDescriptor | None,
    source: str,
) -> dict[str, Any]:
    """One GET attempt. Every failure comes out as an ``UpstreamError``."""
    try:
        async with session.get(
            url,
            params=params,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            if resp.status != 200:
                body = await resp.text() if resp.status < 500 else ""
                raise UpstreamError.from_status(resp.status, descriptor=descriptor, source=source, body=body)
            try:
                data = await resp.json(content_type=None)
            except (aiohttp.ContentTypeError, ValueError) as e:
                raise UpstreamError(
                    ErrorKind.PARSE, f"{source}: invalid JSON", descriptor=descriptor, source=source
                ) from e
    except asyncio.TimeoutError as e:
        raise UpstreamError(
            ErrorKind.TIMEOUT, f"{source}: timed out after {timeout}s", descriptor=descriptor, source=source
        ) from e
    except aiohttp.ClientError as e:
        raise UpstreamError(
            ErrorKind.NETWORK, f"Network error ({source}): {e}", descriptor=descriptor, source=source
        ) from e

    if not isinstance(data, dict):
        raise UpstreamError(ErrorKind.PARSE, f"{source}: expected an object", descriptor=descriptor, source=source)
    return data


async def with_retry(
    attempt_call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
) -> T:
    """Run ``attempt_call`` up to ``policy.max_retries`` times.

    Only retryable errors (network, 429, 5xx) are retried, with exponential
    back-off between attempts.
    """
    for attempt in range(1, policy.max_retries + 1):
        try:
            return await attempt_call()
        except UpstreamError as e:
            log.warning(
                "%s attempt %d/%d failed: %s (%s)", label, attempt, policy.max_retries, e, e.kind.value
            )
            if not e.retryable or attempt >= policy.max_retries:
                raise
            await asyncio.sleep(policy.delay_for(attempt))
    raise RuntimeError("unreachable")
