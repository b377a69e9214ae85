"""Concurrent fan-out of one logical call to many upstream targets."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P")


class FanOutDispatcher:
    """Run ``call`` against every target at once and wait for all of them.

    Results come back one slot per target, in target order, whatever order the
    calls finish in. A target whose call fails or exceeds ``timeout`` gets
    ``None`` in its slot; the other calls are unaffected. Each target is tried
    exactly once.
    """

    def __init__(self, *, timeout: float) -> None:
        self._timeout = timeout

    async def dispatch(
        self,
        targets: Sequence[T],
        call: Callable[[T], Awaitable[P]],
        *,
        describe: Callable[[T], str] = str,
    ) -> list[P | None]:
        if not targets:
            return []
        results = await asyncio.gather(
            *(self._guarded(target, call, describe(target)) for target in targets)
        )
        failures = sum(1 for result in results if result is None)
        if failures:
            logger.debug(
                "Fan-out finished with %s/%s failed targets", failures, len(targets)
            )
        return list(results)

    async def _guarded(
        self, target: T, call: Callable[[T], Awaitable[P]], label: str
    ) -> P | None:
        try:
            return await asyncio.wait_for(call(target), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Upstream %s timed out after %.1fs", label, self._timeout)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Upstream %s answered %s", label, exc.response.status_code
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Upstream %s failed: %s", label, exc)
        return None
