"""Bounded-concurrency mapping over coroutine functions."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Run ``fn`` over ``items`` with at most ``limit`` calls in flight.

    A sliding window of ``limit`` workers pulls from one shared queue, so the
    next item starts as soon as any running call finishes. ``results[i]``
    always corresponds to ``items[i]``.

    If a call raises, no further items are started, the calls already in
    flight are allowed to settle, and the first failure is re-raised.
    Callers that need partial success must catch inside ``fn``.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    results: list[R | None] = [None] * len(items)
    pending = iter(enumerate(items))
    errors: list[BaseException] = []

    async def worker() -> None:
        # The shared iterator is only advanced between awaits, so each
        # index is claimed by exactly one worker.
        for index, item in pending:
            if errors:
                return
            try:
                results[index] = await fn(item)
            except Exception as exc:
                errors.append(exc)
                return

    await asyncio.gather(*(worker() for _ in range(min(limit, len(items)))))

    if errors:
        raise errors[0]
    return results  # type: ignore[return-value]
