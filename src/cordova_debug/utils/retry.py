"""Bounded retry and timeout helpers shared by every polling step."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from cordova_debug.errors import retry_exhausted_error, timeout_error

logger = structlog.get_logger()

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    condition: Callable[[T], bool],
    max_attempts: int,
    delay_ms: float,
    failure: str,
) -> T:
    """Run ``operation`` until ``condition`` accepts its result.

    Only a rejected result is retried. Exceptions raised by ``operation`` mean
    something other than "not ready yet" (missing tool, I/O error) and
    propagate on the first occurrence.

    Args:
        operation: Zero-argument coroutine factory producing a result
        condition: Pure predicate over that result
        max_attempts: Number of evaluations; the last one is not followed by a delay
        delay_ms: Pause between evaluations in milliseconds
        failure: Message carried by the error raised on exhaustion

    Raises:
        LaunchError: ERR_RETRY_EXHAUSTED after ``max_attempts`` rejected results
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        result = await operation()
        if condition(result):
            return result
        logger.debug("retry_rejected", attempt=attempt, max_attempts=max_attempts)
        if attempt < max_attempts:
            await asyncio.sleep(delay_ms / 1000)

    raise retry_exhausted_error(failure, max_attempts)


async def with_timeout(awaitable: Awaitable[T], timeout_ms: float, operation: str) -> T:
    """Await ``awaitable`` but give up after ``timeout_ms``.

    Expiry drops the caller's await only. Processes behind the awaitable are
    not signalled and stay trackable for a later kill.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except TimeoutError:
        raise timeout_error(operation, timeout_ms) from None


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> list[Any]:
    """Run ``awaitables`` concurrently and return their results in order.

    The first failure cancels the siblings and is re-raised on its own, not
    wrapped in an ExceptionGroup.
    """
    tasks: list[asyncio.Task[Any]] = []
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(_await(awaitable)) for awaitable in awaitables]
    except ExceptionGroup as group_error:
        raise group_error.exceptions[0] from None
    return [task.result() for task in tasks]


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable
