"""Repository layer for the case process engine.

Provides protocol interfaces and a resolve() helper that transparently
handles both sync (in-memory) and async (SQL) store returns.
"""

from __future__ import annotations

import inspect
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def resolve(value: T | Awaitable[T]) -> T:
    """Await a value if it is awaitable, otherwise return it directly.

    Lets callers use every store uniformly:
        case = await resolve(store.get_case(tenant_id, case_id))

    In-memory stores return plain values; SQL repositories return coroutines.
    """
    if inspect.isawaitable(value):
        return await value  # type: ignore[return-value]
    return value  # type: ignore[return-value]
