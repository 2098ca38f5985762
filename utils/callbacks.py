# utils/callbacks.py
"""Call user-supplied callbacks that may be plain functions or coroutines."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call ``callback`` with ``args``, awaiting the result when it is awaitable."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
