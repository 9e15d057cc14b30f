"""Verification hooks and the helpers used to invoke queued callables."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any


async def run_sync_or_async(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


# class to represent a registered verify function
class VerifyHook:
    """A verification function bound to a task name."""

    def __init__(self, name: str, func: Callable):
        """Create a VerifyHook.

        Args:
            name: Name of the task the hook verifies.
            func: Plain or async function receiving a TaskView.
        """
        self.function = func
        self.name = name
        self._wants_queue = _accepts_keyword(func, "queue")

    async def invoke(self, view: Any, queue: Any) -> Any:
        """Call the hook, passing the owning queue when it asks for one."""
        if self._wants_queue:
            return await run_sync_or_async(self.function, view, queue=queue)
        return await run_sync_or_async(self.function, view)

    def __repr__(self) -> str:
        """Return a compact debug representation."""
        return f"VerifyHook(name={self.name}, function={getattr(self.function, '__name__', '?')})"


def _accepts_keyword(func: Callable, name: str) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    for param in signature.parameters.values():
        if param.kind == param.VAR_KEYWORD:
            return True
        if param.name == name and param.kind in (param.KEYWORD_ONLY, param.POSITIONAL_OR_KEYWORD):
            return True
    return False


def verify_hook(name: str, func: Callable | None = None) -> VerifyHook | Callable:
    """Build a VerifyHook, or a decorator building one when ``func`` is omitted.

    Raises:
        ValueError: If the name is blank.
        TypeError: If the hook is not callable.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError(
            f"Task verify must designate a name that matches a queued task, not {name!r}"
        )

    def _make_hook(fn: Callable) -> VerifyHook:
        if not callable(fn):
            raise TypeError(f"Verify must be callable, not {fn!r}")
        return VerifyHook(name=name, func=fn)

    if func is None:
        return _make_hook
    return _make_hook(func)
