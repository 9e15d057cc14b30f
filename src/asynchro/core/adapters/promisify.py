"""Adapters turning callback and event based APIs into queue operations.

Each helper returns an async callable, so the result can be queued in any mode::

    queue.parallel("stat", promisify_callback(fs, "stat", ["info"]), path)
    queue.parallel("ready", promisify_events(server)(["listening"]))
    queue.series("pause", promisify_delay, 100)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from asynchro.core.protocols.event_source import EventSource, ensure_event_source
from asynchro.core.utils import as_exception

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_TIMEOUT_MS = 60000
ERROR_EVENT = "error"

Params = Sequence[str] | Callable[..., Any] | None


def _positional_slots(func: Callable[..., Any]) -> int:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return 0
    slots = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return 0
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            slots += 1
    return slots


def _shape(values: tuple[Any, ...], params: Params) -> Any:
    if params is None:
        return list(values)
    if callable(params):
        return params(*values)
    return {name: values[i] if i < len(values) else None for i, name in enumerate(params)}


def promisify_callback(obj: Any, method_name: str, params: Params = None) -> Callable[..., Any]:
    """Wrap a method whose last positional argument is a ``callback(error, *values)``.

    Missing positional arguments are padded with None so the callback always
    lands in the last positional slot of the method. The callback may be
    called from any thread.

    Args:
        obj: Object owning the method.
        method_name: Name of the method on ``obj``.
        params: Names used as keys of the resolved dict, a callable receiving
            the callback values, or None to resolve with the list of values.

    Returns:
        Async function taking the method arguments minus the callback.

    Raises:
        TypeError: If ``obj.method_name`` is not callable.
    """
    method = getattr(obj, method_name, None)
    if not callable(method):
        raise TypeError(f"{type(obj).__name__}.{method_name} is not callable")
    slots = _positional_slots(method)

    async def promisified(*args: Any) -> Any:
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _settle(error: Any, values: tuple[Any, ...]) -> None:
            if future.done():
                return
            if error:
                future.set_exception(as_exception(error))
                return
            try:
                future.set_result(_shape(values, params))
            except Exception as exc:
                future.set_exception(exc)

        def callback(error: Any = None, *values: Any) -> None:
            loop.call_soon_threadsafe(_settle, error, values)

        padded = list(args)
        padded.extend([None] * (slots - 1 - len(padded)))
        method(*padded, callback)
        return await future

    promisified.__name__ = method_name
    promisified.__qualname__ = f"promisify_callback.{method_name}"
    return promisified


@dataclass(frozen=True, slots=True)
class EventSpec:
    """An event to wait for and how long to wait for it (0 waits forever)."""

    name: str
    timeout_ms: float = DEFAULT_EVENTS_TIMEOUT_MS
    resolve_on_timeout: bool = False

    @classmethod
    def build(cls, event: str | Mapping[str, Any], timeout_ms: float, resolve_on_timeout: bool) -> EventSpec:
        if isinstance(event, str):
            return cls(event, timeout_ms, resolve_on_timeout)
        if isinstance(event, Mapping) and isinstance(event.get("name"), str):
            return cls(
                event["name"],
                event.get("timeout_ms", timeout_ms),
                bool(event.get("resolve_on_timeout", resolve_on_timeout)),
            )
        raise TypeError(f"Event must be a name or a mapping with a name, not {event!r}")


class _EventWaiter:
    """Listens for events on a source until enough of them were emitted."""

    def __init__(
        self,
        source: EventSource,
        specs: Sequence[EventSpec],
        event_max: int,
        event_error_max: int,
        params: Params,
    ):
        self._source = source
        self._specs = specs
        self._event_max = event_max
        self._event_error_max = event_error_max
        self._params = params
        self._results: list[Any] = []
        self._errors: list[BaseException] = []
        self._listeners: dict[str, Callable[..., None]] = {}
        self._timers: list[asyncio.TimerHandle] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._future: asyncio.Future | None = None

    async def wait(self) -> Any:
        self._loop = asyncio.get_running_loop()
        self._future = self._loop.create_future()
        for spec in self._specs:
            if spec.name in self._listeners:
                continue
            listener = self._listener(spec.name)
            self._listeners[spec.name] = listener
            self._source.on(spec.name, listener)
            if spec.timeout_ms:
                self._timers.append(self._loop.call_later(spec.timeout_ms / 1000, self._on_timeout, spec))
        try:
            return await self._future
        finally:
            self._clear()

    def _listener(self, name: str) -> Callable[..., None]:
        def listener(*args: Any) -> None:
            self._loop.call_soon_threadsafe(self._on_event, name, args)

        return listener

    def _on_event(self, name: str, args: tuple[Any, ...]) -> None:
        if self._future.done():
            return
        first = args[0] if args else None
        if isinstance(first, BaseException):
            self._errors.append(first)
            if len(self._errors) < self._event_error_max:
                return
            if self._event_error_max == 1:
                self._future.set_exception(first)
            else:
                self._future.set_exception(
                    ExceptionGroup(f"Promisify events received {len(self._errors)} errors", self._errors)
                )
            return
        try:
            value = self._value(args)
        except Exception as exc:
            self._future.set_exception(exc)
            return
        self._results.append(value)
        if len(self._results) < self._event_max:
            return
        logger.debug("Event %r settled after %d emission(s)", name, len(self._results))
        self._future.set_result(value if self._event_max == 1 else list(self._results))

    def _value(self, args: tuple[Any, ...]) -> Any:
        if self._params is not None:
            return _shape(args, self._params)
        if not args:
            return None
        return args[0] if len(args) == 1 else args

    def _on_timeout(self, spec: EventSpec) -> None:
        if self._future.done():
            return
        error = TimeoutError(f'Promisify events for event "{spec.name}" timeout at {spec.timeout_ms}ms')
        logger.debug("%s", error)
        if spec.resolve_on_timeout:
            self._future.set_result(error)
        else:
            self._future.set_exception(error)

    def _clear(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers = []
        for name, listener in self._listeners.items():
            self._source.remove_listener(name, listener)
        self._listeners = {}


def events_timeout_ms(spock: Any | None = None) -> float:
    """Return the configured default events timeout."""
    if spock is None:
        return DEFAULT_EVENTS_TIMEOUT_MS
    value = spock.get_adapters_config("events_timeout_ms", DEFAULT_EVENTS_TIMEOUT_MS)
    return value if isinstance(value, int | float) else DEFAULT_EVENTS_TIMEOUT_MS


def promisify_events(
    source: Any,
    *,
    timeout_ms: float | None = None,
    event_max: int = 1,
    event_error_max: int = 1,
    imply_error: bool = True,
    resolve_on_timeout: bool = False,
    spock: Any | None = None,
) -> Callable[..., Callable[[], Any]]:
    """Build a binder waiting for events emitted by ``source``.

    ``promisify_events(source)(["ready"])`` returns an async operation that
    resolves with the listener arguments (a single argument is unwrapped,
    several become a tuple, ``params`` shapes them like
    :func:`promisify_callback`). With ``event_max`` above one it resolves with
    the list of values once that many events were emitted.

    An event whose first argument is an exception counts toward
    ``event_error_max`` and rejects; above one, the errors are raised as an
    ``ExceptionGroup``. A timeout yields a ``TimeoutError``, raised or
    resolved per ``resolve_on_timeout``.

    Args:
        source: Object implementing :class:`EventSource`.
        timeout_ms: Default timeout per event (0 waits forever); falls back
            to the ``adapters.events_timeout_ms`` setting of ``spock``.
        event_max: Number of events to collect before resolving.
        event_error_max: Number of error events to collect before rejecting.
        imply_error: Also listen for the ``error`` event.
        resolve_on_timeout: Default timeout behavior for events.
        spock: Optional configuration manager.

    Raises:
        TypeError: If ``source`` is not an EventSource.
    """
    source = ensure_event_source(source)
    default_timeout = timeout_ms if timeout_ms is not None else events_timeout_ms(spock)
    event_max = max(event_max, 1)
    event_error_max = max(event_error_max, 1)

    def bind(events: str | Sequence[str | Mapping[str, Any]], params: Params = None) -> Callable[[], Any]:
        if isinstance(events, str | Mapping):
            events = [events]
        specs = [EventSpec.build(event, default_timeout, resolve_on_timeout) for event in events]
        if imply_error:
            specs.append(EventSpec(ERROR_EVENT, default_timeout, resolve_on_timeout))
        if not specs:
            raise ValueError("At least one event is required")

        async def wait_for_events() -> Any:
            return await _EventWaiter(source, specs, event_max, event_error_max, params).wait()

        wait_for_events.__name__ = "wait_for_" + "_".join(spec.name for spec in specs)
        return wait_for_events

    return bind


async def promisify_delay(delay_ms: float, value: Any = None, reject: bool = False) -> Any:
    """Wait ``delay_ms`` then return ``value``, or raise it when ``reject`` is set."""
    await asyncio.sleep(delay_ms / 1000)
    if reject:
        raise as_exception(value)
    return value
