"""Test helpers and shared constants."""

import asyncio

TASK_DELAY = 0.01


async def async_call(value=None, delay: float = TASK_DELAY, reject: bool = False):
    """Return ``value`` (or raise it when ``reject``) after ``delay`` seconds."""
    await asyncio.sleep(delay)
    if reject:
        raise value if isinstance(value, BaseException) else RuntimeError(value)
    return value


def multiply(a, b):
    return a * b


class FakeEmitter:
    """Minimal event emitter implementing the EventSource protocol."""

    def __init__(self):
        self.listeners: dict[str, list] = {}

    def on(self, event, listener):
        self.listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event, listener):
        if listener in self.listeners.get(event, []):
            self.listeners[event].remove(listener)

    def emit(self, event, *args):
        for listener in list(self.listeners.get(event, [])):
            listener(*args)

    def listener_count(self, event=None) -> int:
        if event is not None:
            return len(self.listeners.get(event, []))
        return sum(len(items) for items in self.listeners.values())
