"""Ordered task list owned by a queue."""

from __future__ import annotations

from collections.abc import Iterator

from asynchro.core.flux_capacitor.task_models import TaskItem, TaskMode


class TaskQueue:
    """Append-only list of task items with waiting counters.

    ``waiting`` counts series/parallel items that have not settled yet and
    ``waiting_background`` counts background items that have not been
    collected by a background waiter.
    """

    def __init__(self) -> None:
        self._items: list[TaskItem] = []
        self.waiting = 0
        self.waiting_background = 0

    def push(self, item: TaskItem) -> None:
        self._items.append(item)
        if item.mode is TaskMode.BACKGROUND:
            self.waiting_background += 1
        else:
            self.waiting += 1

    def settle(self, item: TaskItem) -> None:
        if item.mode is not TaskMode.BACKGROUND and self.waiting > 0:
            self.waiting -= 1

    def collect_background(self) -> None:
        if self.waiting_background > 0:
            self.waiting_background -= 1

    def reset(self) -> None:
        """Drop the items and the waiting count once a run attempt is over."""
        self._items.clear()
        self.waiting = 0

    def __iter__(self) -> Iterator[TaskItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)
