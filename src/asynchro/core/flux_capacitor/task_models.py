"""Task models for the FluxCapacitor subsystem."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from asynchro.core.flux_capacitor.error_policy import ErrorPolicy, Never

if TYPE_CHECKING:
    from asynchro.core.flux_capacitor.flux_capacitor import FluxCapacitor


class QueueStatus(StrEnum):
    """Lifecycle states for a queue."""

    QUEUEING = "QUEUEING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"
    TRANSFERRED = "TRANSFERRED"


class TaskMode(StrEnum):
    """How a queued operation is scheduled relative to the others."""

    SERIES = "series"
    PARALLEL = "parallel"
    BACKGROUND = "background"


class TaskState(StrEnum):
    """Lifecycle states for a queued operation."""

    QUEUED = "queued"
    PENDING = "pending"
    SETTLED = "settled"
    ERRORED = "errored"


def operation_name(operation: Callable[..., Any]) -> str:
    """Return a readable identifier for a queued callable."""
    func = getattr(operation, "func", None)  # functools.partial
    if func is not None and not hasattr(operation, "__name__"):
        return operation_name(func)
    return getattr(operation, "__name__", None) or type(operation).__name__


@dataclass(slots=True)
class TaskItem:
    """Record of one queued operation."""

    mode: TaskMode
    name: str
    operation: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    policy: ErrorPolicy = field(default_factory=Never)
    generated_name: bool = False
    state: TaskState = TaskState.QUEUED
    handle: asyncio.Future | None = None

    @property
    def no_result(self) -> bool:
        return self.generated_name or self.mode is TaskMode.BACKGROUND

    @property
    def is_parallel(self) -> bool:
        return self.mode is TaskMode.PARALLEL

    @property
    def is_background(self) -> bool:
        return self.mode is TaskMode.BACKGROUND

    @property
    def is_pending(self) -> bool:
        return self.is_background or self.state is TaskState.PENDING

    @property
    def operation_name(self) -> str:
        return operation_name(self.operation)


@dataclass(frozen=True, slots=True)
class TaskMeta:
    """Task details attached to errors raised by a queued operation or its hook."""

    name: str
    operation: str
    is_pending: bool
    is_parallel: bool
    is_background: bool

    @classmethod
    def from_item(cls, item: TaskItem, *, is_pending: bool) -> TaskMeta:
        return cls(
            name=item.name,
            operation=item.operation_name,
            is_pending=is_pending,
            is_parallel=item.is_parallel,
            is_background=item.is_background,
        )


def annotate_error(error: BaseException, item: TaskItem, *, is_pending: bool) -> None:
    """Attach a :class:`TaskMeta` to ``error`` unless one is already present."""
    if getattr(error, "task_meta", None) is not None:
        return
    try:
        error.task_meta = TaskMeta.from_item(item, is_pending=is_pending)
    except AttributeError:
        # exceptions defining __slots__ cannot carry extra attributes
        pass


class TaskView:
    """Mutable view of a task passed to its verification hook.

    ``error`` and ``result`` may be reassigned: assigning an error behaves as if
    the task had raised it, clearing it drops the recorded error. ``message`` is
    write-only and overrides the message appended to the queue.
    """

    __slots__ = ("error", "result", "_item", "_is_pending", "_queue", "_message")

    def __init__(
        self,
        item: TaskItem,
        *,
        queue: FluxCapacitor,
        is_pending: bool,
        error: BaseException | None = None,
        result: Any = None,
    ) -> None:
        self.error = error
        self.result = result
        self._item = item
        self._is_pending = is_pending
        self._queue = queue
        self._message: str | None = None

    @property
    def is_pending(self) -> bool:
        return self._is_pending

    @property
    def is_parallel(self) -> bool:
        return self._item.is_parallel

    @property
    def is_background(self) -> bool:
        return self._item.is_background

    @property
    def name(self) -> str:
        return self._item.name

    @property
    def operation(self) -> str:
        return self._item.operation_name

    @property
    def queue(self) -> FluxCapacitor:
        return self._queue

    def _set_message(self, message: str) -> None:
        self._message = message

    message = property(fset=_set_message, doc="Write-only override of the task message.")

    def __repr__(self) -> str:
        return (
            f"TaskView(name={self.name!r}, pending={self.is_pending}, "
            f"error={self.error!r}, result={self.result!r})"
        )


@dataclass(frozen=True, slots=True)
class Completed:
    """Every queued task was handled."""


@dataclass(frozen=True, slots=True)
class Stopped:
    """A verification hook returned ``False``."""


@dataclass(frozen=True, slots=True)
class TransferTo:
    """A verification hook handed the rest of the run to another queue."""

    queue: FluxCapacitor


RunOutcome = Completed | Stopped | TransferTo
