"""Async task queue engine for asynchro."""

from asynchro.core.flux_capacitor.background import BackgroundTracker
from asynchro.core.flux_capacitor.error_policy import (
    SYSTEM_ERROR_TYPES,
    Always,
    CategoryMatch,
    ErrorPolicy,
    ErrorRule,
    FieldMatch,
    Never,
    parse_error_policy,
    throws_error,
)
from asynchro.core.flux_capacitor.errors import (
    FluxCapacitorError,
    MissingSettlementError,
    QueueStateError,
)
from asynchro.core.flux_capacitor.flux_capacitor import (
    FluxCapacitor,
    FluxCapacitorConfig,
    Queue,
    TaskManager,
)
from asynchro.core.flux_capacitor.hooks import VerifyHook
from asynchro.core.flux_capacitor.queue import TaskQueue
from asynchro.core.flux_capacitor.result_path import ResultArg
from asynchro.core.flux_capacitor.store import ResultStore, merge_results
from asynchro.core.flux_capacitor.task_models import (
    Completed,
    QueueStatus,
    RunOutcome,
    Stopped,
    TaskItem,
    TaskMeta,
    TaskMode,
    TaskState,
    TaskView,
    TransferTo,
)

__all__ = [
    "Always",
    "BackgroundTracker",
    "CategoryMatch",
    "Completed",
    "ErrorPolicy",
    "ErrorRule",
    "FieldMatch",
    "FluxCapacitor",
    "FluxCapacitorConfig",
    "FluxCapacitorError",
    "MissingSettlementError",
    "Never",
    "Queue",
    "QueueStateError",
    "QueueStatus",
    "ResultArg",
    "ResultStore",
    "RunOutcome",
    "SYSTEM_ERROR_TYPES",
    "Stopped",
    "TaskItem",
    "TaskManager",
    "TaskMeta",
    "TaskMode",
    "TaskQueue",
    "TaskState",
    "TaskView",
    "TransferTo",
    "VerifyHook",
    "merge_results",
    "parse_error_policy",
    "throws_error",
]
