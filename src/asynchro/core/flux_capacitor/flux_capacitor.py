"""FluxCapacitor - queue of async tasks run in series, in parallel or in the background.

Tasks run in insertion order during a single ``run``:

- series tasks are awaited before the next queued task starts
- parallel tasks are started and collected once every queued task was started
- background tasks are started and never awaited by the run; their outcomes
  are collected later with ``background_waiter``

Verification hooks registered by task name can override a task result or
error, stop the run, or hand the rest of the run over to another queue.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

from asynchro.core.dto.run_dto import ErrorDetail, RunSummary
from asynchro.core.flux_capacitor.background import (
    BackgroundEntry,
    BackgroundTracker,
    Suppressed,
)
from asynchro.core.flux_capacitor.error_policy import (
    SYSTEM_ERROR_TYPES,
    ErrorPolicy,
    parse_error_policy,
    throws_error,
)
from asynchro.core.flux_capacitor.errors import QueueStateError
from asynchro.core.flux_capacitor.hooks import VerifyHook, run_sync_or_async, verify_hook
from asynchro.core.flux_capacitor.queue import TaskQueue
from asynchro.core.flux_capacitor.result_path import ResultArg, resolve_arguments
from asynchro.core.flux_capacitor.store import ResultStore, merge_results
from asynchro.core.flux_capacitor.task_models import (
    Completed,
    QueueStatus,
    RunOutcome,
    Stopped,
    TaskItem,
    TaskMode,
    TaskState,
    TaskView,
    TransferTo,
    annotate_error,
)
from asynchro.core.utils import LogSink, as_exception, generate_task_id, tags_level

logger = logging.getLogger(__name__)

LOG_TAG = "asynchro"

ASYNCHRO_QUEUE_THROWS_KEY = "throws"
ASYNCHRO_QUEUE_DELIMITER_KEY = "message_delimiter"
ASYNCHRO_QUEUE_ERROR_MESSAGES_KEY = "include_error_messages"

IncludeErrorMessage = Callable[[str, str, BaseException], bool]


@dataclass(slots=True)
class FluxCapacitorConfig:
    """Queue defaults read from Spock."""

    throws: Any = None
    message_delimiter: str = ","
    include_error_messages: bool = False

    @classmethod
    def from_spock(cls, spock: Any | None) -> FluxCapacitorConfig:
        if spock is None:
            return cls()
        delimiter = spock.get_queue_config(ASYNCHRO_QUEUE_DELIMITER_KEY)
        return cls(
            throws=spock.get_queue_config(ASYNCHRO_QUEUE_THROWS_KEY),
            message_delimiter=delimiter if isinstance(delimiter, str) else ",",
            include_error_messages=bool(spock.get_queue_config(ASYNCHRO_QUEUE_ERROR_MESSAGES_KEY)),
        )


class FluxCapacitor:
    """Management of async tasks run in series, in parallel or in the background.

    Famous quote from Doc Brown in Back to the Future:
    "Roads? Where we're going, we don't need roads."
    """

    DEFAULT_SYSTEM_ERROR_TYPES = SYSTEM_ERROR_TYPES

    def __init__(
        self,
        result: ResultStore | None = None,
        throws: Any = None,
        log: LogSink | None = None,
        include_error_message: IncludeErrorMessage | None = None,
        *,
        config: FluxCapacitorConfig | None = None,
    ) -> None:
        """Create a queue.

        Args:
            result: Mapping where named task results are stored (omit to
                prevent capturing results).
            throws: Default error policy applied to every queued task unless
                overridden: ``True``, ``False``, ``"system"`` or a rule mapping
                ``{"invert": bool, "matches": "system" | {field: value}}``.
            log: Optional ``log(tags, data)`` sink receiving engine log records.
            include_error_message: ``(name, operation, error) -> bool`` deciding
                whether an error text is included in :meth:`messages`.
            config: Defaults used for arguments that are omitted.
        """
        self._config = config or FluxCapacitorConfig()
        if throws is None:
            throws = self._config.throws
        self._policy: ErrorPolicy = parse_error_policy(throws)
        self._result = result
        self._log_sink = log
        self._include_error_message = include_error_message
        self._status = QueueStatus.QUEUEING
        self._items = TaskQueue()
        self._verifiers: dict[str, VerifyHook] = {}
        self._errors: list[BaseException] = []
        self._failures = 0
        self._messages: list[str] = []
        self._background = BackgroundTracker()
        self._end_handler: Callable[..., Any] | None = None
        self._transferred_to: FluxCapacitor | None = None
        self._waiter: FluxCapacitor | None = None
        logger.debug("FluxCapacitor instance created.")

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    def series(self, name: str | None, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> str:
        """Queue an operation awaited before the next queued task starts.

        Args:
            name: Key under which the result is stored (None to skip storing
                the result; an id is generated and returned instead).
            operation: Callable returning a value or an awaitable.
            *args: Positional arguments, possibly :class:`ResultArg` placeholders.
            **kwargs: Keyword arguments, possibly :class:`ResultArg` placeholders.

        Returns:
            The task name, either passed or generated.
        """
        return self._queue(TaskMode.SERIES, self._policy, name, operation, args, kwargs)

    def parallel(self, name: str | None, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> str:
        """Queue an operation started without waiting and collected after every task started."""
        return self._queue(TaskMode.PARALLEL, self._policy, name, operation, args, kwargs)

    def background(self, name: str | None, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> str:
        """Queue an operation the run never waits for.

        The result is not stored during the run; use :meth:`background_waiter`
        to collect it once the run is over.
        """
        return self._queue(TaskMode.BACKGROUND, self._policy, name, operation, args, kwargs)

    def series_throws_override(
        self, name: str | None, throws: Any, operation: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> str:
        """Same as :meth:`series` with a task specific error policy."""
        return self._queue(TaskMode.SERIES, parse_error_policy(throws), name, operation, args, kwargs)

    def parallel_throws_override(
        self, name: str | None, throws: Any, operation: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> str:
        """Same as :meth:`parallel` with a task specific error policy."""
        return self._queue(TaskMode.PARALLEL, parse_error_policy(throws), name, operation, args, kwargs)

    def background_throws_override(
        self, name: str | None, throws: Any, operation: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> str:
        """Same as :meth:`background` with a task specific error policy."""
        return self._queue(
            TaskMode.BACKGROUND, parse_error_policy(throws), name, operation, args, kwargs
        )

    def _queue(
        self,
        mode: TaskMode,
        policy: ErrorPolicy,
        name: str | None,
        operation: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> str:
        if not callable(operation):
            raise TypeError(
                f"A {mode} task must be callable, but found {type(operation).__name__} ({operation!r})"
            )
        if self._status is not QueueStatus.QUEUEING:
            raise QueueStateError(
                f"A {mode} task must be queued in status {QueueStatus.QUEUEING}, not {self._status}"
            )
        generated = not isinstance(name, str) or not name.strip()
        if generated:
            name = generate_task_id()
        item = TaskItem(
            mode=mode,
            name=name,
            operation=operation,
            args=args,
            kwargs=kwargs,
            policy=policy,
            generated_name=generated,
        )
        self._items.push(item)
        return name

    def verify(self, name: str, fn: Callable[..., Any] | None = None) -> Any:
        """Register the verification hook for a task name.

        The hook receives a :class:`TaskView` after the named task ran. Parallel
        tasks call it twice: once when started (``is_pending`` is True) and once
        when settled. Only one hook exists per name: the last registration wins.

        The hook may return ``False`` to stop the run, another queue to hand
        the rest of the run over to it, or anything else for no effect. A hook
        declaring a ``queue`` parameter also receives the owning queue.

        Used without ``fn`` it returns a decorator::

            @queue.verify("fetch")
            async def check(it):
                ...

        Note that parallel and background tasks already started keep running
        after the run was stopped or transferred.
        """
        if self._status not in (QueueStatus.QUEUEING, QueueStatus.RUNNING):
            raise QueueStateError(f"Cannot verify tasks once the queue is {self._status}")
        built = verify_hook(name, fn)
        if isinstance(built, VerifyHook):
            self._verifiers[name] = built
            return None

        def _register(func: Callable[..., Any]) -> Callable[..., Any]:
            self._verifiers[name] = built(func)
            return func

        return _register

    def arg(self, path: str) -> ResultArg:
        """Placeholder passing an earlier task result as an argument.

        The path starts with a task name and may use dots and brackets, e.g.
        ``queue.arg("one.items[0].id")``. It is resolved against :attr:`result`
        when the task holding it is started; missing steps resolve to None.
        """
        return ResultArg(path)

    result_arg = arg

    @property
    def end_handler(self) -> Callable[..., Any] | None:
        return self._end_handler

    @end_handler.setter
    def end_handler(self, fn: Callable[..., Any]) -> None:
        """Set the function called once this queue finished its part of a run.

        It receives the queue the run is transferred to, or nothing.
        """
        if not callable(fn):
            raise TypeError(f"End handler must be callable, not {fn!r}")
        self._end_handler = fn

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(self) -> ResultStore | None:
        """Run every queued task once.

        Returns:
            The result store of the queue that finished the run (a different
            queue when a verification hook transferred the run).

        Raises:
            QueueStateError: If the queue already ran or nothing is queued.
            Exception: Any task error the error policy propagates.
        """
        chain: list[FluxCapacitor] = []
        queue = self
        while True:
            queue._begin_run()
            chain.append(queue)
            try:
                outcome = await queue._execute()
            except Exception:
                queue._abort_run()
                _point_waiters(chain, queue)
                raise
            queue._finish_run(outcome)
            if not isinstance(outcome, TransferTo):
                break
            target = outcome.queue
            queue._transfer_to(target)
            queue = target
        _point_waiters(chain, queue)
        if queue._end_handler is not None:
            queue._end_handler()
        return queue._result

    def _begin_run(self) -> None:
        if self._status is not QueueStatus.QUEUEING:
            raise QueueStateError(
                f"To run, status must be {QueueStatus.QUEUEING}, not {self._status}"
            )
        if not len(self._items):
            raise QueueStateError("Nothing to run/execute")
        self._status = QueueStatus.RUNNING
        self._log(["run", "debug"], {"count": len(self._items)})

    async def _execute(self) -> RunOutcome:
        pending: list[TaskItem] = []
        outcome: RunOutcome = Completed()
        for item in self._items:
            verdict = await self._handle(item, pending)
            if item.state is not TaskState.PENDING:
                self._items.settle(item)
            if verdict is not None:
                outcome = verdict
                break
        for item in pending:
            verdict = await self._handle(item, pending)
            self._items.settle(item)
            if isinstance(outcome, Completed) and verdict is not None:
                outcome = verdict
        return outcome

    def _finish_run(self, outcome: RunOutcome) -> None:
        if self._failures:
            self._status = QueueStatus.FAILED
        elif isinstance(outcome, Stopped | TransferTo):
            self._status = QueueStatus.STOPPED
        else:
            self._status = QueueStatus.SUCCEEDED
        self._items.reset()
        self._verifiers.clear()
        self._log(["run", "debug"], {"status": str(self._status), "errors": len(self._errors)})

    def _abort_run(self) -> None:
        for item in self._items:
            if item.handle is not None and not item.is_background:
                # dispatched parallel work keeps running; its outcome is dropped
                item.handle.add_done_callback(_discard_outcome)
        self._status = QueueStatus.FAILED
        self._items.reset()
        self._verifiers.clear()

    def _transfer_to(self, target: FluxCapacitor) -> None:
        target._errors = self._errors + target._errors
        target._failures += self._failures
        target._messages = self._messages + target._messages
        target._background.absorb(self._background)
        if target._result is None:
            target._result = self._result
        elif target._result is not self._result:
            merge_results(target._result, self._result)
        self._status = QueueStatus.TRANSFERRED
        self._transferred_to = target
        self._log(["transfer", "info"], {"errors": len(self._errors), "messages": len(self._messages)})
        if self._end_handler is not None:
            self._end_handler(target)

    async def _handle(self, item: TaskItem, pending: list[TaskItem]) -> RunOutcome | None:
        """Start or settle one task, then apply its error policy and verification hook."""
        error: BaseException | None = None
        result: Any = None
        try:
            result = await self._advance(item, pending)
        except Exception as exc:
            item.state = TaskState.ERRORED
            annotate_error(exc, item, is_pending=False)
            self._raise_if_propagates(item, exc)
            error = exc
        is_pending = item.is_pending

        verdict: RunOutcome | None = None
        message: str | None = None
        warned = False
        hook = self._verifiers.get(item.name)
        if hook is not None:
            view = TaskView(item, queue=self, is_pending=is_pending, error=error, result=result)
            try:
                returned = await hook.invoke(view, self)
            except Exception as verify_error:
                annotate_error(verify_error, item, is_pending=is_pending)
                if verify_error is not error:
                    if error is not None:
                        verify_error.__cause__ = error
                    self._log(["warn", "verify"], {"name": item.name, "error": verify_error})
                    warned = True
                self._raise_if_propagates(item, verify_error)
                error = verify_error
            else:
                if view.error is not None and not isinstance(view.error, BaseException):
                    view.error = as_exception(view.error)
                if view.error is not None and view.error is not error:
                    annotate_error(view.error, item, is_pending=is_pending)
                    if error is not None and view.error.__cause__ is None:
                        view.error.__cause__ = error
                    self._raise_if_propagates(item, view.error)
                error = view.error
                verdict = self._interpret(returned)
            result = view.result
            message = view._message

        if error is not None:
            if not warned and error.__cause__ is None:
                self._log(["warn"], {"name": item.name, "error": error})
            self._record_error(error)

        if is_pending and not item.is_background:
            return verdict
        if not item.no_result and self._result is not None and result is not None:
            self._result[item.name] = result
        if error is None and not is_pending:
            self._log(
                ["result", "debug"],
                {"type": str(item.mode), "name": item.name, "operation": item.operation_name, "result": result},
            )
        self._append_message(item, message if message else error if error is not None else result)
        return verdict

    async def _advance(self, item: TaskItem, pending: list[TaskItem]) -> Any:
        """Run a series task, start a parallel/background task, or await a started one."""
        if item.handle is not None:
            value = await item.handle
            item.state = TaskState.SETTLED
            return value
        args, kwargs = resolve_arguments(item.args, item.kwargs, self._result)
        if item.mode is TaskMode.SERIES:
            item.state = TaskState.PENDING
            value = await run_sync_or_async(item.operation, *args, **kwargs)
            item.state = TaskState.SETTLED
            return value
        if item.mode is TaskMode.BACKGROUND:
            item.handle = asyncio.ensure_future(self._run_background(item, args, kwargs))
            item.state = TaskState.PENDING
            self._background.track(BackgroundEntry(item=item, owner=self, handle=item.handle))
            return None
        awaitable = item.operation(*args, **kwargs)
        if not inspect.isawaitable(awaitable):
            raise TypeError(
                f"Call to {item.name}/{item.operation_name} must return an awaitable, not {awaitable!r}"
            )
        item.handle = asyncio.ensure_future(awaitable)
        item.state = TaskState.PENDING
        pending.append(item)
        return None

    async def _run_background(self, item: TaskItem, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        try:
            return await run_sync_or_async(item.operation, *args, **kwargs)
        except Exception as exc:
            item.state = TaskState.ERRORED
            annotate_error(exc, item, is_pending=False)
            self._raise_if_propagates(item, exc)
            self._log(["warn", "background"], {"name": item.name, "error": exc})
            return Suppressed(exc)
        finally:
            if item.state is TaskState.PENDING:
                item.state = TaskState.SETTLED

    def _raise_if_propagates(self, item: TaskItem, error: BaseException) -> None:
        throws_error(item.policy, error, True, self.system_error_types)

    def _interpret(self, returned: Any) -> RunOutcome | None:
        if returned is False:
            return Stopped()
        if isinstance(returned, FluxCapacitor) and returned is not self:
            if returned._status is not QueueStatus.QUEUEING or not len(returned._items):
                raise QueueStateError(
                    f"Transfer target must be {QueueStatus.QUEUEING} with queued tasks, "
                    f"not {returned._status} with {len(returned._items)} task(s)",
                    context={"target": repr(returned)},
                )
            return TransferTo(returned)
        return None

    def _record_error(self, error: BaseException) -> None:
        self._errors.append(error)
        self._failures += 1

    def _append_message(self, item: TaskItem, error_or_message: Any) -> str:
        if self._status is not QueueStatus.RUNNING:
            raise QueueStateError(
                f"Message can only be added when status is {QueueStatus.RUNNING}, not {self._status}"
            )
        text = ""
        if isinstance(error_or_message, BaseException):
            if self._includes_error_message(item, error_or_message):
                text = str(error_or_message)
            if not text:
                operation = item.operation_name
                text = f"Internal ERROR for {item.name}"
                if operation and operation != item.name:
                    text += f" on operation: {operation}"
        elif isinstance(error_or_message, str):
            text = error_or_message
        elif isinstance(error_or_message, Mapping):
            text = error_or_message.get("message") or ""
        elif error_or_message is not None:
            text = getattr(error_or_message, "message", None) or ""
        if not isinstance(text, str):
            text = str(text)
        text = text.replace('"', "'")
        if text:
            self._messages.append(text)
        return text

    def _includes_error_message(self, item: TaskItem, error: BaseException) -> bool:
        if self._include_error_message is not None:
            return bool(self._include_error_message(item.name, item.operation_name, error))
        return self._config.include_error_messages

    def _log(self, tags: list[str], data: dict[str, Any]) -> None:
        tags = [LOG_TAG, *tags]
        logger.log(tags_level(tags), "[%s] %s", ", ".join(tags), data)
        if self._log_sink is not None:
            self._log_sink(tags, data)

    # ------------------------------------------------------------------
    # Background collection
    # ------------------------------------------------------------------

    async def background_waiter(self, result: MutableMapping[str, Any] | bool | None = True) -> FluxCapacitor:
        """Wait for background tasks started by the run and collect their outcomes.

        Covers every queue the run was transferred through. Values of named
        background tasks are written to ``result`` (``True`` means the result
        store of the queue that finished the run). Errors suppressed by the
        task policies are appended to that queue's :attr:`errors`.

        Example::

            queue = FluxCapacitor({}, True)
            queue.background_throws_override("cleanup", False, cleanup, path)
            await queue.run()
            finished = await queue.background_waiter()
            for error in finished.errors:
                print(error)

        Returns:
            The queue that finished the run.

        Raises:
            QueueStateError: If the queue never ran.
            Exception: The first background error whose policy propagates,
                raised once every background task settled.
        """
        terminal = self._waiter
        if terminal is None:
            raise QueueStateError(f"No run to wait for while status is {self._status}")
        if result is True:
            target = terminal._result
        elif result is False or result is None:
            target = None
        else:
            target = result
        propagated: BaseException | None = None
        for settlement in await terminal._background.settle():
            entry = settlement.entry
            entry.owner._items.collect_background()
            if settlement.propagated:
                propagated = propagated or settlement.error
            elif settlement.error is not None:
                terminal._errors.append(settlement.error)
            elif target is not None and not entry.item.generated_name and settlement.result is not None:
                target[entry.item.name] = settlement.result
        if propagated is not None:
            raise propagated
        return terminal

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def messages(self, delimiter: str | None = None) -> str:
        """Join the messages gathered while running the queued tasks."""
        if delimiter is None:
            delimiter = self._config.message_delimiter
        return delimiter.join(self._messages)

    def throws_error(self, error_or_type: Any, raise_when_true: bool = False) -> bool:
        """Tell whether an error or error class propagates under the default policy."""
        return throws_error(self._policy, error_or_type, raise_when_true, self.system_error_types)

    def summary(self) -> RunSummary:
        """Return a serializable snapshot of this queue."""
        return RunSummary(
            status=str(self._status),
            count=self.count,
            waiting=self.waiting,
            waiting_background=self.waiting_background,
            errors=[ErrorDetail.from_exception(error) for error in self._errors],
            messages=list(self._messages),
        )

    @property
    def system_error_types(self) -> tuple[type[BaseException], ...]:
        return SYSTEM_ERROR_TYPES

    @property
    def result(self) -> ResultStore | None:
        return self._result

    @property
    def errors(self) -> list[BaseException]:
        return self._errors

    @property
    def count(self) -> int:
        return len(self._items)

    @property
    def waiting(self) -> int:
        return self._items.waiting

    @property
    def waiting_background(self) -> int:
        return self._items.waiting_background

    @property
    def status(self) -> QueueStatus:
        return self._status

    @property
    def transferred_to(self) -> FluxCapacitor | None:
        return self._transferred_to

    def __repr__(self) -> str:
        return f"FluxCapacitor(status={self._status}, count={self.count}, errors={len(self._errors)})"


def _point_waiters(chain: list[FluxCapacitor], terminal: FluxCapacitor) -> None:
    for queue in chain:
        queue._waiter = terminal


def _discard_outcome(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


Queue = FluxCapacitor
TaskManager = FluxCapacitor
