"""Tracking of background tasks that outlive the run that dispatched them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from asynchro.core.flux_capacitor.errors import MissingSettlementError
from asynchro.core.flux_capacitor.task_models import TaskItem

if TYPE_CHECKING:
    from asynchro.core.flux_capacitor.flux_capacitor import FluxCapacitor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Suppressed:
    """Marker returned by a background task whose error the policy suppressed."""

    error: BaseException


@dataclass(slots=True)
class BackgroundEntry:
    """A dispatched background task and the queue that dispatched it."""

    item: TaskItem
    owner: FluxCapacitor
    handle: asyncio.Future | None


@dataclass(slots=True)
class BackgroundSettlement:
    """Outcome of a background task once awaited."""

    entry: BackgroundEntry
    result: Any = None
    error: BaseException | None = None
    propagated: bool = False


class BackgroundTracker:
    """Holds background settlement handles until they are explicitly awaited."""

    def __init__(self) -> None:
        self._entries: list[BackgroundEntry] = []

    def track(self, entry: BackgroundEntry) -> None:
        self._entries.append(entry)

    def absorb(self, other: BackgroundTracker) -> None:
        """Take over the entries of ``other``, keeping them ahead of our own."""
        if other is self or not other._entries:
            return
        self._entries = other._entries + self._entries
        other._entries = []

    async def settle(self) -> list[BackgroundSettlement]:
        """Await every tracked entry in dispatch order and forget them.

        Raises:
            MissingSettlementError: If an entry was tracked without a handle.
        """
        entries, self._entries = self._entries, []
        settlements: list[BackgroundSettlement] = []
        for entry in entries:
            if entry.handle is None:
                raise MissingSettlementError(
                    f"Missing settlement handle on background task {entry.item.name!r}",
                    context={"operation": entry.item.operation_name},
                )
            try:
                outcome = await entry.handle
            except Exception as exc:
                settlements.append(BackgroundSettlement(entry, error=exc, propagated=True))
                continue
            if isinstance(outcome, Suppressed):
                settlements.append(BackgroundSettlement(entry, error=outcome.error))
            else:
                settlements.append(BackgroundSettlement(entry, result=outcome))
        logger.debug("Settled %d background task(s)", len(settlements))
        return settlements

    def __len__(self) -> int:
        return len(self._entries)
