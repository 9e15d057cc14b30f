"""Stop and transfer branches of FluxCapacitor runs."""

from __future__ import annotations

import pytest

from asynchro.core.flux_capacitor import FluxCapacitor, QueueStateError, QueueStatus
from tests.utils import async_call


@pytest.mark.asyncio
async def test_series_stop(queue, result) -> None:
    queue.series("one", async_call, "uno")
    queue.series("two", async_call, "dos")
    queue.verify("one", lambda it: False)
    await queue.run()

    assert queue.status is QueueStatus.STOPPED
    assert result == {"one": "uno"}
    assert queue.messages() == "uno"


@pytest.mark.asyncio
async def test_parallel_stop_drains_dispatched_items(queue, result) -> None:
    queue.parallel("one", async_call, "uno")
    queue.parallel("two", async_call, "dos")
    queue.series("three", async_call, "tres")
    queue.verify("one", lambda it: False if it.is_pending else None)
    await queue.run()

    assert queue.status is QueueStatus.STOPPED
    assert result == {"one": "uno"}


@pytest.mark.asyncio
async def test_stop_with_error_is_failed(queue) -> None:
    def fail_and_stop(it):
        it.error = RuntimeError("verified")
        return False

    queue.series("one", async_call, 1)
    queue.series("two", async_call, 2)
    queue.verify("one", fail_and_stop)
    await queue.run()

    assert queue.status is QueueStatus.FAILED
    assert [str(error) for error in queue.errors] == ["verified"]


@pytest.mark.asyncio
async def test_transfer_shared_store() -> None:
    result: dict = {}
    first = FluxCapacitor(result)
    second = FluxCapacitor(result)
    ends = []
    first.end_handler = lambda target=None: ends.append(("first", target))
    second.end_handler = lambda target=None: ends.append(("second", target))

    first.series("one", async_call, "uno")
    first.series("skipped", async_call, "never")
    first.verify("one", lambda it: second)
    second.series("two", async_call, "dos")

    returned = await first.run()

    assert returned is result
    assert result == {"one": "uno", "two": "dos"}
    assert first.status is QueueStatus.TRANSFERRED
    assert first.transferred_to is second
    assert second.status is QueueStatus.SUCCEEDED
    assert second.messages() == "uno,dos"
    assert ends == [("first", second), ("second", None)]


@pytest.mark.asyncio
async def test_transfer_merges_errors_and_distinct_stores() -> None:
    source_store = {"one": None}
    target_store = {"keep": "target", "one": None}
    first = FluxCapacitor(source_store)
    second = FluxCapacitor(target_store)

    first.series("bad", async_call, ValueError("first error"), reject=True)
    first.series("one", async_call, {"nested": [1, 2]})
    first.verify("one", lambda it: second)
    second.series("two", async_call, 2)

    returned = await first.run()

    assert returned is target_store
    assert target_store["keep"] == "target"
    assert target_store["one"] == {"nested": [1, 2]}
    assert target_store["one"] is not source_store["one"]
    assert target_store["one"]["nested"] is not source_store["one"]["nested"]
    assert target_store["two"] == 2
    assert [str(error) for error in second.errors] == ["first error"]
    assert second.status is QueueStatus.FAILED


@pytest.mark.asyncio
async def test_transfer_target_without_store_adopts_source() -> None:
    result: dict = {}
    first = FluxCapacitor(result)
    second = FluxCapacitor()
    first.series("one", async_call, 1)
    first.verify("one", lambda it: second)
    second.series("two", async_call, 2)

    assert await first.run() is result
    assert second.result is result
    assert result == {"one": 1, "two": 2}


@pytest.mark.asyncio
async def test_transfer_chain(result) -> None:
    first = FluxCapacitor(result)
    second = FluxCapacitor(result)
    third = FluxCapacitor(result)
    first.series("one", async_call, 1)
    first.verify("one", lambda it: second)
    second.series("two", async_call, 2)
    second.verify("two", lambda it: third)
    third.series("three", async_call, 3)

    await first.run()

    assert result == {"one": 1, "two": 2, "three": 3}
    assert first.status is QueueStatus.TRANSFERRED
    assert second.status is QueueStatus.TRANSFERRED
    assert third.status is QueueStatus.SUCCEEDED
    assert await first.background_waiter() is third


@pytest.mark.asyncio
async def test_returning_own_queue_is_ignored(queue, result) -> None:
    queue.series("one", async_call, 1)
    queue.series("two", async_call, 2)
    queue.verify("one", lambda it, queue: queue)
    await queue.run()

    assert queue.status is QueueStatus.SUCCEEDED
    assert result == {"one": 1, "two": 2}


@pytest.mark.asyncio
async def test_transfer_to_empty_queue_fails(queue, result) -> None:
    ends: list = []
    empty = FluxCapacitor()
    queue.end_handler = lambda target=None: ends.append(target)
    queue.background("bg", async_call, "late")
    queue.series("one", async_call, 1)
    queue.verify("one", lambda it: empty)

    with pytest.raises(QueueStateError, match="Transfer target"):
        await queue.run()

    assert queue.status is QueueStatus.FAILED
    assert queue.transferred_to is None
    assert empty.status is QueueStatus.QUEUEING
    assert empty.waiting_background == 0
    assert ends == []

    assert await queue.background_waiter() is queue
    assert result["bg"] == "late"


@pytest.mark.asyncio
async def test_transfer_to_finished_queue_fails(queue) -> None:
    done = FluxCapacitor()
    done.series("zero", async_call, 0)
    await done.run()

    queue.series("one", async_call, 1)
    queue.verify("one", lambda it: done)

    with pytest.raises(QueueStateError, match="Transfer target"):
        await queue.run()
    assert queue.status is QueueStatus.FAILED
    assert done.status is QueueStatus.SUCCEEDED
