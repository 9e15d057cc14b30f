"""Callback based APIs wrapped with promisify_callback."""

import threading

import pytest

from asynchro.core.adapters.promisify import promisify_callback, promisify_delay
from asynchro.core.flux_capacitor import FluxCapacitor


class LegacyReader:
    def read(self, path, encoding, callback):
        callback(None, f"{path}:{encoding}", len(path))

    def fail(self, callback):
        callback(ValueError("nope"))

    def fail_with_text(self, callback):
        callback("text error")

    def threaded(self, value, callback):
        threading.Thread(target=callback, args=(None, value)).start()

    def twice(self, callback):
        callback(None, "first")
        callback(None, "second")


@pytest.mark.asyncio
async def test_resolves_with_values_and_pads_arguments():
    read = promisify_callback(LegacyReader(), "read")
    assert read.__name__ == "read"
    assert await read("a.txt") == ["a.txt:None", 5]
    assert await read("a.txt", "utf8") == ["a.txt:utf8", 5]


@pytest.mark.asyncio
async def test_named_and_extracted_values():
    reader = LegacyReader()
    assert await promisify_callback(reader, "read", ["text", "size"])("ab", "utf8") == {
        "text": "ab:utf8",
        "size": 2,
    }
    assert await promisify_callback(reader, "read", ["text", "size", "extra"])("ab") == {
        "text": "ab:None",
        "size": 2,
        "extra": None,
    }
    assert await promisify_callback(reader, "read", lambda text, size: size)("abc") == 3


@pytest.mark.asyncio
async def test_error_rejects():
    reader = LegacyReader()
    with pytest.raises(ValueError, match="nope"):
        await promisify_callback(reader, "fail")()
    with pytest.raises(RuntimeError, match="text error"):
        await promisify_callback(reader, "fail_with_text")()


@pytest.mark.asyncio
async def test_callback_from_another_thread():
    assert await promisify_callback(LegacyReader(), "threaded")("from thread") == ["from thread"]


@pytest.mark.asyncio
async def test_first_callback_wins():
    assert await promisify_callback(LegacyReader(), "twice")() == ["first"]


def test_missing_method():
    with pytest.raises(TypeError):
        promisify_callback(LegacyReader(), "missing")


@pytest.mark.asyncio
async def test_queued_callback_operation():
    result: dict = {}
    queue = FluxCapacitor(result)
    queue.parallel("read", promisify_callback(LegacyReader(), "read", ["text"]), "a", "utf8")
    queue.series("fail", promisify_callback(LegacyReader(), "fail"))
    await queue.run()

    assert result == {"read": {"text": "a:utf8"}}
    assert isinstance(queue.errors[0], ValueError)
    assert queue.messages() == "Internal ERROR for fail"


@pytest.mark.asyncio
async def test_promisify_delay():
    assert await promisify_delay(5, "value") == "value"
    with pytest.raises(RuntimeError, match="rejected"):
        await promisify_delay(5, "rejected", True)
    error = KeyError("k")
    with pytest.raises(KeyError) as info:
        await promisify_delay(1, error, reject=True)
    assert info.value is error
