"""Minimal hello-world demo for the FluxCapacitor async task queue."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

# Allow running directly from the repo without installing the package.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

try:
    from asynchro.core.adapters.promisify import promisify_delay
    from asynchro.core.flux_capacitor import FluxCapacitor, FluxCapacitorConfig
    from asynchro.core.spock.spock import Spock
    from asynchro.core.utils import logging_sink
except ImportError as exc:
    print("asynchro not found. This hello world expects the package sources under src/.")
    print(f"Import error: {exc}")
    sys.exit(1)


async def split_sentences(text: str) -> list[str]:
    await asyncio.sleep(0.01)
    return [s.strip() for s in text.split(".") if s.strip()]


async def count_words(sentence: str | None) -> int:
    await asyncio.sleep(0.01)
    return len(sentence.split()) if sentence else 0


def save_report(sentences: list[str], saved: list[str]) -> dict:
    saved.extend(sentences)
    return {"message": f"saved {len(sentences)} sentences"}


async def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    spock = Spock(use_dotenv=False)
    spock.load({"queue": {"throws": "system", "message_delimiter": " | "}})

    result: dict = {}
    saved: list[str] = []
    text = "Roads. Where we're going. We don't need roads."

    queue = FluxCapacitor(
        result,
        log=logging_sink(logging.getLogger("hello")),
        config=FluxCapacitorConfig.from_spock(spock),
    )
    queue.series("sentences", split_sentences, text)
    queue.parallel("first", count_words, queue.arg("sentences[0]"))
    queue.parallel("second", count_words, queue.arg("sentences[1]"))
    queue.background("report", save_report, queue.arg("sentences"), saved)
    queue.series("pause", promisify_delay, 10, "paused")

    @queue.verify("second")
    def check_second(it):
        if not it.is_pending:
            it.message = f"second sentence has {it.result} words"

    await queue.run()
    await queue.background_waiter()

    print(f"[run] status: {queue.status}")
    print(f"[run] result: {result}")
    print(f"[run] messages: {queue.messages()}")
    print(f"[run] saved: {saved}")
    return 0 if queue.summary().is_ok() else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
