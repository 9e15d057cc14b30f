"""Pytest fixtures.

This file adjusts sys.path for src-layout imports.
"""

# ruff: noqa: E402

import os
import sys

# Ensure `src` is on sys.path so imports like `from asynchro.core...` resolve during tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if os.path.isdir(SRC):
    sys.path.insert(0, SRC)
sys.path.insert(0, ROOT)

import pytest
from rich.traceback import install

from asynchro.core.flux_capacitor import FluxCapacitor

# Enable readable tracebacks in development / test environments.
# Can be disabled with PYTEST_RICH=0
if os.getenv("PYTEST_RICH", "1") == "1":
    install(
        show_locals=True,  # show local variables for each frame
        width=None,  # use terminal width
        word_wrap=True,  # wrap long lines
        extra_lines=1,  # some context around lines
        suppress=["/usr/lib/python3", "site-packages"],  # hide "noisy" third-party frames
    )


@pytest.fixture(scope="function")
def result() -> dict:
    """Fresh result store for each test."""
    return {}


@pytest.fixture(scope="function")
def queue(result) -> FluxCapacitor:
    """Queue suppressing every error and writing into the ``result`` fixture."""
    return FluxCapacitor(result)


@pytest.fixture(scope="function")
def log_records() -> list:
    """Collects ``(tags, data)`` pairs sent to a queue log sink."""
    return []
