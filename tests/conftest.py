"""Pytest configuration and shared fixtures.

Adds the tests folder to sys.path so test modules can import the shared
stubs from `support`.
"""

import sys
from pathlib import Path

import pytest


def _ensure_tests_dir_on_syspath() -> None:
    tests_dir = str(Path(__file__).resolve().parent)
    if tests_dir not in sys.path:
        sys.path.insert(0, tests_dir)


_ensure_tests_dir_on_syspath()

from support import (  # noqa: E402
    ScriptedModel,
    echo_tool,
    failing_tool,
    gated_tool,
    make_agent,
)


@pytest.fixture
def model():
    """Scripted model with an empty script (answers 'done' and finishes)."""
    return ScriptedModel([])


@pytest.fixture
def agent():
    return make_agent()


@pytest.fixture
def sample_tools():
    return [echo_tool(), failing_tool(), gated_tool()]
