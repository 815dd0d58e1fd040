# tests/conftest.py
"""Shared fixtures. pyproject also sets pythonpath, this keeps bare `pytest tests/` working."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest

_SRC = Path(__file__).resolve().parent.parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from monitoring.bus import EventBus  # noqa: E402
from monitoring.events import MonitoringEvent  # noqa: E402


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def captured(bus: EventBus) -> List[MonitoringEvent]:
    """Every event published on `bus` during the test, in order."""
    events: List[MonitoringEvent] = []
    bus.subscribe(events.append)
    return events
