# path: src/runtime/error_handling.py

"""
Last-line guard around one scheduler tick.

A failing state never gets this far: StateManager turns exceptions from
execute() into a transition to ERROR. Whatever escapes maybe_step() is a
fault in the loop itself (sensor gone, a hook crashing), so it is reported
as a CYCLE_EXCEPTION log event and then re-raised to the host.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from monitoring.bus import EventBus
from monitoring.controller import AgentController
from monitoring.events import EventType
from monitoring.logger import log_event


log = logging.getLogger(__name__)


def safe_cycle_with_logging(
    controller: AgentController,
    bus: EventBus,
    run_id: Optional[str] = None,
    profile: Optional[str] = None,
) -> Any:
    """Return controller.maybe_step(); report and re-raise anything it throws."""
    try:
        return controller.maybe_step()
    except Exception as exc:
        log.error("Cycle failed outside the state machine (run_id=%s): %r", run_id, exc)
        log_event(
            bus,
            "runtime.safe_cycle",
            EventType.LOG,
            f"Control cycle raised {type(exc).__name__}",
            {
                "subtype": "CYCLE_EXCEPTION",
                "run_id": run_id,
                "profile": profile,
                "exception_type": type(exc).__name__,
                "exception_repr": repr(exc),
            },
            correlation_id=run_id,
        )
        raise
