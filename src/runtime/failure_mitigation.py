# path: src/runtime/failure_mitigation.py

"""
Structured reporting for the three failure points outside a state's own
execute(): startup config, actuator calls and the recovery ceiling.

These helpers only publish. Deciding whether to retry, route to ERROR or
shut down stays with the caller:

    runtime.agent_runtime_main.load_runtime_config -> emit_config_error
    bot_core.actions.ActionExecutor                -> emit_action_failure
    agent.recovery.ErrorRecoveryService            -> emit_recovery_exhausted

Exceptions that escape a whole cycle are covered separately by
runtime.error_handling.safe_cycle_with_logging().
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from monitoring.bus import EventBus
from monitoring.events import EventType
from monitoring.logger import log_event


JsonDict = Dict[str, Any]


def emit_config_error(
    bus: EventBus,
    message: str,
    *,
    profile: Optional[str] = None,
    error_repr: Optional[str] = None,
) -> None:
    """Publish a CONFIG_ERROR log event. Never raises or exits."""
    log_event(
        bus,
        "runtime.config",
        EventType.LOG,
        message,
        {"subtype": "CONFIG_ERROR", "profile": profile, "error": error_repr},
    )


def emit_action_failure(
    bus: EventBus,
    *,
    action_name: str,
    action_args: JsonDict,
    error_code: str,
    error_repr: Optional[str] = None,
    duration_s: Optional[float] = None,
    module_name: str = "bot_core.actions",
    correlation_id: Optional[str] = None,
) -> None:
    """
    Publish ACTION_EXECUTED with success=False.

    `error_code` is the short machine-readable reason ("move_timeout",
    "interact_failed", ...); `error_repr` carries the exception, if any.
    """
    log_event(
        bus,
        module_name,
        EventType.ACTION_EXECUTED,
        f"Action failed: {action_name} ({error_code})",
        {
            "action_name": action_name,
            "action_args": action_args,
            "success": False,
            "error": error_code,
            "exception": error_repr,
            "duration_s": duration_s,
        },
        correlation_id=correlation_id,
    )


def emit_recovery_exhausted(
    bus: EventBus,
    *,
    state: str,
    consecutive_failures: int,
    ceiling: int,
    reason: str,
    module_name: str = "agent.recovery",
    correlation_id: Optional[str] = None,
) -> None:
    # Mirrors the SHUTDOWN cycle outcome so the JSONL log shows it too.
    log_event(
        bus,
        module_name,
        EventType.SHUTDOWN,
        reason,
        {"state": state, "consecutive_failures": consecutive_failures, "ceiling": ceiling},
        correlation_id=correlation_id,
    )
