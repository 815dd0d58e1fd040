# src/bot_core/actions.py
"""
Bounded action execution.

ActionExecutor wraps the host's Actuator so that every move / interact:
- blocks the control loop for at most `timeout_s`
- turns a False result or a timeout into a classified failure:
    move_to   -> NavigationError(code="move_failed" | "move_timeout")
    interact  -> InteractionError(code="interaction_rejected" | "interaction_timeout")
- is traced (ActionTracer) and, on failure, reported on the monitoring bus

Actuator calls run on a single worker thread, so at most one action is in
flight. An exception raised by the actuator itself is traced and re-raised
untouched; the recovery service classifies it as UNKNOWN.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from time import perf_counter
from typing import Any, Callable, Dict, Optional, Tuple

from agent.errors import InteractionError, NavigationError
from contracts.capabilities import Actuator
from contracts.types import Point
from monitoring.bus import EventBus
from runtime.failure_mitigation import emit_action_failure
from .tracing import ActionTracer


log = logging.getLogger(__name__)


class ActionExecutor:
    def __init__(
        self,
        actuator: Actuator,
        *,
        timeout_s: float = 30.0,
        tracer: Optional[ActionTracer] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._actuator = actuator
        self._timeout_s = timeout_s
        self._tracer = tracer or ActionTracer()
        self._bus = bus
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="actuator")

    @property
    def tracer(self) -> ActionTracer:
        return self._tracer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def move_to(self, point: Point, timeout_s: Optional[float] = None) -> None:
        """Walk to `point`; raise NavigationError on failure or timeout."""
        params = {"point": point.to_dict()}
        ok, code = self._run(
            "move_to", params, self._actuator.move_to, (point,), timeout_s,
            fail_code="move_failed", timeout_code="move_timeout",
        )
        if not ok:
            raise NavigationError(code=code, details=params, point=point)

    def interact(self, target_ref: str, action: str, timeout_s: Optional[float] = None) -> None:
        """Click `action` on `target_ref`; raise InteractionError on failure or timeout."""
        params = {"target_ref": target_ref, "action": action}
        ok, code = self._run(
            "interact", params, self._actuator.interact, (target_ref, action), timeout_s,
            fail_code="interaction_rejected", timeout_code="interaction_timeout",
        )
        if not ok:
            raise InteractionError(code=code, details=params, target_ref=target_ref, action=action)

    def close(self) -> None:
        """Release the worker thread. Pending actions are not waited for."""
        self._pool.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        name: str,
        params: Dict[str, Any],
        fn: Callable[..., bool],
        args: tuple,
        timeout_s: Optional[float],
        *,
        fail_code: str,
        timeout_code: str,
    ) -> Tuple[bool, Optional[str]]:
        """Return (ok, error_code). error_code is None on success."""
        limit = timeout_s if timeout_s is not None else self._timeout_s
        start = perf_counter()
        future = self._pool.submit(fn, *args)
        try:
            ok = bool(future.result(timeout=limit))
        except FutureTimeout:
            duration = perf_counter() - start
            log.warning("%s timed out after %.1fs params=%r", name, limit, params)
            self._report(name, params, False, timeout_code, duration)
            return False, timeout_code
        except Exception as exc:
            duration = perf_counter() - start
            self._report(name, params, False, "actuator_exception", duration, repr(exc))
            raise

        duration = perf_counter() - start
        code = None if ok else fail_code
        self._report(name, params, ok, code, duration)
        return ok, code

    def _report(
        self,
        name: str,
        params: Dict[str, Any],
        ok: bool,
        code: Optional[str],
        duration: float,
        error_repr: Optional[str] = None,
    ) -> None:
        self._tracer.record(
            action=name, params=params, success=ok, error=code, duration_s=duration
        )
        if not ok and self._bus is not None:
            emit_action_failure(
                self._bus,
                action_name=name,
                action_args=params,
                error_code=code or "unknown",
                error_repr=error_repr,
                duration_s=duration,
            )
