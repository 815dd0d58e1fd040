#src/monitoring/controller.py
"""
Operator control surface for a running miner.

AgentController sits between the CycleScheduler and the StateManager. The
scheduler calls `maybe_step()` once per tick; whoever holds the EventBus can
steer the loop by publishing ControlCommands:

    PAUSE / RESUME      hold or release the loop
    SINGLE_STEP         one cycle, then hold again
    STOP                tell the scheduler to finish after this cycle
    RESET               manager.reset() before the next cycle
    DUMP_STATE          publish manager.debug_state() as a SNAPSHOT event

Commands may arrive from any thread. Flags live behind one lock, and RESET
is only ever applied from inside `maybe_step()`, on the loop thread.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, is_dataclass
from threading import Lock
from typing import Any, Callable, Dict, Optional, Protocol

from .bus import EventBus
from .events import ControlCommand, ControlCommandType, EventType
from .logger import log_event


log = logging.getLogger(__name__)

MODULE = "monitoring.controller"


class ManagerControl(Protocol):
    """The slice of agent.manager.StateManager the controller touches."""

    def execute_cycle(self) -> Any: ...

    def reset(self) -> None: ...

    def debug_state(self) -> Dict[str, Any]: ...


@dataclass
class _Flags:
    paused: bool = False
    single_step: bool = False
    stop: bool = False
    reset: bool = False


class AgentController:
    """
    Wraps a StateManager so pause, step, stop and reset can be applied
    between cycles without the loop knowing about commands.
    """

    def __init__(
        self,
        manager: ManagerControl,
        bus: EventBus,
        *,
        on_stop: Optional[Callable[[], None]] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self._manager = manager
        self._bus = bus
        self._on_stop = on_stop
        self._run_id = run_id
        self._lock = Lock()
        self._flags = _Flags()

        self._handlers: Dict[ControlCommandType, Callable[[ControlCommand], None]] = {
            ControlCommandType.PAUSE: self._on_pause,
            ControlCommandType.RESUME: self._on_resume,
            ControlCommandType.SINGLE_STEP: self._on_single_step,
            ControlCommandType.STOP: self._on_stop_command,
            ControlCommandType.RESET: self._on_reset,
            ControlCommandType.DUMP_STATE: self._on_dump_state,
        }
        self._bus.subscribe_commands(self._handle_command)

    def close(self) -> None:
        self._bus.unsubscribe_commands(self._handle_command)

    def set_stop_callback(self, on_stop: Callable[[], None]) -> None:
        self._on_stop = on_stop

    # --- read-only views -----------------------------------------------

    @property
    def paused(self) -> bool:
        with self._lock:
            return self._flags.paused

    @property
    def single_step_pending(self) -> bool:
        with self._lock:
            return self._flags.single_step

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self._flags.stop

    # --- loop side -----------------------------------------------------

    def maybe_step(self) -> Any:
        """
        Run one manager cycle unless the loop is held.

        Returns the manager's CycleOutcome, or None when paused or stopped.
        A pending RESET is applied first, even while paused.
        """
        with self._lock:
            apply_reset, self._flags.reset = self._flags.reset, False
            held = self._flags.paused or self._flags.stop

        if apply_reset:
            self._manager.reset()
            self._announce("RESET_COMPLETED")
        if held:
            return None

        outcome = self._manager.execute_cycle()

        with self._lock:
            was_single = self._flags.single_step
            if was_single:
                self._flags.single_step = False
                self._flags.paused = True
        if was_single:
            self._announce("SINGLE_STEP_COMPLETED", paused=True)
        return outcome

    # --- command side --------------------------------------------------

    def _handle_command(self, cmd: ControlCommand) -> None:
        handler = self._handlers.get(cmd.cmd)
        if handler is None:
            log.warning("Ignoring unsupported control command %r", cmd.cmd)
            return
        handler(cmd)

    def _on_pause(self, cmd: ControlCommand) -> None:
        with self._lock:
            self._flags.paused = True
            self._flags.single_step = False
        self._announce("PAUSE", paused=True)

    def _on_resume(self, cmd: ControlCommand) -> None:
        with self._lock:
            self._flags.paused = False
            self._flags.single_step = False
        self._announce("RESUME", paused=False)

    def _on_single_step(self, cmd: ControlCommand) -> None:
        with self._lock:
            self._flags.paused = False
            self._flags.single_step = True
        self._announce("SINGLE_STEP", single_step=True)

    def _on_stop_command(self, cmd: ControlCommand) -> None:
        with self._lock:
            self._flags.stop = True
        if self._on_stop is not None:
            self._on_stop()
        self._announce("STOP", stop_requested=True)

    def _on_reset(self, cmd: ControlCommand) -> None:
        with self._lock:
            self._flags.reset = True
        self._announce("RESET", reset_requested=True)

    def _on_dump_state(self, cmd: ControlCommand) -> None:
        payload: Dict[str, Any] = {"state": self._debug_state()}
        reason = cmd.args.get("reason")
        if reason is not None:
            payload["reason"] = reason
        log_event(
            self._bus,
            MODULE,
            EventType.SNAPSHOT,
            "Controller state snapshot",
            payload,
            correlation_id=self._run_id,
        )

    # --- helpers -------------------------------------------------------

    def _announce(self, name: str, **fields: Any) -> None:
        log_event(
            self._bus,
            MODULE,
            EventType.CONTROL_COMMAND,
            f"Control command: {name}",
            {"cmd": name, **fields},
            correlation_id=self._run_id,
        )

    def _debug_state(self) -> Dict[str, Any]:
        # Runs on the publisher's thread; a broken manager must not raise there.
        try:
            state = self._manager.debug_state()
        except Exception as exc:
            log.exception("debug_state() failed")
            return {"error": "debug_state_failed", "details": repr(exc)}
        if is_dataclass(state):
            return asdict(state)
        return state
