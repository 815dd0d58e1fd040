# Path: src/agent/loop.py
"""
Cooperative cycle scheduler.

Runs one control cycle at a time with a fixed delay between the end of one
cycle and the start of the next:

    delay = cycle_interval_s + jitter
    jitter = randint(*tick_delay_range) * tick_s * antiban_intensity.factor

A state may ask for a longer pause through CycleOutcome.wait_s; the scheduler
honours it up to config.max_wait_s. The stop flag is checked at the top of
every iteration, so stop() takes effect between cycles, never mid-action.
A SHUTDOWN outcome stops the loop and is returned to the caller.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable, Optional

from env.schema import MinerConfig
from .state import CycleOutcome


logger = logging.getLogger(__name__)

StepFn = Callable[[], Optional[CycleOutcome]]


class CycleScheduler:
    """
    Drive `step` (usually AgentController.maybe_step or
    StateManager.execute_cycle) until stopped.

    `step` may return None when nothing ran (e.g. the controller is paused);
    the scheduler then just waits one interval.
    """

    def __init__(
        self,
        step: StepFn,
        config: MinerConfig,
        *,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._step = step
        self._config = config
        self._rng = rng or random.Random()
        self._stop_event = threading.Event()
        # Default sleep wakes early on stop(); the next iteration then exits.
        self._sleep = sleep or self._stop_event.wait
        self.cycles_run = 0
        self.last_outcome: Optional[CycleOutcome] = None

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def jitter(self) -> float:
        factor = self._config.antiban_intensity.factor
        if factor <= 0:
            return 0.0
        low, high = self._config.tick_delay_range
        return self._rng.randint(low, high) * self._config.tick_s * factor

    def next_delay(self, outcome: Optional[CycleOutcome]) -> float:
        delay = self._config.cycle_interval_s + self.jitter()
        if outcome is not None and outcome.wait_s:
            delay = max(delay, min(outcome.wait_s, self._config.max_wait_s))
        return delay

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run_once(self) -> Optional[CycleOutcome]:
        outcome = self._step()
        self.cycles_run += 1
        if outcome is not None:
            self.last_outcome = outcome
            logger.debug("Cycle %d: %s in %s (%s)",
                         self.cycles_run, outcome.kind.name, outcome.state.name, outcome.reason)
        return outcome

    def run(self, max_cycles: Optional[int] = None) -> Optional[CycleOutcome]:
        """
        Loop until stop(), a SHUTDOWN outcome, or `max_cycles` cycles.

        Returns the last outcome seen. Exceptions from `step` propagate; wrap
        it with runtime.error_handling.safe_cycle_with_logging to have them
        reported on the monitoring bus first.
        """
        runs = 0
        while not self.stopped:
            if max_cycles is not None and runs >= max_cycles:
                break
            outcome = self.run_once()
            runs += 1

            if outcome is not None and outcome.is_shutdown:
                logger.error("Shutdown outcome in %s: %s", outcome.state.name, outcome.reason)
                self.stop()
                break

            if max_cycles is not None and runs >= max_cycles:
                break
            self._sleep(self.next_delay(outcome))

        return self.last_outcome
