"""Periodic reconciliation, one worker thread per tracked state.

Each worker runs its passes back to back with a fixed pause in between, so a
pass for a state never overlaps the previous pass for that state. Workers for
different states run independently.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from mrsync_core.errors import SourceUnavailableError, StoreError
from mrsync_core.models import MergeRequestState

if TYPE_CHECKING:
    from collections.abc import Mapping

    from mrsync_core.reconciler import PassReport
    from mrsync_core.strategy import StrategySelector

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(self, selector: StrategySelector, intervals: Mapping[MergeRequestState | str, float]):
        self._selector = selector
        self._intervals = {MergeRequestState(state): float(seconds) for state, seconds in intervals.items()}
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def run_once(self, state: MergeRequestState) -> PassReport:
        return self._selector.select(state).process()

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("scheduler already started")
        self._stop.clear()
        for state in self._selector.states:
            interval = self._intervals.get(state)
            if interval is None:
                logger.info("No schedule for %s merge requests, not tracking them", state.value)
                continue
            thread = threading.Thread(
                target=self._loop,
                args=(state, interval),
                name=f"mrsync-{state.value}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def run_forever(self) -> None:
        """Start all workers and block until stop() or Ctrl-C."""
        self.start()
        try:
            while not self._stop.wait(1.0):
                if not any(t.is_alive() for t in self._threads):
                    logger.error("All scheduler workers have stopped")
                    break
        except KeyboardInterrupt:
            logger.info("Interrupted, finishing current passes")
        finally:
            self.stop()

    def _loop(self, state: MergeRequestState, interval: float) -> None:
        logger.info("Reconciling %s merge requests every %ss", state.value, interval)
        while not self._stop.is_set():
            try:
                self.run_once(state)
            except (SourceUnavailableError, StoreError):
                # The next tick re-derives every action from the store.
                logger.exception("%s pass aborted", state.value)
            except Exception:
                logger.exception("%s worker crashed, stopping it", state.value)
                return
            self._stop.wait(interval)
