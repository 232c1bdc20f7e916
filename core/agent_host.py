"""Hosts the control loop and the periodic consolidation task."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any

from core.control_loop import AgentController
from core.state_broadcaster import StateBroadcaster
from memory.consolidation.consolidator import MemoryConsolidationEngine

logger = logging.getLogger("autoloop.host")


class AgentHost:
    """Runs the controller and background consolidation on two threads.

    Both threads share one stop event; ``stop`` sets it and joins them.
    """

    def __init__(
        self,
        controller: AgentController,
        engine: MemoryConsolidationEngine,
        broadcaster: StateBroadcaster | None = None,
        initial_delay: timedelta = timedelta(minutes=60),
        interval: timedelta = timedelta(hours=6),
        retry_delay: timedelta = timedelta(minutes=30),
        stop_event: threading.Event | None = None,
    ) -> None:
        self.controller = controller
        self.engine = engine
        self.broadcaster = broadcaster
        self.initial_delay = initial_delay
        self.interval = interval
        self.retry_delay = retry_delay
        self.stop_event = stop_event or threading.Event()
        self._threads: list[threading.Thread] = []

    @classmethod
    def from_config(
        cls,
        controller: AgentController,
        engine: MemoryConsolidationEngine,
        broadcaster: StateBroadcaster | None,
        config: dict[str, Any],
    ) -> AgentHost:
        cfg = config.get("consolidation", {})
        return cls(
            controller=controller,
            engine=engine,
            broadcaster=broadcaster,
            initial_delay=timedelta(minutes=float(cfg.get("initial_delay_minutes", 60))),
            interval=timedelta(hours=float(cfg.get("interval_hours", 6))),
            retry_delay=timedelta(minutes=float(cfg.get("retry_minutes", 30))),
        )

    def consolidation_worker(self) -> None:
        logger.info("Memory consolidation worker started")
        self.stop_event.wait(self.initial_delay.total_seconds())
        while not self.stop_event.is_set():
            try:
                result = self.engine.consolidate_short_term()
                logger.info("Scheduled consolidation finished: %s", result)
                delay = self.interval
            except Exception:
                logger.exception("Error in memory consolidation")
                delay = self.retry_delay
            self.stop_event.wait(delay.total_seconds())
        logger.info("Memory consolidation worker stopped")

    def start(self) -> None:
        if self._threads:
            return
        self._threads = [
            threading.Thread(
                target=self.controller.run,
                args=(self.stop_event,),
                name="agent-loop",
                daemon=True,
            ),
            threading.Thread(
                target=self.consolidation_worker, name="memory-consolidation", daemon=True
            ),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float | None = 30.0) -> None:
        self.stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        if self.broadcaster is not None:
            self.broadcaster.drain(timeout=5.0)
            self.broadcaster.shutdown()
        logger.info("Agent host stopped")

    def run_forever(self) -> None:
        """Block until interrupted, then stop both workers."""
        self.start()
        try:
            while not self.stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.stop()
