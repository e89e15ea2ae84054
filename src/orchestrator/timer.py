"""
Timer Driver - the once-a-second clock of a live session

The driver only keeps time: it calls `tick` and then gives the
orchestrator the chance to expire the active question. Whoever hosts a
live session owns the driver; the orchestrator never starts one itself.
"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from config import config
from src.orchestrator.orchestrator import InterviewOrchestrator
from src.orchestrator.schema import SessionStatus


class TimerDriver:
    """Periodic tick source for one session"""

    def __init__(
        self,
        orchestrator: InterviewOrchestrator,
        session_id: str,
        interval: Optional[float] = None,
        on_tick: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            orchestrator: The orchestrator that owns the session.
            session_id: Session to drive.
            interval: Seconds between ticks (1.0 by default).
            on_tick: Called with the seconds left after every effective tick.
        """
        self.orchestrator = orchestrator
        self.session_id = session_id
        self.interval = interval if interval is not None else config.interview.tick_interval
        self.on_tick = on_tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        log = logger.bind(session_id=self.session_id)
        log.debug(f"Timer started ({self.interval}s interval)")
        while True:
            await asyncio.sleep(self.interval)

            remaining = await self.orchestrator.tick(self.session_id)
            if remaining is not None and self.on_tick:
                self.on_tick(remaining)

            try:
                await self.orchestrator.expire_active_question(self.session_id)
            except Exception as e:
                # Already on the transcript; keep the clock running
                log.error(f"Timeout submission failed: {e}")

            session = self.orchestrator.store.find_session(self.session_id)
            if session is None or session.status == SessionStatus.COMPLETED:
                log.debug("Session finished, timer stopped")
                break

    def start(self):
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                # The loop already died; stopping must not raise its error
                logger.bind(session_id=self.session_id).error(f"Timer stopped after an error: {e!r}")
            self._task = None
