"""
Worker control state.

Holds the admission state of one worker and turns process signals into
state changes. The worker reads it each poll cycle; nothing else is
shared between the signal handlers and the loop.
"""

import asyncio
import signal

import structlog

from tagdispatch.constants import WorkerState
from tagdispatch.observability.logging import get_logger


class WorkerControl:
    """
    Pause/resume/shutdown state machine.

    running <-> paused, {running, paused} -> draining -> stopped.
    Draining is entered once and never returns to running.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self._state = WorkerState.RUNNING
        self._wake = asyncio.Event()
        self._logger = logger or get_logger(__name__)

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True while the worker may admit new jobs."""
        return self._state == WorkerState.RUNNING

    @property
    def is_paused(self) -> bool:
        return self._state == WorkerState.PAUSED

    @property
    def shutdown_requested(self) -> bool:
        return self._state in (WorkerState.DRAINING, WorkerState.STOPPED)

    def pause(self) -> bool:
        """Stop admitting jobs. Returns False if not running."""
        if self._state != WorkerState.RUNNING:
            return False
        self._state = WorkerState.PAUSED
        self._logger.info("Worker paused")
        return True

    def resume(self) -> bool:
        """Resume admitting jobs. Returns False if not paused."""
        if self._state != WorkerState.PAUSED:
            return False
        self._state = WorkerState.RUNNING
        self._logger.info("Worker resumed")
        return True

    def request_shutdown(self) -> bool:
        """
        Enter the draining state and wake the poll loop.

        Returns:
            True on the first request, False if already shutting down.
        """
        if self.shutdown_requested:
            return False
        self._state = WorkerState.DRAINING
        self._wake.set()
        self._logger.info("Worker shutdown requested")
        return True

    def mark_stopped(self) -> None:
        self._state = WorkerState.STOPPED
        self._wake.set()

    async def wait(self, timeout: float) -> None:
        """Sleep for `timeout` seconds, or less if shutdown is requested."""
        if self._wake.is_set():
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout)
        except asyncio.TimeoutError:
            return

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Route process signals to this control object.

        SIGTERM/SIGINT request shutdown, SIGTSTP pauses, SIGUSR2 resumes.
        Must be called from the process entry point, on the running loop.
        """
        loop = loop or asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown)
        loop.add_signal_handler(signal.SIGTSTP, self.pause)
        loop.add_signal_handler(signal.SIGUSR2, self.resume)
