# /orderbot/utils/job_guard.py

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from orderbot.utils.metrics import job_runs_counter

# Re-entrancy guard shared by the scheduled jobs. A trigger that arrives while
# a run is in flight is dropped, not queued, and the state always returns to
# IDLE when the run ends, whatever happened inside it.

logger = logging.getLogger(__name__)


class JobState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class GuardedJob:
    def __init__(self, name: str, func: Callable[[], Awaitable[Any]]):
        self.name = name
        self.func = func
        self.state = JobState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state == JobState.RUNNING

    async def trigger(self) -> Optional[Any]:
        """Runs the job unless it is already running. Returns the run's result, or None when dropped."""
        if self.state == JobState.RUNNING:
            job_runs_counter.labels(job=self.name, outcome="dropped").inc()
            logger.info(f"Job '{self.name}' is already running; trigger dropped.")
            return None

        self.state = JobState.RUNNING
        try:
            result = await self.func()
            job_runs_counter.labels(job=self.name, outcome="success").inc()
            return result
        except Exception:
            job_runs_counter.labels(job=self.name, outcome="error").inc()
            logger.error(f"Job '{self.name}' failed.", exc_info=True)
            raise
        finally:
            self.state = JobState.IDLE

    async def run_scheduled(self):
        """Entry point for the scheduler: errors are logged, never propagated."""
        try:
            await self.trigger()
        except Exception:
            # Already logged in trigger(); the next tick is the retry.
            pass
