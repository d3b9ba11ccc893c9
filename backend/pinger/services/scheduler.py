"""Scheduler service - drives one recurring probe job per endpoint.

Design:
- One APScheduler interval job per endpoint, keyed by endpoint id
- Every tick runs as its own asyncio task, so a slow endpoint never delays another
- Ticks of the same endpoint never overlap: a tick that comes due while the
  previous probe is still running is skipped (max_instances=1)
- Shutdown stops new ticks first, then waits a bounded time for running probes

Lifecycle: UNINITIALIZED -> RUNNING -> SHUTTING_DOWN -> STOPPED. A stopped
scheduler cannot be restarted.
"""
import asyncio
import logging
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Set

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..exceptions import SchedulerStateError
from ..schemas import Endpoint
from .prober import Prober
from .storage import Storage

logger = logging.getLogger(__name__)

# Default bound on how long shutdown waits for in-flight probes
DEFAULT_SHUTDOWN_TIMEOUT = 10.0


class SchedulerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def job_id(endpoint_id: int) -> str:
    return f"endpoint-{endpoint_id}"


class SchedulerService:
    """Service for scheduling and running periodic probes, one job per endpoint."""

    def __init__(
        self,
        storage: Storage,
        prober: Prober,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ):
        self.storage = storage
        self.prober = prober
        self.shutdown_timeout = shutdown_timeout
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._state = SchedulerState.UNINITIALIZED
        # endpoint id -> latest known snapshot and its job
        self._endpoints: Dict[int, Endpoint] = {}
        self._jobs: Dict[int, Job] = {}
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def jobs(self) -> Mapping[int, Job]:
        """Read-only view of the registered jobs by endpoint id."""
        return MappingProxyType(self._jobs)

    async def start(self):
        """Load all endpoints, register their jobs and start dispatching.

        Errors while loading or registering propagate; the scheduler is then
        left stopped with no jobs.
        """
        if self._state is not SchedulerState.UNINITIALIZED:
            raise SchedulerStateError(f"Cannot start scheduler in state {self._state.value}")

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        try:
            endpoints = await self.storage.get_all_endpoints()
            for endpoint in endpoints:
                self._add_job(endpoint)
            self.scheduler.start()
        except Exception:
            self._endpoints.clear()
            self._jobs.clear()
            self.scheduler = None
            self._state = SchedulerState.STOPPED
            raise

        self._state = SchedulerState.RUNNING
        logger.info(f"Scheduler started ({len(self._jobs)} jobs)")

    async def shutdown(self):
        """Stop dispatching and wait (bounded) for in-flight probes.

        Probes still running after the shutdown timeout are cancelled.
        No-op if the scheduler was never started or is already stopped.
        """
        if self._state is not SchedulerState.RUNNING:
            return

        self._state = SchedulerState.SHUTTING_DOWN
        # No new ticks from here on; running ones keep going
        self.scheduler.pause()

        pending = {task for task in self._in_flight if not task.done()}
        if pending:
            logger.info(f"Waiting up to {self.shutdown_timeout}s for {len(pending)} in-flight probes")
            _, pending = await asyncio.wait(pending, timeout=self.shutdown_timeout)
            if pending:
                logger.warning(f"Cancelling {len(pending)} probes still running after shutdown timeout")

        # Cancels whatever is still running
        self.scheduler.shutdown(wait=False)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._jobs.clear()
        self._endpoints.clear()
        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    def register_endpoint(self, endpoint: Endpoint):
        """Add a job for a new endpoint or replace the job of a changed one.

        Ignored unless running: before start the endpoint is picked up by the
        initial load, after shutdown there is nothing left to schedule.
        """
        if self._state is SchedulerState.UNINITIALIZED:
            logger.debug(f"Scheduler not started, endpoint {endpoint.id} will be loaded at start")
            return
        if self._state is not SchedulerState.RUNNING:
            logger.info(f"Scheduler {self._state.value}, not scheduling endpoint {endpoint.id}")
            return

        self._add_job(endpoint)

    def unregister_endpoint(self, endpoint_id: int):
        """Remove the job of an endpoint. Unknown ids are ignored."""
        job = self._jobs.pop(endpoint_id, None)
        self._endpoints.pop(endpoint_id, None)
        if job is None:
            return
        job.remove()
        logger.info(f"Removed job for endpoint {endpoint_id}")

    def _add_job(self, endpoint: Endpoint):
        self._endpoints[endpoint.id] = endpoint
        self._jobs[endpoint.id] = self.scheduler.add_job(
            self._run_probe,
            trigger=IntervalTrigger(seconds=endpoint.interval),
            args=[endpoint.id],
            id=job_id(endpoint.id),
            name=f"probe {endpoint.domain}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(1, int(endpoint.interval)),
        )
        logger.info(f"Added job for endpoint {endpoint.id} ({endpoint.domain}, every {endpoint.interval}s)")

    async def _run_probe(self, endpoint_id: int):
        """Run one tick for an endpoint. Only cancellation propagates."""
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            return

        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            await self.prober.probe(endpoint)
        except asyncio.CancelledError:
            logger.info(f"Probe for endpoint {endpoint_id} cancelled")
            raise
        except Exception:
            logger.exception(f"Error probing endpoint {endpoint_id}")
        finally:
            self._in_flight.discard(task)
