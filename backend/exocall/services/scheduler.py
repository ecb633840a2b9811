import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    """Runs ``job`` every ``interval_seconds`` on the event loop until stopped.

    A failure escaping the job is logged and the next tick still happens.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[object]],
        interval_seconds: float,
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self.job = job
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval_seconds)
        while True:
            try:
                await self.job()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled job %s failed", self.name)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run(), name=f"job:{self.name}")
        logger.info("Scheduled %s every %ss", self.name, self.interval_seconds)
        return self._task

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class Scheduler:
    def __init__(self) -> None:
        self.jobs: List[PeriodicJob] = []

    def add(self, job: PeriodicJob) -> None:
        self.jobs.append(job)

    def start(self) -> None:
        for job in self.jobs:
            job.start()

    async def stop(self) -> None:
        for job in self.jobs:
            await job.stop()
