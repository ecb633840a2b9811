import asyncio

from exocall.services.scheduler import PeriodicJob, Scheduler


def test_job_keeps_running_after_failure():
    runs = []

    async def flaky():
        runs.append(len(runs))
        if len(runs) == 1:
            raise RuntimeError("first tick fails")

    async def scenario():
        scheduler = Scheduler()
        scheduler.add(PeriodicJob("flaky", flaky, 0.01))
        scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

    asyncio.run(scenario())
    assert len(runs) >= 2


def test_delayed_job_does_not_run_before_interval():
    runs = []

    async def job():
        runs.append(1)

    async def scenario():
        periodic = PeriodicJob("slow", job, 10, run_immediately=False)
        periodic.start()
        await asyncio.sleep(0.05)
        await periodic.stop()

    asyncio.run(scenario())
    assert runs == []
