"""Tests for src.core.scheduler against a real AsyncIOScheduler."""
import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.core import scheduler


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate() and loop.time() < deadline:
        await asyncio.sleep(0.02)


def with_real_scheduler(body):
    async def runner():
        sched = AsyncIOScheduler()
        sched.start()
        scheduler.set_scheduler(sched)
        try:
            return await body()
        finally:
            sched.shutdown(wait=False)
            scheduler.set_scheduler(None)

    return asyncio.run(runner())


def test_interval_job_awaits_coroutine_on_the_loop():
    ran = []

    async def job():
        ran.append(asyncio.get_running_loop())

    async def body():
        scheduler.schedule_every(job, job_id="tick", minutes=0.002)
        await wait_until(lambda: ran)
        return asyncio.get_running_loop()

    loop = with_real_scheduler(body)
    assert ran and ran[0] is loop


def test_cancel_job_stops_future_runs():
    ran = []

    async def job():
        ran.append(1)
        scheduler.cancel_job("once")

    async def body():
        scheduler.schedule_every(job, job_id="once", minutes=0.002)
        assert scheduler.has_job("once")
        await wait_until(lambda: ran)
        await asyncio.sleep(0.3)
        return scheduler.has_job("once")

    assert with_real_scheduler(body) is False
    assert ran == [1]


def test_cancel_unknown_job():
    async def body():
        return scheduler.cancel_job("missing")

    assert with_real_scheduler(body) is False
