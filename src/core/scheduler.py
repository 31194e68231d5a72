# src/core/scheduler.py
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None

def _ensure_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
        _scheduler.start()
    return _scheduler

def set_scheduler(scheduler: Optional[AsyncIOScheduler]) -> None:
    global _scheduler
    _scheduler = scheduler

def schedule_every(coro_func: Callable, *, job_id: str, minutes: float = 5):
    """
    Schedule an async task to run every `minutes` minutes.
    - coro_func can be an async function or a callable returning a coroutine.
    - job_id ensures idempotency (replace_existing=True).
    """
    sched = _ensure_scheduler()

    # AsyncIOExecutor only runs coroutine functions on the loop; plain
    # callables go to a worker thread with no running loop.
    async def _runner():
        result = coro_func()
        if asyncio.iscoroutine(result):
            await result

    sched.add_job(
        _runner,
        IntervalTrigger(minutes=minutes),
        id=job_id,
        replace_existing=True
    )
    logger.info("schedule_every: job_id=%s every %s minute(s)", job_id, minutes)

def cancel_job(job_id: str) -> bool:
    sched = _ensure_scheduler()
    if sched.get_job(job_id) is None:
        return False
    sched.remove_job(job_id)
    logger.info("cancel_job: removed job_id=%s", job_id)
    return True

def has_job(job_id: str) -> bool:
    return _ensure_scheduler().get_job(job_id) is not None
