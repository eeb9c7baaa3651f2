import asyncio
import logging
from datetime import datetime, timezone

from course_shop.scheduling import AsyncioScheduler, ManualScheduler

START = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def test_manual_scheduler_runs_due_tasks_in_order():
    scheduler = ManualScheduler(START)
    fired = []
    scheduler.call_later(300, lambda: fired.append(("b", scheduler.now())))
    scheduler.call_later(100, lambda: fired.append(("a", scheduler.now())))
    scheduler.call_later(900, lambda: fired.append(("c", scheduler.now())))

    assert scheduler.advance(500) == 2
    assert [name for name, _ in fired] == ["a", "b"]
    assert (fired[0][1] - START).total_seconds() == 0.1
    assert (scheduler.now() - START).total_seconds() == 0.5


def test_manual_scheduler_cancel():
    scheduler = ManualScheduler(START)
    fired = []
    task = scheduler.call_later(100, lambda: fired.append(1))
    task.cancel()
    assert not task.pending
    scheduler.advance(1000)
    assert fired == []


def test_tasks_scheduled_while_running_fire_in_same_advance():
    scheduler = ManualScheduler(START)
    fired = []

    def first():
        fired.append("first")
        scheduler.call_later(100, lambda: fired.append("second"))

    scheduler.call_later(100, first)
    scheduler.advance(250)
    assert fired == ["first", "second"]


def test_asyncio_scheduler_fires_and_cancels():
    fired = []

    async def run():
        scheduler = AsyncioScheduler()
        scheduler.call_later(10, lambda: fired.append("kept"))
        cancelled = scheduler.call_later(10, lambda: fired.append("cancelled"))
        cancelled.cancel()
        await asyncio.sleep(0.1)

    asyncio.run(run())
    assert fired == ["kept"]


def test_asyncio_scheduler_logs_failing_callback(caplog):
    def boom():
        raise RuntimeError("boom")

    async def run():
        scheduler = AsyncioScheduler()
        task = scheduler.call_later(5, boom, name="chat.reply")
        await asyncio.sleep(0.05)
        return task

    with caplog.at_level(logging.ERROR, logger="course_shop.scheduling"):
        task = asyncio.run(run())
    assert task.done
    assert "Scheduled task failed: RuntimeError: boom" in caplog.text
