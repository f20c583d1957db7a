"""测试定时任务调度器"""
import pytest

from business.scheduler import Scheduler


async def _noop():
    pass


class TestScheduler:

    @pytest.mark.asyncio
    async def test_add_and_remove_interval_task(self):
        scheduler = Scheduler()
        scheduler.add_interval_task(_noop, minutes=5, task_id="reminder_sweep")
        assert scheduler.get_job_ids() == ["reminder_sweep"]

        scheduler.remove_job("reminder_sweep")
        assert scheduler.get_job_ids() == []

    @pytest.mark.asyncio
    async def test_replace_existing_task(self):
        scheduler = Scheduler()
        scheduler.add_interval_task(_noop, minutes=5, task_id="sweep")
        scheduler.add_interval_task(_noop, minutes=1, task_id="sweep")
        assert scheduler.get_job_ids() == ["sweep"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = Scheduler()
        scheduler.add_interval_task(_noop, minutes=5, task_id="sweep")
        scheduler.start()
        assert scheduler.scheduler.running
        scheduler.stop()
        scheduler.stop()

    @pytest.mark.asyncio
    async def test_remove_missing_job_is_logged(self):
        Scheduler().remove_job("missing")

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            Scheduler().add_interval_task(_noop, minutes=0)
