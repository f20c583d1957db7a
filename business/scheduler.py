"""定时任务调度器 - 通用的任务调度框架

具体的业务任务（预约提醒扫描）由 app.py 以回调形式注入
"""
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.base import JobLookupError
from typing import Callable
from loguru import logger


class Scheduler:
    """定时任务调度器

    通用的任务调度框架，不包含具体的业务逻辑
    业务逻辑通过回调函数注入
    """

    def __init__(self):
        """初始化调度器（需要在运行中的事件循环里创建）"""
        self.scheduler = AsyncIOScheduler()

    def add_interval_task(
        self,
        task_func: Callable,
        minutes: int,
        task_id: str = 'interval_task',
        task_name: str = '周期任务',
        run_immediately: bool = False
    ):
        """添加固定间隔任务

        Args:
            task_func: 任务函数（async 函数）
            minutes: 间隔分钟数
            task_id: 任务ID
            task_name: 任务名称
            run_immediately: 启动后是否立即执行一次
        """
        if minutes <= 0:
            raise ValueError(f"minutes must be positive, got {minutes}")
        options = {}
        if run_immediately:
            options["next_run_time"] = datetime.now()
        self.scheduler.add_job(
            task_func,
            trigger=IntervalTrigger(minutes=minutes),
            id=task_id,
            name=task_name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **options
        )
        logger.info(f"Added interval task '{task_name}' every {minutes} min")

    def get_job_ids(self):
        """返回已注册的任务ID列表"""
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self):
        """启动调度器"""
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        """停止调度器"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def remove_job(self, job_id: str):
        """移除任务

        Args:
            job_id: 任务ID
        """
        try:
            self.scheduler.remove_job(job_id)
            logger.info(f"Job {job_id} removed")
        except JobLookupError as e:
            logger.warning(f"Failed to remove job {job_id}: {e}")
