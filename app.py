#!/usr/bin/env python3
"""理发店预约后台 - 常驻进程入口

启动后按固定间隔扫描即将开始的预约，向通知 Webhook 发送提醒。

使用方式：
    python app.py

    # 指定数据库
    python app.py --db sqlite:///data/barbershop.db

    # 修改扫描间隔（分钟）
    python app.py --interval 2

环境变量（在 .env 文件中配置）：
    DATABASE_URL                 数据库连接地址
    BUSINESS_TIMEZONE            门店默认时区（默认 America/Sao_Paulo）
    REMINDER_WEBHOOK_URL         提醒通知 Webhook 地址（必填）
    REMINDER_SWEEP_MINUTES       扫描间隔（默认 5 分钟）
    REMINDER_DUE_WINDOW_MINUTES  提醒提前发送窗口（默认 10 分钟）
    LOG_LEVEL                    日志级别（默认 INFO）
"""
import argparse
import asyncio
import os
import signal
import sys

from loguru import logger


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


async def _cleanup(scheduler, db):
    """统一资源清理函数。

    确保调度器和数据库连接被正确关闭。
    """
    logger.info("正在清理资源...")

    # 1. 停止调度器（不再触发新的扫描）
    if scheduler is not None:
        scheduler.stop()

    # 2. 关闭数据库连接（释放连接池）
    if db is not None:
        db.close()

    logger.info("服务已停止")


async def main():
    from config.settings import settings

    parser = argparse.ArgumentParser(description="理发店预约提醒服务")
    parser.add_argument("--db", default=os.getenv("DATABASE_URL", None),
                        help="数据库连接 URL")
    parser.add_argument("--interval", type=int, default=settings.reminder_sweep_minutes,
                        help=f"扫描间隔分钟数 (默认: {settings.reminder_sweep_minutes})")
    args = parser.parse_args()

    _configure_logging(settings.log_level)

    if not settings.reminder_webhook_url:
        logger.error("未配置 REMINDER_WEBHOOK_URL，无法发送提醒")
        return

    # 用于 finally 清理的引用
    scheduler = None
    db = None

    try:
        from database import DatabaseManager
        from business.reminders import ReminderService
        from business.scheduler import Scheduler
        from integrations.webhook import WebhookNotifier

        db = DatabaseManager(args.db)
        db.create_tables()
        logger.info(f"数据库已连接: {db.database_url}")

        reminders = ReminderService(db, WebhookNotifier())

        async def sweep_reminders():
            """执行一轮提醒扫描"""
            sent = await reminders.sweep()
            if sent:
                logger.info(f"本轮发送 {len(sent)} 条提醒")

        scheduler = Scheduler()
        scheduler.add_interval_task(
            sweep_reminders,
            minutes=args.interval,
            task_id="reminder_sweep",
            task_name="预约提醒扫描",
            run_immediately=True,
        )
        scheduler.start()
        logger.info(f"提醒服务已启动，每 {args.interval} 分钟扫描一次，按 Ctrl+C 停止")

        # 设置信号处理 —— 使用 asyncio 的信号处理确保事件循环能正确响应
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()

        def signal_handler(signum):
            """处理退出信号"""
            logger.info(f"收到信号 {signum}，正在关闭服务...")
            shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler, sig)

        # 保持运行，直到收到退出信号
        await shutdown_event.wait()

    except asyncio.CancelledError:
        logger.info("任务被取消，正在清理...")
    finally:
        await _cleanup(scheduler, db)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
