"""预约提醒

定时扫描开启了提醒的门店，把即将开始的预约与门店配置的提前量匹配：

- 提醒目标时间 = 预约开始时间 - 提前量；
- 目标时间已过，或距离现在不超过 due window（默认 10 分钟）时发送；
- 每个（预约, 提醒配置）只发送一次，发送成功后才记录。

发送失败只记录日志，等下一轮扫描再试。
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import settings
from database import DatabaseManager
from database.models import Appointment, Barbershop, Client, ReminderConfig, Service
from business.clock import Clock, business_now
from business.errors import UpstreamError
from business.status import AppointmentStatus
from integrations.base import Notifier, ReminderPayload

# 提前量单位 -> 分钟
REMINDER_UNIT_MINUTES = {
    "minutes": 1,
    "hours": 60,
    "days": 24 * 60,
}
# 未知单位时的提前量（分钟）
FALLBACK_REMINDER_MINUTES = 60

REMINDABLE_STATUSES = [
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
]


def reminder_offset(reminder_type: str, reminder_value: int) -> timedelta:
    """把提醒配置换算成提前量。未知单位按 60 分钟处理。"""
    unit = REMINDER_UNIT_MINUTES.get(reminder_type)
    if unit is None:
        logger.warning(
            f"Unknown reminder unit {reminder_type!r}, "
            f"using {FALLBACK_REMINDER_MINUTES} minutes"
        )
        return timedelta(minutes=FALLBACK_REMINDER_MINUTES)
    return timedelta(minutes=unit * reminder_value)


def is_due(start_time: datetime, offset: timedelta, now: datetime,
           window: timedelta) -> bool:
    """提醒目标时间已过或在 window 之内即视为到期。"""
    return (start_time - offset) - now <= window


def format_appointment_time(start_time: datetime) -> str:
    """按巴西习惯格式化预约时间，例如 05/03/2025, 14:30。"""
    return start_time.strftime("%d/%m/%Y, %H:%M")


class ReminderService:
    """预约提醒服务"""

    def __init__(self, db: DatabaseManager, notifier: Notifier,
                 clock: Optional[Clock] = None,
                 due_window_minutes: Optional[int] = None):
        """
        Args:
            db: 数据库管理器。
            notifier: 通知服务。
            clock: 返回门店本地当前时间的函数，默认按各门店时区取当前时间。
            due_window_minutes: 到期窗口（分钟），默认取 settings。
        """
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.window = timedelta(
            minutes=due_window_minutes
            if due_window_minutes is not None
            else settings.reminder_due_window_minutes
        )

    async def sweep(self) -> List[Dict[str, Any]]:
        """扫描一轮并发送到期的提醒。

        Returns:
            本轮发送成功的提醒列表。
        """
        sent: List[Dict[str, Any]] = []
        for shop in self.db.barbershops.get_with_reminders():
            configs = self.db.reminders.get_enabled_configs(shop.id)
            if not configs:
                logger.debug(f"No active reminders configured for {shop.name}")
                continue

            now = self.clock() if self.clock else business_now(shop.timezone)
            appointments = self.db.appointments.get_upcoming(
                shop.id, now, REMINDABLE_STATUSES
            )
            for config in configs:
                offset = reminder_offset(config.reminder_type, config.reminder_value)
                for appointment in appointments:
                    if not is_due(appointment.start_time, offset, now, self.window):
                        continue
                    if self.db.reminders.was_sent(appointment.id, config.id):
                        continue
                    if await self._send(shop, config, appointment):
                        sent.append({
                            "barbershop": shop.name,
                            "appointment_id": appointment.id,
                            "reminder_id": config.id,
                            "time": format_appointment_time(appointment.start_time),
                        })

        logger.info(f"Reminder sweep finished, sent {len(sent)} reminders")
        return sent

    async def _send(self, shop: Barbershop, config: ReminderConfig,
                    appointment: Appointment) -> bool:
        payload = self._build_payload(shop, config, appointment)
        try:
            await self.notifier.send_reminder(payload)
        except UpstreamError as e:
            logger.error(
                f"Reminder {config.id} for appointment {appointment.id} failed: {e}"
            )
            return False

        self.db.reminders.mark_sent(appointment.id, config.id)
        logger.info(
            f"Sent reminder {config.id} ({config.reminder_value} "
            f"{config.reminder_type}) for appointment {appointment.id}"
        )
        return True

    def _build_payload(self, shop: Barbershop, config: ReminderConfig,
                       appointment: Appointment) -> ReminderPayload:
        service_name = "Serviço"
        if appointment.service_id is not None:
            service = self.db.services.get_by_id(Service, appointment.service_id)
            if service is not None:
                service_name = service.name

        client_name = appointment.client_display_name
        client_phone = appointment.client_phone
        if appointment.client_id is not None and not (client_name and client_phone):
            client = self.db.clients.get_by_id(Client, appointment.client_id)
            if client is not None:
                client_name = client_name or client.name
                client_phone = client_phone or client.phone

        return ReminderPayload(
            barbershop_name=shop.name,
            barbershop_phone=shop.phone or "",
            client_name=client_name or "Cliente",
            client_phone=client_phone or "",
            service_name=service_name,
            appointment_time=format_appointment_time(appointment.start_time),
            reminder_type=config.reminder_type,
            reminder_value=config.reminder_value,
            custom_message=shop.reminder_message_template or "",
        )
