"""系统数据仓库 —— 预约提醒配置与发送记录的数据访问层。

发送记录用于保证每个（预约, 提醒配置）组合只通知一次。
"""
from typing import Optional, List
from datetime import datetime
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import ReminderConfig, ReminderSent


class ReminderRepository(BaseCRUD):
    """预约提醒 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create_config(self, barbershop_id: int, reminder_type: str = "hours",
                      reminder_value: int = 1, is_enabled: bool = True,
                      session: Optional[Session] = None) -> ReminderConfig:
        """新增一条提醒配置。

        Args:
            barbershop_id: 门店ID。
            reminder_type: 提前量单位（minutes / hours / days）。
            reminder_value: 提前量。
            is_enabled: 是否启用。

        Raises:
            ValueError: 提前量不为正。
        """
        if reminder_value is None or reminder_value <= 0:
            raise ValueError(
                f"reminder_value must be positive, got {reminder_value}"
            )
        return self.add(ReminderConfig(
            barbershop_id=barbershop_id,
            reminder_type=reminder_type,
            reminder_value=reminder_value,
            is_enabled=is_enabled,
        ), session=session)

    def get_enabled_configs(self, barbershop_id: int,
                            session: Optional[Session] = None
                            ) -> List[ReminderConfig]:
        """获取门店启用中的提醒配置。"""
        return self.get_all(
            ReminderConfig,
            filters={"barbershop_id": barbershop_id, "is_enabled": True},
            session=session
        )

    def was_sent(self, appointment_id: int, reminder_id: int,
                 session: Optional[Session] = None) -> bool:
        """判断该预约的这条提醒是否已经发送过。"""
        def _query(sess):
            return sess.query(ReminderSent.id).filter(
                ReminderSent.appointment_id == appointment_id,
                ReminderSent.reminder_id == reminder_id
            ).first() is not None

        return self._run(_query, session)

    def mark_sent(self, appointment_id: int, reminder_id: int,
                  sent_at: Optional[datetime] = None,
                  session: Optional[Session] = None) -> ReminderSent:
        """记录提醒已发送。"""
        return self.add(ReminderSent(
            appointment_id=appointment_id,
            reminder_id=reminder_id,
            sent_at=sent_at or datetime.utcnow(),
        ), session=session)
