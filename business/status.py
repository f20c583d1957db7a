"""预约状态模型。

预约状态是一个封闭的枚举，每个状态的行为（是否占用日历、能否结算、
允许的流转）都在下方的表中逐一声明。新增状态时如果忘记补充任一张表，
模块导入时就会失败，而不是在某个判断里悄悄落入默认分支。
"""
from enum import Enum
from typing import Dict, FrozenSet


class AppointmentStatus(str, Enum):
    """预约状态"""
    PENDING = "pending"          # 待确认
    CONFIRMED = "confirmed"      # 已确认
    COMPLETED = "completed"      # 已完成（已结算）
    CANCELLED = "cancelled"      # 已取消
    BLOCKED = "blocked"          # 占位：员工锁定时段
    EARLY_LEAVE = "early_leave"  # 占位：员工提前下班

    @property
    def occupies_calendar(self) -> bool:
        """是否占用员工日历（参与冲突检测）。"""
        return _OCCUPIES_CALENDAR[self]

    @property
    def is_placeholder(self) -> bool:
        """是否为无顾客的占位预约。"""
        return _PLACEHOLDER[self]

    @property
    def is_settleable(self) -> bool:
        """是否可以进入结算流程。"""
        return _SETTLEABLE[self]

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        """判断是否允许流转到目标状态。"""
        return target in _TRANSITIONS[self]


_OCCUPIES_CALENDAR: Dict[AppointmentStatus, bool] = {
    AppointmentStatus.PENDING: True,
    AppointmentStatus.CONFIRMED: True,
    AppointmentStatus.COMPLETED: True,
    AppointmentStatus.CANCELLED: False,
    AppointmentStatus.BLOCKED: True,
    AppointmentStatus.EARLY_LEAVE: True,
}

_PLACEHOLDER: Dict[AppointmentStatus, bool] = {
    AppointmentStatus.PENDING: False,
    AppointmentStatus.CONFIRMED: False,
    AppointmentStatus.COMPLETED: False,
    AppointmentStatus.CANCELLED: False,
    AppointmentStatus.BLOCKED: True,
    AppointmentStatus.EARLY_LEAVE: True,
}

_SETTLEABLE: Dict[AppointmentStatus, bool] = {
    AppointmentStatus.PENDING: True,
    AppointmentStatus.CONFIRMED: True,
    AppointmentStatus.COMPLETED: False,
    AppointmentStatus.CANCELLED: False,
    AppointmentStatus.BLOCKED: False,
    AppointmentStatus.EARLY_LEAVE: False,
}

_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.BLOCKED: frozenset({AppointmentStatus.CANCELLED}),
    AppointmentStatus.EARLY_LEAVE: frozenset({AppointmentStatus.CANCELLED}),
}

for _table in (_OCCUPIES_CALENDAR, _PLACEHOLDER, _SETTLEABLE, _TRANSITIONS):
    _missing = set(AppointmentStatus) - set(_table)
    if _missing:
        raise RuntimeError(
            f"Appointment status table is missing: {sorted(s.value for s in _missing)}"
        )


class SubscriptionStatus(str, Enum):
    """会员订阅状态"""
    ACTIVE = "active"
    PENDING = "pending"
    OVERDUE = "overdue"
    CANCELED = "canceled"


class CommissionStatus(str, Enum):
    """提成状态"""
    PENDING = "pending"
    PAID = "paid"
