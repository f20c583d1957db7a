"""可预约时段计算

根据员工周排班、休息时段、已有预约和服务时长，生成某天的候选时段，
或校验某个具体时段是否可预约。

- 时段从上班时间开始，按 interval（默认等于服务时长）依次排开，
  只要 开始时间 + 时长 <= 下班时间 就会作为候选。
- 候选时段按 过去 -> 休息 -> 冲突 的顺序判定不可用原因。
- 员工当天没有排班记录时，由 SchedulePolicy 决定是否营业（默认 09:00-18:00）。

生成的时段只是当时的快照，写入预约前必须用 is_slot_available 重新校验。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from config.settings import settings
from database import DatabaseManager
from database.models import Professional, WeeklyScheduleEntry
from business.clock import Clock, shop_now
from business.conflicts import Booking, booking_interval, find_conflicts, overlaps
from business.errors import NotFoundError, ValidationError


class SlotReason(str, Enum):
    """时段不可用的原因"""
    PAST = "past"
    BREAK = "break"
    CONFLICT = "conflict"
    OUTSIDE_HOURS = "outside_hours"
    NOT_WORKING = "not_working"


@dataclass(frozen=True)
class WorkingHours:
    """员工某天的工作时间窗口"""
    start: time
    end: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    def window(self, target_date: date):
        return (datetime.combine(target_date, self.start),
                datetime.combine(target_date, self.end))

    def break_window(self, target_date: date):
        """返回休息时段，未配置或不完整时返回 None。"""
        if self.break_start is None or self.break_end is None:
            return None
        if self.break_start >= self.break_end:
            return None
        return (datetime.combine(target_date, self.break_start),
                datetime.combine(target_date, self.break_end))


@dataclass(frozen=True)
class TimeSlot:
    """候选时段"""
    time: time
    available: bool
    reason: Optional[SlotReason] = None


@dataclass(frozen=True)
class SlotCheck:
    """单个时段的校验结果"""
    available: bool
    reason: Optional[SlotReason] = None


class SchedulePolicy(ABC):
    """员工当天没有排班记录时的兜底策略"""

    @abstractmethod
    def fallback_hours(self, target_date: date) -> Optional[WorkingHours]:
        """返回兜底工作时间，None 表示当天不营业"""
        pass


class DefaultOpenPolicy(SchedulePolicy):
    """没有排班即视为全天营业（默认 09:00-18:00）"""

    def __init__(self, start: time = time(9, 0), end: time = time(18, 0)):
        self.hours = WorkingHours(start=start, end=end)

    def fallback_hours(self, target_date: date) -> Optional[WorkingHours]:
        return self.hours


class DefaultClosedPolicy(SchedulePolicy):
    """没有排班即视为不营业"""

    def fallback_hours(self, target_date: date) -> Optional[WorkingHours]:
        return None


def policy_from_settings() -> SchedulePolicy:
    """按 settings.schedule_fallback 构造兜底策略。"""
    mode = settings.schedule_fallback.lower()
    if mode == "closed":
        return DefaultClosedPolicy()
    if mode != "open":
        raise ValueError(
            f"schedule_fallback must be 'open' or 'closed', got {mode!r}"
        )
    return DefaultOpenPolicy(
        start=time.fromisoformat(settings.default_open_start),
        end=time.fromisoformat(settings.default_open_end),
    )


def day_of_week(target_date: date) -> int:
    """返回星期几（0=周日 ... 6=周六）。"""
    return (target_date.weekday() + 1) % 7


def resolve_working_hours(entries: Iterable[WeeklyScheduleEntry],
                          target_date: date,
                          policy: SchedulePolicy) -> Optional[WorkingHours]:
    """根据周排班解析某天的工作时间。

    Args:
        entries: 员工的周排班记录。
        target_date: 日期。
        policy: 当天没有排班记录时的兜底策略。

    Returns:
        工作时间；当天休息返回 None。
    """
    dow = day_of_week(target_date)
    for entry in entries:
        if entry.day_of_week != dow:
            continue
        if not entry.is_working:
            return None
        return WorkingHours(
            start=entry.start_time,
            end=entry.end_time,
            break_start=entry.break_start,
            break_end=entry.break_end,
        )
    return policy.fallback_hours(target_date)


def _validate_minutes(value: int, name: str) -> None:
    if value is None or value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def check_slot(professional_id: int, target_date: date, start: time,
               duration_minutes: int, hours: Optional[WorkingHours],
               bookings: Sequence[Booking], now: Optional[datetime] = None,
               default_minutes: Optional[int] = None) -> SlotCheck:
    """校验单个时段是否可预约。

    依次判断：当天是否上班、是否在工作时间内、是否已过去（提供 now 时）、
    是否与休息时段重叠、是否与已有预约冲突。
    """
    _validate_minutes(duration_minutes, "duration_minutes")
    if hours is None:
        return SlotCheck(False, SlotReason.NOT_WORKING)

    slot_start = datetime.combine(target_date, start)
    slot_end = slot_start + timedelta(minutes=duration_minutes)
    window_start, window_end = hours.window(target_date)
    if slot_start < window_start or slot_end > window_end:
        return SlotCheck(False, SlotReason.OUTSIDE_HOURS)

    reason = _unavailable_reason(
        professional_id, slot_start, duration_minutes, hours,
        bookings, now, default_minutes
    )
    return SlotCheck(reason is None, reason)


def _unavailable_reason(professional_id: int, slot_start: datetime,
                        duration_minutes: int, hours: WorkingHours,
                        bookings: Sequence[Booking],
                        now: Optional[datetime],
                        default_minutes: Optional[int]
                        ) -> Optional[SlotReason]:
    slot_end = slot_start + timedelta(minutes=duration_minutes)
    if now is not None and slot_start <= now:
        return SlotReason.PAST

    break_window = hours.break_window(slot_start.date())
    if break_window and overlaps(slot_start, slot_end, *break_window):
        return SlotReason.BREAK

    if find_conflicts(professional_id, slot_start, duration_minutes,
                      bookings, default_minutes):
        return SlotReason.CONFLICT
    return None


def iter_slots(professional_id: int, target_date: date,
               duration_minutes: int, hours: Optional[WorkingHours],
               bookings: Sequence[Booking], now: Optional[datetime] = None,
               interval_minutes: Optional[int] = None,
               default_minutes: Optional[int] = None) -> Iterator[TimeSlot]:
    """按顺序生成某天的候选时段。

    Args:
        professional_id: 员工ID。
        target_date: 日期。
        duration_minutes: 服务时长（分钟）。
        hours: 当天工作时间，None 表示不上班（不产生任何时段）。
        bookings: 员工当天的预约（可包含已取消的）。
        now: 门店本地当前时间，不晚于它的时段标记为 past。
        interval_minutes: 时段间隔，默认等于服务时长。
        default_minutes: 已有预约缺少 end_time 时的默认时长。

    Yields:
        TimeSlot。
    """
    _validate_minutes(duration_minutes, "duration_minutes")
    interval = interval_minutes if interval_minutes is not None \
        else max(1, duration_minutes)
    _validate_minutes(interval, "interval_minutes")
    if hours is None:
        return

    cursor, window_end = hours.window(target_date)
    step = timedelta(minutes=interval)
    duration = timedelta(minutes=duration_minutes)
    while cursor + duration <= window_end:
        reason = _unavailable_reason(
            professional_id, cursor, duration_minutes, hours,
            bookings, now, default_minutes
        )
        yield TimeSlot(cursor.time(), reason is None, reason)
        cursor += step


class SlotSequence:
    """某天候选时段的可重复迭代序列。

    每次迭代都重新计算，不缓存结果。
    """

    def __init__(self, professional_id: int, target_date: date,
                 duration_minutes: int, hours: Optional[WorkingHours],
                 bookings: Sequence[Booking], now: Optional[datetime] = None,
                 interval_minutes: Optional[int] = None,
                 default_minutes: Optional[int] = None):
        _validate_minutes(duration_minutes, "duration_minutes")
        self.professional_id = professional_id
        self.target_date = target_date
        self.duration_minutes = duration_minutes
        self.hours = hours
        self.bookings = list(bookings)
        self.now = now
        self.interval_minutes = interval_minutes
        self.default_minutes = default_minutes

    def __iter__(self) -> Iterator[TimeSlot]:
        return iter_slots(
            self.professional_id, self.target_date, self.duration_minutes,
            self.hours, self.bookings, self.now,
            self.interval_minutes, self.default_minutes
        )

    def available(self) -> List[TimeSlot]:
        """只返回可预约的时段。"""
        return [slot for slot in self if slot.available]


class AvailabilityCalculator:
    """员工可预约时段计算器

    从数据库读取排班与预约，交给上面的纯函数计算。
    """

    def __init__(self, db: DatabaseManager,
                 policy: Optional[SchedulePolicy] = None,
                 clock: Optional[Clock] = None,
                 default_minutes: Optional[int] = None):
        """
        Args:
            db: 数据库管理器。
            policy: 无排班兜底策略，默认按 settings 构造。
            clock: 返回门店本地当前时间的函数，默认按门店时区取当前时间。
            default_minutes: 预约缺少 end_time 时的默认时长。
        """
        self.db = db
        self.policy = policy or policy_from_settings()
        self.clock = clock
        self.default_minutes = default_minutes or settings.default_appointment_minutes

    def now_for(self, professional_id: int,
                session: Optional[Session] = None) -> datetime:
        """返回员工所在门店的本地当前时间。"""
        if self.clock is not None:
            return self.clock()
        professional = self._get_professional(professional_id, session)
        return shop_now(self.db, professional.barbershop_id, session=session)

    def get_working_hours(self, professional_id: int, target_date: date,
                          session: Optional[Session] = None
                          ) -> Optional[WorkingHours]:
        """获取员工某天的工作时间，当天休息返回 None。"""
        entries = self.db.schedules.get_weekly_schedule(
            professional_id, session=session
        )
        return resolve_working_hours(entries, target_date, self.policy)

    def generate_slots(self, professional_id: int, target_date: date,
                       duration_minutes: int,
                       interval_minutes: Optional[int] = None
                       ) -> SlotSequence:
        """生成员工某天的候选时段。

        Args:
            professional_id: 员工ID。
            target_date: 日期。
            duration_minutes: 服务时长（分钟）。
            interval_minutes: 时段间隔，默认等于服务时长。

        Returns:
            SlotSequence，可多次迭代。

        Raises:
            ValidationError: 时长或间隔不为正。
            NotFoundError: 员工不存在。
        """
        _validate_minutes(duration_minutes, "duration_minutes")
        self._get_professional(professional_id)
        hours = self.get_working_hours(professional_id, target_date)
        bookings = self.db.appointments.get_bookings_for_date(
            professional_id, target_date
        )
        return SlotSequence(
            professional_id, target_date, duration_minutes, hours, bookings,
            now=self.now_for(professional_id),
            interval_minutes=interval_minutes,
            default_minutes=self.default_minutes,
        )

    def is_slot_available(self, professional_id: int, target_date: date,
                          start: time, duration_minutes: int,
                          session: Optional[Session] = None,
                          check_past: bool = True) -> SlotCheck:
        """校验员工某个具体时段是否可预约。

        写入预约前在同一个事务里调用，作为最终判断。

        Args:
            professional_id: 员工ID。
            target_date: 日期。
            start: 开始时间。
            duration_minutes: 时长（分钟）。
            session: 外部会话（可选）。
            check_past: 是否拒绝已经过去的时段。

        Returns:
            SlotCheck。
        """
        hours = self.get_working_hours(professional_id, target_date, session)
        bookings = self.db.appointments.get_bookings_between(
            professional_id,
            datetime.combine(target_date, time.min) - timedelta(days=1),
            datetime.combine(target_date, time.min) + timedelta(days=1),
            session=session
        )
        now = self.now_for(professional_id, session) if check_past else None
        result = check_slot(
            professional_id, target_date, start, duration_minutes, hours,
            bookings, now=now, default_minutes=self.default_minutes
        )
        if not result.available:
            logger.debug(
                f"Slot {target_date} {start} ({duration_minutes}min) for "
                f"professional {professional_id} unavailable: {result.reason.value}"
            )
        return result

    def _get_professional(self, professional_id: int,
                          session: Optional[Session] = None) -> Professional:
        professional = self.db.professionals.get_by_id(
            Professional, professional_id, session=session
        )
        if professional is None:
            raise NotFoundError(f"Professional {professional_id} not found")
        return professional
