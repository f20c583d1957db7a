"""预约冲突检测

同一员工任意两条未取消的预约时间段不能重叠。占位预约（blocked /
early_leave）与普通预约一样参与检测。

重叠判定：existing_start < new_end 且 existing_end > new_start，
即首尾相接（一个结束时另一个开始）不算冲突。
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Protocol, Tuple, Union

from config.settings import settings
from business.status import AppointmentStatus


class Booking(Protocol):
    """参与冲突检测的预约（Appointment ORM 对象满足该协议）"""
    professional_id: int
    start_time: datetime
    end_time: Optional[datetime]
    status: str


def overlaps(start_a: datetime, end_a: datetime,
             start_b: datetime, end_b: datetime) -> bool:
    """判断两个半开区间 [start, end) 是否重叠。"""
    return start_a < end_b and end_a > start_b


def booking_interval(booking: Booking,
                     default_minutes: Optional[int] = None
                     ) -> Tuple[datetime, datetime]:
    """返回预约占用的时间段。

    没有 end_time 的预约按 default_minutes（默认取
    settings.default_appointment_minutes）计算结束时间。
    """
    if booking.end_time is not None:
        return booking.start_time, booking.end_time
    minutes = default_minutes or settings.default_appointment_minutes
    return booking.start_time, booking.start_time + timedelta(minutes=minutes)


def occupies_calendar(booking: Booking) -> bool:
    """预约是否占用日历（未取消）。"""
    return AppointmentStatus(booking.status).occupies_calendar


def find_conflicts(professional_id: int, start: datetime,
                   duration_minutes: int,
                   existing_bookings: Iterable[Booking],
                   default_minutes: Optional[int] = None) -> List[Booking]:
    """找出与 [start, start + duration) 冲突的全部预约。

    Args:
        professional_id: 员工ID，只比较该员工的预约。
        start: 新预约的开始时间。
        duration_minutes: 新预约时长（分钟）。
        existing_bookings: 已有预约（可包含已取消的，会被过滤掉）。
        default_minutes: 已有预约缺少 end_time 时的默认时长。

    Returns:
        冲突的预约列表。
    """
    end = start + timedelta(minutes=duration_minutes)
    conflicts = []
    for booking in existing_bookings:
        if booking.professional_id != professional_id:
            continue
        if not occupies_calendar(booking):
            continue
        booked_start, booked_end = booking_interval(booking, default_minutes)
        if overlaps(booked_start, booked_end, start, end):
            conflicts.append(booking)
    return conflicts


def has_conflict(professional_id: int, target_date: date,
                 start: Union[time, datetime], duration_minutes: int,
                 existing_bookings: Iterable[Booking],
                 default_minutes: Optional[int] = None) -> bool:
    """判断在 target_date 的 start 开始、持续 duration_minutes 的时段是否冲突。

    Args:
        professional_id: 员工ID。
        target_date: 日期。
        start: 开始时间（time，或已经带日期的 datetime）。
        duration_minutes: 时长（分钟）。
        existing_bookings: 该员工已有的预约。
        default_minutes: 已有预约缺少 end_time 时的默认时长。

    Returns:
        存在冲突返回 True。
    """
    if isinstance(start, datetime):
        start_at = start
    else:
        start_at = datetime.combine(target_date, start)
    return bool(find_conflicts(
        professional_id, start_at, duration_minutes,
        existing_bookings, default_minutes
    ))
