"""门店本地时间

所有业务时间都按门店所在时区的本地时间（naive datetime）计算与存储，
与调用方所在时区无关。
"""
import calendar
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config.settings import settings
from database.models import Barbershop

# 返回门店本地当前时间的函数，测试中可替换为固定时间
Clock = Callable[[], datetime]


def business_now(timezone: Optional[str] = None) -> datetime:
    """获取门店本地当前时间（不带时区信息）。

    Args:
        timezone: IANA 时区名称，为空时使用 settings.business_timezone。
    """
    zone = ZoneInfo(timezone or settings.business_timezone)
    return datetime.now(zone).replace(tzinfo=None)


def shop_now(db, barbershop_id: int, clock: Optional[Clock] = None,
             session: Optional[Session] = None) -> datetime:
    """返回门店本地当前时间。

    传入 clock 时直接使用它；否则按门店的 timezone 字段计算，
    门店没有配置时区时回退到 settings.business_timezone。
    """
    if clock is not None:
        return clock()
    shop = db.barbershops.get_by_id(Barbershop, barbershop_id, session=session)
    return business_now(shop.timezone if shop else None)


def month_start(moment: datetime) -> datetime:
    """返回 moment 所在自然月第一天的 00:00。"""
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month_start(moment: datetime) -> datetime:
    """返回 moment 下一个自然月第一天的 00:00。"""
    start = month_start(moment)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def add_month(day: date) -> date:
    """返回一个月后的同一天（下个月没有这一天时取月末）。"""
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    return day.replace(year=year, month=month,
                       day=min(day.day, calendar.monthrange(year, month)[1]))
