"""会员次数账本

每次会员抵扣写入一条 UsageRecord。方案项目 quantity_limit 为 0 或空时不限次数，
否则本周期（门店本地时间的自然月，从 1 号 00:00 起）已用次数达到上限后
不能再抵扣，顾客按正常价格付款。

会员抵扣是整单的：要么整单 0 元、支付方式为会员余额，要么正常收费。
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from database import DatabaseManager
from database.models import Subscription, UsageRecord
from business.clock import Clock, month_start, shop_now
from business.status import SubscriptionStatus

UNLIMITED = "unlimited"


@dataclass(frozen=True)
class CreditCheck:
    """会员次数检查结果

    Attributes:
        allowed: 本次是否可以抵扣。
        remaining: 剩余次数，不限次数时为 "unlimited"。
        covered: 方案是否包含该服务。
        limit: 每周期次数上限（不限或不包含时为 None）。
        used: 本周期已用次数。
    """
    allowed: bool
    remaining: Union[int, str]
    covered: bool = True
    limit: Optional[int] = None
    used: int = 0


class CreditLedger:
    """会员次数账本"""

    def __init__(self, db: DatabaseManager, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock

    def now(self, barbershop_id: int,
            session: Optional[Session] = None) -> datetime:
        """门店本地当前时间。"""
        return shop_now(self.db, barbershop_id, self.clock, session)

    @staticmethod
    def cycle_start(now: datetime) -> datetime:
        """当前周期的开始时间（本月 1 号 00:00）。"""
        return month_start(now)

    def is_client_active_member(self, client_id: int, barbershop_id: int,
                                session: Optional[Session] = None
                                ) -> Optional[Subscription]:
        """返回顾客在门店生效中的订阅，没有返回 None。"""
        active = self.db.subscriptions.get_by_status(
            client_id, barbershop_id, SubscriptionStatus.ACTIVE.value,
            session=session
        )
        return active[0] if active else None

    def check_credit_available(self, subscription: Subscription,
                               service_id: int,
                               session: Optional[Session] = None,
                               now: Optional[datetime] = None
                               ) -> CreditCheck:
        """检查订阅本周期是否还能抵扣该服务。

        Args:
            subscription: 订阅。
            service_id: 服务ID。
            session: 外部会话（可选）。
            now: 门店本地当前时间，默认取时钟。

        Returns:
            CreditCheck。
        """
        item = self.db.plans.get_item(
            subscription.plan_id, service_id, session=session
        )
        if item is None:
            return CreditCheck(allowed=False, remaining=0, covered=False)

        if not item.quantity_limit:
            return CreditCheck(allowed=True, remaining=UNLIMITED)

        if now is None:
            now = self.now(subscription.barbershop_id, session)
        used = self.db.subscriptions.count_usage(
            subscription.id, service_id, self.cycle_start(now), session=session
        )
        remaining = max(0, item.quantity_limit - used)
        return CreditCheck(
            allowed=remaining > 0,
            remaining=remaining,
            limit=item.quantity_limit,
            used=used,
        )

    def record_usage(self, subscription_id: int, service_id: int,
                     appointment_id: int, session: Session,
                     used_at: datetime) -> UsageRecord:
        """写入一次抵扣。

        只在结算事务中调用，session 必须是结算使用的会话。
        """
        return self.db.subscriptions.record_usage(
            subscription_id, service_id, appointment_id, used_at,
            session=session
        )
