"""员工提成发放

按门店本地时间的自然月汇总待发放提成，员工勾选后一次性标记为已发放。
批量更新在一个事务中完成，要么全部更新，要么由操作员重试。
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from database import DatabaseManager
from business.clock import Clock, next_month_start, shop_now
from business.errors import ValidationError
from business.settlement import to_money


def month_window(year: int, month: int) -> Tuple[datetime, datetime]:
    """返回自然月的时间窗口 [本月 1 号 00:00, 下月 1 号 00:00)。

    Raises:
        ValidationError: 月份不在 1-12。
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be within 1-12, got {month}")
    start = datetime(year, month, 1)
    return start, next_month_start(start)


class CommissionPayoutService:
    """提成发放服务"""

    def __init__(self, db: DatabaseManager, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock

    def summarize_month(self, barbershop_id: int, year: int, month: int
                        ) -> List[Dict[str, Any]]:
        """汇总某月每个员工的提成，只列出还有待发放提成的员工。

        Returns:
            每个员工一条：professional_id、professional_name、pending_count、
            pending_amount、paid_amount。
        """
        start, end = month_window(year, month)
        rows = self.db.commissions.summarize(barbershop_id, start, end)
        return [
            {
                **row,
                "pending_amount": to_money(row["pending_amount"]),
                "paid_amount": to_money(row["paid_amount"]),
            }
            for row in rows
            if row["pending_count"] > 0
        ]

    def pay(self, barbershop_id: int, professional_ids: Iterable[int],
            year: int, month: int) -> int:
        """将所选员工该月的待发放提成标记为已发放。

        Args:
            barbershop_id: 门店ID。
            professional_ids: 选中的员工ID。
            year: 年。
            month: 月。

        Returns:
            更新的提成条数。

        Raises:
            ValidationError: 没有选中任何员工。
        """
        selected = sorted(set(professional_ids))
        if not selected:
            raise ValidationError("Select at least one professional to pay")

        start, end = month_window(year, month)
        with self.db.transaction() as session:
            paid_at = shop_now(self.db, barbershop_id, self.clock, session)
            updated = self.db.commissions.mark_paid(
                barbershop_id, selected, start, end, paid_at, session=session
            )

        logger.info(
            f"Paid {updated} commissions for {year}-{month:02d} "
            f"(barbershop {barbershop_id}, professionals {selected})"
        )
        return updated
