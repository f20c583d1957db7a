"""会员俱乐部仓库 —— 方案、订阅与用量的数据访问层。

- ClubPlanRepository：会员方案及其包含的服务项目
- SubscriptionRepository：顾客订阅与每次抵扣的用量记录
"""
from typing import Optional, List
from datetime import date, datetime
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import ClubPlan, PlanItem, Subscription, UsageRecord


class ClubPlanRepository(BaseCRUD):
    """会员方案 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, barbershop_id: int, name: str, price: float,
               description: Optional[str] = None,
               interval: str = "monthly",
               is_published: bool = False,
               session: Optional[Session] = None) -> ClubPlan:
        """创建会员方案（默认草稿，未发布）。

        Raises:
            ValueError: 价格为负。
        """
        if price is None or price < 0:
            raise ValueError(f"price must be >= 0, got {price}")
        return self.add(ClubPlan(
            barbershop_id=barbershop_id,
            name=name,
            price=price,
            description=description,
            interval=interval,
            is_published=is_published,
        ), session=session)

    def add_item(self, plan_id: int, service_id: int,
                 quantity_limit: Optional[int] = None,
                 session: Optional[Session] = None) -> PlanItem:
        """为方案添加服务项目（已存在则更新次数上限）。

        Args:
            plan_id: 方案ID。
            service_id: 服务ID。
            quantity_limit: 每周期次数上限，0 或 None 表示不限。

        Raises:
            ValueError: 次数上限为负。
        """
        if quantity_limit is not None and quantity_limit < 0:
            raise ValueError(
                f"quantity_limit must be >= 0, got {quantity_limit}"
            )

        def _do(sess):
            item = sess.query(PlanItem).filter(
                PlanItem.plan_id == plan_id,
                PlanItem.service_id == service_id
            ).first()
            if item is None:
                item = PlanItem(plan_id=plan_id, service_id=service_id)
                sess.add(item)
            item.quantity_limit = quantity_limit
            sess.flush()
            return item

        return self._run(_do, session)

    def set_published(self, plan_id: int, is_published: bool,
                      session: Optional[Session] = None
                      ) -> Optional[ClubPlan]:
        """发布或撤回方案。"""
        return self.update_by_id(
            ClubPlan, plan_id, session=session, is_published=is_published
        )

    def get_item(self, plan_id: int, service_id: int,
                 session: Optional[Session] = None) -> Optional[PlanItem]:
        """获取方案中某个服务的项目，不包含该服务时返回 None。"""
        def _query(sess):
            return sess.query(PlanItem).filter(
                PlanItem.plan_id == plan_id,
                PlanItem.service_id == service_id
            ).first()

        return self._run(_query, session)

    def get_with_items(self, plan_id: int,
                       session: Optional[Session] = None
                       ) -> Optional[ClubPlan]:
        """按ID获取方案，预加载服务项目。"""
        def _query(sess):
            return sess.query(ClubPlan).options(
                selectinload(ClubPlan.items)
            ).filter(ClubPlan.id == plan_id).first()

        return self._run(_query, session)

    def get_active_plans(self, barbershop_id: int,
                         session: Optional[Session] = None
                         ) -> List[ClubPlan]:
        """获取门店上架中的方案（含草稿），预加载服务项目。"""
        def _query(sess):
            return sess.query(ClubPlan).options(
                selectinload(ClubPlan.items)
            ).filter(
                ClubPlan.barbershop_id == barbershop_id,
                ClubPlan.is_active.is_(True)
            ).order_by(ClubPlan.price).all()

        return self._run(_query, session)


class SubscriptionRepository(BaseCRUD):
    """订阅与用量 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, barbershop_id: int, client_id: int, plan_id: int,
               status: str, payment_origin: str = "manual",
               next_due_date: Optional[date] = None,
               external_id: Optional[str] = None,
               session: Optional[Session] = None) -> Subscription:
        """创建订阅。"""
        return self.add(Subscription(
            barbershop_id=barbershop_id,
            client_id=client_id,
            plan_id=plan_id,
            status=status,
            payment_origin=payment_origin,
            next_due_date=next_due_date,
            external_id=external_id,
        ), session=session)

    def get_by_status(self, client_id: int, barbershop_id: int, status: str,
                      session: Optional[Session] = None
                      ) -> List[Subscription]:
        """获取顾客在门店处于指定状态的订阅（新的在前）。"""
        def _query(sess):
            return sess.query(Subscription).filter(
                Subscription.client_id == client_id,
                Subscription.barbershop_id == barbershop_id,
                Subscription.status == status
            ).order_by(Subscription.id.desc()).all()

        return self._run(_query, session)

    def get_by_external_id(self, external_id: str,
                           session: Optional[Session] = None
                           ) -> Optional[Subscription]:
        """按支付网关的订阅ID查找。"""
        def _query(sess):
            return sess.query(Subscription).filter(
                Subscription.external_id == external_id
            ).first()

        return self._run(_query, session)

    def update_status(self, subscription_id: int, status: str,
                      session: Optional[Session] = None,
                      **values) -> Optional[Subscription]:
        """更新订阅状态（可同时更新 next_due_date 等字段）。"""
        return self.update_by_id(
            Subscription, subscription_id, session=session,
            status=status, updated_at=datetime.utcnow(), **values
        )

    def count_usage(self, subscription_id: int, service_id: int,
                    since: datetime,
                    session: Optional[Session] = None) -> int:
        """统计订阅自 since 起对某服务的抵扣次数。"""
        def _query(sess):
            return sess.query(func.count(UsageRecord.id)).filter(
                UsageRecord.subscription_id == subscription_id,
                UsageRecord.service_id == service_id,
                UsageRecord.used_at >= since
            ).scalar() or 0

        return self._run(_query, session)

    def record_usage(self, subscription_id: int, service_id: int,
                     appointment_id: Optional[int], used_at: datetime,
                     session: Optional[Session] = None) -> UsageRecord:
        """写入一条用量记录。"""
        return self.add(UsageRecord(
            subscription_id=subscription_id,
            service_id=service_id,
            appointment_id=appointment_id,
            used_at=used_at,
        ), session=session)

    def clear_usage(self, subscription_id: int,
                    session: Optional[Session] = None) -> int:
        """删除订阅的全部用量记录，返回删除条数。"""
        def _do(sess):
            return sess.query(UsageRecord).filter(
                UsageRecord.subscription_id == subscription_id
            ).delete(synchronize_session=False)

        return self._run(_do, session)
