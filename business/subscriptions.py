"""会员俱乐部订阅

- 会员方案展示：列出上架方案，草稿（未发布）方案对顾客不可购买；
- 在线购买：先建一条 pending 订阅，再向支付网关申请托管支付页面，
  网关失败时删除这条 pending 订阅；支付结果通过网关回调事件更新；
- 员工手动开通：新建或重新激活已取消的订阅，并记录一笔开通交易；
- 员工手动续费：到期日顺延 30 天、恢复为生效，并记录一笔续费交易；
- 取消：网关支付的订阅先通知网关，成功后再改本地状态。

同一顾客在同一门店最多只有一条生效中的订阅，新建或重新激活前检查。
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from config.business_config import business_config
from database import DatabaseManager
from database.models import Client, ClubPlan, Subscription
from business.clock import Clock, add_month, shop_now
from business.errors import (
    ConflictError, NotFoundError, SubscriptionAlreadyActiveError, UpstreamError,
    ValidationError
)
from business.settlement import to_money
from business.status import SubscriptionStatus
from integrations.base import CheckoutRequest, CheckoutResult, PaymentGateway

# 支付网关回调事件 -> 订阅状态
GATEWAY_EVENT_STATUS: Dict[str, SubscriptionStatus] = {
    "PAYMENT_CONFIRMED": SubscriptionStatus.ACTIVE,
    "PAYMENT_RECEIVED": SubscriptionStatus.ACTIVE,
    "PAYMENT_OVERDUE": SubscriptionStatus.OVERDUE,
    "SUBSCRIPTION_DELETED": SubscriptionStatus.CANCELED,
    "SUBSCRIPTION_INACTIVATED": SubscriptionStatus.CANCELED,
}

# 手动续费顺延的天数
RENEWAL_DAYS = 30


class ClubService:
    """会员俱乐部服务"""

    def __init__(self, db: DatabaseManager,
                 gateway: Optional[PaymentGateway] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self.gateway = gateway
        self.clock = clock

    def storefront(self, barbershop_id: int,
                   include_drafts: bool = False) -> List[Dict[str, Any]]:
        """列出门店上架中的会员方案。

        Args:
            barbershop_id: 门店ID。
            include_drafts: 是否包含草稿方案（后台管理用），顾客端为 False。

        Returns:
            方案字典列表，purchasable 表示顾客能否购买。
        """
        plans = self.db.plans.get_active_plans(barbershop_id)
        return [
            {
                "id": plan.id,
                "name": plan.name,
                "description": plan.description,
                "price": to_money(plan.price),
                "interval": plan.interval,
                "is_draft": not plan.is_published,
                "purchasable": bool(plan.is_active and plan.is_published),
                "items": [
                    {
                        "service_id": item.service_id,
                        "quantity_limit": item.quantity_limit or None,
                    }
                    for item in plan.items
                ],
            }
            for plan in plans
            if include_drafts or plan.is_published
        ]

    async def subscribe_online(self, barbershop_id: int, client_id: int,
                               plan_id: int) -> CheckoutResult:
        """顾客在线购买会员，返回托管支付页面。

        Raises:
            ValidationError: 方案不可购买或未配置支付网关。
            NotFoundError: 顾客或方案不存在。
            SubscriptionAlreadyActiveError: 顾客已有生效中的订阅。
            UpstreamError: 支付网关失败（pending 订阅已删除）。
        """
        if self.gateway is None:
            raise ValidationError("No payment gateway configured")

        with self.db.transaction() as session:
            client = self._get_client(client_id, barbershop_id, session)
            plan = self._get_purchasable_plan(plan_id, barbershop_id, session)
            self._ensure_no_active(client_id, barbershop_id, session)
            subscription = self.db.subscriptions.create(
                barbershop_id, client_id, plan_id,
                status=SubscriptionStatus.PENDING.value,
                payment_origin="gateway",
                session=session
            )

        request = CheckoutRequest(
            subscription_id=subscription.id,
            client_id=client_id,
            plan_id=plan_id,
            amount=str(to_money(plan.price)),
            client_name=client.name,
            client_email=client.email,
            description=plan.name,
        )
        try:
            result = await self.gateway.create_checkout(request)
        except UpstreamError:
            self.db.subscriptions.delete_by_id(Subscription, subscription.id)
            logger.warning(
                f"Checkout failed for client {client_id} plan {plan_id}; "
                f"removed pending subscription {subscription.id}"
            )
            raise

        if result.external_id:
            self.db.subscriptions.update_by_id(
                Subscription, subscription.id, external_id=result.external_id
            )
        logger.info(
            f"Checkout created for subscription {subscription.id} "
            f"(client {client_id}, plan {plan_id})"
        )
        return result

    def subscribe_manually(self, barbershop_id: int, client_id: int,
                           plan_id: int) -> Subscription:
        """员工手动开通会员（现场收款）。

        顾客有已取消的订阅时重新激活它并清空旧的用量记录，否则新建。
        开通与开通交易在同一个事务内完成。逾期的订阅应通过 renew 续费。

        Raises:
            ValidationError: 方案不可购买。
            NotFoundError: 顾客或方案不存在。
            SubscriptionAlreadyActiveError: 顾客已有生效中的订阅。
            ConflictError: 顾客有逾期未续费的订阅。
        """
        with self.db.transaction() as session:
            now = shop_now(self.db, barbershop_id, self.clock, session)
            next_due = add_month(now.date())
            self._get_client(client_id, barbershop_id, session)
            plan = self._get_purchasable_plan(plan_id, barbershop_id, session)
            self._ensure_no_active(client_id, barbershop_id, session)
            overdue = self.db.subscriptions.get_by_status(
                client_id, barbershop_id, SubscriptionStatus.OVERDUE.value,
                session=session
            )
            if overdue:
                raise ConflictError(
                    f"Client {client_id} has overdue subscription {overdue[0].id}; "
                    f"renew it instead"
                )

            canceled = self.db.subscriptions.get_by_status(
                client_id, barbershop_id, SubscriptionStatus.CANCELED.value,
                session=session
            )
            if canceled:
                subscription = self.db.subscriptions.update_status(
                    canceled[0].id, SubscriptionStatus.ACTIVE.value,
                    session=session,
                    plan_id=plan_id,
                    payment_origin="manual",
                    next_due_date=next_due,
                )
                cleared = self.db.subscriptions.clear_usage(
                    subscription.id, session=session
                )
                action = f"reactivated (cleared {cleared} usage records)"
            else:
                subscription = self.db.subscriptions.create(
                    barbershop_id, client_id, plan_id,
                    status=SubscriptionStatus.ACTIVE.value,
                    payment_origin="manual",
                    next_due_date=next_due,
                    session=session
                )
                action = "created"

            self.db.transactions.create(
                barbershop_id=barbershop_id,
                client_id=client_id,
                subscription_id=subscription.id,
                amount=to_money(plan.price),
                payment_method=business_config.get_manual_subscription_payment_method(),
                created_at=now,
                session=session
            )

        logger.info(
            f"Subscription {subscription.id} {action} manually for client "
            f"{client_id} (plan {plan_id})"
        )
        return subscription

    def renew(self, subscription_id: int) -> Subscription:
        """员工手动续费（现场收款）。

        到期日在当前到期日的基础上顺延 RENEWAL_DAYS 天（没有到期日时从今天算起），
        状态恢复为 active，并按方案价格记录一笔续费交易，全部在同一个事务内完成。

        Raises:
            NotFoundError: 订阅或方案不存在。
            ValidationError: 订阅已取消（应重新开通）。
            SubscriptionAlreadyActiveError: 顾客已有另一条生效中的订阅。
        """
        with self.db.transaction() as session:
            subscription = self.db.subscriptions.get_by_id(
                Subscription, subscription_id, session=session
            )
            if subscription is None:
                raise NotFoundError(f"Subscription {subscription_id} not found")
            if subscription.status == SubscriptionStatus.CANCELED.value:
                raise ValidationError(
                    f"Subscription {subscription_id} is canceled; subscribe again instead"
                )
            plan = self.db.plans.get_by_id(ClubPlan, subscription.plan_id, session=session)
            if plan is None:
                raise NotFoundError(f"Plan {subscription.plan_id} not found")
            self._ensure_no_active(
                subscription.client_id, subscription.barbershop_id, session,
                exclude_id=subscription_id
            )

            now = shop_now(self.db, subscription.barbershop_id, self.clock, session)
            current_due = subscription.next_due_date or now.date()
            subscription = self.db.subscriptions.update_status(
                subscription_id, SubscriptionStatus.ACTIVE.value,
                session=session,
                next_due_date=current_due + timedelta(days=RENEWAL_DAYS),
            )
            self.db.transactions.create(
                barbershop_id=subscription.barbershop_id,
                client_id=subscription.client_id,
                subscription_id=subscription_id,
                amount=to_money(plan.price),
                payment_method=business_config.get_manual_subscription_payment_method(),
                created_at=now,
                session=session
            )

        logger.info(
            f"Subscription {subscription_id} renewed until {subscription.next_due_date}"
        )
        return subscription

    async def cancel(self, subscription_id: int) -> Subscription:
        """取消订阅。

        在线支付的订阅先通知网关取消，网关失败时本地状态不变。

        Raises:
            NotFoundError: 订阅不存在。
            UpstreamError: 网关取消失败。
        """
        subscription = self.db.subscriptions.get_by_id(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        if subscription.status == SubscriptionStatus.CANCELED.value:
            return subscription

        if subscription.payment_origin == "gateway" and subscription.external_id:
            if self.gateway is None:
                raise ValidationError("No payment gateway configured")
            await self.gateway.cancel_subscription(subscription.external_id)

        subscription = self.db.subscriptions.update_status(
            subscription_id, SubscriptionStatus.CANCELED.value
        )
        logger.info(f"Subscription {subscription_id} canceled")
        return subscription

    def apply_gateway_event(self, event: str, external_id: str,
                            next_due_date: Optional[date] = None
                            ) -> Optional[Subscription]:
        """处理支付网关回调事件。

        Args:
            event: 事件名称（如 PAYMENT_CONFIRMED）。
            external_id: 网关侧订阅ID。
            next_due_date: 下次扣款日期（付款成功事件携带）。

        Returns:
            更新后的订阅；未知事件或找不到订阅时返回 None。

        Raises:
            SubscriptionAlreadyActiveError: 激活时顾客已有另一条生效中的订阅。
        """
        target = GATEWAY_EVENT_STATUS.get(event)
        if target is None:
            logger.warning(f"Ignoring unknown gateway event {event} for {external_id}")
            return None

        with self.db.transaction() as session:
            subscription = self.db.subscriptions.get_by_external_id(
                external_id, session=session
            )
            if subscription is None:
                logger.warning(f"Gateway event {event}: no subscription {external_id}")
                return None

            values: Dict[str, Any] = {}
            if target is SubscriptionStatus.ACTIVE:
                if subscription.status != SubscriptionStatus.ACTIVE.value:
                    self._ensure_no_active(
                        subscription.client_id, subscription.barbershop_id, session
                    )
                values["next_due_date"] = next_due_date or add_month(shop_now(
                    self.db, subscription.barbershop_id, self.clock, session
                ).date())

            subscription = self.db.subscriptions.update_status(
                subscription.id, target.value, session=session, **values
            )

        logger.info(
            f"Gateway event {event}: subscription {subscription.id} -> {target.value}"
        )
        return subscription

    def _get_client(self, client_id: int, barbershop_id: int,
                    session: Session) -> Client:
        client = self.db.clients.get_by_id(Client, client_id, session=session)
        if client is None or client.barbershop_id != barbershop_id:
            raise NotFoundError(f"Client {client_id} not found")
        return client

    def _get_purchasable_plan(self, plan_id: int, barbershop_id: int,
                              session: Session) -> ClubPlan:
        plan = self.db.plans.get_by_id(ClubPlan, plan_id, session=session)
        if plan is None or plan.barbershop_id != barbershop_id:
            raise NotFoundError(f"Plan {plan_id} not found")
        if not plan.is_active:
            raise ValidationError(f"Plan {plan_id} is not active")
        if not plan.is_published:
            raise ValidationError(f"Plan {plan_id} is a draft and cannot be purchased")
        return plan

    def _ensure_no_active(self, client_id: int, barbershop_id: int,
                          session: Session,
                          exclude_id: Optional[int] = None) -> None:
        active = [
            sub for sub in self.db.subscriptions.get_by_status(
                client_id, barbershop_id, SubscriptionStatus.ACTIVE.value,
                session=session
            )
            if sub.id != exclude_id
        ]
        if active:
            raise SubscriptionAlreadyActiveError(
                f"Client {client_id} already has active subscription {active[0].id}"
            )
