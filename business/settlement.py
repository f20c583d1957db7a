"""预约结算

员工点击"完成预约"时执行的多步写入，全部在一个数据库事务内完成：

1. 写入交易记录（status=paid）。同一预约的交易唯一，重复结算在这里失败；
2. 预约状态改为 completed 并关联交易（条件更新，只有 pending/confirmed 能被改）；
3. 会员抵扣：写入用量记录（SAVEPOINT，失败不影响结算）。会员抵扣是整单的：
   顾客有可用次数时只能按 0 元、会员余额结算，不能改为正常收费；
4. 金额 > 0 且员工配置了提成比例时写入待发放提成（SAVEPOINT，失败不影响结算）。

第 1、2 步任一失败整体回滚，不留下孤立交易。第 3、4 步失败时交易和预约
状态照常提交，抛出 PartialSettlementError 并记录失败步骤，由人工核对。
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config.business_config import business_config
from database import DatabaseManager
from database.models import Appointment, Professional, Service
from business.clock import Clock
from business.credits import CreditCheck, CreditLedger
from business.errors import (
    AlreadySettledError, ConflictError, CreditExceededError, NotFoundError,
    PartialSettlementError, SettlementError, ValidationError
)
from business.status import AppointmentStatus

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """转换为保留两位小数的金额（四舍五入）。"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_commission(amount: Decimal,
                       percentage: Optional[Decimal]) -> Optional[Decimal]:
    """计算提成金额。

    金额为 0 或员工未配置提成比例（或比例不大于 0）时返回 None。
    """
    if percentage is None:
        return None
    percentage = Decimal(str(percentage))
    if amount <= 0 or percentage <= 0:
        return None
    return to_money(amount * percentage / Decimal(100))


@dataclass(frozen=True)
class SettlementQuote:
    """结算前的预填信息

    Attributes:
        appointment_id: 预约ID。
        amount: 预填金额（会员抵扣时为 0）。
        payment_method: 预填支付方式。
        membership_covered: 是否由会员抵扣。
        service_price: 服务当前价格。
        subscription_id: 顾客生效中的订阅ID。
        credit: 会员次数检查结果。
    """
    appointment_id: int
    amount: Decimal
    payment_method: str
    membership_covered: bool
    service_price: Decimal
    subscription_id: Optional[int] = None
    credit: Optional[CreditCheck] = None


@dataclass(frozen=True)
class SettlementResult:
    """结算结果"""
    appointment_id: int
    transaction_id: int
    appointment_status: AppointmentStatus
    amount: Decimal
    payment_method: str
    commission_generated: bool
    commission_amount: Optional[Decimal]
    usage_recorded: bool


class SettlementService:
    """预约结算服务"""

    def __init__(self, db: DatabaseManager,
                 ledger: Optional[CreditLedger] = None,
                 clock: Optional[Clock] = None):
        self.db = db
        self.ledger = ledger or CreditLedger(db, clock=clock)
        self.membership_method = business_config.get_membership_payment_method()

    def prepare(self, appointment_id: int) -> SettlementQuote:
        """计算结算弹窗的预填金额与支付方式。

        顾客是会员且本次服务还有可用次数时，金额为 0、支付方式为会员余额；
        否则预填服务当前价格。

        Raises:
            NotFoundError: 预约不存在。
            AlreadySettledError / ConflictError / ValidationError: 预约不能结算。
        """
        with self.db.transaction() as session:
            appointment = self._get_settleable(appointment_id, session)
            price = self._service_price(appointment, session)
            subscription_id, credit = self._membership_credit(appointment, session)

        if credit is not None and credit.allowed:
            return SettlementQuote(
                appointment_id=appointment_id,
                amount=Decimal("0.00"),
                payment_method=self.membership_method,
                membership_covered=True,
                service_price=price,
                subscription_id=subscription_id,
                credit=credit,
            )
        return SettlementQuote(
            appointment_id=appointment_id,
            amount=price,
            payment_method=business_config.get_payment_methods()[0],
            membership_covered=False,
            service_price=price,
            subscription_id=subscription_id,
            credit=credit,
        )

    def settle(self, appointment_id: int, amount,
               payment_method: str) -> SettlementResult:
        """结算预约。

        Args:
            appointment_id: 预约ID。
            amount: 实收金额（>= 0）。
            payment_method: 支付方式；使用会员余额时金额必须为 0 且本次服务有可用次数。
                顾客本次服务有可用次数时必须使用会员余额。

        Returns:
            SettlementResult。

        Raises:
            ValidationError: 金额或支付方式不合法（包括会员有可用次数却正常收费），
                或预约是占位预约。
            NotFoundError: 预约不存在。
            AlreadySettledError: 预约已经结算。
            ConflictError: 预约已取消。
            CreditExceededError: 会员次数已用完。
            SettlementError: 交易或预约状态写入失败，没有任何数据被保存。
            PartialSettlementError: 交易与预约状态已保存，但用量或提成写入失败。
        """
        try:
            amount = to_money(amount)
        except (ArithmeticError, ValueError, TypeError):
            raise ValidationError(f"Invalid amount: {amount!r}")
        if amount < 0:
            raise ValidationError(f"amount must be >= 0, got {amount}")
        if payment_method not in business_config.get_payment_methods():
            raise ValidationError(f"Unknown payment method: {payment_method!r}")
        use_membership = payment_method == self.membership_method
        if use_membership and amount != 0:
            raise ValidationError(
                "Membership balance settlements must have amount 0"
            )

        session = self.db.get_session()
        try:
            result, failed_steps = self._settle(
                session, appointment_id, amount, payment_method, use_membership
            )
        finally:
            session.close()

        if failed_steps:
            logger.error(
                f"Partial settlement for appointment {appointment_id}: "
                f"transaction {result.transaction_id} committed, "
                f"failed steps: {', '.join(failed_steps)}"
            )
            raise PartialSettlementError(
                f"Appointment {appointment_id} settled but "
                f"{', '.join(failed_steps)} could not be recorded",
                result=result, failed_steps=failed_steps
            )

        logger.info(
            f"Settled appointment {appointment_id}: {amount} via {payment_method}, "
            f"transaction {result.transaction_id}, commission "
            f"{result.commission_amount if result.commission_generated else 'none'}"
        )
        return result

    def _settle(self, session: Session, appointment_id: int, amount: Decimal,
                payment_method: str, use_membership: bool):
        if not self.db.appointments.lock(appointment_id, session):
            session.rollback()
            raise NotFoundError(f"Appointment {appointment_id} not found")
        appointment = self._get_settleable(appointment_id, session)

        now = self.ledger.now(appointment.barbershop_id, session)
        subscription_id, credit = self._membership_credit(
            appointment, session, now
        )
        if use_membership and (credit is None or not credit.allowed):
            session.rollback()
            if credit is not None and credit.covered:
                raise CreditExceededError(
                    f"No membership credit left this cycle for appointment "
                    f"{appointment_id} (used {credit.used}/{credit.limit})"
                )
            raise ValidationError(
                f"Appointment {appointment_id} is not covered by an active membership"
            )
        covered = credit is not None and credit.allowed
        if covered and not use_membership:
            session.rollback()
            raise ValidationError(
                f"Appointment {appointment_id} is covered by subscription "
                f"{subscription_id}; settle it with {self.membership_method} and amount 0"
            )

        # 第 1 步：交易记录
        try:
            transaction = self.db.transactions.create(
                barbershop_id=appointment.barbershop_id,
                client_id=appointment.client_id,
                appointment_id=appointment_id,
                amount=amount,
                payment_method=payment_method,
                created_at=now,
                session=session
            )
        except IntegrityError:
            session.rollback()
            raise AlreadySettledError(
                f"Appointment {appointment_id} already has a transaction"
            )
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Settlement of appointment {appointment_id} failed at transaction: {e}")
            raise SettlementError(
                f"Could not record transaction for appointment {appointment_id}"
            ) from e

        # 第 2 步：预约状态
        try:
            updated = self.db.appointments.update_status(
                appointment_id, AppointmentStatus.COMPLETED.value,
                [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value],
                session=session, transaction_id=transaction.id
            )
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Settlement of appointment {appointment_id} failed at status update: {e}")
            raise SettlementError(
                f"Could not complete appointment {appointment_id}"
            ) from e
        if updated == 0:
            session.rollback()
            raise AlreadySettledError(
                f"Appointment {appointment_id} was settled concurrently"
            )

        failed_steps: List[str] = []

        # 第 3 步：会员用量
        usage_recorded = False
        if covered:
            try:
                with session.begin_nested():
                    self.ledger.record_usage(
                        subscription_id, appointment.service_id, appointment_id,
                        session=session, used_at=now
                    )
                usage_recorded = True
            except SQLAlchemyError as e:
                logger.error(
                    f"Appointment {appointment_id}: usage record failed "
                    f"(subscription {subscription_id}): {e}"
                )
                failed_steps.append("usage")

        # 第 4 步：员工提成
        professional = self.db.professionals.get_by_id(
            Professional, appointment.professional_id, session=session
        )
        percentage = professional.commission_percentage if professional else None
        commission_amount = compute_commission(amount, percentage)
        commission_generated = False
        if commission_amount is not None:
            try:
                with session.begin_nested():
                    self.db.commissions.create(
                        barbershop_id=appointment.barbershop_id,
                        professional_id=appointment.professional_id,
                        appointment_id=appointment_id,
                        service_id=appointment.service_id,
                        service_amount=amount,
                        commission_percentage=Decimal(str(percentage)),
                        commission_amount=commission_amount,
                        created_at=now,
                        session=session
                    )
                commission_generated = True
            except SQLAlchemyError as e:
                logger.error(
                    f"Appointment {appointment_id}: commission record failed "
                    f"(professional {appointment.professional_id}): {e}"
                )
                failed_steps.append("commission")

        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Settlement of appointment {appointment_id} failed at commit: {e}")
            raise SettlementError(
                f"Could not commit settlement of appointment {appointment_id}"
            ) from e

        result = SettlementResult(
            appointment_id=appointment_id,
            transaction_id=transaction.id,
            appointment_status=AppointmentStatus.COMPLETED,
            amount=amount,
            payment_method=payment_method,
            commission_generated=commission_generated,
            commission_amount=commission_amount if commission_generated else None,
            usage_recorded=usage_recorded,
        )
        return result, failed_steps

    def _get_settleable(self, appointment_id: int,
                        session: Session) -> Appointment:
        appointment = self.db.appointments.get_by_id(
            Appointment, appointment_id, session=session
        )
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")

        status = AppointmentStatus(appointment.status)
        if status is AppointmentStatus.COMPLETED:
            raise AlreadySettledError(
                f"Appointment {appointment_id} is already completed"
            )
        if status.is_placeholder:
            raise ValidationError(
                f"Appointment {appointment_id} is a {status.value} block, not a visit"
            )
        if not status.is_settleable:
            raise ConflictError(
                f"Appointment {appointment_id} is {status.value} and cannot be settled"
            )
        return appointment

    def _service_price(self, appointment: Appointment,
                       session: Session) -> Decimal:
        if appointment.service_id is None:
            return Decimal("0.00")
        service = self.db.services.get_by_id(
            Service, appointment.service_id, session=session
        )
        return to_money(service.price) if service else Decimal("0.00")

    def _membership_credit(self, appointment: Appointment, session: Session,
                           now: Optional[datetime] = None):
        if appointment.client_id is None or appointment.service_id is None:
            return None, None
        subscription = self.ledger.is_client_active_member(
            appointment.client_id, appointment.barbershop_id, session=session
        )
        if subscription is None:
            return None, None
        credit = self.ledger.check_credit_available(
            subscription, appointment.service_id, session=session, now=now
        )
        return subscription.id, credit
