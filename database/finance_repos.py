"""财务仓库 —— 交易流水与员工提成的数据访问层。"""
from typing import Optional, List, Dict, Any, Iterable
from datetime import datetime
from decimal import Decimal
from sqlalchemy import func, case
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import ClientTransaction, Commission, Professional


class TransactionRepository(BaseCRUD):
    """交易流水 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, barbershop_id: int, amount: Decimal,
               payment_method: str, created_at: datetime,
               client_id: Optional[int] = None,
               appointment_id: Optional[int] = None,
               subscription_id: Optional[int] = None,
               status: str = "paid",
               session: Optional[Session] = None) -> ClientTransaction:
        """写入一条交易。

        同一预约只能有一条交易，重复写入会触发唯一约束（IntegrityError）。
        """
        return self.add(ClientTransaction(
            barbershop_id=barbershop_id,
            client_id=client_id,
            appointment_id=appointment_id,
            subscription_id=subscription_id,
            amount=amount,
            payment_method=payment_method,
            status=status,
            created_at=created_at,
        ), session=session)

    def get_by_appointment(self, appointment_id: int,
                           session: Optional[Session] = None
                           ) -> Optional[ClientTransaction]:
        """按预约查找交易。"""
        def _query(sess):
            return sess.query(ClientTransaction).filter(
                ClientTransaction.appointment_id == appointment_id
            ).first()

        return self._run(_query, session)

    def count_for_appointment(self, appointment_id: int,
                              session: Optional[Session] = None) -> int:
        """统计某预约的交易条数。"""
        def _query(sess):
            return sess.query(func.count(ClientTransaction.id)).filter(
                ClientTransaction.appointment_id == appointment_id
            ).scalar() or 0

        return self._run(_query, session)


class CommissionRepository(BaseCRUD):
    """员工提成 仓库。

    提成按门店本地时间的自然月汇总与发放。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, barbershop_id: int, professional_id: int,
               appointment_id: int, service_amount: Decimal,
               commission_percentage: Decimal, commission_amount: Decimal,
               created_at: datetime, service_id: Optional[int] = None,
               session: Optional[Session] = None) -> Commission:
        """写入一条待发放提成。"""
        return self.add(Commission(
            barbershop_id=barbershop_id,
            professional_id=professional_id,
            appointment_id=appointment_id,
            service_id=service_id,
            service_amount=service_amount,
            commission_percentage=commission_percentage,
            commission_amount=commission_amount,
            status="pending",
            created_at=created_at,
        ), session=session)

    def get_by_appointment(self, appointment_id: int,
                           session: Optional[Session] = None
                           ) -> List[Commission]:
        """按预约查找提成记录。"""
        return self.get_all(
            Commission, filters={"appointment_id": appointment_id},
            session=session
        )

    def summarize(self, barbershop_id: int, start: datetime, end: datetime,
                  session: Optional[Session] = None
                  ) -> List[Dict[str, Any]]:
        """按员工汇总 [start, end) 内的提成。

        Returns:
            每个员工一条：professional_id、professional_name、pending_count、
            pending_amount、paid_amount（金额为 Decimal）。
        """
        def _query(sess):
            is_pending = Commission.status == "pending"
            rows = sess.query(
                Commission.professional_id,
                Professional.name,
                func.sum(case((is_pending, 1), else_=0)),
                func.sum(case((is_pending, Commission.commission_amount),
                              else_=0)),
                func.sum(case((Commission.status == "paid",
                               Commission.commission_amount), else_=0)),
            ).join(
                Professional, Professional.id == Commission.professional_id
            ).filter(
                Commission.barbershop_id == barbershop_id,
                Commission.created_at >= start,
                Commission.created_at < end
            ).group_by(
                Commission.professional_id, Professional.name
            ).order_by(Professional.name).all()

            return [
                {
                    "professional_id": pid,
                    "professional_name": name,
                    "pending_count": int(pending_count or 0),
                    "pending_amount": Decimal(str(pending_amount or 0)),
                    "paid_amount": Decimal(str(paid_amount or 0)),
                }
                for pid, name, pending_count, pending_amount, paid_amount in rows
            ]

        return self._run(_query, session)

    def mark_paid(self, barbershop_id: int, professional_ids: Iterable[int],
                  start: datetime, end: datetime, paid_at: datetime,
                  session: Optional[Session] = None) -> int:
        """将所选员工在 [start, end) 内的待发放提成一次性标记为已发放。

        Returns:
            更新的行数。
        """
        ids = list(professional_ids)

        def _do(sess):
            return sess.query(Commission).filter(
                Commission.barbershop_id == barbershop_id,
                Commission.professional_id.in_(ids),
                Commission.status == "pending",
                Commission.created_at >= start,
                Commission.created_at < end
            ).update(
                {Commission.status: "paid", Commission.paid_at: paid_at},
                synchronize_session=False
            )

        return self._run(_do, session)
