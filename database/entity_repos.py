"""实体仓库 —— 基础实体的数据访问层。

管理系统中的基础实体（门店、员工、顾客、服务），以及员工与服务的关联。

每个仓库继承 BaseCRUD 获得通用能力，并添加领域特定的查询方法。
"""
from typing import Optional, List
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import (
    Barbershop, Professional, Client, Service, StaffService
)


class BarbershopRepository(BaseCRUD):
    """门店 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, name: str, phone: Optional[str] = None,
               timezone: Optional[str] = None,
               reminders_enabled: bool = False,
               reminder_message_template: Optional[str] = None,
               session: Optional[Session] = None) -> Barbershop:
        """创建门店。

        Args:
            name: 门店名称。
            phone: 联系电话（可选）。
            timezone: 门店时区（可选，默认使用全局配置）。
            reminders_enabled: 是否开启预约提醒。
            reminder_message_template: 提醒文案（可选）。

        Returns:
            Barbershop 对象。
        """
        return self.add(Barbershop(
            name=name,
            phone=phone,
            timezone=timezone,
            reminders_enabled=reminders_enabled,
            reminder_message_template=reminder_message_template,
        ), session=session)

    def get_with_reminders(self,
                           session: Optional[Session] = None
                           ) -> List[Barbershop]:
        """获取开启了预约提醒且营业中的门店。"""
        return self.get_all(
            Barbershop,
            filters={"reminders_enabled": True, "is_active": True},
            session=session
        )


class ProfessionalRepository(BaseCRUD):
    """员工 仓库。

    管理可被预约的员工，包括提成比例和可提供的服务。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, barbershop_id: int, name: str,
               commission_percentage: Optional[float] = None,
               is_service_provider: bool = True,
               session: Optional[Session] = None) -> Professional:
        """创建员工。

        Args:
            barbershop_id: 门店ID。
            name: 员工姓名。
            commission_percentage: 提成比例（0-100，可选）。
            is_service_provider: 是否提供服务。

        Returns:
            Professional 对象。

        Raises:
            ValueError: 提成比例超出 0-100。
        """
        if commission_percentage is not None and not (
                0 <= commission_percentage <= 100):
            raise ValueError(
                f"commission_percentage must be within 0-100, "
                f"got {commission_percentage}"
            )
        return self.add(Professional(
            barbershop_id=barbershop_id,
            name=name,
            commission_percentage=commission_percentage,
            is_service_provider=is_service_provider,
        ), session=session)

    def get_service_providers(self, barbershop_id: int,
                              session: Optional[Session] = None
                              ) -> List[Professional]:
        """获取门店所有在职且提供服务的员工。"""
        return self.get_all(
            Professional,
            filters={
                "barbershop_id": barbershop_id,
                "is_active": True,
                "is_service_provider": True,
            },
            session=session
        )

    def link_service(self, professional_id: int, service_id: int,
                     session: Optional[Session] = None) -> StaffService:
        """关联员工与服务（已关联则直接返回）。"""
        def _do(sess):
            link = sess.query(StaffService).filter(
                StaffService.professional_id == professional_id,
                StaffService.service_id == service_id
            ).first()
            if not link:
                link = StaffService(
                    professional_id=professional_id, service_id=service_id
                )
                sess.add(link)
                sess.flush()
            return link

        return self._run(_do, session)

    def get_for_service(self, barbershop_id: int,
                        service_id: Optional[int],
                        session: Optional[Session] = None
                        ) -> List[Professional]:
        """获取能提供指定服务的员工。

        如果该服务没有关联任何员工，则视为所有员工都可以提供。

        Args:
            barbershop_id: 门店ID。
            service_id: 服务ID，为空时返回全部员工。

        Returns:
            员工列表。
        """
        def _query(sess):
            providers = self.get_service_providers(barbershop_id, session=sess)
            if service_id is None:
                return providers

            linked_ids = {
                row.professional_id
                for row in sess.query(StaffService).filter(
                    StaffService.service_id == service_id
                ).all()
            }
            if not linked_ids:
                return providers
            return [p for p in providers if p.id in linked_ids]

        return self._run(_query, session)

    def set_commission(self, professional_id: int,
                       commission_percentage: Optional[float],
                       session: Optional[Session] = None
                       ) -> Optional[Professional]:
        """设置员工提成比例（None 表示不计提成）。"""
        return self.update_by_id(
            Professional, professional_id, session=session,
            commission_percentage=commission_percentage
        )

    def deactivate(self, professional_id: int,
                   session: Optional[Session] = None
                   ) -> Optional[Professional]:
        """停用员工。"""
        return self.update_by_id(
            Professional, professional_id, session=session, is_active=False
        )


class ClientRepository(BaseCRUD):
    """顾客 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_or_create(self, barbershop_id: int, name: str,
                      phone: Optional[str] = None,
                      email: Optional[str] = None,
                      session: Optional[Session] = None) -> Client:
        """获取或创建顾客（同门店内按电话匹配，无电话时按姓名匹配）。

        Args:
            barbershop_id: 门店ID。
            name: 顾客姓名。
            phone: 电话（可选）。
            email: 邮箱（可选）。

        Returns:
            Client 对象。
        """
        def _do(sess):
            query = sess.query(Client).filter(
                Client.barbershop_id == barbershop_id
            )
            if phone:
                query = query.filter(Client.phone == phone)
            else:
                query = query.filter(Client.name == name)
            client = query.first()
            if not client:
                client = Client(
                    barbershop_id=barbershop_id, name=name,
                    phone=phone, email=email
                )
                sess.add(client)
                sess.flush()
                sess.refresh(client)
            return client

        return self._run(_do, session)

    def search(self, barbershop_id: int, keyword: str,
               session: Optional[Session] = None) -> List[Client]:
        """按姓名或电话搜索顾客。"""
        def _query(sess):
            return sess.query(Client).filter(
                Client.barbershop_id == barbershop_id,
                or_(
                    Client.name.contains(keyword),
                    Client.phone.contains(keyword)
                )
            ).all()

        return self._run(_query, session)


class ServiceRepository(BaseCRUD):
    """服务 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def create(self, barbershop_id: int, name: str, price: float,
               duration_minutes: int, is_package: bool = False,
               category: Optional[str] = None,
               session: Optional[Session] = None) -> Service:
        """创建服务。

        Raises:
            ValueError: 时长不为正或价格为负。
        """
        if duration_minutes is None or duration_minutes <= 0:
            raise ValueError(
                f"duration_minutes must be positive, got {duration_minutes}"
            )
        if price is None or price < 0:
            raise ValueError(f"price must be >= 0, got {price}")
        return self.add(Service(
            barbershop_id=barbershop_id,
            name=name,
            price=price,
            duration_minutes=duration_minutes,
            is_package=is_package,
            category=category,
        ), session=session)

    def get_active(self, barbershop_id: int,
                   session: Optional[Session] = None) -> List[Service]:
        """获取门店上架中的服务（按名称排序）。"""
        def _query(sess):
            return sess.query(Service).filter(
                Service.barbershop_id == barbershop_id,
                Service.is_active.is_(True)
            ).order_by(Service.name).all()

        return self._run(_query, session)
