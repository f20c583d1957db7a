"""数据库管理器 —— 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库，
提供两套 API：

1. **子仓库访问**（细粒度）：
   通过 ``db.professionals``、``db.appointments`` 等属性直接访问子仓库，
   返回 ORM 对象，业务层（business/）使用这一套。

2. **便捷方法**（粗粒度）：
   提供扁平化的查询方法（如 ``get_day_agenda()``、``get_professional_list()``），
   返回字典/基本类型，适合报表和脚本。

需要把多个仓库操作放进同一个数据库事务时，使用 ``db.transaction()``
取得会话，并把它作为 session 参数传给各仓库方法。
"""
from contextlib import contextmanager
from typing import Optional, List, Dict, Any, Union, Iterator
from datetime import date
from sqlalchemy.orm import Session

from config.business_config import business_config
from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .entity_repos import (
    BarbershopRepository, ProfessionalRepository,
    ClientRepository, ServiceRepository
)
from .schedule_repos import ScheduleRepository, AppointmentRepository
from .club_repos import ClubPlanRepository, SubscriptionRepository
from .finance_repos import TransactionRepository, CommissionRepository
from .system_repos import ReminderRepository
from .models import Professional, Subscription, ClubPlan


class DatabaseManager:
    """数据库管理器 —— 统一门面。

    Attributes:
        conn: 数据库连接管理器。
        barbershops: 门店仓库。
        professionals: 员工仓库。
        clients: 顾客仓库。
        services: 服务仓库。
        schedules: 周排班仓库。
        appointments: 预约仓库。
        plans: 会员方案仓库。
        subscriptions: 订阅与用量仓库。
        transactions: 交易流水仓库。
        commissions: 提成仓库。
        reminders: 预约提醒仓库。

    Example::

        db = DatabaseManager("sqlite:///data/barbershop.db")
        db.create_tables()

        # 通过子仓库访问（返回 ORM 对象）
        shop = db.barbershops.create("Barbearia Central")

        # 在同一事务中完成多步写入
        with db.transaction() as session:
            db.appointments.lock_calendar(professional_id, session)
            db.appointments.create(..., session=session)
    """

    def __init__(self, database_url: Optional[str] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
        """
        # 基础设施层
        self.conn = DatabaseConnection(database_url)

        # 实体仓库
        self.barbershops = BarbershopRepository(self.conn)
        self.professionals = ProfessionalRepository(self.conn)
        self.clients = ClientRepository(self.conn)
        self.services = ServiceRepository(self.conn)

        # 日历仓库
        self.schedules = ScheduleRepository(self.conn)
        self.appointments = AppointmentRepository(self.conn)

        # 会员与财务仓库
        self.plans = ClubPlanRepository(self.conn)
        self.subscriptions = SubscriptionRepository(self.conn)
        self.transactions = TransactionRepository(self.conn)
        self.commissions = CommissionRepository(self.conn)

        # 系统数据仓库
        self.reminders = ReminderRepository(self.conn)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def create_tables(self) -> None:
        """创建所有数据库表（幂等操作）。"""
        self.conn.create_tables()

    def get_session(self) -> Session:
        """获取数据库会话。"""
        return self.conn.get_session()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """开启一个数据库事务。

        正常退出时提交，抛出异常时回滚并继续抛出。
        """
        with self.conn.get_session() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    @property
    def database_url(self) -> str:
        """数据库连接URL。"""
        return self.conn.database_url

    @property
    def engine(self):
        """SQLAlchemy 引擎对象。"""
        return self.conn.engine

    def execute_raw_sql(self, sql: str,
                        params: Optional[dict] = None) -> Any:
        """执行原始 SQL 语句。

        注意：应优先使用 ORM 方法，仅在必要时使用原始 SQL。
        """
        return self.conn.execute_raw_sql(sql, params)

    def close(self) -> None:
        """关闭数据库连接，释放所有资源。"""
        self.conn.close()

    # ================================================================
    # 便捷写入方法
    # ================================================================

    def add_professional(self, barbershop_id: int, name: str,
                         commission_percentage: Optional[float] = None,
                         with_default_schedule: bool = True) -> Professional:
        """新增员工，并按业务配置写入默认周排班。

        Args:
            barbershop_id: 门店ID。
            name: 员工姓名。
            commission_percentage: 提成比例（可选）。
            with_default_schedule: 是否写入默认周排班，默认 True。

        Returns:
            Professional 对象。
        """
        with self.transaction() as session:
            professional = self.professionals.create(
                barbershop_id, name,
                commission_percentage=commission_percentage,
                session=session
            )
            if with_default_schedule:
                self.schedules.create_default_schedules(
                    professional.id, business_config.get_default_week(),
                    session=session
                )
            return professional

    def seed_services(self, barbershop_id: int) -> int:
        """按业务配置写入种子服务（同名服务已存在则跳过）。

        Returns:
            新增的服务数量。
        """
        existing = {s.name for s in self.services.get_active(barbershop_id)}
        created = 0
        for item in business_config.get_service_types():
            if item["name"] in existing:
                continue
            self.services.create(
                barbershop_id,
                name=item["name"],
                price=item["price"],
                duration_minutes=item["duration_minutes"],
                category=item.get("category"),
            )
            created += 1
        return created

    # ================================================================
    # 便捷查询方法
    # ================================================================

    def get_professional_list(self, barbershop_id: int,
                              service_id: Optional[int] = None
                              ) -> List[Dict[str, Any]]:
        """获取可预约员工列表。

        Args:
            barbershop_id: 门店ID。
            service_id: 只返回能提供该服务的员工（可选）。

        Returns:
            员工信息字典列表。
        """
        professionals = self.professionals.get_for_service(
            barbershop_id, service_id
        )
        return [
            {
                "id": p.id,
                "name": p.name,
                "commission_percentage": (
                    float(p.commission_percentage)
                    if p.commission_percentage is not None else None
                ),
                "is_active": p.is_active,
            }
            for p in professionals
        ]

    def get_service_catalog(self, barbershop_id: int
                            ) -> List[Dict[str, Any]]:
        """获取门店上架服务列表。"""
        return [
            {
                "id": s.id,
                "name": s.name,
                "price": float(s.price),
                "duration_minutes": s.duration_minutes,
                "is_package": bool(s.is_package),
                "category": s.category,
            }
            for s in self.services.get_active(barbershop_id)
        ]

    def get_day_agenda(self, barbershop_id: int,
                       target_date: Union[str, date]
                       ) -> List[Dict[str, Any]]:
        """获取门店某天的预约列表（含占位预约与已取消预约）。

        Args:
            barbershop_id: 门店ID。
            target_date: 日期，支持 ``YYYY-MM-DD`` 字符串或 date 对象。

        Returns:
            预约字典列表，按开始时间排序。
        """
        target_date = BaseCRUD._parse_date(target_date, "target_date")
        return [
            {
                "id": a.id,
                "professional_id": a.professional_id,
                "client_id": a.client_id,
                "service_id": a.service_id,
                "start_time": a.start_time,
                "end_time": a.end_time,
                "status": a.status,
                "client_display_name": a.client_display_name,
                "client_phone": a.client_phone,
                "notes": a.notes,
            }
            for a in self.appointments.get_for_barbershop_day(
                barbershop_id, target_date
            )
        ]

    def get_client_membership(self, client_id: int, barbershop_id: int
                              ) -> Optional[Dict[str, Any]]:
        """查询顾客在门店生效中的会员订阅。

        Returns:
            订阅信息字典（含方案名称与包含的服务），没有生效订阅返回 None。
        """
        active = self.subscriptions.get_by_status(
            client_id, barbershop_id, "active"
        )
        if not active:
            return None

        subscription: Subscription = active[0]
        plan: Optional[ClubPlan] = self.plans.get_with_items(subscription.plan_id)

        return {
            "subscription_id": subscription.id,
            "plan_id": subscription.plan_id,
            "plan_name": plan.name if plan else None,
            "status": subscription.status,
            "next_due_date": subscription.next_due_date,
            "payment_origin": subscription.payment_origin,
            "items": [
                {
                    "service_id": item.service_id,
                    "quantity_limit": item.quantity_limit or None,
                }
                for item in (plan.items if plan else [])
            ],
        }
