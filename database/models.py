"""SQLAlchemy ORM 模型定义。

本模块定义了所有数据库表的ORM模型，包括：
- 门店、员工、顾客、服务等基础实体
- 员工周排班、预约（含占位预约）
- 会员俱乐部：方案、方案项目、订阅、用量记录
- 交易流水、员工提成
- 预约提醒配置与发送记录

时间约定：预约、用量、提成等业务时间一律按门店本地时间（naive datetime）存储。
"""
from typing import List, Optional
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, DateTime, Time,
    DECIMAL, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from datetime import datetime, date, time

# SQLAlchemy declarative base，所有模型都继承自此类
Base = declarative_base()

# 允许使用旧式类型注解（兼容 SQLAlchemy 2.0）
Base.__allow_unmapped__ = True


class Barbershop(Base):
    """门店表模型。

    Attributes:
        id: 主键，自增整数。
        name: 门店名称，必填。
        phone: 联系电话，可选。
        timezone: 门店时区（IANA 名称），为空时使用全局配置。
        is_active: 是否营业中。
        reminders_enabled: 是否开启预约提醒。
        reminder_message_template: 提醒消息自定义文案。
        created_at: 创建时间（UTC）。
    """
    __tablename__ = "barbershops"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(100), nullable=False)
    phone: Optional[str] = Column(String(20))
    timezone: Optional[str] = Column(String(50))
    is_active: bool = Column(Boolean, default=True)
    reminders_enabled: bool = Column(Boolean, default=False)
    reminder_message_template: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    # Relationships
    professionals: List["Professional"] = relationship("Professional", back_populates="barbershop")


class Professional(Base):
    """员工（可被预约的专业人员）表模型。

    Attributes:
        id: 主键，自增整数。
        barbershop_id: 所属门店ID。
        name: 员工姓名。
        commission_percentage: 提成比例（0-100），为空表示不计提成。
        is_service_provider: 是否提供服务（可被预约）。
        is_active: 是否在职。
        calendar_version: 日历版本号，每次写入预约时递增，用作该员工日历的写锁。
        created_at: 创建时间（UTC）。
    """
    __tablename__ = "professionals"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    name: str = Column(String(100), nullable=False)
    commission_percentage: Optional[float] = Column(DECIMAL(5, 2))
    is_service_provider: bool = Column(Boolean, default=True)
    is_active: bool = Column(Boolean, default=True)
    calendar_version: int = Column(Integer, nullable=False, default=0)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    # Relationships
    barbershop: "Barbershop" = relationship("Barbershop", back_populates="professionals")
    schedule_entries: List["WeeklyScheduleEntry"] = relationship(
        "WeeklyScheduleEntry", back_populates="professional"
    )


class WeeklyScheduleEntry(Base):
    """员工周排班表模型。

    每个员工每个星期几最多一条记录。

    Attributes:
        id: 主键。
        professional_id: 员工ID。
        day_of_week: 星期几，0=周日 ... 6=周六。
        is_working: 当天是否上班。
        start_time: 上班时间。
        end_time: 下班时间。
        break_start: 休息开始时间，可选。
        break_end: 休息结束时间，可选。
    """
    __tablename__ = "weekly_schedule_entries"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    professional_id: int = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    day_of_week: int = Column(Integer, nullable=False)
    is_working: bool = Column(Boolean, nullable=False, default=True)
    start_time: time = Column(Time, nullable=False)
    end_time: time = Column(Time, nullable=False)
    break_start: Optional[time] = Column(Time)
    break_end: Optional[time] = Column(Time)

    # Relationships
    professional: "Professional" = relationship("Professional", back_populates="schedule_entries")

    __table_args__ = (
        UniqueConstraint('professional_id', 'day_of_week', name='uq_schedule_day'),
    )


class Client(Base):
    """顾客表模型。"""
    __tablename__ = "clients"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    name: str = Column(String(100), nullable=False)
    phone: Optional[str] = Column(String(20))
    email: Optional[str] = Column(String(200))
    created_at: datetime = Column(DateTime, default=datetime.utcnow)


class Service(Base):
    """服务表模型。

    Attributes:
        id: 主键。
        barbershop_id: 所属门店ID。
        name: 服务名称。
        price: 当前价格，DECIMAL(10,2)，>=0。
        duration_minutes: 服务时长（分钟），>0。
        is_package: 是否为套餐。
        category: 类别（对应分类图标键）。
        is_active: 是否上架。
    """
    __tablename__ = "services"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    name: str = Column(String(100), nullable=False)
    price: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    duration_minutes: int = Column(Integer, nullable=False, default=30)
    is_package: bool = Column(Boolean, default=False)
    category: Optional[str] = Column(String(50))
    is_active: bool = Column(Boolean, default=True)


class StaffService(Base):
    """员工-服务关联表（员工能做哪些服务）。"""
    __tablename__ = "staff_services"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    professional_id: int = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    service_id: int = Column(Integer, ForeignKey("services.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint('professional_id', 'service_id', name='uq_staff_service'),
    )


class Appointment(Base):
    """预约表模型（核心业务表）。

    status 取值见 business.status.AppointmentStatus。blocked / early_leave
    为无顾客的占位预约，同样占用员工日历。

    Attributes:
        id: 主键。
        barbershop_id: 所属门店ID。
        professional_id: 服务员工ID。
        client_id: 顾客ID，可选。
        service_id: 服务ID，可选。
        start_time: 开始时间（门店本地时间）。
        end_time: 结束时间，可选；为空时按默认时长计算占用。
        status: 预约状态。
        client_display_name: 顾客显示名称。
        client_phone: 顾客电话。
        transaction_id: 结算后关联的交易ID。
        notes: 备注（占位预约的原因等）。
        created_at: 创建时间（UTC）。
    """
    __tablename__ = "appointments"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    professional_id: int = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    client_id: Optional[int] = Column(Integer, ForeignKey("clients.id"))
    service_id: Optional[int] = Column(Integer, ForeignKey("services.id"))
    start_time: datetime = Column(DateTime, nullable=False)
    end_time: Optional[datetime] = Column(DateTime)
    status: str = Column(String(20), nullable=False, default="pending")
    client_display_name: Optional[str] = Column(String(100))
    client_phone: Optional[str] = Column(String(20))
    transaction_id: Optional[int] = Column(Integer, ForeignKey("client_transactions.id"))
    notes: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_appointments_professional_start', 'professional_id', 'start_time'),
    )


class ClubPlan(Base):
    """会员俱乐部方案表模型。

    is_published=False 的草稿方案即使 is_active=True 也不能被顾客购买。
    """
    __tablename__ = "club_plans"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    name: str = Column(String(100), nullable=False)
    description: Optional[str] = Column(Text)
    price: float = Column(DECIMAL(10, 2), nullable=False)
    interval: str = Column(String(20), default="monthly")
    is_active: bool = Column(Boolean, default=True)
    is_published: bool = Column(Boolean, default=False)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    # Relationships
    items: List["PlanItem"] = relationship("PlanItem", back_populates="plan")


class PlanItem(Base):
    """方案包含的服务项目。

    quantity_limit 为 0 或空表示该服务在本方案内不限次数。
    """
    __tablename__ = "plan_items"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    plan_id: int = Column(Integer, ForeignKey("club_plans.id"), nullable=False)
    service_id: int = Column(Integer, ForeignKey("services.id"), nullable=False)
    quantity_limit: Optional[int] = Column(Integer)

    # Relationships
    plan: "ClubPlan" = relationship("ClubPlan", back_populates="items")

    __table_args__ = (
        UniqueConstraint('plan_id', 'service_id', name='uq_plan_service'),
    )


class Subscription(Base):
    """顾客会员订阅表模型。

    status: active / pending / overdue / canceled。
    payment_origin: manual（员工手动开通）/ gateway（在线支付）。
    """
    __tablename__ = "subscriptions"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    client_id: int = Column(Integer, ForeignKey("clients.id"), nullable=False)
    plan_id: int = Column(Integer, ForeignKey("club_plans.id"), nullable=False)
    status: str = Column(String(20), nullable=False, default="pending")
    next_due_date: Optional[date] = Column(Date)
    payment_origin: str = Column(String(20), default="manual")
    external_id: Optional[str] = Column(String(100))
    created_at: datetime = Column(DateTime, default=datetime.utcnow)
    updated_at: datetime = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UsageRecord(Base):
    """会员次数使用记录，每次抵扣一行。

    每个预约最多抵扣一次（appointment_id 唯一）。
    """
    __tablename__ = "usage_records"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id: int = Column(Integer, ForeignKey("subscriptions.id"), nullable=False)
    service_id: int = Column(Integer, ForeignKey("services.id"), nullable=False)
    appointment_id: Optional[int] = Column(Integer, ForeignKey("appointments.id"), unique=True)
    used_at: datetime = Column(DateTime, nullable=False)


class ClientTransaction(Base):
    """交易流水表模型。

    同一预约最多一条交易（appointment_id 唯一），作为结算的幂等键。
    会员开通产生的交易 appointment_id 为空，关联 subscription_id。
    """
    __tablename__ = "client_transactions"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    client_id: Optional[int] = Column(Integer, ForeignKey("clients.id"))
    appointment_id: Optional[int] = Column(Integer, unique=True)
    subscription_id: Optional[int] = Column(Integer, ForeignKey("subscriptions.id"))
    amount: float = Column(DECIMAL(10, 2), nullable=False)
    payment_method: str = Column(String(50), nullable=False)
    status: str = Column(String(20), nullable=False, default="paid")
    created_at: datetime = Column(DateTime, nullable=False)


class Commission(Base):
    """员工提成表模型。

    status: pending（待发放）/ paid（已发放）。created_at 为门店本地时间，
    按自然月汇总与发放。
    """
    __tablename__ = "commissions"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    professional_id: int = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    appointment_id: int = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)
    service_id: Optional[int] = Column(Integer, ForeignKey("services.id"))
    service_amount: float = Column(DECIMAL(10, 2), nullable=False)
    commission_percentage: float = Column(DECIMAL(5, 2), nullable=False)
    commission_amount: float = Column(DECIMAL(10, 2), nullable=False)
    status: str = Column(String(20), nullable=False, default="pending")
    created_at: datetime = Column(DateTime, nullable=False)
    paid_at: Optional[datetime] = Column(DateTime)


class ReminderConfig(Base):
    """门店预约提醒配置。

    reminder_type: minutes / hours / days；reminder_value: 提前量。
    """
    __tablename__ = "reminder_configs"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    barbershop_id: int = Column(Integer, ForeignKey("barbershops.id"), nullable=False)
    reminder_type: str = Column(String(10), nullable=False, default="hours")
    reminder_value: int = Column(Integer, nullable=False, default=1)
    is_enabled: bool = Column(Boolean, default=True)


class ReminderSent(Base):
    """已发送提醒记录，保证每个(预约, 提醒配置)只发送一次。"""
    __tablename__ = "reminders_sent"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id: int = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    reminder_id: int = Column(Integer, ForeignKey("reminder_configs.id"), nullable=False)
    sent_at: datetime = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('appointment_id', 'reminder_id', name='uq_reminder_sent'),
    )
