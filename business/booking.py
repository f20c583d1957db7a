"""预约写入

所有会改变员工日历的写操作（新预约、锁定时段、提前下班）都遵循同一流程：

1. 开启数据库事务，锁定员工日历（递增 calendar_version）；
2. 在锁内重新校验时段（不信任调用方"刚才看到是空的"）；
3. 写入预约并提交。

同一员工的并发写入在第 1 步排队，后到的一方在第 2 步看到先到者的预约，
得到 SlotUnavailableError 而不是写出重叠的预约。
"""
from datetime import datetime, time, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from database import DatabaseManager
from database.models import Appointment, Client, Service
from business.availability import AvailabilityCalculator, SlotReason
from business.conflicts import find_conflicts
from business.errors import (
    ConflictError, NotFoundError, SlotUnavailableError, ValidationError
)
from business.status import AppointmentStatus


class BookingService:
    """预约服务"""

    def __init__(self, db: DatabaseManager,
                 calculator: Optional[AvailabilityCalculator] = None):
        self.db = db
        self.calculator = calculator or AvailabilityCalculator(db)

    def book(self, barbershop_id: int, professional_id: int,
             start: datetime, service_id: Optional[int] = None,
             duration_minutes: Optional[int] = None,
             client_id: Optional[int] = None,
             client_name: Optional[str] = None,
             client_phone: Optional[str] = None,
             status: AppointmentStatus = AppointmentStatus.PENDING,
             notes: Optional[str] = None) -> Appointment:
        """创建顾客预约。

        Args:
            barbershop_id: 门店ID。
            professional_id: 员工ID。
            start: 开始时间（门店本地时间）。
            service_id: 服务ID，提供时默认使用服务时长。
            duration_minutes: 时长（分钟），覆盖服务时长。
            client_id: 顾客ID（可选）。
            client_name: 顾客显示名称，没有 client_id 时必填。
            client_phone: 顾客电话（可选）。
            status: 初始状态，只能是 pending 或 confirmed。
            notes: 备注（可选）。

        Returns:
            新建的 Appointment。

        Raises:
            ValidationError: 参数不合法。
            NotFoundError: 服务、顾客或员工不存在。
            SlotUnavailableError: 时段已不可用。
        """
        status = AppointmentStatus(status)
        if status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
            raise ValidationError(
                f"New bookings must be pending or confirmed, got {status.value}"
            )
        if service_id is None and duration_minutes is None:
            raise ValidationError("Either service_id or duration_minutes is required")
        if client_id is None and not client_name:
            raise ValidationError("Either client_id or client_name is required")

        with self.db.transaction() as session:
            self._lock(professional_id, session)
            if service_id is not None:
                service = self.db.services.get_by_id(
                    Service, service_id, session=session
                )
                if service is None:
                    raise NotFoundError(f"Service {service_id} not found")
                duration_minutes = duration_minutes or service.duration_minutes
            if duration_minutes <= 0:
                raise ValidationError(
                    f"duration_minutes must be positive, got {duration_minutes}"
                )

            if client_id is not None:
                client = self.db.clients.get_by_id(
                    Client, client_id, session=session
                )
                if client is None:
                    raise NotFoundError(f"Client {client_id} not found")
                client_name = client_name or client.name
                client_phone = client_phone or client.phone

            check = self.calculator.is_slot_available(
                professional_id, start.date(), start.time(),
                duration_minutes, session=session
            )
            if not check.available:
                logger.warning(
                    f"Rejected booking for professional {professional_id} at "
                    f"{start}: {check.reason.value}"
                )
                raise SlotUnavailableError(
                    f"Slot {start:%Y-%m-%d %H:%M} is no longer available "
                    f"({check.reason.value})",
                    reason=check.reason.value
                )

            appointment = self.db.appointments.create(
                barbershop_id=barbershop_id,
                professional_id=professional_id,
                start_time=start,
                end_time=start + timedelta(minutes=duration_minutes),
                status=status.value,
                client_id=client_id,
                service_id=service_id,
                client_display_name=client_name,
                client_phone=client_phone,
                notes=notes,
                session=session
            )

        logger.info(
            f"Booked appointment {appointment.id} for professional "
            f"{professional_id} at {start} ({duration_minutes}min)"
        )
        return appointment

    def block_time(self, barbershop_id: int, professional_id: int,
                   start: datetime, end: datetime,
                   notes: Optional[str] = None) -> Appointment:
        """锁定员工的一段时间（无顾客的占位预约）。

        Raises:
            ValidationError: 结束时间不晚于开始时间。
            SlotUnavailableError: 该时间段已有预约。
        """
        return self._create_placeholder(
            barbershop_id, professional_id, start, end,
            AppointmentStatus.BLOCKED, notes
        )

    def leave_early(self, barbershop_id: int, professional_id: int,
                    leave_at: datetime,
                    notes: Optional[str] = None) -> Appointment:
        """员工提前下班：占用从 leave_at 到当天下班时间的时段。

        Raises:
            ValidationError: 当天不上班，或 leave_at 不早于下班时间。
            SlotUnavailableError: 该时间段已有预约。
        """
        hours = self.calculator.get_working_hours(
            professional_id, leave_at.date()
        )
        if hours is None:
            raise ValidationError(
                f"Professional {professional_id} is not working on {leave_at.date()}"
            )
        end = datetime.combine(leave_at.date(), hours.end)
        return self._create_placeholder(
            barbershop_id, professional_id, leave_at, end,
            AppointmentStatus.EARLY_LEAVE, notes
        )

    def cancel(self, appointment_id: int) -> Appointment:
        """取消预约（已使用的会员次数不退回）。"""
        return self._transition(appointment_id, AppointmentStatus.CANCELLED)

    def confirm(self, appointment_id: int) -> Appointment:
        """确认预约。"""
        return self._transition(appointment_id, AppointmentStatus.CONFIRMED)

    def _create_placeholder(self, barbershop_id: int, professional_id: int,
                            start: datetime, end: datetime,
                            status: AppointmentStatus,
                            notes: Optional[str]) -> Appointment:
        if end <= start:
            raise ValidationError(f"Block end {end} must be later than start {start}")
        duration_minutes = int((end - start).total_seconds() // 60)
        if duration_minutes <= 0:
            raise ValidationError("Block must last at least one minute")

        with self.db.transaction() as session:
            self._lock(professional_id, session)
            bookings = self.db.appointments.get_bookings_between(
                professional_id,
                datetime.combine(start.date(), time.min) - timedelta(days=1),
                end,
                session=session
            )
            if find_conflicts(professional_id, start, duration_minutes, bookings,
                              self.calculator.default_minutes):
                logger.warning(
                    f"Rejected {status.value} for professional {professional_id} "
                    f"{start} - {end}: overlaps existing bookings"
                )
                raise SlotUnavailableError(
                    f"Time {start:%H:%M}-{end:%H:%M} overlaps existing bookings",
                    reason=SlotReason.CONFLICT.value
                )

            appointment = self.db.appointments.create(
                barbershop_id=barbershop_id,
                professional_id=professional_id,
                start_time=start,
                end_time=end,
                status=status.value,
                notes=notes,
                session=session
            )

        logger.info(
            f"Created {status.value} {appointment.id} for professional "
            f"{professional_id}: {start} - {end}"
        )
        return appointment

    def _transition(self, appointment_id: int,
                    target: AppointmentStatus) -> Appointment:
        with self.db.transaction() as session:
            if not self.db.appointments.lock(appointment_id, session):
                raise NotFoundError(f"Appointment {appointment_id} not found")
            appointment = self.db.appointments.get_by_id(
                Appointment, appointment_id, session=session
            )

            current = AppointmentStatus(appointment.status)
            if not current.can_transition_to(target):
                raise ConflictError(
                    f"Appointment {appointment_id} cannot go from "
                    f"{current.value} to {target.value}"
                )
            updated = self.db.appointments.update_status(
                appointment_id, target.value, [current.value], session=session
            )
            if updated == 0:
                raise ConflictError(
                    f"Appointment {appointment_id} was changed concurrently"
                )

        appointment.status = target.value
        logger.info(f"Appointment {appointment_id}: {current.value} -> {target.value}")
        return appointment

    def _lock(self, professional_id: int, session: Session) -> None:
        if not self.db.appointments.lock_calendar(professional_id, session):
            raise NotFoundError(f"Professional {professional_id} not found")
