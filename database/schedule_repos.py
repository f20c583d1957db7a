"""排班与预约仓库 —— 员工日历的数据访问层。

只负责读写员工周排班和预约记录，不做可用性判断。冲突检测由
business.conflicts 完成，调用方自行过滤已取消的预约。
"""
from typing import Optional, List, Dict, Any, Iterable
from datetime import date, datetime, time, timedelta
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import WeeklyScheduleEntry, Appointment, Professional


class ScheduleRepository(BaseCRUD):
    """员工周排班 仓库。

    day_of_week 约定：0=周日，1=周一 ... 6=周六。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_weekly_schedule(self, professional_id: int,
                            session: Optional[Session] = None
                            ) -> List[WeeklyScheduleEntry]:
        """获取员工的全部周排班（按星期排序）。"""
        def _query(sess):
            return sess.query(WeeklyScheduleEntry).filter(
                WeeklyScheduleEntry.professional_id == professional_id
            ).order_by(WeeklyScheduleEntry.day_of_week).all()

        return self._run(_query, session)

    def set_day(self, professional_id: int, day_of_week: int,
                is_working: bool, start_time: time, end_time: time,
                break_start: Optional[time] = None,
                break_end: Optional[time] = None,
                session: Optional[Session] = None) -> WeeklyScheduleEntry:
        """保存某一天的排班（已存在则覆盖）。

        Args:
            professional_id: 员工ID。
            day_of_week: 星期几（0=周日 ... 6=周六）。
            is_working: 当天是否上班。
            start_time: 上班时间。
            end_time: 下班时间。
            break_start: 休息开始（可选，需与 break_end 同时提供）。
            break_end: 休息结束（可选）。

        Returns:
            WeeklyScheduleEntry 对象。

        Raises:
            ValueError: 星期超出范围、上班时间不早于下班时间或休息时段不完整。
        """
        if not 0 <= day_of_week <= 6:
            raise ValueError(f"day_of_week must be within 0-6, got {day_of_week}")
        if is_working and start_time >= end_time:
            raise ValueError(
                f"start_time {start_time} must be earlier than end_time {end_time}"
            )
        if (break_start is None) != (break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if break_start is not None and break_start >= break_end:
            raise ValueError(
                f"break_start {break_start} must be earlier than break_end {break_end}"
            )

        def _do(sess):
            entry = sess.query(WeeklyScheduleEntry).filter(
                WeeklyScheduleEntry.professional_id == professional_id,
                WeeklyScheduleEntry.day_of_week == day_of_week
            ).first()
            if entry is None:
                entry = WeeklyScheduleEntry(
                    professional_id=professional_id, day_of_week=day_of_week
                )
                sess.add(entry)
            entry.is_working = is_working
            entry.start_time = start_time
            entry.end_time = end_time
            entry.break_start = break_start
            entry.break_end = break_end
            sess.flush()
            return entry

        return self._run(_do, session)

    def create_default_schedules(self, professional_id: int,
                                 week: Iterable[Dict[str, Any]],
                                 session: Optional[Session] = None) -> int:
        """为员工写入默认周排班。

        员工已有任意排班时不做任何修改。

        Args:
            professional_id: 员工ID。
            week: 每天的排班字典（day_of_week / start_time / end_time / is_working）。

        Returns:
            新写入的条数。
        """
        def _do(sess):
            exists = sess.query(WeeklyScheduleEntry.id).filter(
                WeeklyScheduleEntry.professional_id == professional_id
            ).first()
            if exists:
                return 0

            count = 0
            for day in week:
                sess.add(WeeklyScheduleEntry(
                    professional_id=professional_id,
                    day_of_week=day["day_of_week"],
                    is_working=day["is_working"],
                    start_time=day["start_time"],
                    end_time=day["end_time"],
                    break_start=day.get("break_start"),
                    break_end=day.get("break_end"),
                ))
                count += 1
            sess.flush()
            return count

        return self._run(_do, session)


class AppointmentRepository(BaseCRUD):
    """预约 仓库。

    提供按员工/日期读取预约、写入预约、条件更新状态，以及员工日历写锁。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_bookings_for_date(self, professional_id: int, target_date: date,
                              session: Optional[Session] = None
                              ) -> List[Appointment]:
        """获取员工某天的全部预约（包括已取消的）。"""
        day_start = datetime.combine(target_date, time.min)
        return self.get_bookings_between(
            professional_id, day_start, day_start + timedelta(days=1),
            session=session
        )

    def get_bookings_between(self, professional_id: int,
                             start: datetime, end: datetime,
                             session: Optional[Session] = None
                             ) -> List[Appointment]:
        """获取员工在 [start, end) 内开始的全部预约（按开始时间排序）。"""
        def _query(sess):
            return sess.query(Appointment).filter(
                Appointment.professional_id == professional_id,
                Appointment.start_time >= start,
                Appointment.start_time < end
            ).order_by(Appointment.start_time).all()

        return self._run(_query, session)

    def get_for_barbershop_day(self, barbershop_id: int, target_date: date,
                               session: Optional[Session] = None
                               ) -> List[Appointment]:
        """获取门店某天的全部预约（按开始时间排序）。"""
        day_start = datetime.combine(target_date, time.min)

        def _query(sess):
            return sess.query(Appointment).filter(
                Appointment.barbershop_id == barbershop_id,
                Appointment.start_time >= day_start,
                Appointment.start_time < day_start + timedelta(days=1)
            ).order_by(Appointment.start_time).all()

        return self._run(_query, session)

    def get_upcoming(self, barbershop_id: int, now: datetime,
                     statuses: Iterable[str],
                     session: Optional[Session] = None) -> List[Appointment]:
        """获取门店从 now 起尚未开始、且处于指定状态的预约。"""
        status_values = list(statuses)

        def _query(sess):
            return sess.query(Appointment).filter(
                Appointment.barbershop_id == barbershop_id,
                Appointment.status.in_(status_values),
                Appointment.start_time >= now
            ).order_by(Appointment.start_time).all()

        return self._run(_query, session)

    def lock_calendar(self, professional_id: int, session: Session) -> bool:
        """锁定员工日历（递增 calendar_version）。

        必须在调用方的事务中使用：该 UPDATE 持有员工行的写锁直到事务结束，
        同一员工的其他日历写入会在此等待。

        Returns:
            员工是否存在。
        """
        updated = session.query(Professional).filter(
            Professional.id == professional_id
        ).update(
            {Professional.calendar_version: Professional.calendar_version + 1},
            synchronize_session=False
        )
        return updated > 0

    def lock(self, appointment_id: int, session: Session) -> bool:
        """锁定单条预约行，直到调用方事务结束。

        Returns:
            预约是否存在。
        """
        updated = session.query(Appointment).filter(
            Appointment.id == appointment_id
        ).update(
            {Appointment.status: Appointment.status},
            synchronize_session=False
        )
        return updated > 0

    def create(self, barbershop_id: int, professional_id: int,
               start_time: datetime, end_time: Optional[datetime],
               status: str, client_id: Optional[int] = None,
               service_id: Optional[int] = None,
               client_display_name: Optional[str] = None,
               client_phone: Optional[str] = None,
               notes: Optional[str] = None,
               session: Optional[Session] = None) -> Appointment:
        """写入一条预约。"""
        return self.add(Appointment(
            barbershop_id=barbershop_id,
            professional_id=professional_id,
            client_id=client_id,
            service_id=service_id,
            start_time=start_time,
            end_time=end_time,
            status=status,
            client_display_name=client_display_name,
            client_phone=client_phone,
            notes=notes,
        ), session=session)

    def update_status(self, appointment_id: int, status: str,
                      expected_statuses: Iterable[str],
                      session: Optional[Session] = None,
                      **values: Any) -> int:
        """条件更新预约状态。

        仅当预约当前状态在 expected_statuses 之内时才更新，用于在并发下
        保证同一预约只会被流转一次。

        Args:
            appointment_id: 预约ID。
            status: 目标状态。
            expected_statuses: 允许的当前状态。
            **values: 同时更新的其他字段（如 transaction_id）。

        Returns:
            实际更新的行数（0 表示状态已被其他操作改变）。
        """
        expected = list(expected_statuses)

        def _do(sess):
            fields = {getattr(Appointment, k): v for k, v in values.items()}
            fields[Appointment.status] = status
            return sess.query(Appointment).filter(
                Appointment.id == appointment_id,
                Appointment.status.in_(expected)
            ).update(fields, synchronize_session=False)

        return self._run(_do, session)
