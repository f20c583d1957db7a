"""Model constraint tests.

Storage-level uniqueness backs the business rules:
- one transaction / commission / usage record per appointment
- one schedule entry per professional and weekday
- one reminder send per (appointment, reminder config)
"""
from datetime import datetime, time
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from database.models import (
    ClientTransaction, Commission, PlanItem, ReminderSent, UsageRecord,
    WeeklyScheduleEntry,
)


class TestUniqueConstraints:

    def test_one_transaction_per_appointment(self, temp_db, shop):
        with temp_db.get_session() as session:
            for _ in range(2):
                session.add(ClientTransaction(
                    barbershop_id=shop.id, appointment_id=42,
                    amount=Decimal("10.00"), payment_method="Dinheiro",
                    created_at=datetime(2025, 3, 3, 10, 0),
                ))
            with pytest.raises(IntegrityError):
                session.flush()

    def test_transactions_without_appointment_are_allowed(self, temp_db, shop):
        for _ in range(2):
            temp_db.transactions.create(
                shop.id, Decimal("89.90"), "Dinheiro", datetime(2025, 3, 3, 10, 0)
            )
        assert len(temp_db.transactions.get_all(ClientTransaction)) == 2

    def test_one_commission_per_appointment(self, temp_db, shop, professional):
        with temp_db.get_session() as session:
            for _ in range(2):
                session.add(Commission(
                    barbershop_id=shop.id, professional_id=professional.id,
                    appointment_id=42, service_amount=Decimal("50"),
                    commission_percentage=Decimal("40"),
                    commission_amount=Decimal("20"),
                    created_at=datetime(2025, 3, 3, 10, 0),
                ))
            with pytest.raises(IntegrityError):
                session.flush()

    def test_one_usage_per_appointment(self, temp_db, membership, haircut):
        with temp_db.get_session() as session:
            for _ in range(2):
                session.add(UsageRecord(
                    subscription_id=membership.id, service_id=haircut.id,
                    appointment_id=42, used_at=datetime(2025, 3, 3, 10, 0),
                ))
            with pytest.raises(IntegrityError):
                session.flush()

    def test_one_schedule_entry_per_day(self, temp_db, professional):
        with temp_db.get_session() as session:
            session.add(WeeklyScheduleEntry(
                professional_id=professional.id, day_of_week=1,
                start_time=time(8), end_time=time(12),
            ))
            with pytest.raises(IntegrityError):
                session.flush()

    def test_one_plan_item_per_service(self, temp_db, club_plan, haircut):
        with temp_db.get_session() as session:
            session.add(PlanItem(plan_id=club_plan.id, service_id=haircut.id))
            with pytest.raises(IntegrityError):
                session.flush()

    def test_one_reminder_send(self, temp_db, shop, visit):
        config = temp_db.reminders.create_config(shop.id, "hours", 2)
        temp_db.reminders.mark_sent(visit.id, config.id)
        with temp_db.get_session() as session:
            session.add(ReminderSent(appointment_id=visit.id, reminder_id=config.id))
            with pytest.raises(IntegrityError):
                session.flush()


class TestDefaults:

    def test_new_professional(self, temp_db, shop):
        pro = temp_db.professionals.create(shop.id, "Novo")
        assert pro.is_active is True
        assert pro.is_service_provider is True
        assert pro.calendar_version == 0
        assert pro.commission_percentage is None

    def test_new_plan_is_draft(self, temp_db, shop):
        plan = temp_db.plans.create(shop.id, "Rascunho", 10)
        assert plan.is_published is False
        assert plan.is_active is True
        assert plan.interval == "monthly"
