"""Repository tests.

- ScheduleRepository: set_day upsert and validation, default schedules
- AppointmentRepository: date queries, calendar lock, conditional status update
- ProfessionalRepository / ClientRepository / ServiceRepository
- ClubPlanRepository / SubscriptionRepository
- ReminderRepository
"""
from datetime import datetime, time, timedelta

import pytest

from config.business_config import business_config
from database.models import Professional


# ============================================================
# ScheduleRepository Tests
# ============================================================
class TestScheduleRepository:

    def test_set_day_upserts(self, temp_db, professional):
        temp_db.schedules.set_day(professional.id, 1, True, time(10), time(16))
        entries = temp_db.schedules.get_weekly_schedule(professional.id)
        monday = [e for e in entries if e.day_of_week == 1]
        assert len(monday) == 1
        assert monday[0].start_time == time(10)
        assert monday[0].break_start is None

    def test_entries_sorted_by_weekday(self, temp_db, professional):
        days = [e.day_of_week for e in temp_db.schedules.get_weekly_schedule(professional.id)]
        assert days == list(range(7))

    @pytest.mark.parametrize("kwargs", [
        {"day_of_week": 7},
        {"start_time": time(18), "end_time": time(9)},
        {"break_start": time(12)},
        {"break_start": time(13), "break_end": time(12)},
    ])
    def test_set_day_validation(self, temp_db, professional, kwargs):
        args = {
            "day_of_week": 1, "is_working": True,
            "start_time": time(9), "end_time": time(18),
        }
        args.update(kwargs)
        with pytest.raises(ValueError):
            temp_db.schedules.set_day(professional.id, **args)

    def test_day_off_skips_hour_check(self, temp_db, professional):
        entry = temp_db.schedules.set_day(professional.id, 0, False, time(9), time(9))
        assert entry.is_working is False

    def test_default_schedules_only_once(self, temp_db, shop):
        pro = temp_db.professionals.create(shop.id, "Novo")
        week = business_config.get_default_week()
        assert temp_db.schedules.create_default_schedules(pro.id, week) == 7
        assert temp_db.schedules.create_default_schedules(pro.id, week) == 0


# ============================================================
# AppointmentRepository Tests
# ============================================================
class TestAppointmentRepository:

    def test_bookings_for_date_include_cancelled(self, temp_db, shop,
                                                 professional, monday):
        start = datetime.combine(monday, time(10))
        temp_db.appointments.create(shop.id, professional.id, start,
                                    start + timedelta(hours=1), "cancelled")
        temp_db.appointments.create(shop.id, professional.id,
                                    start + timedelta(days=1), None, "pending")
        bookings = temp_db.appointments.get_bookings_for_date(professional.id, monday)
        assert [b.status for b in bookings] == ["cancelled"]

    def test_upcoming_filters_status_and_time(self, temp_db, shop, professional, now):
        temp_db.appointments.create(shop.id, professional.id,
                                    now - timedelta(hours=1), None, "pending")
        later = temp_db.appointments.create(shop.id, professional.id,
                                            now + timedelta(hours=1), None, "pending")
        temp_db.appointments.create(shop.id, professional.id,
                                    now + timedelta(hours=2), None, "cancelled")
        upcoming = temp_db.appointments.get_upcoming(shop.id, now, ["pending"])
        assert [a.id for a in upcoming] == [later.id]

    def test_lock_calendar(self, temp_db, professional):
        with temp_db.transaction() as session:
            assert temp_db.appointments.lock_calendar(professional.id, session)
            assert not temp_db.appointments.lock_calendar(9999, session)
        pro = temp_db.professionals.get_by_id(Professional, professional.id)
        assert pro.calendar_version == 1

    def test_conditional_status_update(self, temp_db, visit):
        assert temp_db.appointments.update_status(
            visit.id, "completed", ["pending", "confirmed"]
        ) == 1
        assert temp_db.appointments.update_status(
            visit.id, "completed", ["pending", "confirmed"]
        ) == 0


# ============================================================
# Entity repository Tests
# ============================================================
class TestEntityRepositories:

    def test_commission_range(self, temp_db, shop):
        with pytest.raises(ValueError):
            temp_db.professionals.create(shop.id, "X", commission_percentage=120)

    def test_service_providers_for_service(self, temp_db, shop, professional,
                                           haircut, beard):
        other = temp_db.professionals.create(shop.id, "Carlos")
        temp_db.professionals.link_service(other.id, beard.id)
        temp_db.professionals.link_service(other.id, beard.id)

        assert [p.id for p in temp_db.professionals.get_for_service(shop.id, beard.id)] \
            == [other.id]
        # nobody linked to haircut: everyone can do it
        assert {p.id for p in temp_db.professionals.get_for_service(shop.id, haircut.id)} \
            == {professional.id, other.id}

    def test_deactivated_professional_is_hidden(self, temp_db, shop, professional):
        temp_db.professionals.deactivate(professional.id)
        assert temp_db.professionals.get_service_providers(shop.id) == []

    def test_client_get_or_create(self, temp_db, shop, client):
        same = temp_db.clients.get_or_create(shop.id, "Maria Silva", phone="11988887777")
        assert same.id == client.id
        by_name = temp_db.clients.get_or_create(shop.id, "Ana")
        assert temp_db.clients.get_or_create(shop.id, "Ana").id == by_name.id
        assert [c.id for c in temp_db.clients.search(shop.id, "8888")] == [client.id]

    def test_service_validation(self, temp_db, shop):
        with pytest.raises(ValueError):
            temp_db.services.create(shop.id, "Zero", 10, 0)
        with pytest.raises(ValueError):
            temp_db.services.create(shop.id, "Negative", -1, 30)


# ============================================================
# Club repository Tests
# ============================================================
class TestClubRepositories:

    def test_add_item_updates_limit(self, temp_db, club_plan, haircut):
        temp_db.plans.add_item(club_plan.id, haircut.id, quantity_limit=5)
        plan = temp_db.plans.get_with_items(club_plan.id)
        assert [(i.service_id, i.quantity_limit) for i in plan.items] == [(haircut.id, 5)]

    def test_negative_limit(self, temp_db, club_plan, haircut):
        with pytest.raises(ValueError):
            temp_db.plans.add_item(club_plan.id, haircut.id, quantity_limit=-1)

    def test_publish(self, temp_db, shop):
        plan = temp_db.plans.create(shop.id, "Rascunho", 10)
        assert temp_db.plans.set_published(plan.id, True).is_published is True

    def test_usage_count_and_clear(self, temp_db, membership, haircut):
        for day in (1, 2, 3):
            temp_db.subscriptions.record_usage(
                membership.id, haircut.id, None, datetime(2025, 3, day)
            )
        assert temp_db.subscriptions.count_usage(
            membership.id, haircut.id, datetime(2025, 3, 2)
        ) == 2
        assert temp_db.subscriptions.clear_usage(membership.id) == 3


# ============================================================
# ReminderRepository Tests
# ============================================================
class TestReminderRepository:

    def test_configs(self, temp_db, shop):
        temp_db.reminders.create_config(shop.id, "minutes", 30)
        temp_db.reminders.create_config(shop.id, "days", 1, is_enabled=False)
        configs = temp_db.reminders.get_enabled_configs(shop.id)
        assert [(c.reminder_type, c.reminder_value) for c in configs] == [("minutes", 30)]

    def test_invalid_value(self, temp_db, shop):
        with pytest.raises(ValueError):
            temp_db.reminders.create_config(shop.id, "hours", 0)

    def test_sent_tracking(self, temp_db, shop, visit):
        config = temp_db.reminders.create_config(shop.id)
        assert not temp_db.reminders.was_sent(visit.id, config.id)
        temp_db.reminders.mark_sent(visit.id, config.id)
        assert temp_db.reminders.was_sent(visit.id, config.id)
