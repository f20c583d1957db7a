"""Shared fixtures for database and business tests.

Every test gets a fresh DatabaseManager bound to a temp-file SQLite
database, plus a small seeded barbershop: one professional working
Monday-Friday 09:00-18:00 with a 12:00-13:00 break, a 60 minute haircut
and a client. Time is pinned with a fixed clock so "past slot" checks
are deterministic.
"""
import os
import shutil
import tempfile
from datetime import date, datetime, time, timedelta

import pytest

from database import DatabaseManager
from business.availability import AvailabilityCalculator, DefaultOpenPolicy


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="db-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(database_url=f"sqlite:///{db_path}")
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def monday():
    """A Monday (2025-03-03)."""
    return date(2025, 3, 3)


@pytest.fixture
def now():
    """Sunday evening before `monday`, in barbershop local time."""
    return datetime(2025, 3, 2, 20, 0)


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def shop(temp_db):
    return temp_db.barbershops.create(
        "Barbearia Central", phone="1133334444", timezone="America/Sao_Paulo"
    )


@pytest.fixture
def professional(temp_db, shop):
    """Professional with 40% commission and a weekday schedule with lunch break."""
    pro = temp_db.professionals.create(shop.id, "João", commission_percentage=40)
    for dow in range(1, 6):
        temp_db.schedules.set_day(
            pro.id, dow, True, time(9, 0), time(18, 0),
            break_start=time(12, 0), break_end=time(13, 0)
        )
    for dow in (0, 6):
        temp_db.schedules.set_day(pro.id, dow, False, time(9, 0), time(18, 0))
    return pro


@pytest.fixture
def haircut(temp_db, shop):
    return temp_db.services.create(
        shop.id, "Corte", price=50.0, duration_minutes=60, category="scissors"
    )


@pytest.fixture
def beard(temp_db, shop):
    return temp_db.services.create(
        shop.id, "Barba", price=30.0, duration_minutes=30, category="razor"
    )


@pytest.fixture
def client(temp_db, shop):
    return temp_db.clients.get_or_create(
        shop.id, "Maria", phone="11988887777", email="maria@example.com"
    )


@pytest.fixture
def calculator(temp_db, clock):
    return AvailabilityCalculator(temp_db, policy=DefaultOpenPolicy(), clock=clock)


@pytest.fixture
def club_plan(temp_db, shop, haircut):
    """Published plan with two haircuts per month."""
    plan = temp_db.plans.create(shop.id, "Clube Corte", 89.90, is_published=True)
    temp_db.plans.add_item(plan.id, haircut.id, quantity_limit=2)
    return plan


@pytest.fixture
def membership(temp_db, shop, client, club_plan):
    return temp_db.subscriptions.create(
        shop.id, client.id, club_plan.id, status="active"
    )


@pytest.fixture
def visit(temp_db, shop, professional, haircut, client, monday):
    """Confirmed Monday 10:00 haircut for the client."""
    start = datetime.combine(monday, time(10))
    return temp_db.appointments.create(
        shop.id, professional.id, start, start + timedelta(minutes=60),
        status="confirmed", client_id=client.id, service_id=haircut.id,
        client_display_name=client.name, client_phone=client.phone
    )
