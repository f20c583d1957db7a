"""Database initialization script tests."""
import os
import shutil
import tempfile

import pytest

from database import DatabaseManager
from scripts.init_db import init_database


@pytest.fixture
def db_url():
    temp_dir = tempfile.mkdtemp(prefix="init-db-")
    try:
        yield f"sqlite:///{os.path.join(temp_dir, 'init.db')}"
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


class TestInitDatabase:

    def test_creates_shop_and_seed_services(self, db_url):
        shop_id = init_database(db_url, "Barbearia Teste", phone="1144445555")

        db = DatabaseManager(db_url)
        try:
            names = {s["name"] for s in db.get_service_catalog(shop_id)}
            assert {"Corte", "Barba"} <= names
        finally:
            db.close()

    def test_is_idempotent(self, db_url):
        first = init_database(db_url, "Barbearia Teste")
        second = init_database(db_url, "Barbearia Teste")
        assert first == second

        db = DatabaseManager(db_url)
        try:
            assert len(db.get_service_catalog(first)) == 5
        finally:
            db.close()
