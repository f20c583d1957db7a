"""DatabaseManager facade tests."""
import pytest

from database.models import Barbershop


class TestDatabaseManager:

    def test_transaction_rolls_back_on_error(self, temp_db):
        with pytest.raises(RuntimeError):
            with temp_db.transaction() as session:
                temp_db.barbershops.create("Rollback", session=session)
                raise RuntimeError("boom")
        assert temp_db.barbershops.get_all(Barbershop, {"name": "Rollback"}) == []

    def test_transaction_commits(self, temp_db):
        with temp_db.transaction() as session:
            temp_db.barbershops.create("Commit", session=session)
        assert len(temp_db.barbershops.get_all(Barbershop, {"name": "Commit"})) == 1

    def test_add_professional_with_default_week(self, temp_db, shop):
        pro = temp_db.add_professional(shop.id, "Novo", commission_percentage=35)
        entries = temp_db.schedules.get_weekly_schedule(pro.id)
        assert len(entries) == 7
        assert [e.day_of_week for e in entries if e.is_working] == [1, 2, 3, 4, 5]

    def test_add_professional_without_schedule(self, temp_db, shop):
        pro = temp_db.add_professional(shop.id, "Freelancer", with_default_schedule=False)
        assert temp_db.schedules.get_weekly_schedule(pro.id) == []

    def test_seed_services_is_idempotent(self, temp_db, shop):
        created = temp_db.seed_services(shop.id)
        assert created > 0
        assert temp_db.seed_services(shop.id) == 0

    def test_service_catalog(self, temp_db, shop, haircut):
        catalog = temp_db.get_service_catalog(shop.id)
        assert catalog == [{
            "id": haircut.id,
            "name": "Corte",
            "price": 50.0,
            "duration_minutes": 60,
            "is_package": False,
            "category": "scissors",
        }]

    def test_professional_list(self, temp_db, shop, professional):
        listing = temp_db.get_professional_list(shop.id)
        assert listing[0]["name"] == "João"
        assert listing[0]["commission_percentage"] == 40.0

    def test_day_agenda_accepts_string_date(self, temp_db, shop, visit, monday):
        agenda = temp_db.get_day_agenda(shop.id, monday.isoformat())
        assert [a["id"] for a in agenda] == [visit.id]
        assert agenda[0]["status"] == "confirmed"

    def test_day_agenda_rejects_bad_date(self, temp_db, shop):
        with pytest.raises(ValueError, match="Invalid date format"):
            temp_db.get_day_agenda(shop.id, "03/03/2025")

    def test_client_membership(self, temp_db, shop, client, membership, haircut):
        info = temp_db.get_client_membership(client.id, shop.id)
        assert info["subscription_id"] == membership.id
        assert info["plan_name"] == "Clube Corte"
        assert info["items"] == [{"service_id": haircut.id, "quantity_limit": 2}]

    def test_client_without_membership(self, temp_db, shop, client):
        assert temp_db.get_client_membership(client.id, shop.id) is None

    def test_execute_raw_sql(self, temp_db, shop):
        result = temp_db.execute_raw_sql(
            "UPDATE barbershops SET phone = :phone WHERE id = :id",
            {"phone": "1100000000", "id": shop.id}
        )
        assert result.rowcount == 1
        assert temp_db.barbershops.get_by_id(Barbershop, shop.id).phone == "1100000000"
