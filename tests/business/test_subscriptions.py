"""Membership club tests: storefront, online/manual subscription, renewal, gateway events."""
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from business.clock import add_month, business_now
from business.errors import (
    ConflictError, NotFoundError, SubscriptionAlreadyActiveError, UpstreamError,
    ValidationError
)
from business.subscriptions import RENEWAL_DAYS, ClubService
from database.models import ClientTransaction, Subscription, UsageRecord
from integrations.base import CheckoutResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """Records calls; optionally fails."""

    def __init__(self, fail=False):
        self.fail = fail
        self.checkouts = []
        self.cancelled = []

    async def create_checkout(self, request):
        if self.fail:
            raise UpstreamError("gateway down", status_code=503)
        self.checkouts.append(request)
        return CheckoutResult(
            checkout_url=f"https://pay.example.com/{request.subscription_id}",
            external_id=f"sub_{request.subscription_id}",
        )

    async def cancel_subscription(self, external_id):
        if self.fail:
            raise UpstreamError("gateway down", status_code=503)
        self.cancelled.append(external_id)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def club(temp_db, gateway, clock):
    return ClubService(temp_db, gateway=gateway, clock=clock)


@pytest.fixture
def draft_plan(temp_db, shop, beard):
    plan = temp_db.plans.create(shop.id, "Clube Barba", 49.90)
    temp_db.plans.add_item(plan.id, beard.id, quantity_limit=4)
    return plan


def _subscriptions(temp_db, client_id):
    return temp_db.subscriptions.get_all(Subscription, filters={"client_id": client_id})


class TestStorefront:

    def test_drafts_hidden_from_clients(self, club, shop, club_plan, draft_plan):
        plans = club.storefront(shop.id)
        assert [p["id"] for p in plans] == [club_plan.id]
        assert plans[0]["purchasable"] is True
        assert plans[0]["price"] == Decimal("89.90")
        assert plans[0]["items"][0]["quantity_limit"] == 2

    def test_admin_sees_drafts(self, club, shop, club_plan, draft_plan):
        plans = {p["id"]: p for p in club.storefront(shop.id, include_drafts=True)}
        assert plans[draft_plan.id]["is_draft"] is True
        assert plans[draft_plan.id]["purchasable"] is False


class TestSubscribeOnline:

    @pytest.mark.asyncio
    async def test_checkout_creates_pending_subscription(self, temp_db, club, gateway,
                                                         shop, client, club_plan):
        result = await club.subscribe_online(shop.id, client.id, club_plan.id)

        subs = _subscriptions(temp_db, client.id)
        assert len(subs) == 1
        assert subs[0].status == "pending"
        assert subs[0].payment_origin == "gateway"
        assert subs[0].external_id == result.external_id
        assert gateway.checkouts[0].amount == "89.90"
        assert gateway.checkouts[0].client_email == "maria@example.com"
        assert result.checkout_url.endswith(str(subs[0].id))

    @pytest.mark.asyncio
    async def test_gateway_failure_removes_pending(self, temp_db, shop, client,
                                                   club_plan, clock):
        club = ClubService(temp_db, gateway=FakeGateway(fail=True), clock=clock)
        with pytest.raises(UpstreamError):
            await club.subscribe_online(shop.id, client.id, club_plan.id)
        assert _subscriptions(temp_db, client.id) == []

    @pytest.mark.asyncio
    async def test_draft_cannot_be_bought(self, club, shop, client, draft_plan):
        with pytest.raises(ValidationError):
            await club.subscribe_online(shop.id, client.id, draft_plan.id)

    @pytest.mark.asyncio
    async def test_active_member_cannot_buy_again(self, club, shop, client,
                                                  club_plan, membership):
        with pytest.raises(SubscriptionAlreadyActiveError):
            await club.subscribe_online(shop.id, client.id, club_plan.id)

    @pytest.mark.asyncio
    async def test_without_gateway(self, temp_db, shop, client, club_plan):
        with pytest.raises(ValidationError):
            await ClubService(temp_db).subscribe_online(shop.id, client.id, club_plan.id)


class TestSubscribeManually:

    def test_new_manual_subscription(self, temp_db, club, shop, client, club_plan):
        sub = club.subscribe_manually(shop.id, client.id, club_plan.id)
        assert sub.status == "active"
        assert sub.payment_origin == "manual"
        assert sub.next_due_date == date(2025, 4, 2)

        transactions = temp_db.transactions.get_all(
            ClientTransaction, filters={"subscription_id": sub.id}
        )
        assert len(transactions) == 1
        assert transactions[0].amount == Decimal("89.90")
        assert transactions[0].payment_method == "Dinheiro"

    def test_reactivates_cancelled_and_clears_usage(self, temp_db, club, shop, client,
                                                    club_plan, membership, haircut):
        temp_db.subscriptions.record_usage(
            membership.id, haircut.id, None, datetime(2025, 3, 1, 10, 0)
        )
        temp_db.subscriptions.update_status(membership.id, "canceled")

        sub = club.subscribe_manually(shop.id, client.id, club_plan.id)
        assert sub.id == membership.id
        assert sub.status == "active"
        assert temp_db.subscriptions.get_all(
            UsageRecord, filters={"subscription_id": sub.id}
        ) == []

    def test_one_active_subscription_per_client(self, club, shop, client,
                                                club_plan, membership):
        with pytest.raises(SubscriptionAlreadyActiveError):
            club.subscribe_manually(shop.id, client.id, club_plan.id)

    def test_unknown_client(self, club, shop, club_plan):
        with pytest.raises(NotFoundError):
            club.subscribe_manually(shop.id, 9999, club_plan.id)

    def test_overdue_subscription_must_be_renewed(self, temp_db, club, shop, client,
                                                  club_plan, membership):
        temp_db.subscriptions.update_status(membership.id, "overdue")
        with pytest.raises(ConflictError):
            club.subscribe_manually(shop.id, client.id, club_plan.id)
        assert len(_subscriptions(temp_db, client.id)) == 1

    def test_due_date_uses_shop_timezone(self, temp_db):
        tokyo = temp_db.barbershops.create("Barbearia Tóquio", timezone="Asia/Tokyo")
        tokyo_client = temp_db.clients.get_or_create(tokyo.id, "Kenji")
        plan = temp_db.plans.create(tokyo.id, "Clube", 50, is_published=True)

        before = business_now("Asia/Tokyo").date()
        sub = ClubService(temp_db).subscribe_manually(tokyo.id, tokyo_client.id, plan.id)
        after = business_now("Asia/Tokyo").date()

        assert sub.next_due_date in {add_month(before), add_month(after)}


class TestRenew:

    def test_overdue_becomes_active(self, temp_db, club, shop, client,
                                    club_plan, membership):
        temp_db.subscriptions.update_status(
            membership.id, "overdue", next_due_date=date(2025, 3, 1)
        )

        sub = club.renew(membership.id)

        assert sub.status == "active"
        assert sub.next_due_date == date(2025, 3, 31)
        transactions = temp_db.transactions.get_all(
            ClientTransaction, filters={"subscription_id": membership.id}
        )
        assert len(transactions) == 1
        assert transactions[0].amount == Decimal("89.90")
        assert transactions[0].payment_method == "Dinheiro"
        assert transactions[0].status == "paid"
        assert transactions[0].created_at == datetime(2025, 3, 2, 20, 0)

    def test_extends_from_current_due_date(self, temp_db, club, membership):
        temp_db.subscriptions.update_status(
            membership.id, "active", next_due_date=date(2025, 12, 20)
        )
        sub = club.renew(membership.id)
        assert sub.next_due_date == date(2025, 12, 20) + timedelta(days=RENEWAL_DAYS)
        assert sub.next_due_date == date(2026, 1, 19)

    def test_without_due_date_counts_from_today(self, club, membership):
        assert club.renew(membership.id).next_due_date == date(2025, 4, 1)

    def test_canceled_cannot_be_renewed(self, temp_db, club, membership):
        temp_db.subscriptions.update_status(membership.id, "canceled")
        with pytest.raises(ValidationError):
            club.renew(membership.id)
        assert temp_db.transactions.get_all(ClientTransaction) == []

    def test_other_active_subscription_blocks_renewal(self, temp_db, club, shop,
                                                      client, club_plan, membership):
        temp_db.subscriptions.update_status(membership.id, "overdue")
        temp_db.subscriptions.create(shop.id, client.id, club_plan.id, status="active")
        with pytest.raises(SubscriptionAlreadyActiveError):
            club.renew(membership.id)
        assert temp_db.subscriptions.get_by_id(Subscription, membership.id).status \
            == "overdue"

    def test_unknown_subscription(self, club):
        with pytest.raises(NotFoundError):
            club.renew(9999)


class TestCancel:

    @pytest.mark.asyncio
    async def test_manual_subscription(self, club, gateway, membership):
        sub = await club.cancel(membership.id)
        assert sub.status == "canceled"
        assert gateway.cancelled == []

    @pytest.mark.asyncio
    async def test_gateway_subscription_notifies_gateway(self, temp_db, club, gateway,
                                                         shop, client, club_plan):
        await club.subscribe_online(shop.id, client.id, club_plan.id)
        sub = _subscriptions(temp_db, client.id)[0]

        await club.cancel(sub.id)
        assert gateway.cancelled == [sub.external_id]

    @pytest.mark.asyncio
    async def test_gateway_failure_keeps_status(self, temp_db, shop, client,
                                                club_plan, clock):
        sub = temp_db.subscriptions.create(
            shop.id, client.id, club_plan.id, status="active",
            payment_origin="gateway", external_id="sub_ext"
        )
        club = ClubService(temp_db, gateway=FakeGateway(fail=True), clock=clock)
        with pytest.raises(UpstreamError):
            await club.cancel(sub.id)
        assert temp_db.subscriptions.get_by_id(Subscription, sub.id).status == "active"

    @pytest.mark.asyncio
    async def test_unknown_subscription(self, club):
        with pytest.raises(NotFoundError):
            await club.cancel(9999)


class TestGatewayEvents:

    @pytest.mark.asyncio
    async def test_payment_confirmed_activates(self, temp_db, club, shop, client,
                                               club_plan):
        result = await club.subscribe_online(shop.id, client.id, club_plan.id)

        sub = club.apply_gateway_event(
            "PAYMENT_CONFIRMED", result.external_id, next_due_date=date(2025, 4, 10)
        )
        assert sub.status == "active"
        assert sub.next_due_date == date(2025, 4, 10)

    def test_overdue_and_deleted(self, temp_db, club, shop, client, club_plan):
        temp_db.subscriptions.create(
            shop.id, client.id, club_plan.id, status="active",
            payment_origin="gateway", external_id="sub_ext"
        )
        assert club.apply_gateway_event("PAYMENT_OVERDUE", "sub_ext").status == "overdue"
        assert club.apply_gateway_event("SUBSCRIPTION_DELETED", "sub_ext").status == "canceled"

    def test_unknown_event_or_subscription(self, club):
        assert club.apply_gateway_event("PAYMENT_REFUNDED", "sub_ext") is None
        assert club.apply_gateway_event("PAYMENT_CONFIRMED", "missing") is None
