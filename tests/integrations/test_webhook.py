"""Webhook notifier and payment gateway tests (httpx.MockTransport, no network)."""
import json

import httpx
import pytest

from business.errors import UpstreamError
from integrations.base import CheckoutRequest, ReminderPayload
from integrations.webhook import WebhookNotifier, WebhookPaymentGateway

HOOK_URL = "https://hooks.example.com/barbershop"


def _transport(handler, seen):
    def _handle(request):
        seen.append(json.loads(request.content))
        return handler(request)
    return httpx.MockTransport(_handle)


def _payload():
    return ReminderPayload(
        barbershop_name="Barbearia Central",
        barbershop_phone="1133334444",
        client_name="Maria",
        client_phone="11988887777",
        service_name="Corte",
        appointment_time="03/03/2025, 10:00",
        reminder_type="hours",
        reminder_value=1,
    )


def _checkout_request():
    return CheckoutRequest(
        subscription_id=7, client_id=3, plan_id=2, amount="89.90",
        client_name="Maria", client_email="maria@example.com",
        description="Clube Corte",
    )


class TestWebhookNotifier:

    def test_url_is_required(self):
        with pytest.raises(ValueError):
            WebhookNotifier(url="")

    @pytest.mark.asyncio
    async def test_posts_payload_as_json(self):
        seen = []
        notifier = WebhookNotifier(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(200), seen)
        )
        await notifier.send_reminder(_payload())
        assert seen[0]["client_phone"] == "11988887777"
        assert seen[0]["appointment_time"] == "03/03/2025, 10:00"
        assert seen[0]["custom_message"] == ""

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        notifier = WebhookNotifier(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(500, text="oops"), [])
        )
        with pytest.raises(UpstreamError) as exc:
            await notifier.send_reminder(_payload())
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = WebhookNotifier(url=HOOK_URL, transport=httpx.MockTransport(_refuse))
        with pytest.raises(UpstreamError) as exc:
            await notifier.send_reminder(_payload())
        assert exc.value.status_code is None


class TestWebhookPaymentGateway:

    @pytest.mark.asyncio
    async def test_create_checkout(self):
        seen = []
        gateway = WebhookPaymentGateway(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(200, json={
                "checkout_url": "https://pay.example.com/abc",
                "external_id": "sub_abc",
            }), seen)
        )
        result = await gateway.create_checkout(_checkout_request())

        assert result.checkout_url == "https://pay.example.com/abc"
        assert result.external_id == "sub_abc"
        assert seen[0]["action"] == "subscribe"
        assert seen[0]["subscription_id"] == 7
        assert seen[0]["amount"] == "89.90"

    @pytest.mark.asyncio
    async def test_missing_checkout_url(self):
        gateway = WebhookPaymentGateway(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(200, json={"ok": True}), [])
        )
        with pytest.raises(UpstreamError):
            await gateway.create_checkout(_checkout_request())

    @pytest.mark.asyncio
    async def test_non_json_response(self):
        gateway = WebhookPaymentGateway(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(200, text="<html>"), [])
        )
        with pytest.raises(UpstreamError):
            await gateway.create_checkout(_checkout_request())

    @pytest.mark.asyncio
    async def test_cancel(self):
        seen = []
        gateway = WebhookPaymentGateway(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(204), seen)
        )
        await gateway.cancel_subscription("sub_abc")
        assert seen == [{"action": "cancel", "external_id": "sub_abc"}]

    @pytest.mark.asyncio
    async def test_cancel_failure(self):
        gateway = WebhookPaymentGateway(
            url=HOOK_URL,
            transport=_transport(lambda r: httpx.Response(404), [])
        )
        with pytest.raises(UpstreamError) as exc:
            await gateway.cancel_subscription("sub_abc")
        assert exc.value.status_code == 404
