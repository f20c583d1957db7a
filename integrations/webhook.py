"""基于 HTTP JSON Webhook 的通知服务与支付网关

请求体为 JSON，响应非 2xx 或网络错误时抛出 UpstreamError。
测试时可以传入 httpx.MockTransport 替换真实网络。
"""
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from config.settings import settings
from business.errors import UpstreamError
from .base import (
    CheckoutRequest, CheckoutResult, Notifier, PaymentGateway, ReminderPayload
)


class _WebhookClient:
    """POST JSON 到固定地址的小客户端"""

    def __init__(self, url: str, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not url:
            raise ValueError("Webhook url is required")
        self.url = url
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.transport = transport

    async def post(self, payload: Dict[str, Any]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as http_client:
                response = await http_client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Webhook {self.url} unreachable: {e}")
            raise UpstreamError(f"Webhook {self.url} unreachable: {e}") from e

        if not response.is_success:
            logger.warning(
                f"Webhook {self.url} returned {response.status_code}: {response.text}"
            )
            raise UpstreamError(
                f"Webhook {self.url} returned {response.status_code}",
                status_code=response.status_code
            )
        return response


class WebhookNotifier(Notifier):
    """把预约提醒 POST 到通知 Webhook（例如 WhatsApp 自动化流程）"""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = _WebhookClient(
            url or settings.reminder_webhook_url, timeout, transport
        )

    async def send_reminder(self, payload: ReminderPayload) -> None:
        await self.client.post(payload.to_dict())


class WebhookPaymentGateway(PaymentGateway):
    """通过 Webhook 与支付网关交互

    创建支付：POST {"action": "subscribe", ...}，响应需包含 checkout_url。
    取消订阅：POST {"action": "cancel", "external_id": ...}。
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = _WebhookClient(
            url or settings.checkout_webhook_url, timeout, transport
        )

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        response = await self.client.post({"action": "subscribe", **request.to_dict()})
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                "Payment gateway returned a non-JSON response",
                status_code=response.status_code
            ) from e

        checkout_url = data.get("checkout_url") if isinstance(data, dict) else None
        if not checkout_url:
            logger.error(f"No checkout_url in payment gateway response: {data}")
            raise UpstreamError(
                "Payment gateway response has no checkout_url",
                status_code=response.status_code
            )
        return CheckoutResult(
            checkout_url=checkout_url, external_id=data.get("external_id")
        )

    async def cancel_subscription(self, external_id: str) -> None:
        await self.client.post({"action": "cancel", "external_id": external_id})
