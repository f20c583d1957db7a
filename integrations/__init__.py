"""外部协作方 - 通知服务与支付网关

核心业务只依赖 base.py 中的抽象接口：

- Notifier: 发送预约提醒（失败只记录日志，不在核心流程内同步重试）
- PaymentGateway: 创建在线支付链接、取消网关订阅

webhook.py 提供基于 HTTP JSON Webhook 的实现。
"""
from .base import (
    Notifier, PaymentGateway, ReminderPayload, CheckoutRequest, CheckoutResult
)
from .webhook import WebhookNotifier, WebhookPaymentGateway

__all__ = [
    "Notifier",
    "PaymentGateway",
    "ReminderPayload",
    "CheckoutRequest",
    "CheckoutResult",
    "WebhookNotifier",
    "WebhookPaymentGateway",
]
