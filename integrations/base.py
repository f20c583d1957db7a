"""外部协作方抽象层

定义通知服务、支付网关的接口和它们交换的数据结构。
实现类出错时抛出 business.errors.UpstreamError。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass
class ReminderPayload:
    """预约提醒消息

    Attributes:
        barbershop_name: 门店名称
        barbershop_phone: 门店电话
        client_name: 顾客名称
        client_phone: 顾客电话（消息发送目标）
        service_name: 服务名称
        appointment_time: 预约时间（已按门店本地时间格式化）
        reminder_type: 提前量单位（minutes / hours / days）
        reminder_value: 提前量
        custom_message: 门店自定义文案
    """
    barbershop_name: str
    barbershop_phone: str
    client_name: str
    client_phone: str
    service_name: str
    appointment_time: str
    reminder_type: str
    reminder_value: int
    custom_message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CheckoutRequest:
    """在线购买会员的支付请求

    Attributes:
        subscription_id: 本地待支付订阅ID（网关回调时带回）
        client_id: 顾客ID
        plan_id: 方案ID
        amount: 金额
        client_name: 顾客名称
        client_email: 顾客邮箱
        description: 账单描述
    """
    subscription_id: int
    client_id: int
    plan_id: int
    amount: str
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CheckoutResult:
    """支付网关返回的托管支付页面

    Attributes:
        checkout_url: 顾客跳转支付的地址
        external_id: 网关侧的订阅ID
    """
    checkout_url: str
    external_id: Optional[str] = None


class Notifier(ABC):
    """通知服务抽象基类"""

    @abstractmethod
    async def send_reminder(self, payload: ReminderPayload) -> None:
        """发送预约提醒

        Raises:
            UpstreamError: 通知服务不可用或返回非 2xx。
        """
        pass


class PaymentGateway(ABC):
    """支付网关抽象基类

    支付结果不在这里同步返回，而是之后由网关回调事件通知
    （见 business.subscriptions.ClubService.apply_gateway_event）。
    """

    @abstractmethod
    async def create_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """创建托管支付页面

        Raises:
            UpstreamError: 网关不可用、返回非 2xx 或响应缺少支付地址。
        """
        pass

    @abstractmethod
    async def cancel_subscription(self, external_id: str) -> None:
        """在网关侧取消订阅

        Raises:
            UpstreamError: 网关不可用或返回非 2xx。
        """
        pass
