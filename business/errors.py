"""业务异常定义

所有业务层异常都继承自 BarbershopError，调用方可按类别处理：

- ValidationError: 输入不合法（缺字段、时长/金额非正等），直接反馈给调用方，不重试
- NotFoundError: 引用的记录不存在
- ConflictError: 时段已被占用 / 预约已结算 / 已有生效会员，调用方需刷新数据后再试
- CreditExceededError: 本周期会员次数已用完，调用方应回退到正常收费
- SettlementError: 结算整体失败，没有任何数据被持久化
- PartialSettlementError: 结算核心步骤已提交，但后续步骤失败，需要人工核对
- UpstreamError: 支付网关或通知服务不可用 / 返回非 2xx
"""
from typing import Any, List, Optional


class BarbershopError(Exception):
    """业务异常基类"""


class ValidationError(BarbershopError, ValueError):
    """输入校验失败"""


class NotFoundError(BarbershopError):
    """记录不存在"""


class ConflictError(BarbershopError):
    """与当前数据状态冲突"""


class SlotUnavailableError(ConflictError):
    """预约时段已不可用

    Attributes:
        reason: 不可用原因（SlotReason 的取值）。
    """

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason


class AlreadySettledError(ConflictError):
    """预约已经结算过"""


class SubscriptionAlreadyActiveError(ConflictError):
    """顾客在该门店已有生效中的会员订阅"""


class CreditExceededError(BarbershopError):
    """会员次数已用完"""


class SettlementError(BarbershopError):
    """结算失败（整体回滚）"""


class PartialSettlementError(BarbershopError):
    """结算部分失败。

    交易记录与预约状态已提交，但用量记录或提成记录写入失败。

    Attributes:
        result: 已提交部分的结算结果（SettlementResult）。
        failed_steps: 失败的步骤名称列表（"usage" / "commission"）。
    """

    def __init__(self, message: str, result: Any,
                 failed_steps: List[str]) -> None:
        super().__init__(message)
        self.result = result
        self.failed_steps = failed_steps


class UpstreamError(BarbershopError):
    """外部服务调用失败

    Attributes:
        status_code: HTTP 状态码，网络层失败时为 None。
    """

    def __init__(self, message: str,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
