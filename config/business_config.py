"""
业务配置接口 - 支持可替换的业务配置

新门店可以实现自己的业务配置，替换默认配置。
"""
from abc import ABC, abstractmethod
from datetime import time
from typing import List, Dict, Any


class BusinessConfig(ABC):
    """业务配置抽象基类"""

    @abstractmethod
    def get_service_types(self) -> List[Dict[str, Any]]:
        """获取种子服务列表"""
        pass

    @abstractmethod
    def get_payment_methods(self) -> List[str]:
        """获取前台结账可选的支付方式"""
        pass

    @abstractmethod
    def get_membership_payment_method(self) -> str:
        """获取会员抵扣使用的支付方式名称"""
        pass

    @abstractmethod
    def get_manual_subscription_payment_method(self) -> str:
        """获取员工手动开通会员时记录的支付方式"""
        pass

    @abstractmethod
    def get_default_week(self) -> List[Dict[str, Any]]:
        """获取新员工的默认周排班（day_of_week: 0=周日 ... 6=周六）"""
        pass


class BarbershopConfig(BusinessConfig):
    """理发店（巴西）业务配置"""

    def get_service_types(self) -> List[Dict[str, Any]]:
        return [
            {"name": "Corte", "price": 45.0, "duration_minutes": 30, "category": "scissors"},
            {"name": "Barba", "price": 35.0, "duration_minutes": 30, "category": "razor"},
            {"name": "Corte + Barba", "price": 70.0, "duration_minutes": 60, "category": "scissors"},
            {"name": "Sobrancelha", "price": 15.0, "duration_minutes": 15, "category": "brush"},
            {"name": "Pigmentação", "price": 50.0, "duration_minutes": 45, "category": "color"},
        ]

    def get_payment_methods(self) -> List[str]:
        return ["Dinheiro", "Pix Manual", "Cartão (Maquininha)", "Saldo VIP/Clube"]

    def get_membership_payment_method(self) -> str:
        return "Saldo VIP/Clube"

    def get_manual_subscription_payment_method(self) -> str:
        return "Dinheiro"

    def get_default_week(self) -> List[Dict[str, Any]]:
        # 周一至周五上班，周末休息
        return [
            {
                "day_of_week": day,
                "start_time": time(8, 0),
                "end_time": time(18, 0),
                "is_working": 1 <= day <= 5,
            }
            for day in range(7)
        ]


# 全局业务配置实例（可以在 app.py 中替换）
business_config: BusinessConfig = BarbershopConfig()
