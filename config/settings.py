"""全局配置管理

所有用户可配置项均通过 .env 文件设置，运行时自动加载到此处。

使用方式：
    1. 手动创建 .env 文件（例如 DATABASE_URL=sqlite:///data/barbershop.db）
    2. 或直接通过环境变量覆盖
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据库 ==========
    database_url: str = "sqlite:///data/barbershop.db"

    # ========== 营业时间与时区 ==========
    # 门店默认时区，Barbershop.timezone 为空时使用
    business_timezone: str = "America/Sao_Paulo"
    # 员工未配置任何排班时的兜底策略：open（默认营业）/ closed（默认休息）
    schedule_fallback: str = "open"
    default_open_start: str = "09:00"
    default_open_end: str = "18:00"
    # 预约没有 end_time 时默认占用的时长（分钟）
    default_appointment_minutes: int = 60

    # ========== 外部通知 / 支付网关 ==========
    reminder_webhook_url: str = ""
    checkout_webhook_url: str = ""
    http_timeout: float = 30.0

    # ========== 提醒任务 ==========
    reminder_sweep_minutes: int = 5
    reminder_due_window_minutes: int = 10

    # ========== 日志 ==========
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()
