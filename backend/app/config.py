"""
应用配置
从环境变量 / .env 读取配置
"""
from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Folio Night Audit"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./folio.db"

    # JWT 配置
    SECRET_KEY: str = "folio-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # 酒店（单物业）
    PROPERTY_NAME: str = "Default Hotel"

    # 账户（Folio）默认值
    DEFAULT_CREDIT_LIMIT: Decimal = Decimal("5000")
    DEFAULT_PAYMENT_METHOD: str = "cash"

    # 夜审配置
    NIGHT_AUDIT_OPERATOR: str = "Night Audit"
    CHILD_PRICE_FACTOR: Decimal = Decimal("0.5")        # 儿童按成人零售价的比例计价
    CREDIT_INACTIVE_DAYS: int = 30                      # 贷方余额账户不活跃天数阈值
    WEEKEND_SURCHARGE_PERCENT: Decimal = Decimal("10")  # 周末房费加价（百分比）

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# 全局设置实例
settings = Settings()
