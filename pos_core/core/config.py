from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    app_name: str = Field(default="ERP POS", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    database_url: str = Field(default="sqlite:///./pos.db", alias="DATABASE_URL")
    currency: str = Field(default="IDR", alias="CURRENCY")
    # PPN 11%; some flows in the field still run at 10%, so carts accept an override
    tax_rate: Decimal = Field(default=Decimal("0.11"), alias="TAX_RATE")
    company_name: str = Field(default="ERPINDO COMPANY", alias="COMPANY_NAME")
    company_address: str = Field(default="Jl. Bisnis No. 123, Jakarta", alias="COMPANY_ADDRESS")
    company_phone: str = Field(default="+62 21 1234 5678", alias="COMPANY_PHONE")
    cash_close_tolerance: Decimal = Field(default=Decimal("0"), alias="CASH_CLOSE_TOLERANCE")
    require_payment_reference: bool = Field(default=True, alias="REQUIRE_PAYMENT_REFERENCE")
    order_prefix: str = Field(default="POS", alias="ORDER_PREFIX")


settings = Settings()
