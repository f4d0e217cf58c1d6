from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Catalog / order service
    CATALOG_API_URL: str = 'http://catalog:3000/api/pos'
    CATALOG_API_TIMEOUT: int = 10
    CATALOG_API_TOKEN: Optional[str] = None

    # Pricing
    DEFAULT_TAX_RATE: Decimal = Decimal('19')
    PAYMENT_TOLERANCE: Decimal = Decimal('0.01')

    # Terminal search behaviour
    CUSTOMER_SEARCH_MIN_LENGTH: int = 3
    BARCODE_MIN_LENGTH: int = 8
    PRODUCT_SEARCH_LIMIT: int = 10

    # Discount codes: "remote" delegates validation to the order service,
    # "local" fetches the code and evaluates the rules in-process
    POS_DISCOUNT_CODE_MODE: str = 'remote'
    ORDER_SOURCE: str = 'IN_STORE'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def catalog_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.CATALOG_API_TOKEN:
            headers["Authorization"] = f"Bearer {self.CATALOG_API_TOKEN}"
        return headers

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("POS_DISCOUNT_CODE_MODE", mode="before")
    @classmethod
    def parse_discount_code_mode(cls, v):
        mode = str(v).lower().strip('"').strip("'")
        if mode not in ("remote", "local"):
            raise ValueError("POS_DISCOUNT_CODE_MODE must be 'remote' or 'local'")
        return mode

    @field_validator("CATALOG_API_URL", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

settings = Settings()
