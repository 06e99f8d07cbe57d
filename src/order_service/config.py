import os
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATABASE_URL: str          = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./orders.db")
    DATABASE_ECHO: bool        = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    PRODUCT_SERVICE_URL: str   = os.getenv("PRODUCT_SERVICE_URL", "http://product-service:7002/graphql")
    LOGISTICS_SERVICE_URL: str = os.getenv("LOGISTICS_SERVICE_URL", "http://goship_api_gateway:4000/graphql")
    PAYMENT_SERVICE_URL: str   = os.getenv("PAYMENT_SERVICE_URL", "http://api-gateway:8000/graphql")
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

    ORIGIN_CITY_ID: str        = os.getenv("ORIGIN_CITY_ID", "1")
    PICKUP_ADDRESS: str        = os.getenv("PICKUP_ADDRESS", "Gudang Pusat Jakarta")
    PAYMENT_WALLET_ID: str     = os.getenv("PAYMENT_WALLET_ID", "wallet-user-1")

    RABBIT_ENABLED: bool       = os.getenv("RABBIT_ENABLED", "false").lower() == "true"
    RABBIT_USER: str           = os.getenv("RABBIT_USER", "guest")
    RABBIT_PASSWORD: str       = os.getenv("RABBIT_PASSWORD", "guest")
    RABBIT_HOST: str           = os.getenv("RABBIT_HOST", "localhost")
    RABBIT_PORT: int           = int(os.getenv("RABBIT_PORT", "5672"))
    PAYMENT_STATUS_QUEUE: str  = os.getenv("PAYMENT_STATUS_QUEUE", "payment_status")
    PAYMENT_STATUS_PREFETCH: int = int(os.getenv("PAYMENT_STATUS_PREFETCH", "10"))

    LOG_LEVEL: str             = os.getenv("LOG_LEVEL", "INFO")

    @property
    def rabbit_url(self) -> str:
        return f"amqp://{self.RABBIT_USER}:{self.RABBIT_PASSWORD}@{self.RABBIT_HOST}:{self.RABBIT_PORT}/"

settings = Settings()
