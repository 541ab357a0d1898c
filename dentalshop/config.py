# dentalshop/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(env_path), extra="ignore")

    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./dentalshop.db"

    # PayMongo hosted checkout
    PAYMONGO_API_URL: str = "https://api.paymongo.com/v1"
    PAYMONGO_SECRET_KEY: str = ""
    PAYMONGO_WEBHOOK_SECRET: str = ""
    PAYMONGO_TIMEOUT_SECONDS: float = 15.0
    CURRENCY: str = "PHP"
    PAYMENT_METHOD_TYPES: List[str] = ["gcash", "card"]

    # Public storefront URL, used for checkout redirects and product images
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    LOW_STOCK_THRESHOLD: int = 10
    LOG_LEVEL: str = "INFO"

settings = Settings()
