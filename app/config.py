from typing import Optional
from pydantic_settings import BaseSettings
from urllib.parse import quote_plus

class Settings(BaseSettings):
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "learnhub"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # full URL wins over the postgres_* parts (sqlite in tests)
    DATABASE_URL: Optional[str] = None

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    ENV: str = "local"
    LOG_LEVEL: str = "INFO"
    APP_URL: str = "http://localhost:3000"
    DEFAULT_CURRENCY: str = "usd"

    # PayPal
    PAYPAL_ENV: str = "sandbox"
    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_CLIENT_SECRET: Optional[str] = None
    PAYPAL_WEBHOOK_ID: Optional[str] = None

    # Email (Brevo)
    BREVO_API_KEY: str = ""
    MAIL_FROM: str = "no-reply@learnhub.local"
    STORE_NAME: str = "LearnHub"
    ADMIN_EMAILS: list[str] = []

    # In-process certificate generation lock
    CERTIFICATE_LOCK_TTL_SECONDS: int = 5 * 60
    CERTIFICATE_LOCK_RELEASE_SECONDS: float = 1.0

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def paypal_base_url(self):
        if self.PAYPAL_ENV == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
