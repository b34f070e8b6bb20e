from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Shop Vouchers"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/vouchers.db"

    # Bearer tokens are issued by the auth service; we only verify them
    JWT_SECRET: str = "change-me-to-a-32-byte-or-longer-secret"
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Upper bound for admin listings
    VOUCHER_LIST_MAX_LIMIT: int = 1000

    @property
    def is_sqlite(self) -> bool:
        return self.APP_DATABASE_DSN.startswith("sqlite")


settings = Settings()
