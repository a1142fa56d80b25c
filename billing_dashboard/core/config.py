import os
from pathlib import Path

from dotenv import load_dotenv


class Settings:
    """Billing service configuration read from the environment (and ``.env``)."""

    def __init__(self) -> None:
        load_dotenv()
        database_path = os.getenv("DATABASE_PATH", "data/billing.db")
        self.database_path = Path(database_path) if database_path == ":memory:" else Path(database_path).resolve()
        self.stripe_secret_key = self._require("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = self._require("STRIPE_WEBHOOK_SECRET")
        self.jwt_secret = os.getenv("JWT_SECRET", "change-me")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.jwt_expiration_hours = self._hours("JWT_EXPIRATION_HOURS", 24 * 7)
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        origins = os.getenv("CORS_ALLOW_ORIGINS", "")
        self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()] or ["*"]

    @staticmethod
    def _require(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"{key} must be set to run the billing service")
        return value

    @staticmethod
    def _hours(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None:
            return default
        if not raw.strip().isdigit() or int(raw) <= 0:
            raise RuntimeError(f"{key} must be a positive number of hours, got {raw!r}")
        return int(raw)
