# marketplace/infrastructure/config.py

from dataclasses import dataclass
from functools import lru_cache
import os

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    admin_email: str
    store_timeout_seconds: float
    db_connect_max_retries: int
    db_connect_retry_delay: float
    log_level: str
    sales_notification_sender: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        admin_email=os.getenv("ADMIN_EMAIL", "").strip().lower(),
        store_timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "5")),
        db_connect_max_retries=int(os.getenv("DB_CONNECT_MAX_RETRIES", "30")),
        db_connect_retry_delay=float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        sales_notification_sender=os.getenv("SALES_NOTIFICATION_SENDER", ""),
    )
