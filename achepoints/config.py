import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo


def is_enabled(flag: str, default: bool = False) -> bool:
    return os.getenv(flag, str(default)).lower() == "true"


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    timezone: str = "America/Sao_Paulo"
    seed_demo_data: bool = True
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)


def load_settings() -> Settings:
    origins = os.getenv("ACHEPOINTS_CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("ACHEPOINTS_DATABASE_URL") or None,
        timezone=os.getenv("ACHEPOINTS_TIMEZONE", "America/Sao_Paulo"),
        seed_demo_data=is_enabled("ACHEPOINTS_SEED_DEMO_DATA", True),
        log_level=os.getenv("ACHEPOINTS_LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_clock(settings: Settings) -> Callable[[], datetime]:
    zone = ZoneInfo(settings.timezone)
    return lambda: datetime.now(zone)


def build_storage(settings: Settings):
    if not settings.database_url:
        from .storage import InMemoryStorage
        return InMemoryStorage(seed=settings.seed_demo_data)

    from .sql_storage import SqlStorage
    storage = SqlStorage.from_url(settings.database_url)
    storage.create_schema()
    if settings.seed_demo_data:
        from .seed import seed_demo_data
        seed_demo_data(storage)
    return storage
