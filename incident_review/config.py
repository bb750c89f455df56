"""
Settings for the incident review bot.

Values come from a YAML file, with secrets overridable from the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from incident_review.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DATABASE_URL,
    DEFAULT_KEYWORDS,
    RSS_POLL_INTERVAL_SECONDS,
    SWEEP_INTERVAL_SECONDS,
)
from util.logging_util import setup_logger

logger = setup_logger(__name__)

CONFIG_PATH_ENV_VAR = "INCIDENT_REVIEW_CONFIG"


@dataclass
class FeedConfig:
    """Configuration for a single RSS feed."""
    name: str
    url: str


@dataclass
class TelegramSettings:
    bot_token: Optional[str] = None
    # Expected chat or user id. None means every chat may review.
    chat_id: Optional[str] = None
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = None
    listen: str = "0.0.0.0"
    port: int = 8080
    url_path: str = "telegram/webhook"


@dataclass
class RssSettings:
    feeds: List[FeedConfig] = field(default_factory=list)
    keywords: List[str] = field(default_factory=lambda: list(DEFAULT_KEYWORDS))
    poll_interval_seconds: float = RSS_POLL_INTERVAL_SECONDS


@dataclass
class PersistenceSettings:
    database_url: str = DEFAULT_DATABASE_URL
    poll_interval_seconds: float = SWEEP_INTERVAL_SECONDS
    default_photo_url: Optional[str] = None


@dataclass
class Settings:
    telegram: TelegramSettings = field(default_factory=TelegramSettings)
    rss: RssSettings = field(default_factory=RssSettings)
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    log_level: str = "INFO"


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _positive_float(value, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} {value!r}, using {default}")
        return default
    if number <= 0:
        logger.warning(f"Non-positive {name} {value!r}, using {default}")
        return default
    return number


def _load_feeds(data: dict) -> List[FeedConfig]:
    feeds = []
    for feed_data in data.get("feeds") or []:
        if isinstance(feed_data, str):
            feeds.append(FeedConfig(name=feed_data, url=feed_data))
            continue
        url = _optional_str(feed_data.get("url"))
        if url is None:
            logger.warning(f"Skipping feed without url: {feed_data}")
            continue
        feeds.append(FeedConfig(name=feed_data.get("name") or url, url=url))
    return feeds


def _load_yaml(config_path: Path) -> dict:
    if not config_path.exists():
        logger.warning(f"Config not found at {config_path}, using defaults")
        return {}

    with open(config_path, "r") as f:
        data = yaml.safe_load(f)

    return data or {}


def load_settings(config_path: Optional[Path] = None, environ=None) -> Settings:
    """Load settings from YAML, then apply environment overrides.

    Args:
        config_path: YAML file to read. Defaults to $INCIDENT_REVIEW_CONFIG or the bundled settings.yaml.
        environ: Mapping to read overrides from. Defaults to os.environ.
    """
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = Path(environ.get(CONFIG_PATH_ENV_VAR) or DEFAULT_CONFIG_PATH)

    data = _load_yaml(Path(config_path))
    telegram_data = data.get("telegram") or {}
    rss_data = data.get("rss") or {}
    persistence_data = data.get("persistence") or {}

    telegram = TelegramSettings(
        bot_token=_optional_str(environ.get("TELEGRAM_BOT_TOKEN") or telegram_data.get("bot_token")),
        chat_id=_optional_str(environ.get("TELEGRAM_CHAT_ID") or telegram_data.get("chat_id")),
        webhook_url=_optional_str(environ.get("TELEGRAM_WEBHOOK_URL") or telegram_data.get("webhook_url")),
        webhook_secret=_optional_str(environ.get("TELEGRAM_WEBHOOK_SECRET") or telegram_data.get("webhook_secret")),
        listen=telegram_data.get("listen", TelegramSettings.listen),
        port=int(telegram_data.get("port", TelegramSettings.port)),
        url_path=str(telegram_data.get("url_path", TelegramSettings.url_path)).strip("/"),
    )

    keywords = rss_data.get("keywords")
    if keywords is None:
        keywords = list(DEFAULT_KEYWORDS)
    rss = RssSettings(
        feeds=_load_feeds(rss_data),
        keywords=[str(k).strip() for k in keywords if str(k).strip()],
        poll_interval_seconds=_positive_float(
            rss_data.get("poll_interval_seconds"), RSS_POLL_INTERVAL_SECONDS, "rss poll interval"
        ),
    )

    persistence = PersistenceSettings(
        database_url=_optional_str(environ.get("DATABASE_URL") or persistence_data.get("database_url"))
        or DEFAULT_DATABASE_URL,
        poll_interval_seconds=_positive_float(
            persistence_data.get("poll_interval_seconds"), SWEEP_INTERVAL_SECONDS, "sweep interval"
        ),
        default_photo_url=_optional_str(persistence_data.get("default_photo_url")),
    )

    return Settings(
        telegram=telegram,
        rss=rss,
        persistence=persistence,
        log_level=str(environ.get("LOG_LEVEL") or data.get("log_level") or "INFO"),
    )
