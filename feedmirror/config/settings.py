import logging
import os
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from feedmirror.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 80
DEFAULT_CACHE_DIR = "cache"
DEFAULT_FETCH_WORKERS = 4
DEFAULT_FEED_TITLE = "Lostfilm RSS"
DEFAULT_FEED_LINK = "https://github.com/te4gh0st/GoLostfilmRSS"

# env var -> Settings field
ENV_KEYS: Dict[str, str] = {
    "REMOTE_RSS": "remote_rss",
    "TRACKER_ID": "tracker_id",
    "COOKIE_UID": "cookie_uid",
    "COOKIE_USESS": "cookie_usess",
    "IGNORE_QUALITY": "ignore_quality",
    "PORT": "port",
    "BASE_URL": "base_url",
    "CACHE_DIR": "cache_dir",
    "FETCH_WORKERS": "fetch_workers",
    "FEED_TITLE": "feed_title",
    "FEED_LINK": "feed_link",
}
REQUIRED_KEYS = ("REMOTE_RSS", "TRACKER_ID", "COOKIE_UID", "COOKIE_USESS")


def split_qualities(raw: Optional[str]) -> List[str]:
    """'SD, MP4,' -> ['SD', 'MP4']"""
    if not raw:
        return []
    return [q.strip() for q in raw.split(",") if q.strip()]


class Settings(BaseModel):
    """Read-only runtime configuration, built once at startup."""

    model_config = ConfigDict(frozen=True)

    remote_rss: str
    tracker_id: str
    cookie_uid: str
    cookie_usess: str
    ignore_quality: List[str] = Field(default_factory=list)
    port: int = DEFAULT_PORT
    base_url: str = ""
    cache_dir: str = DEFAULT_CACHE_DIR
    fetch_workers: int = Field(default=DEFAULT_FETCH_WORKERS, ge=1)
    feed_title: str = DEFAULT_FEED_TITLE
    feed_link: str = DEFAULT_FEED_LINK

    @property
    def torrent_dir(self) -> str:
        return os.path.join(self.cache_dir, "torrents")

    @property
    def original_rss_path(self) -> str:
        return os.path.join(self.cache_dir, "rss_original.xml")

    @property
    def processed_rss_path(self) -> str:
        return os.path.join(self.cache_dir, "rss.xml")

    @property
    def cookies(self) -> Dict[str, str]:
        return {"uid": self.cookie_uid, "usess": self.cookie_usess}

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[str]]) -> "Settings":
        """Build settings from env-style keys (REMOTE_RSS, PORT, ...)."""
        missing = [key for key in REQUIRED_KEYS if not values.get(key)]
        if missing:
            raise ConfigError(f"invalid configuration: {', '.join(missing)} required")

        kwargs = {}
        for env_key, field in ENV_KEYS.items():
            raw = values.get(env_key)
            if raw is None or raw == "":
                continue
            kwargs[field] = raw
        kwargs["ignore_quality"] = split_qualities(values.get("IGNORE_QUALITY"))

        try:
            settings = cls(**kwargs)
        except ValueError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc

        if not settings.base_url:
            fallback = f"http://localhost:{settings.port}"
            logger.warning(
                "BASE_URL not set, using '%s'. Set BASE_URL if the server is reachable from outside.",
                fallback,
            )
            settings = settings.model_copy(update={"base_url": fallback})
        return settings

    @classmethod
    def from_env(cls, overrides: Optional[Mapping[str, Optional[str]]] = None) -> "Settings":
        load_dotenv(override=False)
        values: Dict[str, Optional[str]] = {key: os.getenv(key) for key in ENV_KEYS}
        for key, value in (overrides or {}).items():
            if value is not None:
                values[key] = value
        return cls.from_mapping(values)
