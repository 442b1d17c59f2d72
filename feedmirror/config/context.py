from dataclasses import dataclass, field
from threading import Lock

import requests
from requests.adapters import HTTPAdapter

from feedmirror.config.settings import Settings

USER_AGENT = "feedmirror/1.0 (+https://localhost)"


def build_session(settings: Settings) -> requests.Session:
    """Pooled session that replays the upstream auth cookies. No retries."""
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=10, pool_maxsize=max(10, settings.fetch_workers), max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    for name, value in settings.cookies.items():
        session.cookies.set(name, value)
    return session


@dataclass
class ServiceContext:
    """Everything a component needs, constructed once and passed by reference."""

    settings: Settings
    session: requests.Session
    snapshot_lock: Lock = field(default_factory=Lock)

    @classmethod
    def create(cls, settings: Settings, session=None) -> "ServiceContext":
        return cls(settings=settings, session=session if session is not None else build_session(settings))
