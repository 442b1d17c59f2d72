import logging

import requests

from feedmirror.config.context import ServiceContext
from feedmirror.errors import FetchError
from .base import BaseFeed

logger = logging.getLogger(__name__)


class UpstreamFeed(BaseFeed):
    """The remote RSS feed, fetched with the context's cookie-carrying session."""

    TIMEOUT = 30

    def __init__(self, ctx: ServiceContext):
        self.url: str = ctx.settings.remote_rss
        self.session = ctx.session

    def fetch(self) -> bytes:
        try:
            response = self.session.get(self.url, timeout=self.TIMEOUT)
        except requests.RequestException as e:
            raise FetchError(f"error fetching upstream RSS: {e}") from e

        if response.status_code != 200:
            raise FetchError(f"unexpected status fetching upstream RSS: HTTP {response.status_code}")

        logger.debug("Fetched upstream RSS (%d bytes)", len(response.content))
        return response.content
