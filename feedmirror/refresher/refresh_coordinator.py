import logging
import time
from enum import Enum
from threading import Lock
from typing import Optional

from feedmirror.config.context import ServiceContext
from feedmirror.errors import MirrorError
from feedmirror.feeds.base import BaseFeed
from feedmirror.feeds.transformer import FeedTransformer
from feedmirror.feeds.upstream import UpstreamFeed
from feedmirror.storage.item_cache import ItemCache
from feedmirror.storage.snapshot import SnapshotStore

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_MINUTES = 5


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshCoordinator:
    """
    Runs one refresh cycle: fetch upstream feed -> transform -> publish snapshot.

    Best effort: any failure is logged and the previous snapshot stays in place.
    Only one cycle runs at a time; a trigger arriving mid-cycle is skipped.
    """

    def __init__(
        self,
        ctx: ServiceContext,
        feed: Optional[BaseFeed] = None,
        transformer: Optional[FeedTransformer] = None,
        store: Optional[SnapshotStore] = None,
    ):
        self.feed = feed or UpstreamFeed(ctx)
        self.transformer = transformer or FeedTransformer(ctx, ItemCache(ctx))
        self.store = store or SnapshotStore(ctx)
        self.state = RefreshState.IDLE
        self.last_refreshed: Optional[int] = None
        self._running = Lock()

    def refresh(self) -> bool:
        """Returns True when a new snapshot was published."""
        if not self._running.acquire(blocking=False):
            logger.warning("Refresh already in progress, skipping this tick")
            return False

        self.state = RefreshState.REFRESHING
        try:
            return self._run_cycle()
        except MirrorError as e:
            logger.warning("Refresh failed, keeping previous feed: %s", e)
            return False
        except Exception:
            logger.exception("Unexpected error during refresh, keeping previous feed")
            return False
        finally:
            self.state = RefreshState.IDLE
            self._running.release()

    def _run_cycle(self) -> bool:
        logger.info("Refreshing RSS...")
        raw = self.feed.fetch()
        self.store.save_raw(raw)
        self.store.replace(lambda: self.transformer.transform(raw))
        self.last_refreshed = int(time.time())
        logger.info("RSS refreshed and published")
        return True
