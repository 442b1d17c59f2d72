from .base import BaseFeed
from .upstream import UpstreamFeed
from .transformer import FeedTransformer

__all__ = ["BaseFeed", "UpstreamFeed", "FeedTransformer"]
