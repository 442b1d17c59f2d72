import io
import logging
import re
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import feedparser

from feedmirror.config.context import ServiceContext
from feedmirror.errors import MirrorError, ParseError, SerializeError
from feedmirror.storage.item_cache import TORRENT_EXT, ItemCache
from feedmirror.storage.models import Entry, Feed

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"id=([0-9]+)(?:&|$)")


def extract_identity(link: str) -> Optional[str]:
    """'http://x/y?id=123&foo=bar' -> '123'; None when the link carries no id."""
    match = _ID_RE.search(link or "")
    return match.group(1) if match else None


def is_ignored(category: str, ignored: Iterable[str]) -> bool:
    return any(q in (category or "") for q in ignored)


def parse_feed(raw: bytes) -> Feed:
    # sem sanitize/resolve: o description precisa passar intacto
    parsed = feedparser.parse(io.BytesIO(raw), sanitize_html=False, resolve_relative_uris=False)
    exc = parsed.get("bozo_exception")
    if parsed.get("bozo") and not isinstance(exc, feedparser.CharacterEncodingOverride):
        raise ParseError(f"malformed feed document: {exc}")
    if not parsed.get("version"):
        raise ParseError("document is not a recognised feed")

    channel = parsed.feed
    entries = [
        Entry(
            title=e.get("title", ""),
            link=e.get("link", ""),
            category=e.get("category", ""),
            pub_date=e.get("published", ""),
        )
        for e in parsed.entries
    ]
    return Feed(
        title=channel.get("title", ""),
        link=channel.get("link", ""),
        description=channel.get("description", ""),
        entries=entries,
    )


def render_feed(feed: Feed) -> bytes:
    """Serialize as an RSS 2.0 document."""
    try:
        rss = ET.Element("rss", version="2.0")
        channel = ET.SubElement(rss, "channel")
        ET.SubElement(channel, "title").text = feed.title
        ET.SubElement(channel, "link").text = feed.link
        ET.SubElement(channel, "description").text = feed.description
        for entry in feed.entries:
            item = ET.SubElement(channel, "item")
            ET.SubElement(item, "title").text = entry.title
            ET.SubElement(item, "link").text = entry.link
            ET.SubElement(item, "category").text = entry.category
            ET.SubElement(item, "pubDate").text = entry.pub_date
        ET.indent(rss, space="  ")
        return ET.tostring(rss, encoding="utf-8", xml_declaration=True)
    except (TypeError, ValueError) as exc:
        raise SerializeError(f"could not serialize feed: {exc}") from exc


def _parse_base_url(base_url: str) -> Tuple[str, str, str]:
    parts = urlsplit(base_url)
    _ = parts.port  # ValueError on a malformed port
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"not an absolute http(s) URL: {base_url!r}")
    return parts.scheme, parts.netloc, parts.path.rstrip("/")


class LinkBuilder:
    """Builds `<base_url>/torrents/<id>.torrent`, or a localhost URL if base_url is unusable."""

    def __init__(self, base_url: str, port: int):
        self.port = port
        try:
            self.base: Optional[Tuple[str, str, str]] = _parse_base_url(base_url)
        except ValueError as e:
            logger.warning("Could not parse BASE_URL '%s': %s. Using localhost.", base_url, e)
            self.base = None

    def __call__(self, identity: str) -> str:
        path = f"torrents/{identity}{TORRENT_EXT}"
        if self.base is None:
            return f"http://localhost:{self.port}/{path}"
        scheme, netloc, base_path = self.base
        return urlunsplit((scheme, netloc, f"{base_path}/{path}", "", ""))


class FeedTransformer:
    def __init__(self, ctx: ServiceContext, cache: ItemCache):
        self.settings = ctx.settings
        self.cache = cache

    def _select(self, entries: List[Entry]) -> List[Tuple[Entry, str]]:
        selected: List[Tuple[Entry, str]] = []
        for entry in entries:
            if is_ignored(entry.category, self.settings.ignore_quality):
                logger.debug("Ignoring torrent: %s (quality: %s)", entry.title, entry.category)
                continue
            identity = extract_identity(entry.link)
            if identity is None:
                logger.debug("Could not extract id from link: %s", entry.link)
                continue
            selected.append((entry, identity))
        return selected

    def _cache_entry(self, entry: Entry, identity: str) -> bool:
        try:
            self.cache.ensure(identity, entry.link)
        except MirrorError as e:
            logger.warning("Failed to rewrite torrent %s (id %s): %s", entry.title, identity, e)
            return False
        except Exception:
            logger.exception("Unexpected error rewriting torrent %s (id %s)", entry.title, identity)
            return False
        return True

    def transform(self, raw: bytes) -> bytes:
        feed = parse_feed(raw)
        selected = self._select(feed.entries)
        build_link = LinkBuilder(self.settings.base_url, self.settings.port)

        kept: List[Entry] = []
        if selected:
            with ThreadPoolExecutor(max_workers=min(len(selected), self.settings.fetch_workers)) as ex:
                futures = [ex.submit(self._cache_entry, entry, identity) for entry, identity in selected]
                # resultados na ordem original do feed
                for (entry, identity), fut in zip(selected, futures):
                    if fut.result():
                        kept.append(entry.with_link(build_link(identity)))

        published = feed.model_copy(update={
            "title": self.settings.feed_title,
            "link": self.settings.feed_link,
            "entries": kept,
        })
        logger.info("Feed transformed: %d of %d entries kept", len(kept), len(feed.entries))
        return render_feed(published)
