# feedmirror/tests/conftest.py
from xml.sax.saxutils import escape

import pytest
import requests

from feedmirror.config.context import ServiceContext
from feedmirror.config.settings import Settings
from feedmirror.torrent.bencode import encode, from_native

UPSTREAM_RSS = "http://upstream.example/rss"


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """Stand-in for requests.Session: url -> FakeResponse (or exception to raise)."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def route(self, url, content=b"", status_code=200):
        self.routes[url] = FakeResponse(status_code, content)

    def fail(self, url, exc=None):
        self.routes[url] = exc or requests.ConnectionError("connection refused")

    def get(self, url, timeout=None, **kwargs):
        self.calls.append(url)
        target = self.routes.get(url)
        if target is None:
            return FakeResponse(404, b"not found")
        if isinstance(target, Exception):
            raise target
        return target

    def count(self, url):
        return self.calls.count(url)


class DummyScheduler:
    def __init__(self):
        self.jobs = []

    def add_job(self, func, *a, **k):
        self.jobs.append((func, a, k))

    def start(self):
        pass

    def shutdown(self, wait=False):
        pass


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        remote_rss=UPSTREAM_RSS,
        tracker_id="T1",
        cookie_uid="uid-1",
        cookie_usess="usess-1",
        ignore_quality=["SD"],
        port=8080,
        base_url="http://mirror.local:8080",
        cache_dir=str(tmp_path / "cache"),
        fetch_workers=2,
    )


@pytest.fixture()
def session():
    return FakeSession()


@pytest.fixture()
def ctx(settings, session):
    return ServiceContext.create(settings, session=session)


@pytest.fixture()
def make_torrent():
    def _make(announce="http://tr.example/tracker.php//announce", announce_list=None, **extra):
        meta = {"announce": announce, "info": {"name": "Show.S01E01", "length": 1024, "piece length": 16384}}
        if announce_list is not None:
            meta["announce-list"] = announce_list
        meta.update(extra)
        return encode(from_native(meta))
    return _make


@pytest.fixture()
def make_feed():
    def _make(items, title="Upstream", link="http://upstream.example", description="New episodes"):
        parts = [
            '<?xml version="1.0" encoding="utf-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape(title)}</title><link>{escape(link)}</link>",
            f"<description>{escape(description)}</description>",
        ]
        for it in items:
            parts.append(
                "<item>"
                f"<title>{escape(it['title'])}</title>"
                f"<link>{escape(it['link'])}</link>"
                f"<category>{escape(it.get('category', ''))}</category>"
                f"<pubDate>{escape(it.get('pubDate', 'Mon, 19 Oct 2026 10:00:00 +0000'))}</pubDate>"
                "</item>"
            )
        parts.append("</channel></rss>")
        return "".join(parts).encode("utf-8")
    return _make


@pytest.fixture()
def scheduler():
    return DummyScheduler()


@pytest.fixture()
def app(ctx, scheduler):
    # scheduler no-op: nenhum refresh automático durante os testes
    from feedmirror.api.main import create_app
    return create_app(ctx, scheduler=scheduler)


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
