# feedmirror/tests/test_item_cache.py
import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from feedmirror.errors import FetchError, FormatError, PatchError, StorageError
from feedmirror.storage.item_cache import ItemCache
from feedmirror.torrent.bencode import decode

LINK = "http://upstream.example/download.php?id=123&foo=bar"


def test_ensure_fetches_patches_and_persists(ctx, session, make_torrent):
    session.route(LINK, make_torrent())
    cache = ItemCache(ctx)

    cached = cache.ensure("123", LINK)

    assert cached.created is True
    assert cached.path == os.path.join(ctx.settings.torrent_dir, "123.torrent")
    with open(cached.path, "rb") as f:
        root = decode(f.read())
    assert root.get(b"announce").value == b"http://tr.example/tracker.php/T1/announce"


def test_ensure_is_idempotent(ctx, session, make_torrent):
    session.route(LINK, make_torrent())
    cache = ItemCache(ctx)

    first = cache.ensure("123", LINK)
    with open(first.path, "rb") as f:
        stored = f.read()
    # upstream changes, but the cached copy must not be refetched
    session.route(LINK, make_torrent(announce="http://changed/tracker.php//announce"))
    second = cache.ensure("123", LINK)

    assert session.count(LINK) == 1
    assert second.created is False
    with open(second.path, "rb") as f:
        assert f.read() == stored


def test_concurrent_ensure_fetches_once(ctx, session, make_torrent):
    session.route(LINK, make_torrent())
    cache = ItemCache(ctx)

    with ThreadPoolExecutor(max_workers=8) as ex:
        results = list(ex.map(lambda _: cache.ensure("123", LINK), range(16)))

    assert session.count(LINK) == 1
    assert sum(1 for r in results if r.created) == 1


def test_bad_status_is_fetch_error(ctx, session):
    session.route(LINK, b"denied", status_code=403)
    with pytest.raises(FetchError):
        ItemCache(ctx).ensure("123", LINK)
    assert not os.path.exists(os.path.join(ctx.settings.torrent_dir, "123.torrent"))


def test_transport_error_is_fetch_error(ctx, session):
    session.fail(LINK)
    with pytest.raises(FetchError):
        ItemCache(ctx).ensure("123", LINK)


def test_non_torrent_payload_is_format_error(ctx, session):
    session.route(LINK, b"<html>login required</html>")
    cache = ItemCache(ctx)
    with pytest.raises(FormatError):
        cache.ensure("123", LINK)
    assert not os.path.exists(cache.path_for("123"))


def test_announce_list_only_torrent_is_accepted(ctx, session):
    session.route(LINK, b"d13:announce-listll30:http://x/tracker.php//announceee4:infod4:name1:aee")
    cached = ItemCache(ctx).ensure("123", LINK)
    with open(cached.path, "rb") as f:
        root = decode(f.read())
    assert root.get(b"announce-list").value[0].value[0].value == b"http://x/tracker.php/T1/announce"


def test_corrupt_torrent_is_patch_error(ctx, session):
    session.route(LINK, b"d8:announce99:truncated")
    cache = ItemCache(ctx)
    with pytest.raises(PatchError):
        cache.ensure("123", LINK)
    assert not os.path.exists(cache.path_for("123"))


def test_write_failure_is_storage_error(ctx, session, make_torrent):
    session.route(LINK, make_torrent())
    # a regular file where the torrent directory should be
    os.makedirs(ctx.settings.cache_dir, exist_ok=True)
    with open(ctx.settings.torrent_dir, "w") as f:
        f.write("x")
    with pytest.raises(StorageError):
        ItemCache(ctx).ensure("123", LINK)


@pytest.mark.parametrize("identity", ["", "12a", "../1", "\u0661\u0662"])
def test_invalid_identity_is_rejected(ctx, identity):
    with pytest.raises(ValueError):
        ItemCache(ctx).ensure(identity, LINK)


def test_identity_locks_do_not_grow(ctx, session, make_torrent):
    cache = ItemCache(ctx)
    before = len(cache._locks)
    for i in range(200):
        link = f"http://upstream.example/download.php?id={i}"
        session.route(link, make_torrent())
        cache.ensure(str(i), link)
    assert len(cache._locks) == before
