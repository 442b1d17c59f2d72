import logging
import os
import tempfile
from threading import Lock

import requests

from feedmirror.config.context import ServiceContext
from feedmirror.errors import FetchError, FormatError, PatchError, StorageError
from feedmirror.storage.models import CachedFile
from feedmirror.torrent.patcher import patch_torrent

logger = logging.getLogger(__name__)

TIMEOUT = 30
TORRENT_EXT = ".torrent"
# top-level dict starting with the "announce" or "announce-list" key
TORRENT_HEADERS = (b"d8:announce", b"d13:announce-list")
# fixed pool of locks shared by identities (striped by hash)
LOCK_STRIPES = 64


class ItemCache:
    """On-disk cache of tracker-patched .torrent files, keyed by identity.

    The presence of `<torrent_dir>/<identity>.torrent` is the only marker that an
    identity is cached; files are written once and never touched again.
    """

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.torrent_dir = ctx.settings.torrent_dir
        self._locks = [Lock() for _ in range(LOCK_STRIPES)]

    def path_for(self, identity: str) -> str:
        return os.path.join(self.torrent_dir, identity + TORRENT_EXT)

    def _identity_lock(self, identity: str) -> Lock:
        return self._locks[hash(identity) % LOCK_STRIPES]

    def ensure(self, identity: str, source_link: str) -> CachedFile:
        if not identity or not (identity.isascii() and identity.isdigit()):
            raise ValueError(f"identity must be a non-empty numeric string, got {identity!r}")

        path = self.path_for(identity)
        with self._identity_lock(identity):
            if os.path.exists(path):
                logger.debug("Torrent already cached: %s", identity)
                return CachedFile(identity=identity, path=path, created=False)

            logger.debug("Downloading and patching torrent %s", identity)
            data = self._download(identity, source_link)
            if not data.startswith(TORRENT_HEADERS):
                raise FormatError(f"payload for torrent {identity} is not a .torrent file")

            try:
                patched = patch_torrent(data, self.ctx.settings.tracker_id)
            except PatchError as exc:
                raise PatchError(f"could not patch torrent {identity}: {exc}") from exc

            self._write(path, patched)
            return CachedFile(identity=identity, path=path, created=True)

    def _download(self, identity: str, source_link: str) -> bytes:
        try:
            resp = self.ctx.session.get(source_link, timeout=TIMEOUT)
        except requests.RequestException as exc:
            raise FetchError(f"error fetching torrent {identity}: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise FetchError(f"bad status fetching torrent {identity}: HTTP {resp.status_code}")
        return resp.content

    def _write(self, path: str, data: bytes) -> None:
        # tmp file + rename, so an existing path is always a complete file
        tmp_path = None
        try:
            os.makedirs(self.torrent_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.torrent_dir, suffix=".part")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(f"could not write {path}: {exc}") from exc
