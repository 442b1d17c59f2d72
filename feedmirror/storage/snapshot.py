import os
import tempfile
from typing import Callable, Optional

from feedmirror.config.context import ServiceContext
from feedmirror.errors import StorageError


def _atomic_write(path: str, data: bytes) -> None:
    directory = os.path.dirname(path) or "."
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except OSError as exc:
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise StorageError(f"could not write {path}: {exc}") from exc


class SnapshotStore:
    """
    Raw upstream copy and published feed on disk.

    Every read of the published snapshot and every replacement of it go through
    the context's snapshot lock, so readers see the old document or the new one,
    never a half-written file.
    """

    def __init__(self, ctx: ServiceContext):
        self.lock = ctx.snapshot_lock
        self.raw_path = ctx.settings.original_rss_path
        self.published_path = ctx.settings.processed_rss_path

    def save_raw(self, data: bytes) -> None:
        _atomic_write(self.raw_path, data)

    def read_raw(self) -> Optional[bytes]:
        try:
            with open(self.raw_path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def read(self) -> Optional[bytes]:
        """Current published feed, or None if nothing was published yet."""
        with self.lock:
            try:
                with open(self.published_path, "rb") as f:
                    return f.read()
            except FileNotFoundError:
                return None
            except OSError as exc:
                raise StorageError(f"could not read {self.published_path}: {exc}") from exc

    def replace(self, produce: Callable[[], bytes]) -> bytes:
        """Run `produce` and publish its output, holding the lock for both steps.

        If `produce` raises, the previous snapshot is left as it was.
        """
        with self.lock:
            data = produce()
            _atomic_write(self.published_path, data)
            return data
