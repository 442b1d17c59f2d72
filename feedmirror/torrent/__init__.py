from .bencode import BValue, Kind, decode, encode, from_native
from .patcher import patch_torrent, patch_trackers, rewrite_tracker_url

__all__ = [
    "BValue",
    "Kind",
    "decode",
    "encode",
    "from_native",
    "patch_torrent",
    "patch_trackers",
    "rewrite_tracker_url",
]
