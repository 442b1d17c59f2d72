import re
from typing import Dict, List

from feedmirror.errors import BencodeError, PatchError
from feedmirror.torrent.bencode import BValue, Kind, decode, encode

_TRACKER_RE = re.compile(rb"(tracker\.php)/+announce")

ANNOUNCE = b"announce"
ANNOUNCE_LIST = b"announce-list"


def rewrite_tracker_url(url: bytes, tracker_id: str) -> bytes:
    """Replace `tracker.php//announce` (one or more slashes) with `tracker.php/<id>/announce`."""
    tracker = tracker_id.encode("utf-8")
    return _TRACKER_RE.sub(lambda m: m.group(1) + b"/" + tracker + b"/announce", url)


def _patch_url(node: BValue, tracker_id: str) -> BValue:
    if node.kind is Kind.BYTES:
        return BValue.of_bytes(rewrite_tracker_url(node.value, tracker_id))
    # anything else is left alone
    return node


def _patch_tiers(node: BValue, tracker_id: str) -> BValue:
    if node.kind is not Kind.LIST:
        return node

    tiers: List[BValue] = []
    for tier in node.value:
        if tier.kind is Kind.LIST:
            tiers.append(BValue.of_list([_patch_url(url, tracker_id) for url in tier.value]))
        else:
            tiers.append(tier)
    return BValue.of_list(tiers)


def patch_trackers(root: BValue, tracker_id: str) -> BValue:
    """Return a copy of `root` with `announce` and `announce-list` rewritten.

    Non-dict roots and keys of unexpected shape pass through unchanged.
    """
    if root.kind is not Kind.DICT:
        return root

    patched: Dict[bytes, BValue] = dict(root.value)
    if ANNOUNCE in patched:
        patched[ANNOUNCE] = _patch_url(patched[ANNOUNCE], tracker_id)
    if ANNOUNCE_LIST in patched:
        patched[ANNOUNCE_LIST] = _patch_tiers(patched[ANNOUNCE_LIST], tracker_id)
    return BValue.of_dict(patched)


def patch_torrent(data: bytes, tracker_id: str) -> bytes:
    """Decode, rewrite tracker URLs and re-encode a .torrent payload."""
    try:
        return encode(patch_trackers(decode(data), tracker_id))
    except BencodeError as exc:
        raise PatchError(str(exc)) from exc
