"""
Bencode codec (the .torrent metadata encoding).

The decoded form is a tree of `BValue` nodes tagged with a `Kind`:
    INT   -> int
    BYTES -> bytes
    LIST  -> List[BValue]
    DICT  -> Dict[bytes, BValue]   (insertion order = order found in the input)

Encoding always writes dict keys in lexicographic byte order, as the format
requires.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Tuple

from feedmirror.errors import DecodeError, EncodeError

# nesting deeper than this is treated as malformed
MAX_DEPTH = 256
# below CPython's int/str conversion limit
MAX_INT_DIGITS = 4000
MAX_LENGTH_DIGITS = 18


class Kind(str, Enum):
    INT = "int"
    BYTES = "bytes"
    LIST = "list"
    DICT = "dict"


@dataclass(frozen=True)
class BValue:
    kind: Kind
    value: Any

    @classmethod
    def of_int(cls, value: int) -> "BValue":
        return cls(Kind.INT, value)

    @classmethod
    def of_bytes(cls, value: bytes) -> "BValue":
        return cls(Kind.BYTES, value)

    @classmethod
    def of_list(cls, items: List["BValue"]) -> "BValue":
        return cls(Kind.LIST, items)

    @classmethod
    def of_dict(cls, items: Dict[bytes, "BValue"]) -> "BValue":
        return cls(Kind.DICT, items)

    def get(self, key: bytes):
        if self.kind is not Kind.DICT:
            return None
        return self.value.get(key)


# ---------- decode ----------

def decode(data: bytes) -> BValue:
    if not isinstance(data, (bytes, bytearray)):
        raise DecodeError(f"expected bytes, got {type(data).__name__}")
    data = bytes(data)
    if not data:
        raise DecodeError("empty input")
    value, pos = _decode_at(data, 0, 0)
    if pos != len(data):
        raise DecodeError(f"trailing data at offset {pos}")
    return value


def _decode_at(data: bytes, pos: int, depth: int) -> Tuple[BValue, int]:
    if pos >= len(data):
        raise DecodeError("unexpected end of input")
    if depth > MAX_DEPTH:
        raise DecodeError(f"nesting deeper than {MAX_DEPTH} at offset {pos}")

    lead = data[pos:pos + 1]
    if lead == b"i":
        return _decode_int(data, pos)
    if lead == b"l":
        return _decode_list(data, pos, depth)
    if lead == b"d":
        return _decode_dict(data, pos, depth)
    if lead.isdigit():
        return _decode_bytes(data, pos)
    raise DecodeError(f"invalid token {lead!r} at offset {pos}")


def _decode_int(data: bytes, pos: int) -> Tuple[BValue, int]:
    end = data.find(b"e", pos + 1)
    if end == -1:
        raise DecodeError(f"unterminated integer at offset {pos}")
    raw = data[pos + 1:end]
    digits = raw[1:] if raw.startswith(b"-") else raw
    if not digits or not digits.isdigit():
        raise DecodeError(f"invalid integer {raw!r} at offset {pos}")
    if len(digits) > MAX_INT_DIGITS:
        raise DecodeError(f"integer at offset {pos} has more than {MAX_INT_DIGITS} digits")
    # leading zeros and "-0" are tolerated; re-encoding normalises them
    return BValue.of_int(int(raw)), end + 1


def _decode_bytes(data: bytes, pos: int) -> Tuple[BValue, int]:
    colon = data.find(b":", pos)
    if colon == -1:
        raise DecodeError(f"missing ':' in string length at offset {pos}")
    raw_len = data[pos:colon]
    if not raw_len.isdigit():
        raise DecodeError(f"invalid string length {raw_len!r} at offset {pos}")
    if raw_len.startswith(b"0") and len(raw_len) > 1:
        raise DecodeError(f"non-canonical string length {raw_len!r} at offset {pos}")
    if len(raw_len) > MAX_LENGTH_DIGITS:
        raise DecodeError(f"string length at offset {pos} is too large")
    start = colon + 1
    end = start + int(raw_len)
    if end > len(data):
        raise DecodeError(f"string at offset {pos} runs past end of input")
    return BValue.of_bytes(data[start:end]), end


def _decode_list(data: bytes, pos: int, depth: int) -> Tuple[BValue, int]:
    items: List[BValue] = []
    pos += 1
    while True:
        if pos >= len(data):
            raise DecodeError("unterminated list")
        if data[pos:pos + 1] == b"e":
            return BValue.of_list(items), pos + 1
        item, pos = _decode_at(data, pos, depth + 1)
        items.append(item)


def _decode_dict(data: bytes, pos: int, depth: int) -> Tuple[BValue, int]:
    items: Dict[bytes, BValue] = {}
    pos += 1
    while True:
        if pos >= len(data):
            raise DecodeError("unterminated dictionary")
        if data[pos:pos + 1] == b"e":
            return BValue.of_dict(items), pos + 1
        if not data[pos:pos + 1].isdigit():
            raise DecodeError(f"dictionary key at offset {pos} is not a string")
        key, pos = _decode_bytes(data, pos)
        if key.value in items:
            raise DecodeError(f"duplicate dictionary key {key.value!r}")
        value, pos = _decode_at(data, pos, depth + 1)
        items[key.value] = value


# ---------- encode ----------

def encode(value: BValue) -> bytes:
    out: List[bytes] = []
    _encode_into(value, out)
    return b"".join(out)


def _encode_into(node: Any, out: List[bytes]) -> None:
    if not isinstance(node, BValue):
        raise EncodeError(f"cannot encode {type(node).__name__}")

    if node.kind is Kind.INT:
        if isinstance(node.value, bool) or not isinstance(node.value, int):
            raise EncodeError(f"INT node holds {type(node.value).__name__}")
        try:
            out.append(b"i%de" % node.value)
        except ValueError as exc:
            raise EncodeError(f"integer too large to encode: {exc}") from exc
    elif node.kind is Kind.BYTES:
        if not isinstance(node.value, (bytes, bytearray)):
            raise EncodeError(f"BYTES node holds {type(node.value).__name__}")
        out.append(b"%d:" % len(node.value))
        out.append(bytes(node.value))
    elif node.kind is Kind.LIST:
        if not isinstance(node.value, (list, tuple)):
            raise EncodeError(f"LIST node holds {type(node.value).__name__}")
        out.append(b"l")
        for item in node.value:
            _encode_into(item, out)
        out.append(b"e")
    elif node.kind is Kind.DICT:
        if not isinstance(node.value, dict):
            raise EncodeError(f"DICT node holds {type(node.value).__name__}")
        out.append(b"d")
        for key in sorted(node.value, key=_dict_key):
            out.append(b"%d:" % len(key))
            out.append(key)
            _encode_into(node.value[key], out)
        out.append(b"e")
    else:
        raise EncodeError(f"unknown kind {node.kind!r}")


def _dict_key(key: Any) -> bytes:
    if not isinstance(key, bytes):
        raise EncodeError(f"dictionary key must be bytes, got {type(key).__name__}")
    return key


def from_native(obj: Any) -> BValue:
    """Build a tree from plain Python values (str is encoded as UTF-8)."""
    if isinstance(obj, BValue):
        return obj
    if isinstance(obj, bool):
        raise EncodeError("bool is not representable")
    if isinstance(obj, int):
        return BValue.of_int(obj)
    if isinstance(obj, (bytes, bytearray)):
        return BValue.of_bytes(bytes(obj))
    if isinstance(obj, str):
        return BValue.of_bytes(obj.encode("utf-8"))
    if isinstance(obj, (list, tuple)):
        return BValue.of_list([from_native(x) for x in obj])
    if isinstance(obj, dict):
        items: Dict[bytes, BValue] = {}
        for key, val in obj.items():
            if isinstance(key, str):
                key = key.encode("utf-8")
            if not isinstance(key, bytes):
                raise EncodeError(f"dictionary key must be str or bytes, got {type(key).__name__}")
            items[key] = from_native(val)
        return BValue.of_dict(items)
    raise EncodeError(f"cannot represent {type(obj).__name__}")
