import base64
import struct
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from pack_errors import MalformedMetadata


# Canonical encoding:
# [4 bytes MAGIC] [1 byte VERSION] [4 bytes count (big endian)]
# then per entry, sorted by identity bytes:
# [2 bytes identity length] [identity utf-8] [2 bytes wrapped length] [wrapped]
MAGIC = b"EEWK"
VERSION = 1
_HEADER = struct.Struct(">4sBI")
_LEN = struct.Struct(">H")
MAX_FIELD = 0xFFFF


def b64_encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def b64_decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


@dataclass(frozen=True)
class WrappedKeyEntry:
    """The content key wrapped for one reader."""
    user: str
    wrapped: bytes


def _sorted_checked(entries: Iterable[WrappedKeyEntry]) -> List[WrappedKeyEntry]:
    ordered = sorted(entries, key=lambda e: e.user.encode("utf-8"))
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.user == cur.user:
            raise MalformedMetadata(f"wrapped keys: duplicate entry for {cur.user!r}")
    return ordered


def encode_wrapped_keys(entries: Iterable[WrappedKeyEntry]) -> bytes:
    """
    Deterministic byte form of a wrapped-key list.

    The signature covers these bytes, so the same set of entries must always
    encode the same way no matter what order the caller kept them in.
    """
    ordered = _sorted_checked(entries)
    parts = [_HEADER.pack(MAGIC, VERSION, len(ordered))]
    for entry in ordered:
        user = entry.user.encode("utf-8")
        if not user or len(user) > MAX_FIELD or len(entry.wrapped) > MAX_FIELD:
            raise MalformedMetadata(f"wrapped keys: entry for {entry.user!r} has a bad size")
        parts.append(_LEN.pack(len(user)))
        parts.append(user)
        parts.append(_LEN.pack(len(entry.wrapped)))
        parts.append(bytes(entry.wrapped))
    return b"".join(parts)


def decode_wrapped_keys(data: bytes) -> List[WrappedKeyEntry]:
    """Parse the canonical form back, rejecting anything encode_wrapped_keys would not produce."""
    if len(data) < _HEADER.size:
        raise MalformedMetadata("wrapped keys: short header")
    magic, version, count = _HEADER.unpack_from(data, 0)
    if magic != MAGIC or version != VERSION:
        raise MalformedMetadata("wrapped keys: bad magic/version")

    def take(pos: int, size: int) -> bytes:
        if pos + size > len(data):
            raise MalformedMetadata("wrapped keys: truncated entry")
        return data[pos:pos + size]

    entries = []
    pos = _HEADER.size
    for _ in range(count):
        (ulen,) = _LEN.unpack(take(pos, _LEN.size))
        pos += _LEN.size
        raw_user = take(pos, ulen)
        pos += ulen
        (wlen,) = _LEN.unpack(take(pos, _LEN.size))
        pos += _LEN.size
        wrapped = take(pos, wlen)
        pos += wlen
        try:
            user = raw_user.decode("utf-8")
        except UnicodeDecodeError as err:
            raise MalformedMetadata("wrapped keys: identity is not utf-8") from err
        entries.append(WrappedKeyEntry(user=user, wrapped=wrapped))
    if pos != len(data):
        raise MalformedMetadata("wrapped keys: trailing bytes")

    if entries != _sorted_checked(entries):
        raise MalformedMetadata("wrapped keys: entries not in canonical order")
    return entries


def find_entry(entries: Iterable[WrappedKeyEntry], user: str) -> Optional[WrappedKeyEntry]:
    found = None
    for entry in entries:
        if entry.user == user:
            if found is not None:
                raise MalformedMetadata(f"wrapped keys: duplicate entry for {user!r}")
            found = entry
    return found


# JSON rendering, for callers that keep metadata in JSON documents

def wrapped_keys_to_json(entries: Iterable[WrappedKeyEntry]) -> Dict[str, str]:
    return {e.user: b64_encode(e.wrapped) for e in _sorted_checked(entries)}


def wrapped_keys_from_json(obj: Dict[str, Any]) -> List[WrappedKeyEntry]:
    if not isinstance(obj, dict):
        raise MalformedMetadata("wrapped keys: expected a JSON object")
    try:
        return [WrappedKeyEntry(user=str(user), wrapped=b64_decode(text)) for user, text in obj.items()]
    except (ValueError, AttributeError) as err:
        raise MalformedMetadata(f"wrapped keys: bad base64 ({type(err).__name__})") from err
