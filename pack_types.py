from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pack_errors import MalformedMetadata
from wrapped_keys import (
    WrappedKeyEntry,
    b64_decode,
    b64_encode,
    wrapped_keys_from_json,
    wrapped_keys_to_json,
)


# Identities and path names are plain strings: "user@example.com" and
# "user@example.com/some/file".
UserName = str
PathName = str


def owner_of(path_name: PathName) -> UserName:
    """The user a path belongs to: everything before the first slash."""
    owner = path_name.split("/", 1)[0]
    if not owner:
        raise ValueError(f"owner_of: path {path_name!r} has no owner")
    return owner


@dataclass
class KeyPair:
    """
    Textual key material for one user on one curve.

    public:  "x\\ny" in decimal
    private: "d" in decimal
    """
    public: str
    private: str


@dataclass
class Context:
    """
    Who is calling, with which keys, under which packing, and where to look up
    other users' keys. Built by the caller for each pack/unpack; the packers
    never hold on to it.
    """
    user_name: UserName
    key_pair: Optional[KeyPair] = None
    packing: Any = None
    user_service: Any = None


@dataclass
class Metadata:
    """
    Per-blob metadata owned by the caller.

    readers must be filled in before pack. pack fills wrapped_keys and
    signature; unpack only reads them.
    """
    readers: List[UserName] = field(default_factory=list)
    wrapped_keys: List[WrappedKeyEntry] = field(default_factory=list)
    signature: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "readers": sorted(self.readers),
            "wrapped_keys": wrapped_keys_to_json(self.wrapped_keys),
            "signature": b64_encode(self.signature),
        }

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "Metadata":
        try:
            readers = [str(r) for r in obj.get("readers", [])]
            signature = b64_decode(obj.get("signature", ""))
        except (ValueError, AttributeError, TypeError) as err:
            raise MalformedMetadata(f"metadata malformed ({type(err).__name__})") from err
        return cls(
            readers=readers,
            wrapped_keys=wrapped_keys_from_json(obj.get("wrapped_keys", {})),
            signature=signature,
        )
