import logging
from typing import Dict, List, Optional, Sequence, Tuple

from cryptography.hazmat.primitives.asymmetric import ec

from key_codec import decode_public_key
from pack_errors import (
    IdentityNotFound,
    LookupUnavailable,
    MalformedKey,
    NoCompatibleKey,
    PackError,
)
from packing import PackingVariant


log = logging.getLogger(__name__)


class UserService:
    """
    Where the packers find other users' public keys.

    lookup returns (endpoints, public_keys). The packers only look at the
    keys, in textual form. Implementations raise IdentityNotFound for an
    unknown user and LookupUnavailable when the service can't be reached;
    retrying is up to them or their caller.
    """

    def lookup(self, user: str) -> Tuple[List[object], List[str]]:
        raise NotImplementedError


class InMemoryUserService(UserService):
    """Dict-backed user service. Counts lookups so tests can check them."""

    def __init__(self, keys: Optional[Dict[str, Sequence[str]]] = None):
        self._keys: Dict[str, List[str]] = {u: list(k) for u, k in (keys or {}).items()}
        self.lookups = 0

    def add(self, user: str, *public_keys: str) -> None:
        self._keys.setdefault(user, []).extend(public_keys)

    def lookup(self, user: str) -> Tuple[List[object], List[str]]:
        if user not in self._keys:
            raise IdentityNotFound(f"user {user!r} not found")
        self.lookups += 1
        return [], list(self._keys[user])


class KeyResolver:
    """
    Resolves users to public keys for the duration of one pack or unpack.

    Each distinct user is looked up at most once. Nothing survives the call:
    a new resolver is built every time, so there is no state shared between
    concurrent packs.
    """

    def __init__(self, variant: PackingVariant, service: Optional[UserService]):
        self._variant = variant
        self._service = service
        self._cache: Dict[str, ec.EllipticCurvePublicKey] = {}

    def seed(self, user: str, key: ec.EllipticCurvePublicKey) -> None:
        # the caller's own key comes from the context, never from a lookup
        self._cache[user] = key

    def public_key(self, user: str) -> ec.EllipticCurvePublicKey:
        if user in self._cache:
            return self._cache[user]
        if self._service is None:
            raise LookupUnavailable(f"no user service configured to look up {user!r}")

        log.debug("looking up public key for %s", user)
        try:
            _endpoints, keys = self._service.lookup(user)
        except PackError:
            raise
        except Exception as err:
            raise LookupUnavailable(f"lookup of {user!r} failed: {err}") from err

        key = self._first_compatible(user, keys or [])
        self._cache[user] = key
        return key

    def _first_compatible(self, user: str, keys: Sequence[str]) -> ec.EllipticCurvePublicKey:
        for text in keys:
            try:
                return decode_public_key(self._variant, text)
            except MalformedKey:
                continue
        raise NoCompatibleKey(f"user {user!r} has no {self._variant.name} key")
