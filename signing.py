import logging
import struct
from typing import Iterable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec

from pack_errors import SignatureInvalid
from packing import PackingVariant
from wrapped_keys import WrappedKeyEntry, encode_wrapped_keys


log = logging.getLogger(__name__)

SIGN_DOMAIN = b"eepack/signature/v1"


def _field(raw: bytes) -> bytes:
    return struct.pack(">Q", len(raw)) + raw


def signed_message(
    variant: PackingVariant,
    cipher: bytes,
    wrapped_keys: Iterable[WrappedKeyEntry],
    path_name: str,
) -> bytes:
    """
    The exact bytes the owner signs.

    Every part is length-prefixed so bytes can't slide from one field into the
    next: changing the path, the wrapped-key list or the cipher on its own all
    change the message. The wrapped keys go in through their canonical
    encoding, so the caller's list order doesn't matter.
    """
    return b"".join([
        _field(SIGN_DOMAIN),
        _field(variant.name.encode("ascii")),
        _field(path_name.encode("utf-8")),
        _field(encode_wrapped_keys(wrapped_keys)),
        _field(bytes(cipher)),
    ])


def sign_blob(
    variant: PackingVariant,
    private_key: ec.EllipticCurvePrivateKey,
    cipher: bytes,
    wrapped_keys: Iterable[WrappedKeyEntry],
    path_name: str,
) -> bytes:
    """ECDSA over signed_message with the packing's hash. Returns the DER signature."""
    message = signed_message(variant, cipher, wrapped_keys, path_name)
    return private_key.sign(message, variant.signature_algorithm())


def verify_blob(
    variant: PackingVariant,
    public_key: ec.EllipticCurvePublicKey,
    signature: bytes,
    cipher: bytes,
    wrapped_keys: Iterable[WrappedKeyEntry],
    path_name: str,
) -> None:
    """Raises SignatureInvalid unless signature is the owner's over exactly these inputs."""
    if not signature:
        raise SignatureInvalid(f"no signature for {path_name}")
    message = signed_message(variant, cipher, wrapped_keys, path_name)
    try:
        public_key.verify(bytes(signature), message, variant.signature_algorithm())
    except InvalidSignature as err:
        log.warning("signature check failed for %s", path_name)
        raise SignatureInvalid(f"signature does not match {path_name}") from err
