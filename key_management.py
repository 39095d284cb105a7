import logging
import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from blob_crypto import KEY_SIZE
from key_codec import encode_private_key, encode_public_key
from pack_errors import MalformedKey, UnwrapFailed
from pack_types import KeyPair
from packing import Packing, PackingVariant, variant_for


log = logging.getLogger(__name__)

# Wrapped key layout: [16 bytes salt] [12 bytes nonce] [32 bytes key + 16 bytes tag]
SALT_SIZE = 16
WRAP_NONCE_SIZE = 12
WRAP_TAG_SIZE = 16
WRAPPED_SIZE = SALT_SIZE + WRAP_NONCE_SIZE + KEY_SIZE + WRAP_TAG_SIZE

WRAP_INFO = b"eepack/key-wrapping/v1"
WRAP_AAD = b"DEK_WRAP"


def generate_keypair(packing: Packing) -> KeyPair:
    """Fresh key pair for a new user, in the textual form the context carries."""
    variant = variant_for(packing)
    private = ec.generate_private_key(variant.new_curve())
    return KeyPair(
        public=encode_public_key(private.public_key()),
        private=encode_private_key(private),
    )


def shared_secret(private_key: ec.EllipticCurvePrivateKey, peer_public_key: ec.EllipticCurvePublicKey) -> bytes:
    """
    Static ECDH. exchange(owner_sk, reader_pk) == exchange(reader_sk, owner_pk),
    which is what lets each reader rebuild the owner's wrapping key alone.
    """
    try:
        return private_key.exchange(ec.ECDH(), peer_public_key)
    except ValueError as err:
        # keys on different curves
        raise MalformedKey("shared_secret: keys are not on the same curve") from err


def _info(variant: PackingVariant, owner: str, reader: str) -> bytes:
    parts = [WRAP_INFO, variant.name.encode("ascii"), owner.encode("utf-8"), reader.encode("utf-8")]
    return b"".join(struct.pack(">H", len(p)) + p for p in parts)


def derive_wrap_key(variant: PackingVariant, secret: bytes, salt: bytes, owner: str, reader: str) -> bytes:
    """
    Turn the raw ECDH output into an AEAD key.

    The info string binds the key to the packing and the (owner, reader) pair,
    so a wrapped key lifted into another entry or another curve won't open.
    """
    return HKDF(
        algorithm=variant.new_hash(),
        length=KEY_SIZE,
        salt=salt,
        info=_info(variant, owner, reader),
    ).derive(secret)


def wrap_key(
    variant: PackingVariant,
    sym_key: bytes,
    owner_private: ec.EllipticCurvePrivateKey,
    owner: str,
    reader: str,
    reader_public: ec.EllipticCurvePublicKey,
) -> bytes:
    """Wrap the content key so that only reader (and the owner) can recover it."""
    if not isinstance(sym_key, (bytes, bytearray)) or len(sym_key) != KEY_SIZE:
        raise ValueError(f"wrap_key: expected a {KEY_SIZE}-byte content key.")

    secret = shared_secret(owner_private, reader_public)
    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(WRAP_NONCE_SIZE)
    wrapping_key = derive_wrap_key(variant, secret, salt, owner, reader)

    sealed = variant.new_aead(wrapping_key).encrypt(nonce, bytes(sym_key), WRAP_AAD + reader.encode("utf-8"))
    log.debug("wrapped content key for %s", reader)
    return salt + nonce + sealed


def unwrap_key(
    variant: PackingVariant,
    wrapped: bytes,
    reader_private: ec.EllipticCurvePrivateKey,
    owner_public: ec.EllipticCurvePublicKey,
    owner: str,
    reader: str,
) -> bytes:
    """
    Reverse of wrap_key, run by the reader.

    Wrong key, wrong entry, or any flipped byte all end up as UnwrapFailed;
    the AEAD tag doesn't tell them apart and neither do we.
    """
    secret = shared_secret(reader_private, owner_public)
    if len(wrapped) != WRAPPED_SIZE:
        # still derive a key so a short entry costs what a real one does
        derive_wrap_key(variant, secret, bytes(SALT_SIZE), owner, reader)
        raise UnwrapFailed("unwrap_key: wrapped key has the wrong length")

    salt = bytes(wrapped[:SALT_SIZE])
    nonce = bytes(wrapped[SALT_SIZE:SALT_SIZE + WRAP_NONCE_SIZE])
    sealed = bytes(wrapped[SALT_SIZE + WRAP_NONCE_SIZE:])
    wrapping_key = derive_wrap_key(variant, secret, salt, owner, reader)

    try:
        sym_key = variant.new_aead(wrapping_key).decrypt(nonce, sealed, WRAP_AAD + reader.encode("utf-8"))
    except InvalidTag as err:
        raise UnwrapFailed("unwrap_key: wrapped key did not authenticate") from err
    return sym_key


def decoy_wrapped_key(variant: PackingVariant) -> bytes:
    """Random bytes shaped like a wrapped key, for callers who have no entry."""
    return os.urandom(WRAPPED_SIZE)
