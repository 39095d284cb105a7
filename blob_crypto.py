import os

from cryptography.exceptions import InvalidTag

from pack_errors import AuthenticationFailed
from packing import PackingVariant


# Blob layout: [12 bytes nonce] [ciphertext] [16 bytes tag]
KEY_SIZE = 32           # 256-bit content key for both ChaCha20-Poly1305 and AES-256-GCM
NONCE_SIZE = 12         # 96-bit nonce, what both AEADs expect
TAG_SIZE = 16


def generate_symmetric_key(variant: PackingVariant) -> bytes:
    """
    Fresh random content key for one blob.

    Never derived from the content: two packs of the same file must not share
    a key, or the (key, nonce) pair could repeat.
    """
    return os.urandom(KEY_SIZE)


def blob_overhead(variant: PackingVariant) -> int:
    return NONCE_SIZE + TAG_SIZE


def encrypt_blob(variant: PackingVariant, key: bytes, plaintext: bytes, aad: bytes) -> bytes:
    """
    AEAD-encrypt the content. aad is the path name, so a blob copied under a
    different name doesn't decrypt even before the signature is checked.
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"encrypt_blob: key must be {KEY_SIZE} bytes.")
    nonce = os.urandom(NONCE_SIZE)
    return nonce + variant.new_aead(key).encrypt(nonce, bytes(plaintext), aad)


def decrypt_blob(variant: PackingVariant, key: bytes, blob: bytes, aad: bytes) -> bytes:
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise AuthenticationFailed("decrypt_blob: blob too short")
    nonce = bytes(blob[:NONCE_SIZE])
    try:
        return variant.new_aead(key).decrypt(nonce, bytes(blob[NONCE_SIZE:]), aad)
    except InvalidTag as err:
        raise AuthenticationFailed("decrypt_blob: authentication tag mismatch") from err
