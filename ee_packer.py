"""Elliptic-curve packers: encrypt and sign a blob for a set of readers.

Pack encrypts the content under a fresh key, wraps that key for every reader
(the owner always included) with ECDH between the owner's private key and the
reader's public key, and signs the cipher together with the wrapped keys and
the path name. The wrapped keys and the signature go into the caller's
Metadata; the returned blob is only the encrypted content.

Unpack does it in reverse, and checks the signature before anything is
decrypted, so a forged or altered blob never yields plaintext.
"""
import logging
from typing import Optional

import blob_crypto
import key_management as km
import packing
from key_codec import decode_key_pair
from pack_errors import (
    AuthenticationFailed,
    BufferTooSmall,
    MalformedKey,
    MalformedMetadata,
    NotAuthorizedReader,
    UnwrapFailed,
)
from pack_types import Context, Metadata, PathName, owner_of
from packing import Packing, PackingVariant
from signing import sign_blob, verify_blob
from user_service import KeyResolver
from wrapped_keys import WrappedKeyEntry, find_entry


log = logging.getLogger(__name__)


class EEPacker:
    """One packer per curve. Holds only its variant, so it can be shared freely."""

    def __init__(self, variant: PackingVariant):
        self._variant = variant

    def packing(self) -> Packing:
        return self._variant.packing

    def __repr__(self) -> str:
        return f"EEPacker({self._variant.name})"

    # --- sizes ---

    def pack_len(self, ctx: Context, plaintext_len: int, meta: Metadata, path_name: PathName) -> int:
        # wrapped keys and signature live in meta, so readers don't change this
        return max(plaintext_len, 0) + blob_crypto.blob_overhead(self._variant)

    def unpack_len(self, ctx: Context, cipher_len: int, meta: Metadata) -> int:
        return max(cipher_len - blob_crypto.blob_overhead(self._variant), 0)

    # --- pack ---

    def pack(self, ctx: Context, dest, plaintext: bytes, meta: Metadata, path_name: PathName) -> int:
        """
        Encrypt plaintext into dest and fill meta.wrapped_keys and meta.signature.

        meta.readers says who else may read; the owner is always added.
        Returns the number of bytes written. meta is left untouched on failure.
        """
        variant = self._check_packing(ctx)
        owner = owner_of(path_name)
        if ctx.user_name != owner:
            raise ValueError(f"pack: {ctx.user_name!r} cannot pack {path_name!r} owned by {owner!r}")
        owner_public, owner_private = decode_key_pair(variant, ctx.key_pair)

        resolver = KeyResolver(variant, ctx.user_service)
        resolver.seed(owner, owner_public)
        readers = sorted(set(meta.readers) | {owner})
        # resolve everyone before doing any crypto, so lookup errors surface first
        reader_keys = {r: resolver.public_key(r) for r in readers}

        sym_key = blob_crypto.generate_symmetric_key(variant)
        cipher = blob_crypto.encrypt_blob(variant, sym_key, plaintext, path_name.encode("utf-8"))
        if len(cipher) > len(dest):
            raise BufferTooSmall(f"pack: need {len(cipher)} bytes, have {len(dest)}")

        wrapped = [
            WrappedKeyEntry(user=r, wrapped=km.wrap_key(variant, sym_key, owner_private, owner, r, reader_keys[r]))
            for r in readers
        ]
        signature = sign_blob(variant, owner_private, cipher, wrapped, path_name)

        dest[:len(cipher)] = cipher
        meta.wrapped_keys = wrapped
        meta.signature = signature
        log.debug("packed %s for %d reader(s) with %s", path_name, len(readers), variant.name)
        return len(cipher)

    # --- unpack ---

    def unpack(self, ctx: Context, dest, cipher: bytes, meta: Metadata, path_name: PathName) -> int:
        """
        Verify and decrypt cipher into dest as ctx.user_name. meta is only read.

        Order matters: the signature is checked before any key is unwrapped,
        and dest is written only after every check has passed.
        """
        variant = self._check_packing(ctx)
        owner = owner_of(path_name)
        caller = ctx.user_name
        caller_public, caller_private = decode_key_pair(variant, ctx.key_pair)

        resolver = KeyResolver(variant, ctx.user_service)
        resolver.seed(caller, caller_public)
        owner_public = resolver.public_key(owner)

        verify_blob(variant, owner_public, meta.signature, cipher, meta.wrapped_keys, path_name)
        self._check_readers(meta, owner)

        entry = find_entry(meta.wrapped_keys, caller)
        wrapped = entry.wrapped if entry is not None else km.decoy_wrapped_key(variant)
        try:
            sym_key = km.unwrap_key(variant, wrapped, caller_private, owner_public, owner, caller)
        except UnwrapFailed:
            if entry is None:
                log.warning("%s is not a reader of %s", caller, path_name)
                raise NotAuthorizedReader(f"{caller!r} may not read {path_name!r}") from None
            log.warning("could not unwrap key of %s for %s", path_name, caller)
            raise
        if entry is None:
            raise NotAuthorizedReader(f"{caller!r} may not read {path_name!r}")

        try:
            clear = blob_crypto.decrypt_blob(variant, sym_key, cipher, path_name.encode("utf-8"))
        except AuthenticationFailed as err:
            raise UnwrapFailed(f"unpack: content of {path_name!r} did not decrypt") from err
        if len(clear) > len(dest):
            raise BufferTooSmall(f"unpack: need {len(clear)} bytes, have {len(dest)}")

        dest[:len(clear)] = clear
        log.debug("unpacked %s as %s", path_name, caller)
        return len(clear)

    def _check_packing(self, ctx: Context) -> PackingVariant:
        # a context may leave packing unset; if it names one, it must be ours
        if ctx.packing is not None and ctx.packing != self._variant.packing:
            wanted = getattr(ctx.packing, "value", ctx.packing)
            raise MalformedKey(f"context is set up for {wanted}, not {self._variant.name}")
        return self._variant

    @staticmethod
    def _check_readers(meta: Metadata, owner: str) -> None:
        # the reader list and the wrapped-key list must name the same people
        expected = set(meta.readers) | {owner}
        covered = {e.user for e in meta.wrapped_keys}
        if expected != covered:
            raise MalformedMetadata("readers and wrapped keys disagree")


# --- helpers that size the buffer themselves ---

def pack_blob(packer: EEPacker, ctx: Context, plaintext: bytes, meta: Metadata, path_name: PathName) -> bytes:
    dest = bytearray(packer.pack_len(ctx, len(plaintext), meta, path_name))
    n = packer.pack(ctx, dest, plaintext, meta, path_name)
    return bytes(dest[:n])


def unpack_blob(packer: EEPacker, ctx: Context, cipher: bytes, meta: Metadata, path_name: PathName) -> bytes:
    dest = bytearray(packer.unpack_len(ctx, len(cipher), meta))
    n = packer.unpack(ctx, dest, cipher, meta, path_name)
    return bytes(dest[:n])


def packer_for(tag: Packing) -> Optional[EEPacker]:
    return packing.lookup(tag)


for _variant in packing.VARIANTS.values():
    packing.register(EEPacker(_variant))
