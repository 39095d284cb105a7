from __future__ import annotations

import os
import unittest

from cryptography.hazmat.primitives.asymmetric import ec

import blob_crypto as bc
import key_management as km
import signing
from pack_errors import AuthenticationFailed, SignatureInvalid, UnwrapFailed
from packing import VARIANTS, Packing
from wrapped_keys import WrappedKeyEntry


OWNER = "dude@google.com"
READER = "bob@foo.com"


class _Keys:
    def __init__(self, tag: Packing):
        self.variant = VARIANTS[tag]
        self.owner = ec.generate_private_key(self.variant.new_curve())
        self.reader = ec.generate_private_key(self.variant.new_curve())
        self.other = ec.generate_private_key(self.variant.new_curve())


class TestBlobCrypto(unittest.TestCase):
    def test_round_trip_both_ciphers(self):
        for tag in (Packing.EEP256, Packing.EEP521):
            with self.subTest(tag=tag):
                variant = VARIANTS[tag]
                key = bc.generate_symmetric_key(variant)
                blob = bc.encrypt_blob(variant, key, b"hello world", b"dude@google.com/f")
                self.assertEqual(len(blob), 11 + bc.blob_overhead(variant))
                self.assertEqual(bc.decrypt_blob(variant, key, blob, b"dude@google.com/f"), b"hello world")

    def test_keys_and_nonces_are_fresh(self):
        variant = VARIANTS[Packing.EEP256]
        self.assertNotEqual(bc.generate_symmetric_key(variant), bc.generate_symmetric_key(variant))
        key = bc.generate_symmetric_key(variant)
        a = bc.encrypt_blob(variant, key, b"same", b"")
        b = bc.encrypt_blob(variant, key, b"same", b"")
        self.assertNotEqual(a[:bc.NONCE_SIZE], b[:bc.NONCE_SIZE])

    def test_failures(self):
        variant = VARIANTS[Packing.EEP256]
        key = bc.generate_symmetric_key(variant)
        blob = bc.encrypt_blob(variant, key, b"payload", b"aad")
        with self.assertRaises(AuthenticationFailed):
            bc.decrypt_blob(variant, key, blob, b"other aad")
        with self.assertRaises(AuthenticationFailed):
            bc.decrypt_blob(variant, os.urandom(bc.KEY_SIZE), blob, b"aad")
        with self.assertRaises(AuthenticationFailed):
            bc.decrypt_blob(variant, key, blob[:bc.NONCE_SIZE + bc.TAG_SIZE - 1], b"aad")
        tampered = bytearray(blob)
        tampered[bc.NONCE_SIZE] ^= 0x80
        with self.assertRaises(AuthenticationFailed):
            bc.decrypt_blob(variant, key, bytes(tampered), b"aad")

    def test_bad_key_size(self):
        with self.assertRaises(ValueError):
            bc.encrypt_blob(VARIANTS[Packing.EEP256], b"short", b"x", b"")


class TestWrapping(unittest.TestCase):
    def test_ecdh_is_symmetric(self):
        k = _Keys(Packing.EEP256)
        self.assertEqual(
            km.shared_secret(k.owner, k.reader.public_key()),
            km.shared_secret(k.reader, k.owner.public_key()),
        )

    def test_wrap_unwrap_both_curves(self):
        for tag in (Packing.EEP256, Packing.EEP521):
            with self.subTest(tag=tag):
                k = _Keys(tag)
                sym = bc.generate_symmetric_key(k.variant)
                wrapped = km.wrap_key(k.variant, sym, k.owner, OWNER, READER, k.reader.public_key())
                self.assertEqual(len(wrapped), km.WRAPPED_SIZE)
                self.assertEqual(km.unwrap_key(k.variant, wrapped, k.reader, k.owner.public_key(), OWNER, READER), sym)

    def test_wrong_reader_key(self):
        k = _Keys(Packing.EEP256)
        sym = bc.generate_symmetric_key(k.variant)
        wrapped = km.wrap_key(k.variant, sym, k.owner, OWNER, READER, k.reader.public_key())
        with self.assertRaises(UnwrapFailed):
            km.unwrap_key(k.variant, wrapped, k.other, k.owner.public_key(), OWNER, READER)

    def test_entry_moved_to_other_identity(self):
        k = _Keys(Packing.EEP256)
        sym = bc.generate_symmetric_key(k.variant)
        wrapped = km.wrap_key(k.variant, sym, k.owner, OWNER, READER, k.reader.public_key())
        with self.assertRaises(UnwrapFailed):
            km.unwrap_key(k.variant, wrapped, k.reader, k.owner.public_key(), OWNER, "eve@evil.com")

    def test_tampered_wrapped_bytes(self):
        k = _Keys(Packing.EEP256)
        sym = bc.generate_symmetric_key(k.variant)
        wrapped = km.wrap_key(k.variant, sym, k.owner, OWNER, READER, k.reader.public_key())
        for i in (0, km.SALT_SIZE, len(wrapped) - 1):
            with self.subTest(byte=i):
                bad = bytearray(wrapped)
                bad[i] ^= 0x01
                with self.assertRaises(UnwrapFailed):
                    km.unwrap_key(k.variant, bytes(bad), k.reader, k.owner.public_key(), OWNER, READER)
        with self.assertRaises(UnwrapFailed):
            km.unwrap_key(k.variant, wrapped[:-1], k.reader, k.owner.public_key(), OWNER, READER)

    def test_decoy_never_unwraps(self):
        k = _Keys(Packing.EEP256)
        decoy = km.decoy_wrapped_key(k.variant)
        self.assertEqual(len(decoy), km.WRAPPED_SIZE)
        with self.assertRaises(UnwrapFailed):
            km.unwrap_key(k.variant, decoy, k.reader, k.owner.public_key(), OWNER, READER)

    def test_bad_content_key(self):
        k = _Keys(Packing.EEP256)
        with self.assertRaises(ValueError):
            km.wrap_key(k.variant, b"\x00" * 16, k.owner, OWNER, READER, k.reader.public_key())


class TestSigning(unittest.TestCase):
    def setUp(self):
        self.k = _Keys(Packing.EEP256)
        self.entries = [WrappedKeyEntry(OWNER, b"a" * 76), WrappedKeyEntry(READER, b"b" * 76)]
        self.cipher = os.urandom(64)
        self.name = OWNER + "/f"
        self.sig = signing.sign_blob(self.k.variant, self.k.owner, self.cipher, self.entries, self.name)

    def _verify(self, **overrides):
        args = dict(public_key=self.k.owner.public_key(), signature=self.sig,
                    cipher=self.cipher, wrapped_keys=self.entries, path_name=self.name)
        args.update(overrides)
        signing.verify_blob(self.k.variant, **args)

    def test_good_signature(self):
        self._verify()
        self._verify(wrapped_keys=list(reversed(self.entries)))

    def test_each_input_is_bound(self):
        cases = {
            "cipher": dict(cipher=self.cipher[:-1] + bytes([self.cipher[-1] ^ 1])),
            "wrapped": dict(wrapped_keys=[self.entries[0], WrappedKeyEntry(READER, b"c" * 76)]),
            "dropped reader": dict(wrapped_keys=self.entries[:1]),
            "path": dict(path_name=OWNER + "/g"),
            "signer": dict(public_key=self.k.other.public_key()),
            "empty signature": dict(signature=b""),
            "garbage signature": dict(signature=b"\x30\x00"),
        }
        for label, override in cases.items():
            with self.subTest(label):
                with self.assertRaises(SignatureInvalid):
                    self._verify(**override)

    def test_fields_do_not_slide(self):
        a = signing.signed_message(self.k.variant, b"xy", [], "o/ab")
        b = signing.signed_message(self.k.variant, b"bxy", [], "o/a")
        self.assertNotEqual(a, b)

    def test_p521_signature(self):
        k = _Keys(Packing.EEP521)
        sig = signing.sign_blob(k.variant, k.owner, self.cipher, self.entries, self.name)
        signing.verify_blob(k.variant, k.owner.public_key(), sig, self.cipher, self.entries, self.name)


if __name__ == "__main__":
    unittest.main()
