"""Textual key encoding.

A public key is the two affine coordinates of the curve point written as
decimal integers separated by one newline. A private key is the scalar as a
single decimal integer. No compression, no length prefix, no curve tag: the
curve comes from the packing the key is used with.
"""
from typing import Tuple, Union

from cryptography.hazmat.primitives.asymmetric import ec

from pack_errors import MalformedKey
from packing import PackingVariant
from pack_types import KeyPair


def _parse_decimal(text: str, what: str) -> int:
    # int() would happily take "+12", " 12" or "1_2"; the encoding is digits only
    if not text or not text.isascii() or not text.isdigit():
        raise MalformedKey(f"{what}: expected a decimal integer")
    # one spelling per value
    if len(text) > 1 and text[0] == "0":
        raise MalformedKey(f"{what}: leading zeros")
    return int(text)


def _as_text(raw: Union[str, bytes], what: str) -> str:
    if isinstance(raw, (bytes, bytearray)):
        try:
            return bytes(raw).decode("ascii")
        except UnicodeDecodeError as err:
            raise MalformedKey(f"{what}: not ASCII text") from err
    return raw


def decode_public_key(variant: PackingVariant, text: Union[str, bytes]) -> ec.EllipticCurvePublicKey:
    text = _as_text(text, "public key")
    fields = text.split("\n")
    if len(fields) != 2:
        raise MalformedKey(f"public key: expected 2 fields, got {len(fields)}")
    x = _parse_decimal(fields[0], "public key x")
    y = _parse_decimal(fields[1], "public key y")
    if not (x < variant.prime and y < variant.prime):
        raise MalformedKey(f"public key: coordinate out of range for {variant.name}")
    try:
        # OpenSSL rejects points that are not on the curve
        return ec.EllipticCurvePublicNumbers(x, y, variant.new_curve()).public_key()
    except ValueError as err:
        raise MalformedKey(f"public key: point is not on {variant.name}") from err


def decode_private_key(variant: PackingVariant, text: Union[str, bytes]) -> ec.EllipticCurvePrivateKey:
    text = _as_text(text, "private key")
    d = _parse_decimal(text, "private key")
    if not 1 <= d < variant.order:
        raise MalformedKey(f"private key: scalar out of range for {variant.name}")
    try:
        return ec.derive_private_key(d, variant.new_curve())
    except ValueError as err:
        raise MalformedKey(f"private key: unusable on {variant.name}") from err


def encode_public_key(key: ec.EllipticCurvePublicKey) -> str:
    numbers = key.public_numbers()
    return f"{numbers.x}\n{numbers.y}"


def encode_private_key(key: ec.EllipticCurvePrivateKey) -> str:
    return str(key.private_numbers().private_value)


def decode_key_pair(
    variant: PackingVariant, pair: KeyPair
) -> Tuple[ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey]:
    """Decode both halves of a context key pair. Either half failing is MalformedKey."""
    if pair is None:
        raise MalformedKey("key pair: none configured")
    return decode_public_key(variant, pair.public), decode_private_key(variant, pair.private)
