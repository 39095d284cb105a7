import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Type

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305


log = logging.getLogger(__name__)


class Packing(enum.Enum):
    """Packing tags. The value is what gets stored next to a blob."""
    EEP256 = "ee.p256"
    EEP521 = "ee.p521"


@dataclass(frozen=True)
class PackingVariant:
    """
    Everything that differs between the two elliptic-curve packings.

    The packer itself is written once and takes one of these, so adding a
    curve means adding a row to VARIANTS and nothing else.
    """
    packing: Packing
    curve: Type[ec.EllipticCurve]
    # field prime p, point coordinates must satisfy 0 <= x, y < p
    prime: int
    # group order n, private scalars must satisfy 1 <= d < n
    order: int
    hash_algorithm: Type[hashes.HashAlgorithm]
    aead: Callable[[bytes], object]
    aead_name: str

    @property
    def name(self) -> str:
        return self.packing.value

    def new_curve(self) -> ec.EllipticCurve:
        return self.curve()

    def new_hash(self) -> hashes.HashAlgorithm:
        return self.hash_algorithm()

    def new_aead(self, key: bytes):
        return self.aead(key)

    def signature_algorithm(self) -> ec.ECDSA:
        return ec.ECDSA(self.new_hash())


P256_PRIME = 2**256 - 2**224 + 2**192 + 2**96 - 1
P521_PRIME = 2**521 - 1

P256_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551
P521_ORDER = int(
    "01FF"
    "FFFFFFFF" "FFFFFFFF" "FFFFFFFF" "FFFFFFFF" "FFFFFFFF" "FFFFFFFF" "FFFFFFFF"
    "FFFFFFFA" "51868783" "BF2F966B" "7FCC0148" "F709A5D0" "3BB5C9B8" "899C47AE"
    "BB6FB71E" "91386409",
    16,
)

VARIANTS: Dict[Packing, PackingVariant] = {
    Packing.EEP256: PackingVariant(
        packing=Packing.EEP256,
        curve=ec.SECP256R1,
        prime=P256_PRIME,
        order=P256_ORDER,
        hash_algorithm=hashes.SHA256,
        aead=ChaCha20Poly1305,
        aead_name="ChaCha20-Poly1305",
    ),
    Packing.EEP521: PackingVariant(
        packing=Packing.EEP521,
        curve=ec.SECP521R1,
        prime=P521_PRIME,
        order=P521_ORDER,
        hash_algorithm=hashes.SHA512,
        aead=AESGCM,
        aead_name="AES-256-GCM",
    ),
}


def variant_for(packing: Packing) -> PackingVariant:
    try:
        return VARIANTS[packing]
    except KeyError:
        raise ValueError(f"variant_for: unknown packing {packing!r}") from None


# --- Packer registry ---
# Plain table from tag to packer instance. ee_packer fills it at import time.

_registry: Dict[Packing, object] = {}


def register(packer) -> None:
    tag = packer.packing()
    if tag in _registry:
        raise ValueError(f"register: packing {tag.value} already registered")
    _registry[tag] = packer
    log.debug("registered packer for %s", tag.value)


def lookup(packing: Packing) -> Optional[object]:
    if not _registry:
        import ee_packer  # noqa: F401  registers the built-in packers
    return _registry.get(packing)
