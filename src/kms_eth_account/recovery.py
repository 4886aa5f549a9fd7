from __future__ import annotations

import logging

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak, to_checksum_address

from .encoding import normalize_address, parse_bytes32
from .exceptions import InvalidInputError, RecoveryFailedError
from .models import SECP256K1_HALF_N, SECP256K1_N, RawSignature, Signature

logger = logging.getLogger(__name__)


def public_key_to_address(public_key: bytes) -> str:
    """Checksum address of an uncompressed secp256k1 point (with or without 0x04 prefix)."""
    if len(public_key) == 65:
        if public_key[0] != 0x04:
            raise InvalidInputError("uncompressed public key must start with 0x04")
        public_key = public_key[1:]
    if len(public_key) != 64:
        raise InvalidInputError(f"public key must be 64 or 65 bytes, got {len(public_key)}")
    return to_checksum_address(keccak(public_key)[-20:])


def normalize_signature(raw: RawSignature) -> RawSignature:
    """Map ``s`` into the lower half of the curve order.

    Negating ``s`` reflects the nonce point, so the recovery id of the
    normalized signature is the opposite parity of the original one.
    """
    if raw.s > SECP256K1_HALF_N:
        return RawSignature(r=raw.r, s=SECP256K1_N - raw.s)
    return raw


def _recover(digest: bytes, r: int, s: int, recovery_id: int) -> keys.PublicKey | None:
    try:
        sig = keys.Signature(vrs=(recovery_id, r, s))
        return sig.recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError, ValueError):
        return None


def attach_recovery_id(digest: bytes, raw: RawSignature, expected_address: str) -> Signature:
    digest = parse_bytes32(digest)
    expected = normalize_address(expected_address)
    canonical = normalize_signature(raw)

    for recovery_id in (0, 1):
        pub = _recover(digest, canonical.r, canonical.s, recovery_id)
        if pub is not None and pub.to_checksum_address() == expected:
            return Signature(r=canonical.r, s=canonical.s, recovery_id=recovery_id)

    logger.error("signature for digest 0x%s does not recover to %s", digest.hex(), expected)
    raise RecoveryFailedError(f"signature does not recover to {expected}")


def recover_public_key(digest: bytes, signature: Signature | bytes | str) -> bytes:
    """Uncompressed (0x04-prefixed) public key that produced ``signature``."""
    sig = Signature.coerce(signature)
    pub = _recover(parse_bytes32(digest), sig.r, sig.s, sig.recovery_id)
    if pub is None:
        raise RecoveryFailedError("public key recovery failed")
    return b"\x04" + pub.to_bytes()


def recover_address(digest: bytes, signature: Signature | bytes | str) -> str:
    return public_key_to_address(recover_public_key(digest, signature))
