"""Signing oracles: remote (AWS KMS) or in-process secp256k1 keys.

An oracle signs 32-byte digests and reports its public key. It never hands
out private key material and never adds a recovery id or normalizes ``s``;
that is done by :mod:`kms_eth_account.recovery`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature

from .encoding import parse_bytes, parse_bytes32
from .exceptions import InvalidInputError, OracleRejectedError, OracleUnavailableError
from .models import RawSignature

if TYPE_CHECKING:
    from .config import KmsConfig

logger = logging.getLogger(__name__)

KMS_SIGNING_ALGORITHM = "ECDSA_SHA_256"

# KMS error codes that mean "the key or its policy said no", as opposed to
# transport, throttling or credential problems.
_REJECTED_ERROR_CODES = frozenset(
    {
        "AccessDeniedException",
        "DisabledException",
        "DryRunOperationException",
        "IncorrectKeyException",
        "InvalidGrantTokenException",
        "InvalidKeyUsageException",
        "KMSInvalidStateException",
        "NotFoundException",
        "UnsupportedOperationException",
    }
)


@runtime_checkable
class SigningOracle(Protocol):
    def sign(self, digest: bytes) -> RawSignature:
        """Sign a 32-byte digest; the result carries no recovery id."""

    def get_public_key(self) -> bytes:
        """Uncompressed secp256k1 public key (0x04 | x | y)."""


def decode_der_signature(der: bytes) -> RawSignature:
    try:
        r, s = decode_dss_signature(der)
        return RawSignature(r=r, s=s)
    except (ValueError, InvalidInputError) as e:
        raise OracleUnavailableError("oracle returned a malformed DER signature") from e


def uncompressed_point(public_key: ec.EllipticCurvePublicKey) -> bytes:
    if not isinstance(public_key.curve, ec.SECP256K1):
        raise OracleRejectedError(f"key curve is {public_key.curve.name}, expected secp256k1")
    return public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


class LocalSigningOracle:
    """Oracle backed by an in-process key; produces DER signatures the way KMS does."""

    def __init__(self, private_key: Optional[str | bytes] = None) -> None:
        if private_key is None:
            self._key = ec.generate_private_key(ec.SECP256K1())
        else:
            secret = int.from_bytes(parse_bytes32(private_key), "big")
            try:
                self._key = ec.derive_private_key(secret, ec.SECP256K1())
            except ValueError as e:
                raise InvalidInputError("invalid secp256k1 private key") from e

    def sign(self, digest: bytes) -> RawSignature:
        digest = parse_bytes32(digest)
        der = self._key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
        return decode_der_signature(der)

    def get_public_key(self) -> bytes:
        return uncompressed_point(self._key.public_key())


class KmsSigningOracle:
    def __init__(self, key_id: str, client: Any) -> None:
        if not key_id:
            raise InvalidInputError("key_id is required")
        self.key_id = key_id
        self._kms = client

    @classmethod
    def from_config(cls, config: KmsConfig) -> KmsSigningOracle:
        client_kwargs: dict[str, Any] = {
            "region_name": config.region,
            "aws_access_key_id": config.access_key_id,
            "aws_secret_access_key": config.secret_access_key.get_secret_value(),
            "config": Config(
                connect_timeout=config.connect_timeout,
                read_timeout=config.read_timeout,
                # a retried Sign is a second entry in the key-usage audit log
                retries={"total_max_attempts": 1, "mode": "standard"},
            ),
        }
        if config.endpoint_url:
            client_kwargs["endpoint_url"] = config.endpoint_url
        return cls(config.key_id, boto3.client("kms", **client_kwargs))

    def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        logger.debug("kms %s key_id=%s", operation, self.key_id)
        try:
            return getattr(self._kms, operation)(KeyId=self.key_id, **params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _REJECTED_ERROR_CODES:
                raise OracleRejectedError(f"KMS {operation} rejected: {code}") from e
            raise OracleUnavailableError(f"KMS {operation} failed: {code or e}") from e
        except BotoCoreError as e:
            raise OracleUnavailableError(f"KMS {operation} failed: {e}") from e

    def sign(self, digest: bytes) -> RawSignature:
        digest = parse_bytes32(digest)
        resp = self._call(
            "sign",
            Message=digest,
            MessageType="DIGEST",
            SigningAlgorithm=KMS_SIGNING_ALGORITHM,
        )
        der = resp.get("Signature")
        if not der:
            raise OracleUnavailableError("KMS sign response has no Signature")
        return decode_der_signature(parse_bytes(der))

    def get_public_key(self) -> bytes:
        resp = self._call("get_public_key")
        der = resp.get("PublicKey")
        if not der:
            raise OracleUnavailableError("KMS get_public_key response has no PublicKey")
        try:
            pub = serialization.load_der_public_key(parse_bytes(der))
        except ValueError as e:
            raise OracleUnavailableError("KMS returned a malformed public key") from e
        if not isinstance(pub, ec.EllipticCurvePublicKey):
            raise OracleRejectedError("KMS key is not an elliptic-curve key")
        return uncompressed_point(pub)
