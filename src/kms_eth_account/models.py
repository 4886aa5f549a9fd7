from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.functional_validators import BeforeValidator

from .encoding import (
    bytes_to_hex,
    normalize_address,
    parse_bytes,
    parse_bytes32,
    parse_uint256,
)
from .exceptions import InvalidInputError

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SIGNATURE_LENGTH = 65


@dataclass(frozen=True)
class RawSignature:
    """(r, s) pair straight from the oracle; s may be in the upper half of the order."""

    r: int
    s: int

    def __post_init__(self) -> None:
        if not 0 < self.r < SECP256K1_N:
            raise InvalidInputError("signature r out of range")
        if not 0 < self.s < SECP256K1_N:
            raise InvalidInputError("signature s out of range")

    @property
    def is_low_s(self) -> bool:
        return self.s <= SECP256K1_HALF_N


@dataclass(frozen=True)
class Signature:
    r: int
    s: int
    recovery_id: int

    def __post_init__(self) -> None:
        if not 0 < self.r < SECP256K1_N:
            raise InvalidInputError("signature r out of range")
        if not 0 < self.s <= SECP256K1_HALF_N:
            raise InvalidInputError("signature s must be in the lower half of the curve order")
        if self.recovery_id not in (0, 1):
            raise InvalidInputError(f"recovery id must be 0 or 1, got {self.recovery_id}")

    @property
    def v(self) -> int:
        return 27 + self.recovery_id

    @property
    def y_parity(self) -> int:
        return self.recovery_id

    def to_bytes(self) -> bytes:
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v])

    def to_hex(self) -> str:
        return bytes_to_hex(self.to_bytes())

    @classmethod
    def from_bytes(cls, data: bytes) -> Signature:
        if len(data) != SIGNATURE_LENGTH:
            raise InvalidInputError(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(data)}")
        v = data[64]
        if v in (27, 28):
            v -= 27
        return cls(
            r=int.from_bytes(data[:32], "big"),
            s=int.from_bytes(data[32:64], "big"),
            recovery_id=v,
        )

    @classmethod
    def from_hex(cls, value: str) -> Signature:
        return cls.from_bytes(parse_bytes(value))

    @classmethod
    def coerce(cls, value: Signature | bytes | str) -> Signature:
        if isinstance(value, Signature):
            return value
        if isinstance(value, str):
            return cls.from_hex(value)
        return cls.from_bytes(parse_bytes(value))


@dataclass(frozen=True)
class RawMessage:
    """Pre-hashed or otherwise opaque bytes that are hashed without the EIP-191 prefix."""

    raw: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", parse_bytes(self.raw))


def to_camel(s: str) -> str:
    parts = s.split("_")
    return parts[0] + "".join(p.capitalize() for p in parts[1:])


BytesData = Annotated[bytes, BeforeValidator(parse_bytes)]
Bytes32 = Annotated[bytes, BeforeValidator(parse_bytes32)]
Uint256 = Annotated[int, BeforeValidator(parse_uint256)]
Address = Annotated[str, BeforeValidator(normalize_address)]


def _normalize_recipient(value: Any) -> Optional[str]:
    # empty recipient means contract creation, never the zero address
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)) and not value:
        return None
    if isinstance(value, str) and value.strip() in ("", "0x", "0X"):
        return None
    return normalize_address(value)


Recipient = Annotated[Optional[str], BeforeValidator(_normalize_recipient)]


class SDKModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
        frozen=True,
    )


class AccessListEntry(SDKModel):
    address: Address
    storage_keys: list[Bytes32] = []


_UNSUPPORTED_TX_FIELDS = (
    "authorizationList",
    "blobVersionedHashes",
    "maxFeePerBlobGas",
    "blobs",
    "sidecars",
)


class TransactionRequest(SDKModel):
    type: Optional[Union[int, str]] = None
    chain_id: Optional[Uint256] = None
    nonce: Uint256 = 0
    gas: Uint256 = 0
    gas_price: Optional[Uint256] = None
    max_fee_per_gas: Optional[Uint256] = None
    max_priority_fee_per_gas: Optional[Uint256] = None
    to: Recipient = None
    value: Uint256 = 0
    data: BytesData = b""
    access_list: Optional[list[AccessListEntry]] = None

    @model_validator(mode="before")
    @classmethod
    def _reject_unsupported_fields(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            for name in _UNSUPPORTED_TX_FIELDS:
                if data.get(name) is not None:
                    raise ValueError(f"unsupported transaction field: {name}")
        return data

    @classmethod
    def coerce(cls, tx: TransactionRequest | Mapping[str, Any]) -> TransactionRequest:
        if isinstance(tx, TransactionRequest):
            return tx
        if not isinstance(tx, Mapping):
            raise InvalidInputError(f"unsupported transaction type: {type(tx)}")
        try:
            return cls.model_validate(tx)
        except ValidationError as e:
            raise InvalidInputError(f"invalid transaction: {e}") from e
