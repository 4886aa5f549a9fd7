from __future__ import annotations

from decimal import Decimal
from typing import Any

from eth_utils import (  # type: ignore[attr-defined]
    is_hex,
    keccak,
    to_checksum_address,
)
from hexbytes import HexBytes

from .exceptions import InvalidInputError


def ensure_0x(s: str) -> str:
    s = s.strip()
    if s.startswith("0x") or s.startswith("0X"):
        return "0x" + s[2:]
    return "0x" + s


def normalize_address(addr: Any) -> str:
    if isinstance(addr, (bytes, bytearray)):
        if len(addr) != 20:
            raise InvalidInputError(f"address must be 20 bytes, got {len(addr)}")
        return to_checksum_address(bytes(addr))
    if not isinstance(addr, str):
        raise InvalidInputError(f"unsupported address type: {type(addr)}")
    addr = ensure_0x(addr)
    if len(addr) != 42 or not is_hex(addr):
        raise InvalidInputError(f"invalid address: {addr}")
    try:
        return to_checksum_address(addr)
    except Exception as e:  # noqa: BLE001
        raise InvalidInputError(f"invalid address: {addr}") from e


def address_to_bytes(addr: Any) -> bytes:
    return bytes.fromhex(normalize_address(addr)[2:])


def parse_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, HexBytes):
        return bytes(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        s = value.strip()
        if not (s.startswith("0x") or s.startswith("0X")):
            raise InvalidInputError(f"expected 0x-prefixed hex bytes: {value!r}")
        body = s[2:]
        if len(body) % 2:
            body = "0" + body
        try:
            return bytes.fromhex(body)
        except ValueError as e:
            raise InvalidInputError(f"invalid 0x hex bytes: {value!r}") from e
    raise InvalidInputError(f"unsupported bytes type: {type(value)}")


def parse_bytes32(value: Any) -> bytes:
    b = parse_bytes(value)
    if len(b) != 32:
        raise InvalidInputError(f"expected 32 bytes, got {len(b)}")
    return b


def parse_uint256(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise InvalidInputError("uint256 cannot be bool")
    if isinstance(value, int):
        if value < 0:
            raise InvalidInputError("uint256 cannot be negative")
        if value >= 2**256:
            raise InvalidInputError("uint256 overflow")
        return value
    if isinstance(value, Decimal):
        i = int(value)
        if Decimal(i) != value:
            raise InvalidInputError("uint256 must be an integer")
        return parse_uint256(i)
    if isinstance(value, str):
        s = value.strip()
        try:
            if s.startswith("0x") or s.startswith("0X"):
                return parse_uint256(int(s, 16) if len(s) > 2 else 0)
            return parse_uint256(int(s, 10))
        except ValueError as e:
            raise InvalidInputError(f"invalid integer string: {value!r}") from e
    raise InvalidInputError(f"unsupported uint256 type: {type(value)}")


def parse_int(value: Any) -> int:
    """Signed counterpart of :func:`parse_uint256`; range is left to the ABI encoder."""
    if isinstance(value, bool):
        raise InvalidInputError("int cannot be bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        s = value.strip()
        negative = s.startswith("-")
        body = s[1:] if negative else s
        try:
            if body.startswith("0x") or body.startswith("0X"):
                n = int(body, 16)
            else:
                n = int(body, 10)
        except ValueError as e:
            raise InvalidInputError(f"invalid integer string: {value!r}") from e
        return -n if negative else n
    if isinstance(value, Decimal):
        i = int(value)
        if Decimal(i) != value:
            raise InvalidInputError("int must be an integer")
        return i
    raise InvalidInputError(f"unsupported int type: {type(value)}")


def bytes_to_hex(b: bytes) -> str:
    return "0x" + b.hex()


def keccak256(*chunks: bytes) -> bytes:
    return keccak(b"".join(chunks))


def keccak_text(text: str) -> bytes:
    return keccak(text=text)
