"""EIP-712 structured data hashing.

Types are given the way JSON-RPC wallets receive them::

    {"Person": [{"name": "name", "type": "string"}, {"name": "wallet", "type": "address"}]}

Dependency discovery walks the type graph with an explicit worklist, so
self-referencing or mutually recursive type definitions terminate.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from eth_abi import encode
from eth_abi.exceptions import EncodingError

from .encoding import keccak256, keccak_text, normalize_address, parse_bytes, parse_int, parse_uint256
from .exceptions import InvalidInputError

EIP712_DOMAIN = "EIP712Domain"

# canonical field order used when the caller does not declare EIP712Domain
DOMAIN_FIELDS = (
    ("name", "string"),
    ("version", "string"),
    ("chainId", "uint256"),
    ("verifyingContract", "address"),
    ("salt", "bytes32"),
)

TypeDefs = Mapping[str, Sequence[Mapping[str, str]]]

# struct and array levels combined; keeps value encoding well inside the interpreter stack
MAX_NESTING_DEPTH = 64

_ARRAY_RE = re.compile(r"^(.+)\[(\d*)\]$")
_UINT_RE = re.compile(r"^uint(\d{1,3})$")
_INT_RE = re.compile(r"^int(\d{1,3})$")
_BYTES_N_RE = re.compile(r"^bytes(\d{1,2})$")
_IDENT_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def _base_type(type_name: str) -> str:
    return type_name.split("[", 1)[0]


def _is_atomic(type_name: str) -> bool:
    if type_name in ("address", "bool", "string", "bytes"):
        return True
    m = _UINT_RE.match(type_name) or _INT_RE.match(type_name)
    if m:
        bits = int(m.group(1))
        return 8 <= bits <= 256 and bits % 8 == 0
    m = _BYTES_N_RE.match(type_name)
    if m:
        return 1 <= int(m.group(1)) <= 32
    return False


def _fields(types: TypeDefs, type_name: str) -> Sequence[Mapping[str, str]]:
    try:
        fields = types[type_name]
    except KeyError as e:
        raise InvalidInputError(f"missing type definition: {type_name}") from e
    if isinstance(fields, (str, bytes)) or not isinstance(fields, Sequence):
        raise InvalidInputError(f"type {type_name} must be a list of fields")
    for field in fields:
        if not isinstance(field, Mapping):
            raise InvalidInputError(f"malformed field in {type_name}: {field!r}")
        name = field.get("name")
        ftype = field.get("type")
        if not isinstance(name, str) or not isinstance(ftype, str) or not ftype:
            raise InvalidInputError(f"malformed field in {type_name}: {field!r}")
        base = _base_type(ftype)
        if base not in types and not _is_atomic(base):
            raise InvalidInputError(f"unknown type {ftype!r} in {type_name}.{name}")
    return fields


def find_dependencies(types: TypeDefs, primary_type: str) -> list[str]:
    """Return ``primary_type`` and every struct type reachable from it."""
    if primary_type not in types:
        raise InvalidInputError(f"unresolvable primaryType: {primary_type}")
    if not _IDENT_RE.match(primary_type):
        raise InvalidInputError(f"invalid type name: {primary_type!r}")

    found: list[str] = []
    visited: set[str] = set()
    pending = [primary_type]
    while pending:
        type_name = pending.pop()
        if type_name in visited:
            continue
        visited.add(type_name)
        found.append(type_name)
        for field in _fields(types, type_name):
            base = _base_type(field["type"])
            if base in types and base not in visited:
                pending.append(base)
    return found


def encode_type(types: TypeDefs, primary_type: str) -> str:
    deps = find_dependencies(types, primary_type)
    ordered = [primary_type] + sorted(d for d in deps if d != primary_type)
    out = []
    for type_name in ordered:
        params = ",".join(f"{f['type']} {f['name']}" for f in types[type_name])
        out.append(f"{type_name}({params})")
    return "".join(out)


def type_hash(types: TypeDefs, primary_type: str) -> bytes:
    return keccak_text(encode_type(types, primary_type))


def _encode_atomic(type_name: str, value: Any) -> bytes:
    if type_name == "string":
        if not isinstance(value, str):
            raise InvalidInputError(f"expected str for string, got {type(value)}")
        return keccak256(value.encode("utf-8"))
    if type_name == "bytes":
        return keccak256(parse_bytes(value))

    if type_name == "address":
        coerced: Any = normalize_address(value)
    elif type_name == "bool":
        if not isinstance(value, bool):
            raise InvalidInputError(f"expected bool, got {type(value)}")
        coerced = value
    elif type_name.startswith("uint"):
        coerced = parse_uint256(value)
    elif type_name.startswith("int"):
        coerced = parse_int(value)
    else:
        coerced = parse_bytes(value)
        size = int(type_name[5:])
        if len(coerced) > size:
            raise InvalidInputError(f"{type_name} value is {len(coerced)} bytes")

    try:
        return encode([type_name], [coerced])
    except (EncodingError, TypeError, ValueError) as e:
        raise InvalidInputError(f"cannot encode {value!r} as {type_name}") from e


def _encode_value(types: TypeDefs, type_name: str, value: Any, depth: int) -> bytes:
    m = _ARRAY_RE.match(type_name)
    if m:
        item_type, length = m.group(1), m.group(2)
        if isinstance(value, (str, bytes, bytearray, Mapping)) or not isinstance(value, Sequence):
            raise InvalidInputError(f"expected a list for {type_name}")
        if length and len(value) != int(length):
            raise InvalidInputError(f"{type_name} expects {length} items, got {len(value)}")
        return keccak256(*(_encode_value(types, item_type, item, depth + 1) for item in value))

    if type_name in types:
        if not isinstance(value, Mapping):
            raise InvalidInputError(f"expected a mapping for struct {type_name}")
        return keccak256(_encode_struct(types, type_name, value, depth + 1))

    return _encode_atomic(type_name, value)


def _encode_struct(types: TypeDefs, primary_type: str, data: Mapping[str, Any], depth: int) -> bytes:
    if depth > MAX_NESTING_DEPTH:
        raise InvalidInputError(f"typed data nested deeper than {MAX_NESTING_DEPTH} levels")
    chunks = [type_hash(types, primary_type)]
    for field in types[primary_type]:
        name = field["name"]
        if name not in data:
            raise InvalidInputError(f"{primary_type} value is missing field {name!r}")
        chunks.append(_encode_value(types, field["type"], data[name], depth))
    return b"".join(chunks)


def encode_data(types: TypeDefs, primary_type: str, data: Mapping[str, Any]) -> bytes:
    return _encode_struct(types, primary_type, data, 0)


def hash_struct(types: TypeDefs, primary_type: str, data: Mapping[str, Any]) -> bytes:
    return keccak256(encode_data(types, primary_type, data))


def domain_types(domain: Mapping[str, Any]) -> list[dict[str, str]]:
    unknown = set(domain) - {name for name, _ in DOMAIN_FIELDS}
    if unknown:
        raise InvalidInputError(f"unknown EIP712Domain fields: {sorted(unknown)}")
    return [
        {"name": name, "type": ftype}
        for name, ftype in DOMAIN_FIELDS
        if domain.get(name) is not None
    ]


def _with_domain(types: TypeDefs, domain: Mapping[str, Any]) -> dict[str, Sequence[Mapping[str, str]]]:
    merged = dict(types)
    if EIP712_DOMAIN not in merged:
        merged[EIP712_DOMAIN] = domain_types(domain)
    return merged


def domain_separator(domain: Mapping[str, Any], types: TypeDefs | None = None) -> bytes:
    if not isinstance(domain, Mapping):
        raise InvalidInputError("domain must be a mapping")
    merged = _with_domain(types or {}, domain)
    return hash_struct(merged, EIP712_DOMAIN, domain)


def hash_typed_data(
    domain: Mapping[str, Any],
    types: TypeDefs,
    primary_type: str,
    message: Mapping[str, Any] | None,
) -> bytes:
    if not isinstance(types, Mapping):
        raise InvalidInputError("types must be a mapping")
    if not isinstance(primary_type, str):
        raise InvalidInputError("primaryType must be a string")
    if not isinstance(domain, Mapping):
        raise InvalidInputError("domain must be a mapping")
    merged = _with_domain(types, domain)
    parts = [b"\x19\x01", domain_separator(domain, merged)]
    if primary_type != EIP712_DOMAIN:
        if not isinstance(message, Mapping):
            raise InvalidInputError("message must be a mapping")
        parts.append(hash_struct(merged, primary_type, message))
    return keccak256(*parts)
