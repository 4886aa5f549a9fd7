from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Union

import rlp

from .encoding import address_to_bytes, keccak256, parse_uint256
from .exceptions import InvalidInputError
from .models import Signature, TransactionRequest

LEGACY_TX_TYPE = 0
ACCESS_LIST_TX_TYPE = 1
DYNAMIC_FEE_TX_TYPE = 2

_TX_TYPE_NAMES = {
    "legacy": LEGACY_TX_TYPE,
    "eip155": LEGACY_TX_TYPE,
    "eip2930": ACCESS_LIST_TX_TYPE,
    "eip1559": DYNAMIC_FEE_TX_TYPE,
}

TransactionLike = Union[TransactionRequest, Mapping[str, Any]]


def resolve_tx_type(tx: TransactionRequest) -> int:
    if tx.type is None:
        if tx.max_fee_per_gas is not None or tx.max_priority_fee_per_gas is not None:
            return DYNAMIC_FEE_TX_TYPE
        if tx.access_list is not None:
            return ACCESS_LIST_TX_TYPE
        return LEGACY_TX_TYPE

    raw = tx.type
    if isinstance(raw, str):
        key = raw.strip().lower()
        if key in _TX_TYPE_NAMES:
            return _TX_TYPE_NAMES[key]
        try:
            raw = parse_uint256(key)
        except InvalidInputError as e:
            raise InvalidInputError(f"unsupported transaction type: {tx.type!r}") from e
    if raw not in (LEGACY_TX_TYPE, ACCESS_LIST_TX_TYPE, DYNAMIC_FEE_TX_TYPE):
        raise InvalidInputError(f"unsupported transaction type: {tx.type!r}")
    return int(raw)


def _resolve_chain_id(tx: TransactionRequest, chain_id: Optional[int]) -> Optional[int]:
    if chain_id is not None:
        chain_id = parse_uint256(chain_id)
        if tx.chain_id is not None and tx.chain_id != chain_id:
            raise InvalidInputError(
                f"chain id mismatch: transaction has {tx.chain_id}, got {chain_id}"
            )
        return chain_id
    return tx.chain_id


def _require(value: Optional[int], name: str, tx_type: int) -> int:
    if value is None:
        raise InvalidInputError(f"{name} is required for type {tx_type} transactions")
    return value


def _to_bytes(tx: TransactionRequest) -> bytes:
    # contract creation is encoded as an empty string
    return address_to_bytes(tx.to) if tx.to is not None else b""


def _access_list(tx: TransactionRequest) -> list[list[Any]]:
    return [
        [address_to_bytes(entry.address), list(entry.storage_keys)]
        for entry in tx.access_list or []
    ]


def _fields(tx: TransactionRequest, chain_id: Optional[int]) -> tuple[int, Optional[int], list[Any]]:
    tx_type = resolve_tx_type(tx)
    chain_id = _resolve_chain_id(tx, chain_id)

    if tx_type == LEGACY_TX_TYPE:
        if tx.access_list:
            raise InvalidInputError("legacy transactions cannot carry an access list")
        if tx.max_fee_per_gas is not None or tx.max_priority_fee_per_gas is not None:
            raise InvalidInputError("legacy transactions cannot carry fee-market fields")
        fields = [
            tx.nonce,
            _require(tx.gas_price, "gasPrice", tx_type),
            tx.gas,
            _to_bytes(tx),
            tx.value,
            tx.data,
        ]
        return tx_type, chain_id, fields

    if chain_id is None:
        raise InvalidInputError(f"chainId is required for type {tx_type} transactions")

    if tx_type == ACCESS_LIST_TX_TYPE:
        if tx.max_fee_per_gas is not None or tx.max_priority_fee_per_gas is not None:
            raise InvalidInputError("access-list transactions cannot carry fee-market fields")
        fields = [
            chain_id,
            tx.nonce,
            _require(tx.gas_price, "gasPrice", tx_type),
            tx.gas,
            _to_bytes(tx),
            tx.value,
            tx.data,
            _access_list(tx),
        ]
        return tx_type, chain_id, fields

    if tx.gas_price is not None:
        raise InvalidInputError("fee-market transactions cannot carry gasPrice")
    max_fee = _require(tx.max_fee_per_gas, "maxFeePerGas", tx_type)
    max_priority_fee = _require(tx.max_priority_fee_per_gas, "maxPriorityFeePerGas", tx_type)
    if max_priority_fee > max_fee:
        raise InvalidInputError("maxPriorityFeePerGas cannot exceed maxFeePerGas")
    fields = [
        chain_id,
        tx.nonce,
        max_priority_fee,
        max_fee,
        tx.gas,
        _to_bytes(tx),
        tx.value,
        tx.data,
        _access_list(tx),
    ]
    return tx_type, chain_id, fields


def serialize_unsigned_transaction(tx: TransactionLike, chain_id: Optional[int] = None) -> bytes:
    """Return the bytes whose keccak256 is the transaction signing hash."""
    tx_model = TransactionRequest.coerce(tx)
    tx_type, resolved_chain_id, fields = _fields(tx_model, chain_id)
    if tx_type == LEGACY_TX_TYPE:
        if resolved_chain_id is not None:
            # EIP-155 replay protection
            fields = fields + [resolved_chain_id, 0, 0]
        return rlp.encode(fields)
    return bytes([tx_type]) + rlp.encode(fields)


def transaction_signing_hash(tx: TransactionLike, chain_id: Optional[int] = None) -> bytes:
    return keccak256(serialize_unsigned_transaction(tx, chain_id))


def encode_signed_transaction(
    tx: TransactionLike,
    signature: Signature | bytes | str,
    chain_id: Optional[int] = None,
) -> bytes:
    """Serialize ``tx`` with ``signature`` into a raw, broadcastable envelope."""
    sig = Signature.coerce(signature)
    tx_model = TransactionRequest.coerce(tx)
    tx_type, resolved_chain_id, fields = _fields(tx_model, chain_id)
    if tx_type == LEGACY_TX_TYPE:
        if resolved_chain_id is not None:
            v = resolved_chain_id * 2 + 35 + sig.y_parity
        else:
            v = sig.v
        return rlp.encode(fields + [v, sig.r, sig.s])
    return bytes([tx_type]) + rlp.encode(fields + [sig.y_parity, sig.r, sig.s])
