from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Union

from .encoding import keccak256
from .exceptions import InvalidInputError
from .models import RawMessage
from .transactions import TransactionLike, transaction_signing_hash
from .typed_data import TypeDefs, hash_typed_data

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"

SignableMessage = Union[str, RawMessage, Mapping[str, Any]]


def personal_message_bytes(message: str) -> bytes:
    data = message.encode("utf-8")
    # EIP-191 length is counted in bytes, not characters
    return PERSONAL_MESSAGE_PREFIX + str(len(data)).encode("ascii") + data


def message_digest(message: SignableMessage) -> bytes:
    if isinstance(message, str):
        return keccak256(personal_message_bytes(message))
    if isinstance(message, RawMessage):
        return keccak256(message.raw)
    if isinstance(message, Mapping) and "raw" in message:
        return keccak256(RawMessage(raw=message["raw"]).raw)
    raise InvalidInputError(f"unsupported message format: {type(message)}")


def typed_data_digest(
    domain: Mapping[str, Any],
    types: TypeDefs,
    primary_type: str,
    message: Optional[Mapping[str, Any]],
) -> bytes:
    return hash_typed_data(domain, types, primary_type, message)


def transaction_digest(tx: TransactionLike, chain_id: Optional[int] = None) -> bytes:
    return transaction_signing_hash(tx, chain_id)
