from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any, Optional, Protocol, runtime_checkable

from .config import KmsConfig
from .exceptions import UnsupportedOperationError
from .models import Signature
from .oracle import KmsSigningOracle, SigningOracle
from .recovery import attach_recovery_id, public_key_to_address
from .signing import SignableMessage, message_digest, transaction_digest, typed_data_digest
from .transactions import TransactionLike
from .typed_data import TypeDefs

logger = logging.getLogger(__name__)


@runtime_checkable
class WalletAccount(Protocol):
    @property
    def address(self) -> str:  # EIP-55
        ...

    def get_address(self) -> str: ...

    def sign_message(self, message: SignableMessage) -> Signature: ...

    def sign_typed_data(
        self,
        domain: Mapping[str, Any],
        types: TypeDefs,
        primary_type: str,
        message: Optional[Mapping[str, Any]],
    ) -> Signature: ...

    def sign_transaction(self, tx: TransactionLike, chain_id: Optional[int] = None) -> Signature: ...

    def send_transaction(self, tx: TransactionLike) -> Any: ...

    def estimate_gas(self, tx: TransactionLike) -> int: ...


class KmsAccount:
    """Signing-only Ethereum account whose key lives behind a :class:`SigningOracle`.

    The public key and address are fetched lazily, exactly once per instance.
    Concurrent first callers wait on the same fetch; a failed fetch leaves
    nothing cached so the next call tries again.
    """

    def __init__(self, oracle: SigningOracle) -> None:
        self._oracle = oracle
        self._lock = threading.Lock()
        # (public key, checksummed address), populated once
        self._identity: Optional[tuple[bytes, str]] = None

    @classmethod
    def from_config(cls, config: KmsConfig) -> KmsAccount:
        return cls(KmsSigningOracle.from_config(config))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> KmsAccount:
        return cls.from_config(KmsConfig.from_env(environ))

    @property
    def is_ready(self) -> bool:
        return self._identity is not None

    def _ensure_ready(self) -> tuple[bytes, str]:
        identity = self._identity
        if identity is not None:
            return identity
        with self._lock:
            if self._identity is None:
                public_key = self._oracle.get_public_key()
                address = public_key_to_address(public_key)
                self._identity = (public_key, address)
                logger.info("derived account address %s", address)
            return self._identity

    def get_address(self) -> str:
        return self._ensure_ready()[1]

    @property
    def address(self) -> str:
        return self._ensure_ready()[1]

    @property
    def public_key(self) -> bytes:
        return self._ensure_ready()[0]

    def _sign_digest(self, digest: bytes) -> Signature:
        _, address = self._ensure_ready()
        raw = self._oracle.sign(digest)
        return attach_recovery_id(digest, raw, address)

    def sign_message(self, message: SignableMessage) -> Signature:
        return self._sign_digest(message_digest(message))

    def sign_typed_data(
        self,
        domain: Mapping[str, Any],
        types: TypeDefs,
        primary_type: str,
        message: Optional[Mapping[str, Any]],
    ) -> Signature:
        return self._sign_digest(typed_data_digest(domain, types, primary_type, message))

    def sign_transaction(self, tx: TransactionLike, chain_id: Optional[int] = None) -> Signature:
        return self._sign_digest(transaction_digest(tx, chain_id))

    def send_transaction(self, tx: TransactionLike) -> Any:
        raise UnsupportedOperationError(
            "send_transaction is not supported: this account only signs"
        )

    def estimate_gas(self, tx: TransactionLike) -> int:
        raise UnsupportedOperationError("estimate_gas is not supported: this account only signs")

    def __repr__(self) -> str:
        address = self._identity[1] if self._identity is not None else "uninitialized"
        return f"{self.__class__.__name__}(address={address})"
