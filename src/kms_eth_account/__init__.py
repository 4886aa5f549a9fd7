from .account import KmsAccount, WalletAccount
from .config import KmsConfig
from .exceptions import (
    ConfigurationError,
    InvalidInputError,
    KmsAccountError,
    OracleError,
    OracleRejectedError,
    OracleUnavailableError,
    RecoveryFailedError,
    UnsupportedOperationError,
)
from .models import AccessListEntry, RawMessage, RawSignature, Signature, TransactionRequest
from .oracle import KmsSigningOracle, LocalSigningOracle, SigningOracle
from .recovery import (
    attach_recovery_id,
    normalize_signature,
    public_key_to_address,
    recover_address,
    recover_public_key,
)
from .signing import message_digest, transaction_digest, typed_data_digest
from .transactions import encode_signed_transaction, serialize_unsigned_transaction

__all__ = [
    "AccessListEntry",
    "ConfigurationError",
    "InvalidInputError",
    "KmsAccount",
    "KmsAccountError",
    "KmsConfig",
    "KmsSigningOracle",
    "LocalSigningOracle",
    "OracleError",
    "OracleRejectedError",
    "OracleUnavailableError",
    "RawMessage",
    "RawSignature",
    "RecoveryFailedError",
    "Signature",
    "SigningOracle",
    "TransactionRequest",
    "UnsupportedOperationError",
    "WalletAccount",
    "attach_recovery_id",
    "encode_signed_transaction",
    "message_digest",
    "normalize_signature",
    "public_key_to_address",
    "recover_address",
    "recover_public_key",
    "serialize_unsigned_transaction",
    "transaction_digest",
    "typed_data_digest",
]
