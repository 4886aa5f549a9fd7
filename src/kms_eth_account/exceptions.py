from __future__ import annotations


class KmsAccountError(Exception):
    pass


class InvalidInputError(KmsAccountError, ValueError):
    pass


class ConfigurationError(KmsAccountError, ValueError):
    pass


class OracleError(KmsAccountError):
    pass


class OracleUnavailableError(OracleError):
    """Transport, authentication or timeout failure talking to the signing oracle."""


class OracleRejectedError(OracleError):
    """The remote key policy or key state refused the operation."""


class RecoveryFailedError(KmsAccountError):
    """Neither recovery id maps the signature back to the account address."""


class UnsupportedOperationError(KmsAccountError, NotImplementedError):
    pass
