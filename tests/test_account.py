from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data

from kms_eth_account import (
    KmsAccount,
    LocalSigningOracle,
    OracleUnavailableError,
    RawMessage,
    RawSignature,
    RecoveryFailedError,
    UnsupportedOperationError,
    WalletAccount,
    encode_signed_transaction,
    message_digest,
    recover_address,
    recover_public_key,
    transaction_digest,
    typed_data_digest,
)
from kms_eth_account.models import SECP256K1_HALF_N
from kms_eth_account.typed_data import domain_types

from conftest import HARDHAT_ADDRESS, HARDHAT_KEY, OTHER_KEY, CountingOracle, HighSOracle

DOMAIN = {
    "name": "Example",
    "version": "1",
    "chainId": 1,
    "verifyingContract": "0xCcCCccccCCCCcCCCCCCcCcCccCcCCCcCcccccccC",
}
TYPES = {
    "Person": [
        {"name": "name", "type": "string"},
        {"name": "wallet", "type": "address"},
    ],
}
VALUE = {"name": "Bob", "wallet": "0xbBbBBBBbbBBBbbbBbbBbbbbBBbBbbbbBbBbbBBbB"}

EIP1559_TX = {
    "to": "0x0000000000000000000000000000000000000000",
    "value": 10**18,
    "maxFeePerGas": 2 * 10**10,
    "maxPriorityFeePerGas": 10**9,
    "nonce": 0,
    "type": "eip1559",
    "chainId": 1,
}


class FlakyPublicKeyOracle(CountingOracle):
    def __init__(self, inner: LocalSigningOracle, failures: int) -> None:
        super().__init__(inner)
        self.failures = failures

    def get_public_key(self) -> bytes:
        if self.failures:
            self.failures -= 1
            self.public_key_calls += 1
            raise OracleUnavailableError("read timeout")
        return super().get_public_key()


class SwappableOracle(CountingOracle):
    def __init__(self, inner: LocalSigningOracle) -> None:
        super().__init__(inner)
        self.signer = inner

    def sign(self, digest: bytes) -> RawSignature:
        self.sign_calls += 1
        return self.signer.sign(digest)


class SlowPublicKeyOracle(CountingOracle):
    def __init__(self, inner: LocalSigningOracle) -> None:
        super().__init__(inner)
        self.release = threading.Event()

    def get_public_key(self) -> bytes:
        self.release.wait(timeout=5)
        return super().get_public_key()


def test_account_satisfies_wallet_protocol(account: KmsAccount) -> None:
    assert isinstance(account, WalletAccount)


def test_get_address_is_cached(account: KmsAccount, counting_oracle: CountingOracle) -> None:
    assert not account.is_ready
    first = account.get_address()
    assert first == HARDHAT_ADDRESS
    assert account.address == first
    assert account.get_address() == first
    assert account.public_key == counting_oracle.inner.get_public_key()
    assert account.is_ready
    assert counting_oracle.public_key_calls == 1


def test_public_key_first_populates_address(
    account: KmsAccount, counting_oracle: CountingOracle
) -> None:
    assert "uninitialized" in repr(account)
    assert account.public_key == counting_oracle.inner.get_public_key()
    assert account.is_ready
    assert repr(account) == f"KmsAccount(address={HARDHAT_ADDRESS})"
    assert account.get_address() == HARDHAT_ADDRESS
    assert counting_oracle.public_key_calls == 1


def test_concurrent_first_callers_share_one_fetch() -> None:
    oracle = SlowPublicKeyOracle(LocalSigningOracle(HARDHAT_KEY))
    account = KmsAccount(oracle)
    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(account.get_address) for _ in range(8)]
        oracle.release.set()
        results = {f.result() for f in futures}
    assert results == {HARDHAT_ADDRESS}
    assert oracle.public_key_calls == 1


def test_failed_fetch_is_not_cached() -> None:
    oracle = FlakyPublicKeyOracle(LocalSigningOracle(HARDHAT_KEY), failures=1)
    account = KmsAccount(oracle)
    with pytest.raises(OracleUnavailableError):
        account.get_address()
    assert not account.is_ready
    assert account.get_address() == HARDHAT_ADDRESS
    assert oracle.public_key_calls == 2


def test_failed_fetch_during_signing_propagates_without_signing() -> None:
    oracle = FlakyPublicKeyOracle(LocalSigningOracle(HARDHAT_KEY), failures=1)
    account = KmsAccount(oracle)
    with pytest.raises(OracleUnavailableError):
        account.sign_message("hello")
    assert oracle.sign_calls == 0
    assert not account.is_ready


def test_sign_message_recovers_with_eth_account(
    account: KmsAccount, counting_oracle: CountingOracle
) -> None:
    sig = account.sign_message("hello")
    assert sig.s <= SECP256K1_HALF_N
    assert sig.v in (27, 28)
    assert Account.recover_message(encode_defunct(text="hello"), signature=sig.to_bytes()) == (
        account.get_address()
    )
    assert counting_oracle.sign_calls == 1
    assert counting_oracle.public_key_calls == 1


def test_sign_raw_message(account: KmsAccount) -> None:
    msg = RawMessage(raw=b"\x01" * 32)
    sig = account.sign_message(msg)
    assert recover_address(message_digest(msg), sig) == account.get_address()


def test_sign_typed_data_recovers_with_eth_account(account: KmsAccount) -> None:
    sig = account.sign_typed_data(DOMAIN, TYPES, "Person", VALUE)
    signable = encode_typed_data(
        full_message={
            "types": {"EIP712Domain": domain_types(DOMAIN), **TYPES},
            "primaryType": "Person",
            "domain": DOMAIN,
            "message": VALUE,
        }
    )
    assert Account.recover_message(signable, signature=sig.to_hex()) == account.get_address()
    digest = typed_data_digest(DOMAIN, TYPES, "Person", VALUE)
    assert recover_address(digest, sig) == account.get_address()


def test_sign_transaction_recovers_public_key(account: KmsAccount) -> None:
    sig = account.sign_transaction(EIP1559_TX)
    digest = transaction_digest(EIP1559_TX)
    assert recover_public_key(digest, sig) == account.public_key

    raw_tx = encode_signed_transaction(EIP1559_TX, sig)
    assert Account.recover_transaction(raw_tx) == account.get_address()


def test_sign_legacy_transaction_without_chain_id(account: KmsAccount) -> None:
    tx = {"to": "0x" + "22" * 20, "gasPrice": 10**9, "gas": 21000, "nonce": 3}
    sig = account.sign_transaction(tx)
    raw_tx = encode_signed_transaction(tx, sig)
    assert Account.recover_transaction(raw_tx) == account.get_address()


def test_high_s_oracle_output_is_normalized() -> None:
    oracle = HighSOracle(LocalSigningOracle(HARDHAT_KEY))
    account = KmsAccount(oracle)
    for i in range(8):
        message = f"message {i}"
        sig = account.sign_message(message)
        assert sig.s <= SECP256K1_HALF_N
        assert recover_address(message_digest(message), sig) == HARDHAT_ADDRESS


def test_swapped_oracle_key_raises_recovery_failed() -> None:
    oracle = SwappableOracle(LocalSigningOracle(HARDHAT_KEY))
    account = KmsAccount(oracle)
    assert account.get_address() == HARDHAT_ADDRESS

    oracle.signer = LocalSigningOracle(OTHER_KEY)
    with pytest.raises(RecoveryFailedError):
        account.sign_message("hello")
    with pytest.raises(RecoveryFailedError):
        account.sign_transaction(EIP1559_TX)
    # the cached address is never re-derived
    assert account.get_address() == HARDHAT_ADDRESS
    assert oracle.public_key_calls == 1


def test_invalid_input_never_reaches_oracle(
    account: KmsAccount, counting_oracle: CountingOracle
) -> None:
    with pytest.raises(ValueError):
        account.sign_message(b"bytes without raw tag")  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        account.sign_transaction({"type": 2, "chainId": 1})
    assert counting_oracle.sign_calls == 0


def test_send_transaction_and_estimate_gas_are_unsupported(account: KmsAccount) -> None:
    with pytest.raises(UnsupportedOperationError):
        account.send_transaction(EIP1559_TX)
    with pytest.raises(NotImplementedError):
        account.estimate_gas(EIP1559_TX)


def test_random_key_round_trip() -> None:
    account = KmsAccount(LocalSigningOracle())
    sig = account.sign_message("fresh key")
    assert recover_address(message_digest("fresh key"), sig) == account.get_address()
