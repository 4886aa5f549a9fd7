from __future__ import annotations

import threading

import pytest

from kms_eth_account import KmsAccount, LocalSigningOracle, RawSignature
from kms_eth_account.models import SECP256K1_N

# hardhat / anvil account #0
HARDHAT_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
HARDHAT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

# hardhat / anvil account #1
OTHER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
OTHER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class CountingOracle:
    def __init__(self, inner: LocalSigningOracle) -> None:
        self.inner = inner
        self.public_key_calls = 0
        self.sign_calls = 0
        self._lock = threading.Lock()

    def sign(self, digest: bytes) -> RawSignature:
        with self._lock:
            self.sign_calls += 1
        return self.inner.sign(digest)

    def get_public_key(self) -> bytes:
        with self._lock:
            self.public_key_calls += 1
        return self.inner.get_public_key()


class HighSOracle(CountingOracle):
    """Always answers with the malleable (upper-half s) form."""

    def sign(self, digest: bytes) -> RawSignature:
        raw = super().sign(digest)
        if raw.is_low_s:
            return RawSignature(r=raw.r, s=SECP256K1_N - raw.s)
        return raw


@pytest.fixture
def local_oracle() -> LocalSigningOracle:
    return LocalSigningOracle(HARDHAT_KEY)


@pytest.fixture
def counting_oracle(local_oracle: LocalSigningOracle) -> CountingOracle:
    return CountingOracle(local_oracle)


@pytest.fixture
def account(counting_oracle: CountingOracle) -> KmsAccount:
    return KmsAccount(counting_oracle)
