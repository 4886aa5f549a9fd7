from __future__ import annotations

import argparse
import logging
import os
import pathlib
import sys

_ROOT = pathlib.Path(__file__).resolve().parents[1]
_SRC = _ROOT / "src"
sys.path.insert(0, str(_SRC))

from kms_eth_account import (  # noqa: E402
    KmsAccount,
    KmsConfig,
    KmsAccountError,
    message_digest,
    recover_address,
)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Smoke test: derive the KMS account address, sign a message, verify recovery",
    )
    parser.add_argument(
        "--message",
        default=os.getenv("MESSAGE", "hello"),
        help="Message to sign with the personal-message prefix (env: MESSAGE)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        account = KmsAccount.from_config(KmsConfig.from_env())
        address = account.get_address()
        sig = account.sign_message(args.message)
    except KmsAccountError as e:
        raise SystemExit(f"error: {e}") from e

    recovered = recover_address(message_digest(args.message), sig)
    print("address:  ", address)
    print("signature:", sig.to_hex())
    print("recovered:", recovered)
    if recovered != address:
        raise SystemExit("recovered address does not match")


if __name__ == "__main__":
    main()
