"""DRAIN protocol constants."""

from __future__ import annotations

DRAIN_ADDRESSES: dict[int, str] = {
    137: "0x1C1918C99b6DcE977392E4131C91654d8aB71e64",
    80002: "0x61f1C1E04d6Da1C92D0aF1a3d7Dc0fEFc8794d7C",
}

CHAIN_NAMES: dict[int, str] = {
    137: "Polygon",
    80002: "Amoy Testnet",
}

USDC_DECIMALS = 6

EIP712_DOMAIN_NAME = "DrainChannel"
EIP712_DOMAIN_VERSION = "1"

# Reverts that will never succeed on retry; the voucher is dead-lettered.
PERMANENT_CLAIM_ERRORS = frozenset(
    {
        "InvalidAmount",
        "ChannelNotFound",
        "InvalidSignature",
        "NotProvider",
        "NotExpired",
    }
)
