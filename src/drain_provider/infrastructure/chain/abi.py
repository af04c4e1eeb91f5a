"""ABI fragments of the DRAIN channel contract used by the provider."""

from __future__ import annotations

from typing import Any

_CUSTOM_ERRORS = [
    "NotOwner",
    "NoOwner",
    "ZeroAddress",
    "ChannelExists",
    "ChannelNotFound",
    "NotProvider",
    "NotConsumer",
    "NotExpired",
    "InvalidSignature",
    "InvalidAmount",
    "TransferFailed",
]

DRAIN_CHANNEL_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"name": "channelId", "type": "bytes32"}],
        "name": "getChannel",
        "outputs": [
            {
                "components": [
                    {"name": "consumer", "type": "address"},
                    {"name": "provider", "type": "address"},
                    {"name": "deposit", "type": "uint256"},
                    {"name": "claimed", "type": "uint256"},
                    {"name": "expiry", "type": "uint256"},
                ],
                "name": "",
                "type": "tuple",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "channelId", "type": "bytes32"}],
        "name": "getBalance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "channelId", "type": "bytes32"},
            {"name": "amount", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
            {"name": "signature", "type": "bytes"},
        ],
        "name": "claim",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    *[{"inputs": [], "name": name, "type": "error"} for name in _CUSTOM_ERRORS],
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "channelId", "type": "bytes32"},
            {"indexed": True, "name": "provider", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
        ],
        "name": "ChannelClaimed",
        "type": "event",
    },
]


def custom_error_names() -> list[str]:
    return list(_CUSTOM_ERRORS)
