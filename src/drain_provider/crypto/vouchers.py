"""EIP-712 typed data for DRAIN vouchers.

A voucher is signed by the channel's consumer over
``Voucher(bytes32 channelId,uint256 amount,uint256 nonce)`` in the domain of
the channel contract (name, version, chain id, verifying contract).
"""

from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import to_checksum_address

from ..domain.provider.constants import EIP712_DOMAIN_NAME, EIP712_DOMAIN_VERSION

VOUCHER_TYPES: dict[str, list[dict[str, str]]] = {
    "Voucher": [
        {"name": "channelId", "type": "bytes32"},
        {"name": "amount", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
    ]
}


def build_domain(chain_id: int, contract_address: str) -> dict[str, Any]:
    return {
        "name": EIP712_DOMAIN_NAME,
        "version": EIP712_DOMAIN_VERSION,
        "chainId": chain_id,
        "verifyingContract": to_checksum_address(contract_address),
    }


def build_message(channel_id: str, amount: int, nonce: int) -> dict[str, Any]:
    return {
        "channelId": bytes.fromhex(channel_id[2:] if channel_id.startswith("0x") else channel_id),
        "amount": int(amount),
        "nonce": int(nonce),
    }


def sign_voucher(
    private_key: str,
    *,
    chain_id: int,
    contract_address: str,
    channel_id: str,
    amount: int,
    nonce: int,
) -> str:
    """Sign a voucher as the consumer would. Returns a 0x-prefixed signature."""
    signable = encode_typed_data(
        domain_data=build_domain(chain_id, contract_address),
        message_types=VOUCHER_TYPES,
        message_data=build_message(channel_id, amount, nonce),
    )
    signed = Account.sign_message(signable, private_key=private_key)
    sig_hex = signed.signature.hex()
    # HexBytes.hex() may include 0x prefix in newer versions
    return sig_hex if sig_hex.startswith("0x") else "0x" + sig_hex


def recover_voucher_signer(
    *,
    chain_id: int,
    contract_address: str,
    channel_id: str,
    amount: int,
    nonce: int,
    signature: str,
) -> str:
    """Return the address that produced ``signature`` over the voucher."""
    signable = encode_typed_data(
        domain_data=build_domain(chain_id, contract_address),
        message_types=VOUCHER_TYPES,
        message_data=build_message(channel_id, amount, nonce),
    )
    return Account.recover_message(signable, signature=signature)


class Eip712VoucherVerifier:
    """Verifies voucher signatures bound to one contract deployment."""

    def __init__(self, chain_id: int, contract_address: str) -> None:
        self.chain_id = chain_id
        self.contract_address = to_checksum_address(contract_address)

    def verify(
        self,
        signer_address: str,
        channel_id: str,
        amount: int,
        nonce: int,
        signature: str,
    ) -> bool:
        try:
            recovered = recover_voucher_signer(
                chain_id=self.chain_id,
                contract_address=self.contract_address,
                channel_id=channel_id,
                amount=amount,
                nonce=nonce,
                signature=signature,
            )
        except (ValueError, TypeError, BadSignature, KeyValidationError):
            # Malformed signature bytes (wrong length, bad recovery id, not hex)
            return False
        return recovered.lower() == signer_address.lower()
