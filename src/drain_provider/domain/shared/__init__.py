"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .chain_protocols import ChannelContractProtocol, VoucherSignatureVerifier

__all__ = ["ChannelContractProtocol", "VoucherSignatureVerifier"]
