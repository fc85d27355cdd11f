"""
Loyalty Permits Module

Signed, relayer-submitted transfers.
"""

from .message import TransferPermit, compute_message, sign_permit, recover_permit_signer
from .authority import DelegatedTransferAuthority

__all__ = [
    "TransferPermit",
    "compute_message",
    "sign_permit",
    "recover_permit_signer",
    "DelegatedTransferAuthority",
]
