"""Signing backends.

Provides the port to the threshold signer:
- RemoteTssSigner: JSON-RPC bridge to a TSS signing sidecar
- LocalSigner: For development/tests (private key in memory, v discarded)
"""

from tss_signer.signing.base import (
    SignerBackend,
    SignerType,
    SigningRequest,
    VaultConfig,
)
from tss_signer.signing.factory import get_signer
from tss_signer.signing.local import LocalSigner
from tss_signer.signing.remote import RemoteTssSigner

__all__ = [
    "SignerBackend",
    "SignerType",
    "SigningRequest",
    "VaultConfig",
    "LocalSigner",
    "RemoteTssSigner",
    "get_signer",
]
