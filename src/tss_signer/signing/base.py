"""Base interfaces for signing backends.

Signing flow:
1. Build the digest (message or unsigned transaction)
2. Submit it to the signer together with the vault coordinates
3. Signer returns (r, s) only - never a key, never a recovery id
4. Resolve the recovery id against the vault's address
5. Assemble (and optionally broadcast) the signed artifact
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import ValidationError
from eth_utils import decode_hex

from tss_signer.errors import BackendError
from tss_signer.models import Digest, RawSignature, VaultConfig

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    REMOTE = "remote"   # Threshold signing sidecar over JSON-RPC
    LOCAL = "local"     # Private key in memory (development only)


@dataclass(frozen=True)
class SigningRequest:
    """Request to sign a digest.

    Attributes:
        digest: The 32 bytes to sign
        vault: Vault to sign with
        metadata: Optional metadata for audit logging
    """
    digest: Digest
    vault: VaultConfig
    metadata: Optional[dict] = None


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    ``sign`` is called at most once per request. Backends must not retry
    internally: a threshold session that is replayed blindly may sign twice.
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def sign(self, request: SigningRequest) -> RawSignature:
        """Sign a digest.

        Args:
            request: Signing request with digest and vault

        Returns:
            RawSignature (r, s) without recovery id

        Raises:
            BackendError: on transport, peer or response failure
        """
        pass

    @abstractmethod
    async def get_public_key(self, vault: VaultConfig) -> Optional[str]:
        """Get the vault's public key.

        Returns:
            Public key as hex string (compressed or uncompressed), or None if unknown
        """
        pass

    async def get_address(self, vault: VaultConfig) -> Optional[str]:
        """Derive the vault's checksummed address from its public key.

        Returns:
            Address, or None if the backend cannot report a public key
        """
        public_key = await self.get_public_key(vault)
        if not public_key:
            return None
        return address_from_public_key(public_key)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"


def address_from_public_key(public_key_hex: str) -> str:
    """Checksummed address for a secp256k1 public key.

    Accepts 33-byte compressed, 65-byte uncompressed (0x04 prefix) or 64-byte
    raw keys.

    Raises:
        BackendError: if the key cannot be parsed
    """
    try:
        raw = decode_hex(public_key_hex)
        if len(raw) == 33:
            public_key = keys.PublicKey.from_compressed_bytes(raw)
        elif len(raw) == 65 and raw[0] == 0x04:
            public_key = keys.PublicKey(raw[1:])
        else:
            public_key = keys.PublicKey(raw)
    except (TypeError, ValueError, ValidationError) as e:
        raise BackendError(f"Invalid public key from signer: {e}")

    return public_key.to_checksum_address()
