"""Local signing backend.

Uses an in-memory private key. Suitable for:
- Development without a running threshold network
- Tests

It deliberately drops the recovery id so it behaves exactly like the
threshold backend: callers get (r, s) and have to resolve v themselves.

WARNING: The private key is held in memory. Never use with real funds.
"""

import logging
from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import ValidationError
from eth_utils import decode_hex

from tss_signer.errors import BackendError, KeyNotFoundError
from tss_signer.models import RawSignature
from tss_signer.signing.base import SignerBackend, SignerType, SigningRequest, VaultConfig

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Signing backend backed by a single in-memory secp256k1 key."""

    def __init__(self, private_key_hex: Optional[str] = None):
        super().__init__(SignerType.LOCAL)
        self._key: Optional[keys.PrivateKey] = None
        if private_key_hex:
            self.set_key(private_key_hex)

    def set_key(self, private_key_hex: str):
        """Load the private key (hex, with or without 0x)."""
        try:
            self._key = keys.PrivateKey(decode_hex(private_key_hex))
        except (ValueError, ValidationError) as e:
            raise KeyNotFoundError(f"Invalid local private key: {e}")
        logger.info("Loaded local signing key")

    def _get_key(self) -> keys.PrivateKey:
        if self._key is None:
            raise KeyNotFoundError("No local signing key configured (set TSS_LOCAL_PRIVATE_KEY)")
        return self._key

    async def sign(self, request: SigningRequest) -> RawSignature:
        """Sign the digest and return (r, s) only."""
        private_key = self._get_key()
        try:
            signature = private_key.sign_msg_hash(request.digest.value)
        except ValidationError as e:
            raise BackendError(f"Local signing failed: {e}")

        logger.debug(
            f"Local signer produced signature for {request.digest.hex()} "
            f"(vault={request.vault.vault}, metadata={request.metadata})"
        )
        return RawSignature(r=signature.r, s=signature.s)

    async def get_public_key(self, vault: VaultConfig) -> Optional[str]:
        if self._key is None:
            return None
        return self._key.public_key.to_hex()
