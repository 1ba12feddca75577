"""Signing request pipeline.

digest -> threshold sign -> resolve recovery id -> assemble -> (broadcast)

Each call works only on the values it is given; the service keeps no
per-request state, so concurrent requests cannot interfere.
"""

import asyncio
import logging
from typing import Optional, Union

from tss_signer.assembler import (
    BroadcastResult,
    MessageArtifact,
    TransactionArtifact,
    assemble_message,
    assemble_transaction,
)
from tss_signer.broadcast.base import Broadcaster
from tss_signer.digest import build_message_digest, build_transaction_digest
from tss_signer.errors import NetworkError, SigningError, SigningTimeoutError
from tss_signer.models import Digest, FinalizedSignature, RawSignature, Resolution, UnsignedTransaction, VaultConfig
from tss_signer.recovery import resolve, resolve_unverified
from tss_signer.signing.base import SignerBackend, SigningRequest

logger = logging.getLogger(__name__)

MESSAGE_MODE = "message"
TX_MODE = "tx"


class SigningService:
    """Turns threshold signatures into signed messages and transactions."""

    def __init__(
        self,
        signer: SignerBackend,
        broadcaster: Optional[Broadcaster] = None,
        timeout: Optional[float] = 300.0,
    ):
        """Initialize the service.

        Args:
            signer: Threshold signing backend
            broadcaster: Optional network broadcaster for transaction mode
            timeout: Seconds to wait for the signer (None waits forever)
        """
        self.signer = signer
        self.broadcaster = broadcaster
        self.timeout = timeout

    async def sign_message(
        self,
        text: Union[str, bytes],
        vault: VaultConfig,
        expected_address: Optional[str] = None,
    ) -> MessageArtifact:
        """Sign a free-form message with the Ethereum signed-message prefix."""
        digest = self._run_step(MESSAGE_MODE, "digest", build_message_digest, text)
        logger.info(f"Signing message digest {digest.hex()} (home={vault.home}, vault={vault.vault})")

        signature = await self._sign(MESSAGE_MODE, digest, vault)
        resolution = await self._resolve(MESSAGE_MODE, digest, signature, vault, expected_address)

        finalized = FinalizedSignature(signature=signature, recovery_id=resolution.recovery_id)
        artifact = self._run_step(MESSAGE_MODE, "assemble", assemble_message, digest, finalized, resolution)
        logger.info(f"Recovered address: {artifact.recovered_address}")
        return artifact

    async def sign_transaction(
        self,
        tx: UnsignedTransaction,
        vault: VaultConfig,
        expected_address: Optional[str] = None,
        broadcast: bool = False,
    ) -> TransactionArtifact:
        """Sign a legacy transaction and optionally broadcast it.

        A broadcast failure is recorded on the artifact and does not raise.
        """
        if broadcast and self.broadcaster is None:
            raise SigningError("Broadcast requested but no broadcaster configured", mode=TX_MODE, step="broadcast")

        logger.info(f"Transaction: {tx.describe()}")
        digest = self._run_step(TX_MODE, "digest", build_transaction_digest, tx)

        raw = await self._sign(TX_MODE, digest, vault)
        # Nodes reject high-s signatures (EIP-2); normalizing flips the parity,
        # which resolution then picks up.
        signature = raw.normalized()
        if signature is not raw:
            logger.debug("Normalized high-s signature from signer")

        resolution = await self._resolve(TX_MODE, digest, signature, vault, expected_address)
        finalized = FinalizedSignature(signature=signature, recovery_id=resolution.recovery_id)

        artifact = self._run_step(
            TX_MODE, "assemble", assemble_transaction, tx, digest, finalized, resolution,
        )

        if broadcast:
            artifact.broadcast = await self._broadcast(artifact)

        return artifact

    async def _sign(self, mode: str, digest: Digest, vault: VaultConfig) -> RawSignature:
        """Call the signer exactly once under the configured deadline."""
        request = SigningRequest(digest=digest, vault=vault, metadata={"mode": mode})
        try:
            return await asyncio.wait_for(self.signer.sign(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise SigningTimeoutError(
                f"Signer did not respond within {self.timeout}s", mode=mode, step="sign"
            )
        except SigningError as e:
            raise e.with_context(mode=mode, step="sign")

    async def _resolve(
        self,
        mode: str,
        digest: Digest,
        signature: RawSignature,
        vault: VaultConfig,
        expected_address: Optional[str],
    ) -> Resolution:
        if expected_address is None:
            try:
                expected_address = await self.signer.get_address(vault)
            except SigningError as e:
                raise e.with_context(mode=mode, step="expected_address")

        if expected_address:
            return self._run_step(mode, "resolve", resolve, digest, signature, expected_address)
        return self._run_step(mode, "resolve", resolve_unverified, digest, signature)

    async def _broadcast(self, artifact: TransactionArtifact) -> BroadcastResult:
        encoded = bytes.fromhex(artifact.signed_transaction[2:])
        try:
            tx_id = await self.broadcaster.submit(encoded)
        except NetworkError as e:
            logger.error(f"Failed to send transaction: {e}")
            return BroadcastResult(error=str(e))

        return BroadcastResult(tx_id=tx_id, explorer_url=self.broadcaster.explorer_link(tx_id))

    @staticmethod
    def _run_step(mode: str, step: str, func, *args):
        """Run a pure pipeline step, tagging failures with mode and step."""
        try:
            return func(*args)
        except SigningError as e:
            raise e.with_context(mode=mode, step=step)
