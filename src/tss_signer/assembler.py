"""Signed artifact assembly.

Message mode is a single step: ``r || s || v`` plus the recovered signer.

Transaction mode runs four steps, each reported by name on failure:
1. apply_signature: encode v for the chain-id-bound scheme
2. serialize: canonical RLP encoding
3. extract_sender: recover the sender from the encoded bytes, independently
   of the recovery resolver, the way a node would
4. consistency check: flag (never hide) a sender that differs from the
   resolved signer
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from eth_account import Account
from eth_utils import encode_hex, keccak

from tss_signer.encoding import chain_id_from_v, decode_signed, encode_signed
from tss_signer.errors import EncodingError, InvalidSignatureError, SigningError
from tss_signer.models import (
    Digest,
    FinalizedSignature,
    Resolution,
    SignedTransaction,
    UnsignedTransaction,
)

logger = logging.getLogger(__name__)

EIP155_V_OFFSET = 35
HOMESTEAD_V_OFFSET = 27


@dataclass
class BroadcastResult:
    """Outcome of submitting a finalized transaction."""
    tx_id: Optional[str] = None
    explorer_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.tx_id is not None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"txId": self.tx_id, "explorerUrl": self.explorer_url}
        return {"error": self.error}


@dataclass
class MessageArtifact:
    """Signed message proof."""
    signature: str
    recovered_address: str
    digest_hash: str
    verified: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "recoveredAddress": self.recovered_address,
            "digestHash": self.digest_hash,
            "verified": self.verified,
        }


@dataclass
class TransactionArtifact(MessageArtifact):
    """Signed, encoded transaction plus both signer views.

    Attributes:
        signed_transaction: Canonical encoding, 0x hex
        from_address: Sender recovered from the encoded transaction, or None
            when extraction failed (see sender_error)
        transaction_hash: keccak256 of the encoded transaction
        address_mismatch: from_address differs from recovered_address
        broadcast: Result of the optional broadcast
    """
    signed_transaction: str = ""
    from_address: Optional[str] = None
    transaction_hash: str = ""
    address_mismatch: bool = False
    sender_error: Optional[str] = None
    broadcast: Optional[BroadcastResult] = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "signedTransaction": self.signed_transaction,
            "fromAddress": self.from_address,
            "transactionHash": self.transaction_hash,
            "addressMismatch": self.address_mismatch,
        })
        if self.sender_error:
            data["senderError"] = self.sender_error
        if self.broadcast is not None:
            data["broadcast"] = self.broadcast.to_dict()
        return data


def assemble_message(digest: Digest, finalized: FinalizedSignature, resolution: Resolution) -> MessageArtifact:
    """Build the message-mode artifact (v is the raw recovery id)."""
    return MessageArtifact(
        signature=encode_hex(finalized.to_bytes()),
        recovered_address=resolution.address,
        digest_hash=digest.hex(),
        verified=resolution.verified,
    )


def apply_signature(tx: UnsignedTransaction, finalized: FinalizedSignature) -> SignedTransaction:
    """Attach the signature using the transaction's chain-id-bound v encoding."""
    if tx.chain_id < 0:
        raise EncodingError(f"Invalid chain id: {tx.chain_id}", mode="tx", step="apply_signature")

    if tx.chain_id == 0:
        v = finalized.recovery_id + HOMESTEAD_V_OFFSET
    else:
        v = finalized.recovery_id + EIP155_V_OFFSET + 2 * tx.chain_id

    return SignedTransaction(transaction=tx, v=v, r=finalized.r, s=finalized.s)


def serialize(signed: SignedTransaction) -> bytes:
    """Canonical binary encoding of a signed transaction.

    Raises:
        EncodingError: if any field is out of range
    """
    try:
        return encode_signed(signed)
    except EncodingError as e:
        raise e.with_context(mode="tx", step="serialize")


def extract_sender(encoded: bytes, chain_id: int) -> str:
    """Recover the sender from an encoded transaction as a node would.

    Also checks the chain id implied by the encoded v.

    Raises:
        EncodingError: bytes do not decode, or v encodes another chain
        InvalidSignatureError: sender recovery fails
    """
    try:
        decoded = decode_signed(encoded)
        encoded_chain_id = chain_id_from_v(decoded.v)
    except EncodingError as e:
        raise e.with_context(mode="tx", step="extract_sender")

    if encoded_chain_id != chain_id:
        raise EncodingError(
            f"Encoded v={decoded.v} implies chain id {encoded_chain_id}, expected {chain_id}",
            mode="tx",
            step="extract_sender",
        )

    try:
        return Account.recover_transaction(encoded)
    except Exception as e:
        raise InvalidSignatureError(
            f"Sender recovery from signed transaction failed: {e}", mode="tx", step="extract_sender"
        ) from e


def assemble_transaction(
    tx: UnsignedTransaction,
    digest: Digest,
    finalized: FinalizedSignature,
    resolution: Resolution,
) -> TransactionArtifact:
    """Run apply_signature, serialize and extract_sender, then cross-check.

    A sender that cannot be extracted or differs from the resolved signer is
    reported through ``address_mismatch``; both addresses are kept as-is.
    """
    signed = apply_signature(tx, finalized)
    logger.debug(f"Applied signature with v={signed.v} (chainId={tx.chain_id})")

    encoded = serialize(signed)

    artifact = TransactionArtifact(
        signature=encode_hex(finalized.to_bytes()),
        recovered_address=resolution.address,
        digest_hash=digest.hex(),
        verified=resolution.verified,
        signed_transaction=encode_hex(encoded),
        transaction_hash=encode_hex(keccak(encoded)),
    )

    try:
        artifact.from_address = extract_sender(encoded, tx.chain_id)
    except SigningError as e:
        logger.error(f"Failed to extract 'from' address: {e}")
        artifact.sender_error = str(e)
        artifact.address_mismatch = True
        return artifact

    if artifact.from_address.lower() != resolution.address.lower():
        artifact.address_mismatch = True
        logger.warning(
            f"Address mismatch! Recovered: {resolution.address}, From: {artifact.from_address}"
        )
    else:
        logger.info(f"Address verification successful: {artifact.from_address}")

    return artifact
