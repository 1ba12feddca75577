"""Recovery id resolution.

The threshold backend returns (r, s) but not the parity of the ephemeral
point, so either of two public keys may be the signer. We try both
candidates and keep the one whose address matches the vault's known
address.
"""

import logging
from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import to_checksum_address

from tss_signer.errors import InvalidSignatureError, SignerMismatchError
from tss_signer.models import Digest, RawSignature, Resolution

logger = logging.getLogger(__name__)

RECOVERY_CANDIDATES = (0, 1)


def recover_address(digest: Digest, signature: RawSignature, recovery_id: int) -> Optional[str]:
    """Recover the checksummed signer address for one candidate.

    Returns:
        Address, or None if no public key exists for this candidate
    """
    try:
        sig = keys.Signature(vrs=(recovery_id, signature.r, signature.s))
        public_key = sig.recover_public_key_from_msg_hash(digest.value)
    except (BadSignature, ValidationError) as e:
        logger.debug(f"Recovery with v={recovery_id} failed: {e}")
        return None
    return public_key.to_checksum_address()


def recover_candidates(digest: Digest, signature: RawSignature) -> dict[int, str]:
    """Recover the address for every candidate that yields a public key."""
    candidates = {}
    for recovery_id in RECOVERY_CANDIDATES:
        address = recover_address(digest, signature, recovery_id)
        if address is not None:
            candidates[recovery_id] = address
    return candidates


def resolve(digest: Digest, signature: RawSignature, expected_address: str) -> Resolution:
    """Find the recovery id whose public key matches ``expected_address``.

    Raises:
        InvalidSignatureError: neither candidate recovers, or both match
        SignerMismatchError: no candidate recovers to the expected address
    """
    expected = to_checksum_address(expected_address)
    candidates = recover_candidates(digest, signature)
    if not candidates:
        raise InvalidSignatureError("Public key recovery failed for both recovery ids")

    matches = [rid for rid, address in candidates.items() if address == expected]
    if not matches:
        logger.error(f"Signer mismatch: expected {expected}, recovered {candidates}")
        raise SignerMismatchError(expected, candidates)
    if len(matches) > 1:
        raise InvalidSignatureError(f"Both recovery ids recover to {expected}; refusing to guess")

    recovery_id = matches[0]
    logger.info(f"Resolved recovery id {recovery_id} for signer {expected}")
    return Resolution(recovery_id=recovery_id, address=expected, verified=True)


def resolve_unverified(digest: Digest, signature: RawSignature) -> Resolution:
    """Pick the first candidate that recovers, without any signer check.

    Only for callers that have no expected address. The result is marked
    ``verified=False`` and must not be presented as a verified signer.
    """
    candidates = recover_candidates(digest, signature)
    if not candidates:
        raise InvalidSignatureError("Public key recovery failed for both recovery ids")

    recovery_id = min(candidates)
    address = candidates[recovery_id]
    logger.warning(
        f"No expected signer address; using unverified recovery id {recovery_id} ({address})"
    )
    return Resolution(recovery_id=recovery_id, address=address, verified=False)
