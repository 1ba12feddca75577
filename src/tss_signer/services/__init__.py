"""Business logic services."""

from tss_signer.services.signing_service import SigningService

__all__ = ["SigningService"]
