"""Signer factory.

Creates the signing backend selected by configuration. Unlike a process-wide
singleton, each call builds a fresh backend from the settings it is given,
so concurrent requests never share backend state.
"""

import logging
from typing import Optional

from tss_signer.config import Settings, get_settings
from tss_signer.signing.base import SignerBackend, SignerType

logger = logging.getLogger(__name__)


def get_signer_type(settings: Settings) -> SignerType:
    """Resolve the configured backend name to a SignerType."""
    return SignerType(settings.signer_backend.lower())


def get_signer(settings: Optional[Settings] = None) -> SignerBackend:
    """Build the configured signer.

    Args:
        settings: Settings to use (defaults to the cached environment settings)

    Returns:
        SignerBackend instance
    """
    settings = settings or get_settings()
    signer_type = get_signer_type(settings)
    logger.info(f"Initializing {signer_type.value} signer")

    if signer_type == SignerType.LOCAL:
        from tss_signer.signing.local import LocalSigner
        return LocalSigner(settings.local_private_key or None)

    from tss_signer.signing.remote import RemoteTssSigner
    return RemoteTssSigner(url=settings.signer_url, timeout=settings.signer_timeout)
