"""Error taxonomy for the signing pipeline.

Every failure raised by the digest builder, the signing backend, the
recovery resolver or the assembler is a SigningError subclass. The service
fills in ``mode`` ("message" or "tx") and ``step`` before re-raising so the
CLI can say where a request died.
"""

from typing import Optional


class SigningError(Exception):
    """Base exception for all signing failures."""

    def __init__(self, message: str, mode: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.mode = mode
        self.step = step

    def with_context(self, mode: Optional[str] = None, step: Optional[str] = None) -> "SigningError":
        """Attach mode/step without clobbering values set closer to the failure."""
        if self.mode is None:
            self.mode = mode
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        context = [part for part in (self.mode, self.step) if part]
        if context:
            return f"[{'/'.join(context)}] {self.message}"
        return self.message


class BackendError(SigningError):
    """Signing backend unreachable, failed, or returned a malformed reply."""
    pass


class SigningTimeoutError(BackendError):
    """Signing backend did not answer within the configured timeout."""
    pass


class KeyNotFoundError(BackendError):
    """Signing key is not available to the backend."""
    pass


class InvalidSignatureError(SigningError):
    """Signature is malformed or public-key recovery is impossible."""
    pass


class SignerMismatchError(SigningError):
    """No recovery candidate yields the expected signer address."""

    def __init__(self, expected: str, candidates: dict[int, str], **kwargs):
        self.expected = expected
        self.candidates = candidates
        recovered = ", ".join(f"v={rid}: {addr}" for rid, addr in sorted(candidates.items())) or "none"
        super().__init__(
            f"Signature does not recover to {expected} (candidates: {recovered})",
            **kwargs,
        )


class EncodingError(SigningError):
    """A transaction field cannot be canonically serialized."""
    pass


class NetworkError(SigningError):
    """Broadcasting a finalized transaction failed."""
    pass
