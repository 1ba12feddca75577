"""Pytest configuration and fixtures."""

import os
from typing import Optional

import pytest
from eth_account import Account

# Set test environment
os.environ["TSS_SIGNER_BACKEND"] = "local"
os.environ["TSS_LOCAL_PRIVATE_KEY"] = "0x" + "46" * 32
os.environ["TSS_LOG_LEVEL"] = "DEBUG"
os.environ.pop("TSS_EXPECTED_ADDRESS", None)

from tss_signer.config import get_settings
from tss_signer.models import RawSignature, VaultConfig
from tss_signer.signing.base import SignerBackend, SignerType, SigningRequest
from tss_signer.signing.local import LocalSigner

TEST_PRIVATE_KEY = "0x" + "46" * 32
OTHER_PRIVATE_KEY = "0x" + "4c" * 32
UNRELATED_ADDRESS = "0x1111111111111111111111111111111111111111"


class StubSigner(SignerBackend):
    """Signer that returns a canned reply and records requests."""

    def __init__(self, signature=None, blob: Optional[bytes] = None, public_key: Optional[str] = None):
        super().__init__(SignerType.REMOTE)
        self.signature = signature
        self.blob = blob
        self.public_key = public_key
        self.requests: list[SigningRequest] = []

    async def sign(self, request: SigningRequest) -> RawSignature:
        self.requests.append(request)
        if self.blob is not None:
            return RawSignature.from_bytes(self.blob)
        return self.signature

    async def get_public_key(self, vault: VaultConfig) -> Optional[str]:
        return self.public_key


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; rebuild them for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def vault() -> VaultConfig:
    return VaultConfig(
        home="test1",
        vault="default",
        password="123456789",
        channel_id="1116C145287",
        channel_password="123456789",
    )


@pytest.fixture
def signer_address() -> str:
    return Account.from_key(TEST_PRIVATE_KEY).address


@pytest.fixture
def other_address() -> str:
    return Account.from_key(OTHER_PRIVATE_KEY).address


@pytest.fixture
def local_signer() -> LocalSigner:
    return LocalSigner(TEST_PRIVATE_KEY)
