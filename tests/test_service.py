"""End-to-end tests for the signing service."""

import asyncio
import json

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.constants import SECPK1_N
from eth_utils import decode_hex

from tss_signer.broadcast.jsonrpc import JsonRpcBroadcaster
from tss_signer.digest import build_transaction_digest
from tss_signer.encoding import decode_signed
from tss_signer.errors import (
    BackendError,
    InvalidSignatureError,
    SignerMismatchError,
    SigningError,
    SigningTimeoutError,
)
from tss_signer.models import RawSignature, UnsignedTransaction
from tss_signer.services.signing_service import SigningService
from tss_signer.signing.local import LocalSigner
from tss_signer.signing.remote import RemoteTssSigner

from conftest import OTHER_PRIVATE_KEY, TEST_PRIVATE_KEY, UNRELATED_ADDRESS, StubSigner

RECIPIENT = "0x742d35Cc6634C0532925a3b8D4C9db96C4b4d8b6"
TX_HASH = "0x" + "cd" * 32


def transfer(chain_id: int = 1) -> UnsignedTransaction:
    return UnsignedTransaction.build(
        to=RECIPIENT,
        value=10**18,
        gas=21000,
        gas_price=2 * 10**10,
        nonce=5,
        chain_id=chain_id,
    )


class SlowSigner(StubSigner):
    """Signer that never answers in time."""

    async def sign(self, request):
        self.requests.append(request)
        await asyncio.sleep(10)


class FailingSigner(StubSigner):
    async def sign(self, request):
        self.requests.append(request)
        raise BackendError("tss session aborted")


class KeylessSigner(LocalSigner):
    """Signer that cannot report its public key."""

    async def get_public_key(self, vault):
        return None


class TestSignMessage:
    """Tests for message mode."""

    @pytest.mark.asyncio
    async def test_hello_world(self, local_signer, vault, signer_address):
        """Test the signature verifies with a standard signed-message verifier."""
        service = SigningService(local_signer)

        artifact = await service.sign_message("Hello World", vault, signer_address)

        blob = decode_hex(artifact.signature)
        assert len(blob) == 65
        assert artifact.recovered_address == signer_address
        assert artifact.verified is True
        assert artifact.digest_hash == "0xa1de988600a42c4b4ab089b619297c17d53cffae5d5120d82d8a92d0bb3b78f2"
        recovered = Account.recover_message(
            encode_defunct(text="Hello World"),
            vrs=(blob[64] + 27, int.from_bytes(blob[:32], "big"), int.from_bytes(blob[32:64], "big")),
        )
        assert recovered == signer_address

    @pytest.mark.asyncio
    async def test_expected_address_from_signer(self, local_signer, vault, signer_address):
        """Test the vault address is asked from the signer when not given."""
        service = SigningService(local_signer)

        artifact = await service.sign_message("123456789", vault)

        assert artifact.recovered_address == signer_address
        assert artifact.verified is True

    @pytest.mark.asyncio
    async def test_unverified_without_address(self, vault):
        """Test a signer that cannot report its key yields an unverified artifact."""
        service = SigningService(KeylessSigner(TEST_PRIVATE_KEY))

        artifact = await service.sign_message("Hello World", vault)

        assert artifact.verified is False
        assert artifact.to_dict()["verified"] is False

    @pytest.mark.asyncio
    async def test_wrong_signer_rejected(self, vault, signer_address):
        """Test a signature from another key is a mismatch, not an artifact."""
        service = SigningService(LocalSigner(OTHER_PRIVATE_KEY))

        with pytest.raises(SignerMismatchError) as exc:
            await service.sign_message("Hello World", vault, signer_address)

        assert exc.value.mode == "message"
        assert exc.value.step == "resolve"

    @pytest.mark.asyncio
    async def test_concurrent_requests(self, local_signer, vault, signer_address):
        """Test concurrent requests resolve independently."""
        service = SigningService(local_signer)

        artifacts = await asyncio.gather(
            *(service.sign_message(f"message {i}", vault, signer_address) for i in range(5))
        )

        assert len({artifact.digest_hash for artifact in artifacts}) == 5
        assert all(artifact.recovered_address == signer_address for artifact in artifacts)


class TestSignTransaction:
    """Tests for transaction mode."""

    @pytest.mark.asyncio
    async def test_transfer(self, local_signer, vault, signer_address):
        """Test v encodes chain 1 and the sender equals the recovered address."""
        service = SigningService(local_signer)

        artifact = await service.sign_transaction(transfer(), vault, signer_address)

        decoded = decode_signed(decode_hex(artifact.signed_transaction))
        recovery_id = decode_hex(artifact.signature)[64]
        assert decoded.v in (37, 38)
        assert decoded.v == 37 + recovery_id
        assert artifact.from_address == artifact.recovered_address == signer_address
        assert artifact.address_mismatch is False
        assert Account.recover_transaction(artifact.signed_transaction) == signer_address

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chain_id", [0, 5, 137, 11155111])
    async def test_other_chains(self, local_signer, vault, signer_address, chain_id):
        service = SigningService(local_signer)

        artifact = await service.sign_transaction(transfer(chain_id), vault, signer_address)

        assert artifact.from_address == signer_address
        assert artifact.address_mismatch is False

    @pytest.mark.asyncio
    async def test_high_s_normalized(self, vault, signer_address):
        """Test a high-s signature is normalized and still resolves."""
        tx = transfer()
        full = keys.PrivateKey(decode_hex(TEST_PRIVATE_KEY)).sign_msg_hash(build_transaction_digest(tx).value)
        high_s = max(full.s, SECPK1_N - full.s)
        service = SigningService(StubSigner(signature=RawSignature(r=full.r, s=high_s)))

        artifact = await service.sign_transaction(tx, vault, signer_address)

        decoded = decode_signed(decode_hex(artifact.signed_transaction))
        assert decoded.s == min(full.s, SECPK1_N - full.s)
        assert artifact.from_address == signer_address

    @pytest.mark.asyncio
    async def test_unrelated_expected_address(self, local_signer, vault):
        service = SigningService(local_signer)

        with pytest.raises(SignerMismatchError) as exc:
            await service.sign_transaction(transfer(), vault, UNRELATED_ADDRESS)

        assert exc.value.mode == "tx"

    @pytest.mark.asyncio
    async def test_zero_s_from_signer(self, vault, signer_address):
        """Test an out-of-range reply fails at the sign step."""
        blob = (1).to_bytes(32, "big") + bytes(32)
        service = SigningService(StubSigner(blob=blob))

        with pytest.raises(InvalidSignatureError) as exc:
            await service.sign_transaction(transfer(), vault, signer_address)

        assert exc.value.step == "sign"
        assert exc.value.mode == "tx"

    @pytest.mark.asyncio
    async def test_encoding_failure(self, vault, signer_address):
        """Test an unencodable transaction fails before the signer is called."""
        signer = StubSigner()
        tx = UnsignedTransaction(nonce=2**64, gas_price=1, gas=21000, to=b"\x35" * 20, value=0)
        service = SigningService(signer)

        with pytest.raises(SigningError) as exc:
            await service.sign_transaction(tx, vault, signer_address)

        assert exc.value.step == "digest"
        assert signer.requests == []


class TestSignerFailures:
    """Tests for signer timeouts and errors."""

    @pytest.mark.asyncio
    async def test_timeout(self, vault, signer_address):
        """Test a slow signer is abandoned after the deadline, and called once."""
        signer = SlowSigner()
        service = SigningService(signer, timeout=0.05)

        with pytest.raises(SigningTimeoutError) as exc:
            await service.sign_message("Hello World", vault, signer_address)

        assert exc.value.step == "sign"
        assert len(signer.requests) == 1

    @pytest.mark.asyncio
    async def test_backend_error_not_retried(self, vault, signer_address):
        signer = FailingSigner()
        service = SigningService(signer)

        with pytest.raises(BackendError, match="tss session aborted") as exc:
            await service.sign_transaction(transfer(), vault, signer_address)

        assert str(exc.value).startswith("[tx/sign]")
        assert len(signer.requests) == 1


    @pytest.mark.asyncio
    async def test_malformed_public_key_reply(self, vault):
        """Test a non-string public key from the sidecar fails at the expected_address step."""
        full = keys.PrivateKey(decode_hex(TEST_PRIVATE_KEY)).sign_msg_hash(b"\x01" * 32)
        signature_hex = "0x" + full.r.to_bytes(32, "big").hex() + full.s.to_bytes(32, "big").hex()

        def handler(request):
            body = json.loads(request.content)
            if body["method"] == "tss_sign":
                result = {"signature": signature_hex}
            else:
                result = {"publicKey": 12345}
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        signer = RemoteTssSigner(url="http://tss.test", transport=httpx.MockTransport(handler))
        service = SigningService(signer)

        with pytest.raises(BackendError) as exc:
            await service.sign_message("Hello World", vault)

        assert exc.value.mode == "message"
        assert exc.value.step == "expected_address"


class TestBroadcast:
    """Tests for optional broadcast after signing."""

    @pytest.mark.asyncio
    async def test_broadcast_success(self, local_signer, vault, signer_address):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": TX_HASH})

        broadcaster = JsonRpcBroadcaster(
            "http://node.test", explorer_url="https://sepolia.etherscan.io", transport=httpx.MockTransport(handler),
        )
        service = SigningService(local_signer, broadcaster=broadcaster)

        artifact = await service.sign_transaction(transfer(), vault, signer_address, broadcast=True)

        assert artifact.broadcast.success
        assert artifact.broadcast.tx_id == TX_HASH
        assert artifact.broadcast.explorer_url == f"https://sepolia.etherscan.io/tx/{TX_HASH}"
        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_broadcast_failure_keeps_artifact(self, local_signer, vault, signer_address):
        """Test a rejected broadcast leaves the signed transaction intact."""

        def handler(request):
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "insufficient funds"}},
            )

        broadcaster = JsonRpcBroadcaster("http://node.test", transport=httpx.MockTransport(handler))
        service = SigningService(local_signer, broadcaster=broadcaster)

        artifact = await service.sign_transaction(transfer(), vault, signer_address, broadcast=True)

        assert not artifact.broadcast.success
        assert "insufficient funds" in artifact.broadcast.error
        assert artifact.from_address == signer_address
        assert artifact.to_dict()["broadcast"] == {"error": artifact.broadcast.error}

    @pytest.mark.asyncio
    async def test_broadcast_without_broadcaster(self, local_signer, vault, signer_address):
        service = SigningService(local_signer)

        with pytest.raises(SigningError, match="no broadcaster"):
            await service.sign_transaction(transfer(), vault, signer_address, broadcast=True)
