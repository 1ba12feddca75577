"""Tests for digest construction."""

import pytest
import rlp
from eth_utils import keccak

from tss_signer.digest import build_message_digest, build_transaction_digest
from tss_signer.encoding import encode_unsigned
from tss_signer.errors import EncodingError
from tss_signer.models import UnsignedTransaction

# EIP-155 example transaction and its signing payload
EIP155_TX = UnsignedTransaction.build(
    to="0x3535353535353535353535353535353535353535",
    value=10**18,
    gas=21000,
    gas_price=20 * 10**9,
    nonce=9,
    chain_id=1,
)
EIP155_SIGNING_DATA = bytes.fromhex(
    "ec098504a817c800825208943535353535353535353535353535353535353535880de0b6b3a764000080018080"
)


class TestMessageDigest:
    """Tests for the signed-message digest."""

    def test_hello_world(self):
        """Test the well-known personal_sign hash of 'Hello World'."""
        digest = build_message_digest("Hello World")

        assert digest.hex() == "0xa1de988600a42c4b4ab089b619297c17d53cffae5d5120d82d8a92d0bb3b78f2"

    def test_prefix_and_length(self):
        """Test the digest is keccak(prefix || decimal length || message)."""
        digest = build_message_digest("123456789")

        assert digest.value == keccak(b"\x19Ethereum Signed Message:\n9123456789")

    def test_length_counts_utf8_bytes(self):
        """Test multi-byte characters count as bytes, not characters."""
        digest = build_message_digest("héllo")

        assert digest.value == keccak(b"\x19Ethereum Signed Message:\n6" + "héllo".encode("utf-8"))

    def test_bytes_and_str_agree(self):
        assert build_message_digest("Hello World") == build_message_digest(b"Hello World")

    def test_deterministic(self):
        """Test identical input yields identical digests."""
        assert build_message_digest("Hello World") == build_message_digest("Hello World")
        assert build_message_digest("Hello World") != build_message_digest("Hello World!")


class TestTransactionDigest:
    """Tests for the chain-id-bound transaction digest."""

    def test_eip155_signing_payload(self):
        """Test the unsigned encoding matches the EIP-155 example."""
        assert encode_unsigned(EIP155_TX) == EIP155_SIGNING_DATA

    def test_eip155_digest(self):
        digest = build_transaction_digest(EIP155_TX)

        assert digest.value == keccak(EIP155_SIGNING_DATA)

    def test_chain_id_changes_digest(self):
        """Test the same fields on another chain hash differently."""
        sepolia = UnsignedTransaction.build(
            to="0x3535353535353535353535353535353535353535",
            value=10**18,
            gas=21000,
            gas_price=20 * 10**9,
            nonce=9,
            chain_id=11155111,
        )

        assert build_transaction_digest(sepolia) != build_transaction_digest(EIP155_TX)

    def test_unprotected_payload_has_six_fields(self):
        """Test chain id 0 hashes the pre-EIP-155 payload."""
        legacy = UnsignedTransaction.build(
            to="0x3535353535353535353535353535353535353535",
            value=10**18,
            gas=21000,
            gas_price=20 * 10**9,
            nonce=9,
            chain_id=0,
        )

        # Same fields without the trailing chainId, 0, 0 and a shorter list header
        expected = bytes.fromhex("e9") + EIP155_SIGNING_DATA[1:-3]
        assert encode_unsigned(legacy) == expected

    def test_deterministic(self):
        assert build_transaction_digest(EIP155_TX) == build_transaction_digest(EIP155_TX)

    def test_contract_creation(self):
        """Test a transaction without recipient encodes an empty 'to'."""
        tx = UnsignedTransaction(nonce=0, gas_price=1, gas=100000, to=None, value=0, data=b"\x60\x00", chain_id=1)

        fields = rlp.decode(encode_unsigned(tx))

        assert fields[3] == b""
        assert fields[5] == b"\x60\x00"
        assert len(build_transaction_digest(tx).value) == 32

    def test_nonce_overflow(self):
        """Test a nonce above 2**64 - 1 is rejected with step context."""
        tx = UnsignedTransaction(nonce=2**64, gas_price=1, gas=21000, to=b"\x35" * 20, value=0)

        with pytest.raises(EncodingError) as exc:
            build_transaction_digest(tx)

        assert exc.value.step == "digest"
        assert "nonce" in str(exc.value)

    def test_negative_value(self):
        tx = UnsignedTransaction(nonce=0, gas_price=1, gas=21000, to=b"\x35" * 20, value=-1)

        with pytest.raises(EncodingError):
            build_transaction_digest(tx)

    def test_value_too_large(self):
        tx = UnsignedTransaction(nonce=0, gas_price=1, gas=21000, to=b"\x35" * 20, value=2**256)

        with pytest.raises(EncodingError):
            build_transaction_digest(tx)
