"""Canonical RLP encoding of legacy Ethereum transactions.

Field order follows the yellow paper: nonce, gasPrice, gas, to, value, data,
then v, r, s. For EIP-155 signing the unsigned payload carries
``chainId, 0, 0`` in place of ``v, r, s``; pre-EIP-155 signing drops the
last three fields entirely.
"""

import rlp
from rlp.exceptions import RLPException
from rlp.sedes import Binary, big_endian_int, binary

from tss_signer.errors import EncodingError
from tss_signer.models import SignedTransaction, UnsignedTransaction

UINT64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1

address_sedes = Binary.fixed_length(20, allow_empty=True)


class UnprotectedTransaction(rlp.Serializable):
    """Homestead signing payload (no replay protection)."""
    fields = [
        ("nonce", big_endian_int),
        ("gas_price", big_endian_int),
        ("gas", big_endian_int),
        ("to", address_sedes),
        ("value", big_endian_int),
        ("data", binary),
    ]


class LegacyTransaction(rlp.Serializable):
    """Signed legacy transaction, also used for the EIP-155 signing payload."""
    fields = [
        ("nonce", big_endian_int),
        ("gas_price", big_endian_int),
        ("gas", big_endian_int),
        ("to", address_sedes),
        ("value", big_endian_int),
        ("data", binary),
        ("v", big_endian_int),
        ("r", big_endian_int),
        ("s", big_endian_int),
    ]


def validate_transaction(tx: UnsignedTransaction) -> None:
    """Check every field is representable in the canonical encoding.

    Raises:
        EncodingError: naming the first field out of range
    """
    _check_range("nonce", tx.nonce, UINT64_MAX)
    _check_range("gas", tx.gas, UINT64_MAX)
    _check_range("gas_price", tx.gas_price, UINT256_MAX)
    _check_range("value", tx.value, UINT256_MAX)
    # v = chainId * 2 + 36 at most, and must stay a 256-bit integer
    _check_range("chain_id", tx.chain_id, (UINT256_MAX - 36) // 2)
    if tx.to is not None and len(tx.to) != 20:
        raise EncodingError(f"Recipient must be 20 bytes, got {len(tx.to)}")
    if not isinstance(tx.data, bytes):
        raise EncodingError("Transaction data must be bytes")


def encode_unsigned(tx: UnsignedTransaction) -> bytes:
    """Encode the payload whose keccak256 is signed."""
    validate_transaction(tx)
    to = tx.to or b""

    if tx.chain_id == 0:
        payload = UnprotectedTransaction(
            nonce=tx.nonce, gas_price=tx.gas_price, gas=tx.gas, to=to, value=tx.value, data=tx.data,
        )
    else:
        payload = LegacyTransaction(
            nonce=tx.nonce, gas_price=tx.gas_price, gas=tx.gas, to=to, value=tx.value, data=tx.data,
            v=tx.chain_id, r=0, s=0,
        )

    return _encode(payload)


def encode_signed(signed: SignedTransaction) -> bytes:
    """Encode a signed transaction in broadcastable form."""
    tx = signed.transaction
    validate_transaction(tx)
    _check_range("v", signed.v, UINT256_MAX)
    _check_range("r", signed.r, UINT256_MAX)
    _check_range("s", signed.s, UINT256_MAX)

    payload = LegacyTransaction(
        nonce=tx.nonce, gas_price=tx.gas_price, gas=tx.gas, to=tx.to or b"", value=tx.value, data=tx.data,
        v=signed.v, r=signed.r, s=signed.s,
    )
    return _encode(payload)


def decode_signed(raw: bytes) -> LegacyTransaction:
    """Decode a signed legacy transaction.

    Raises:
        EncodingError: if the bytes are not a canonical legacy transaction
    """
    try:
        return rlp.decode(raw, LegacyTransaction)
    except RLPException as e:
        raise EncodingError(f"Cannot decode signed transaction: {e}")


def chain_id_from_v(v: int) -> int:
    """Chain id implied by a signed transaction's v (0 for unprotected)."""
    if v in (27, 28):
        return 0
    if v >= 35:
        return (v - 35) // 2
    raise EncodingError(f"Invalid transaction v value: {v}")


def _encode(payload: rlp.Serializable) -> bytes:
    try:
        return rlp.encode(payload)
    except RLPException as e:
        raise EncodingError(f"Cannot serialize transaction: {e}")


def _check_range(name: str, value: int, maximum: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise EncodingError(f"Field {name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise EncodingError(f"Field {name} must not be negative: {value}")
    if value > maximum:
        raise EncodingError(f"Field {name} out of range: {value} > {maximum}")
