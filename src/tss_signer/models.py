"""Value types shared by the signing pipeline.

All types are frozen dataclasses: a request builds its own digest,
transaction and signature values and nothing is mutated afterwards.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from eth_keys.constants import SECPK1_N
from eth_utils import decode_hex, encode_hex, is_hex_address, to_canonical_address, to_checksum_address

from tss_signer.errors import EncodingError, InvalidSignatureError

DIGEST_LENGTH = 32
SIGNATURE_LENGTH = 64
SIGNATURE_WITH_V_LENGTH = 65

# Largest s accepted by EIP-2 (homestead) transaction validation
SECPK1_HALF_N = SECPK1_N // 2


@dataclass(frozen=True)
class Digest:
    """The exact 32 bytes handed to the signing backend."""
    value: bytes

    def __post_init__(self):
        if not isinstance(self.value, bytes) or len(self.value) != DIGEST_LENGTH:
            raise ValueError(f"Digest must be {DIGEST_LENGTH} bytes")

    def hex(self) -> str:
        return encode_hex(self.value)

    def as_int(self) -> int:
        return int.from_bytes(self.value, "big")


@dataclass(frozen=True)
class VaultConfig:
    """Coordinates of the threshold vault a request signs with.

    Passed explicitly with every request; nothing about a vault is kept in
    process-wide state.

    Attributes:
        home: Home directory of the TSS party
        vault: Vault name inside the home directory
        password: Vault password
        channel_id: Channel id shared by the signing parties
        channel_password: Channel password
    """
    home: str
    vault: str = "default"
    password: str = field(default="", repr=False)
    channel_id: str = ""
    channel_password: str = field(default="", repr=False)


@dataclass(frozen=True)
class RawSignature:
    """ECDSA (r, s) pair as returned by the threshold backend, no recovery id.

    Attributes:
        r: R component, 0 < r < N
        s: S component, 0 < s < N
    """
    r: int
    s: int

    def __post_init__(self):
        for name, component in (("r", self.r), ("s", self.s)):
            if not 0 < component < SECPK1_N:
                raise InvalidSignatureError(
                    f"Signature component {name} out of range (must satisfy 0 < {name} < curve order)"
                )

    @classmethod
    def from_bytes(cls, blob: bytes) -> "RawSignature":
        """Parse backend output.

        Accepts 64-byte ``r || s`` (big-endian), 65-byte ``r || s || v`` whose
        trailing byte is discarded, or a DER-encoded ECDSA signature.
        """
        raw_length = len(blob) in (SIGNATURE_LENGTH, SIGNATURE_WITH_V_LENGTH)

        # A DER signature with short integers can be 64 or 65 bytes long too
        if len(blob) >= 2 and blob[0] == 0x30 and blob[1] == len(blob) - 2:
            try:
                return cls.from_der(blob)
            except InvalidSignatureError:
                if not raw_length:
                    raise

        if raw_length:
            return cls(
                r=int.from_bytes(blob[:32], "big"),
                s=int.from_bytes(blob[32:64], "big"),
            )
        if blob[:1] == b"\x30":
            return cls.from_der(blob)

        raise InvalidSignatureError(
            f"Invalid signature length: expected {SIGNATURE_LENGTH} or {SIGNATURE_WITH_V_LENGTH} bytes, got {len(blob)}"
        )

    @classmethod
    def from_der(cls, der_signature: bytes) -> "RawSignature":
        """Parse a DER-encoded ECDSA signature into r and s.

        DER format: 0x30 [total-length] 0x02 [r-length] [r] 0x02 [s-length] [s]
        """
        try:
            if der_signature[0] != 0x30 or der_signature[1] != len(der_signature) - 2:
                raise InvalidSignatureError("Malformed DER signature header")
            offset = 2
            components = []
            for _ in range(2):
                if der_signature[offset] != 0x02:  # Integer tag
                    raise InvalidSignatureError("Malformed DER signature integer")
                length = der_signature[offset + 1]
                value = der_signature[offset + 2 : offset + 2 + length]
                if len(value) != length or length > 33:
                    raise InvalidSignatureError("Malformed DER signature integer")
                components.append(int.from_bytes(value, "big"))
                offset += 2 + length
        except IndexError:
            raise InvalidSignatureError("Truncated DER signature")

        if offset != len(der_signature):
            raise InvalidSignatureError("Trailing bytes after DER signature")

        return cls(r=components[0], s=components[1])

    @classmethod
    def from_hex(cls, value: str) -> "RawSignature":
        try:
            blob = decode_hex(value)
        except (ValueError, TypeError) as e:
            raise InvalidSignatureError(f"Signature is not valid hex: {e}")
        return cls.from_bytes(blob)

    def to_bytes(self) -> bytes:
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big")

    @property
    def is_low_s(self) -> bool:
        return self.s <= SECPK1_HALF_N

    def normalized(self) -> "RawSignature":
        """Return the low-s form of this signature (EIP-2).

        Flipping s also flips the recovery id, so normalize before resolving.
        """
        if self.is_low_s:
            return self
        return RawSignature(r=self.r, s=SECPK1_N - self.s)


@dataclass(frozen=True)
class FinalizedSignature:
    """Raw signature plus the resolved recovery id."""
    signature: RawSignature
    recovery_id: int

    def __post_init__(self):
        if self.recovery_id not in (0, 1):
            raise InvalidSignatureError(f"Recovery id must be 0 or 1, got {self.recovery_id}")

    @property
    def r(self) -> int:
        return self.signature.r

    @property
    def s(self) -> int:
        return self.signature.s

    def to_bytes(self) -> bytes:
        """65-byte ``r || s || v`` with the raw recovery id as ``v``."""
        return self.signature.to_bytes() + bytes([self.recovery_id])


@dataclass(frozen=True)
class Resolution:
    """Outcome of recovery-id resolution.

    ``verified`` is False only on the explicit unverified path, where no
    expected address was available to check the recovered signer against.
    """
    recovery_id: int
    address: str
    verified: bool


@dataclass(frozen=True)
class UnsignedTransaction:
    """Legacy Ethereum transaction fields, independent of the sender.

    ``to`` is the 20-byte recipient, or None for contract creation.
    ``chain_id`` 0 selects the pre-EIP-155 (homestead) signing scheme.
    """
    nonce: int
    gas_price: int
    gas: int
    to: Optional[bytes]
    value: int
    data: bytes = b""
    chain_id: int = 1

    @classmethod
    def build(
        cls,
        to: Optional[str],
        value: Union[int, str] = 0,
        gas: Union[int, str] = 21000,
        gas_price: Union[int, str] = 20_000_000_000,
        nonce: Union[int, str] = 0,
        data: Union[bytes, str] = b"",
        chain_id: Union[int, str] = 1,
    ) -> "UnsignedTransaction":
        """Build a transaction from user input (decimal strings, hex address/data)."""
        return cls(
            nonce=_parse_int("nonce", nonce),
            gas_price=_parse_int("gas_price", gas_price),
            gas=_parse_int("gas", gas),
            to=parse_address(to) if to else None,
            value=_parse_int("value", value),
            data=_parse_data(data),
            chain_id=_parse_int("chain_id", chain_id),
        )

    @property
    def to_address(self) -> Optional[str]:
        if self.to is None:
            return None
        return to_checksum_address(self.to)

    def describe(self) -> str:
        return (
            f"to={self.to_address or '(contract creation)'}, value={self.value}, gasLimit={self.gas}, "
            f"gasPrice={self.gas_price}, nonce={self.nonce}, chainId={self.chain_id}, data={len(self.data)} bytes"
        )


@dataclass(frozen=True)
class SignedTransaction:
    """Unsigned transaction plus network-encoded ``v`` and ``(r, s)``."""
    transaction: UnsignedTransaction
    v: int
    r: int
    s: int


def parse_address(value: str) -> bytes:
    """Parse a hex address without enforcing EIP-55 checksum casing."""
    if not is_hex_address(value):
        raise EncodingError(f"Invalid address: {value!r}", step="build")
    return to_canonical_address(value)


def _parse_int(name: str, value: Union[int, str]) -> int:
    if isinstance(value, bool):
        raise EncodingError(f"Invalid {name}: {value!r}", step="build")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    except ValueError:
        raise EncodingError(f"Invalid {name}: {value!r}", step="build")


def _parse_data(value: Union[bytes, str]) -> bytes:
    if isinstance(value, bytes):
        return value
    if not value:
        return b""
    try:
        return decode_hex(value)
    except (ValueError, TypeError):
        raise EncodingError(f"Invalid data hex: {value!r}", step="build")
