"""Digest construction.

Produces the exact 32 bytes the threshold backend must sign. The verifying
side (a wallet, ``ecrecover``, or a node validating a transaction) rebuilds
the same bytes, so any divergence here shows up later as a signer mismatch.
"""

import logging
from typing import Union

from eth_utils import keccak

from tss_signer.encoding import encode_unsigned
from tss_signer.errors import EncodingError
from tss_signer.models import Digest, UnsignedTransaction

logger = logging.getLogger(__name__)

# EIP-191 version 0x45 ("personal_sign")
MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"


def build_message_digest(text: Union[str, bytes]) -> Digest:
    """Hash a free-form message with the Ethereum signed-message prefix.

    The length is the decimal byte length of the UTF-8 encoded message.
    """
    message = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    digest = Digest(keccak(MESSAGE_PREFIX + str(len(message)).encode("ascii") + message))
    logger.debug(f"Message digest: {digest.hex()} ({len(message)} bytes)")
    return digest


def build_transaction_digest(tx: UnsignedTransaction) -> Digest:
    """Hash the unsigned, chain-id-bound encoding of a transaction.

    Raises:
        EncodingError: if a field cannot be encoded
    """
    try:
        payload = encode_unsigned(tx)
    except EncodingError as e:
        raise e.with_context(mode="tx", step="digest")

    digest = Digest(keccak(payload))
    logger.debug(f"Transaction digest: {digest.hex()} (chainId={tx.chain_id})")
    return digest
