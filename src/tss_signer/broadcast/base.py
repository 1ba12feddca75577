"""Base interface for transaction broadcast.

Broadcast is separate from signing correctness: a failed submit never
invalidates an already finalized transaction. Idempotency of repeated
submission is up to the network, so nothing here retries.
"""

from abc import ABC, abstractmethod
from typing import Optional


class Broadcaster(ABC):
    """Submits encoded transactions to a network."""

    @abstractmethod
    async def submit(self, encoded_tx: bytes) -> str:
        """Submit a signed, encoded transaction.

        Args:
            encoded_tx: Canonical transaction bytes

        Returns:
            Transaction id assigned by the network

        Raises:
            NetworkError: if the network rejects or cannot be reached
        """
        pass

    def explorer_link(self, tx_id: str) -> Optional[str]:
        """Block explorer URL for a transaction id, if one is configured."""
        return None
