"""Ethereum JSON-RPC broadcaster.

Uses httpx to call eth_sendRawTransaction on a node.
"""

import logging
from typing import Optional

import httpx
from eth_utils import encode_hex

from tss_signer.broadcast.base import Broadcaster
from tss_signer.errors import NetworkError

logger = logging.getLogger(__name__)


class JsonRpcBroadcaster(Broadcaster):
    """Broadcasts raw transactions through an Ethereum node."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        explorer_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not rpc_url:
            raise ValueError("rpc_url is required for broadcast")
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.explorer_url = explorer_url.rstrip("/") if explorer_url else None
        self._transport = transport

    async def submit(self, encoded_tx: bytes) -> str:
        """Send the raw transaction and return its hash."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.rpc_url,
                    json={
                        "jsonrpc": "2.0",
                        "method": "eth_sendRawTransaction",
                        "params": [encode_hex(encoded_tx)],
                        "id": 1,
                    },
                )
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to connect to Ethereum node: {e}", mode="tx", step="broadcast")

        if response.status_code != 200:
            raise NetworkError(
                f"Ethereum node returned HTTP {response.status_code}", mode="tx", step="broadcast"
            )

        try:
            data = response.json()
        except ValueError:
            raise NetworkError("Ethereum node returned invalid JSON", mode="tx", step="broadcast")

        if not isinstance(data, dict):
            raise NetworkError("Ethereum node returned malformed response", mode="tx", step="broadcast")

        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            logger.error(f"Broadcast error: {message}")
            raise NetworkError(f"Failed to send transaction: {message}", mode="tx", step="broadcast")

        tx_id = data.get("result")
        if not tx_id:
            raise NetworkError("Ethereum node returned no transaction hash", mode="tx", step="broadcast")

        logger.info(f"Transaction sent! Hash: {tx_id}")
        return tx_id

    def explorer_link(self, tx_id: str) -> Optional[str]:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url}/tx/{tx_id}"
