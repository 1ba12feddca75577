"""Remote threshold signing backend.

Talks JSON-RPC 2.0 over HTTP to a signing sidecar that runs the TSS party
(key shares, peer discovery and channel authentication all live there).

Methods:
- tss_sign: params {home, vault, password, channelId, channelPassword,
  message}; ``message`` is the digest as a decimal integer string, the
  TSS client's message convention. Result is {"signature": hex} with
  64-byte big-endian r || s (a trailing v byte is tolerated and ignored),
  or {"r": hex, "s": hex}.
- tss_getPublicKey: params {home, vault, password}; result
  {"publicKey": hex}.

A signing session may take as long as the slowest party, so the HTTP
timeout is generous; the caller applies its own deadline on top.
"""

import itertools
import logging
from typing import Any, Optional

import httpx

from tss_signer.errors import BackendError
from tss_signer.models import RawSignature
from tss_signer.signing.base import SignerBackend, SignerType, SigningRequest, VaultConfig

logger = logging.getLogger(__name__)

DEFAULT_SIGNER_URL = "http://127.0.0.1:8545/tss"


class RemoteTssSigner(SignerBackend):
    """Threshold signing backend reached over JSON-RPC."""

    _ids = itertools.count(1)

    def __init__(
        self,
        url: str = DEFAULT_SIGNER_URL,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(SignerType.REMOTE)
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        """Perform one JSON-RPC call. Never retried."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": [params],
            "id": next(self._ids),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
        except httpx.TimeoutException as e:
            raise BackendError(f"TSS signer timed out ({method}): {e}")
        except httpx.HTTPError as e:
            raise BackendError(f"TSS signer unreachable at {self.url}: {e}")

        if response.status_code != 200:
            raise BackendError(f"TSS signer returned HTTP {response.status_code} for {method}")

        try:
            data = response.json()
        except ValueError:
            raise BackendError(f"TSS signer returned invalid JSON for {method}")

        if not isinstance(data, dict):
            raise BackendError(f"TSS signer returned malformed response for {method}")

        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise BackendError(f"TSS signer error ({method}): {message}")

        if "result" not in data:
            raise BackendError(f"TSS signer response missing result for {method}")

        return data["result"]

    @staticmethod
    def _vault_params(vault: VaultConfig) -> dict[str, str]:
        return {
            "home": vault.home,
            "vault": vault.vault,
            "password": vault.password,
        }

    async def sign(self, request: SigningRequest) -> RawSignature:
        """Run a threshold signing session for the digest."""
        params = self._vault_params(request.vault)
        params.update({
            "channelId": request.vault.channel_id,
            "channelPassword": request.vault.channel_password,
            "message": str(request.digest.as_int()),
        })

        logger.info(
            f"Requesting TSS signature (home={request.vault.home}, vault={request.vault.vault}, "
            f"metadata={request.metadata})"
        )
        result = await self._call("tss_sign", params)
        return self._parse_signature(result)

    @staticmethod
    def _parse_signature(result: Any) -> RawSignature:
        """Parse the tss_sign result into (r, s).

        Raises:
            BackendError: if the result has neither form
        """
        if isinstance(result, str):
            return RawSignature.from_hex(result)

        if isinstance(result, dict):
            if "signature" in result:
                return RawSignature.from_hex(result["signature"])
            if "r" in result and "s" in result:
                try:
                    r = int(result["r"], 16)
                    s = int(result["s"], 16)
                except (TypeError, ValueError) as e:
                    raise BackendError(f"Malformed r/s in TSS signer response: {e}")
                return RawSignature(r=r, s=s)

        raise BackendError("Malformed TSS signer response: no signature")

    async def get_public_key(self, vault: VaultConfig) -> Optional[str]:
        """Ask the sidecar for the vault's public key."""
        result = await self._call("tss_getPublicKey", self._vault_params(vault))
        if isinstance(result, dict):
            result = result.get("publicKey")
        if not result:
            return None
        if not isinstance(result, str):
            raise BackendError(f"Malformed public key in TSS signer response: {result!r}")
        return result
