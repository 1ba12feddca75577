"""Command line interface.

Defaults come from TSS_* environment variables (see tss_signer.config).
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional, Sequence

from eth_utils import is_hex_address
from pydantic import ValidationError

from tss_signer.assembler import MessageArtifact, TransactionArtifact
from tss_signer.broadcast.jsonrpc import JsonRpcBroadcaster
from tss_signer.config import Settings, get_settings
from tss_signer.errors import SigningError
from tss_signer.models import UnsignedTransaction, VaultConfig
from tss_signer.services.signing_service import MESSAGE_MODE, TX_MODE, SigningService
from tss_signer.signing.factory import get_signer

logger = logging.getLogger("tss_signer")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Transport loggers that are noisy at INFO
QUIET_LOGGERS = ("httpx", "httpcore")

EXAMPLES = """
examples:
  # Message signing:
  tss-signer --mode message --message "Hello World"
  tss-signer --home test2 --vault default --message "Test message" --json

  # Transaction signing:
  tss-signer --mode tx --to 0x742d35Cc6634C0532925a3b8D4C9db96C4b4d8b6 --value 1000000000000000000
  tss-signer --mode tx --to 0x742d35Cc6634C0532925a3b8D4C9db96C4b4d8b6 --value 1000000000000000000 \\
      --gas-limit 21000 --gas-price 20000000000 --nonce 5 --chain-id 1

  # Transaction signing and sending:
  tss-signer --mode tx --to 0x742d35Cc6634C0532925a3b8D4C9db96C4b4d8b6 --value 1000000000000000000 \\
      --rpc http://localhost:8545 --send
"""


def configure_logging(level: str) -> None:
    """Configure root logging and the package log level."""
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("tss_signer").setLevel(level.upper())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tss-signer",
        description="Sign Ethereum messages and transactions with a threshold signing vault.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Common
    parser.add_argument("--home", default=settings.home, help="Home directory for configuration")
    parser.add_argument("--vault", default=settings.vault, help="Vault name")
    parser.add_argument("--password", default=settings.password, help="Password for the vault")
    parser.add_argument("--channel-id", default=settings.channel_id, help="Channel ID")
    parser.add_argument("--channel-password", default=settings.channel_password, help="Channel password")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=settings.log_level,
        help="Log level (debug, info, warning, error)",
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument(
        "--mode", choices=(MESSAGE_MODE, TX_MODE), default=MESSAGE_MODE, help="Signing mode"
    )
    parser.add_argument(
        "--expected-address",
        default=settings.expected_address,
        help="Vault address the signature must recover to (default: ask the signer)",
    )
    parser.add_argument(
        "--signer", choices=("remote", "local"), default=settings.signer_backend, help="Signer backend"
    )
    parser.add_argument("--signer-url", default=settings.signer_url, help="TSS signing sidecar URL")
    parser.add_argument(
        "--timeout", type=float, default=settings.signer_timeout, help="Seconds to wait for the signer"
    )

    # Message mode
    parser.add_argument("--message", default="123456789", help="Message to sign (message mode)")

    # Transaction mode
    parser.add_argument("--to", default="", help="Recipient address (tx mode)")
    parser.add_argument("--value", default="0", help="Amount in wei (tx mode)")
    parser.add_argument("--gas-limit", default="21000", help="Gas limit (tx mode)")
    parser.add_argument("--gas-price", default="20000000000", help="Gas price in wei (tx mode)")
    parser.add_argument("--nonce", default="0", help="Transaction nonce (tx mode)")
    parser.add_argument("--data", default="", help="Transaction data, hex (tx mode)")
    parser.add_argument("--chain-id", default=str(settings.chain_id), help="Chain ID (tx mode)")
    parser.add_argument("--rpc", default=settings.rpc_url, help="Ethereum RPC URL, e.g. http://localhost:8545")
    parser.add_argument("--send", action="store_true", help="Send the signed transaction (requires --rpc)")
    parser.add_argument("--explorer", default=settings.explorer_url, help="Block explorer URL")

    return parser


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Reject inconsistent flag combinations (exits with status 2)."""
    if args.send and not args.rpc:
        parser.error("--rpc is required when --send is specified")
    if args.mode == TX_MODE and not args.to:
        parser.error("'--to' address is required for transaction mode")
    if args.expected_address and not is_hex_address(args.expected_address):
        parser.error(f"invalid --expected-address: {args.expected_address}")


def format_human(artifact: MessageArtifact) -> str:
    lines = [
        f"Signature: {artifact.signature}",
        f"Recovered Address: {artifact.recovered_address}",
        f"Message Hash: {artifact.digest_hash}",
    ]
    if not artifact.verified:
        lines.append("WARNING: signer address was not verified (no expected address)")

    if isinstance(artifact, TransactionArtifact):
        lines.append(f"Signed Tx: {artifact.signed_transaction}")
        lines.append(f"Tx Hash: {artifact.transaction_hash}")
        lines.append(f"From Address: {artifact.from_address or '(unavailable)'}")
        if artifact.sender_error:
            lines.append(f"Sender extraction failed: {artifact.sender_error}")
        if artifact.address_mismatch:
            lines.append("WARNING: address mismatch between recovered and sender address")
        if artifact.broadcast is not None:
            if artifact.broadcast.success:
                lines.append(f"Transaction sent! Hash: {artifact.broadcast.tx_id}")
                if artifact.broadcast.explorer_url:
                    lines.append(f"View on explorer: {artifact.broadcast.explorer_url}")
            else:
                lines.append(f"Broadcast failed: {artifact.broadcast.error}")

    return "\n".join(lines)


async def run(args: argparse.Namespace, settings: Settings) -> MessageArtifact:
    """Execute one signing request described by parsed arguments."""
    signer_settings = settings.model_copy(update={
        "signer_backend": args.signer,
        "signer_url": args.signer_url,
        "signer_timeout": args.timeout,
    })
    vault = VaultConfig(
        home=args.home,
        vault=args.vault,
        password=args.password,
        channel_id=args.channel_id,
        channel_password=args.channel_password,
    )
    expected_address = args.expected_address or None

    broadcaster = None
    if args.send:
        broadcaster = JsonRpcBroadcaster(
            rpc_url=args.rpc, timeout=settings.rpc_timeout, explorer_url=args.explorer,
        )

    service = SigningService(get_signer(signer_settings), broadcaster=broadcaster, timeout=args.timeout)

    if args.mode == MESSAGE_MODE:
        logger.info(f"Starting TSS message signing with home={args.home}, vault={args.vault}")
        return await service.sign_message(args.message, vault, expected_address)

    tx = UnsignedTransaction.build(
        to=args.to,
        value=args.value,
        gas=args.gas_limit,
        gas_price=args.gas_price,
        nonce=args.nonce,
        data=args.data,
        chain_id=args.chain_id,
    )
    logger.info(f"Starting TSS transaction signing with home={args.home}, vault={args.vault}")
    return await service.sign_transaction(tx, vault, expected_address, broadcast=args.send)


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    parser = build_parser(settings)
    args = parser.parse_args(argv)
    validate_args(parser, args)

    configure_logging(args.log_level)
    logger.debug(f"Configuration: {json.dumps(settings.get_safe_dict())}")

    try:
        artifact = asyncio.run(run(args, settings))
    except SigningError as e:
        logger.error(f"Signing failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(artifact.to_dict(), indent=2))
    else:
        print(format_human(artifact))

    logger.info("TSS signing completed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
