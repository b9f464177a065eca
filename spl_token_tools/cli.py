"""Command-line interface for creating and minting SPL tokens.

Each command assembles its instructions, sizes and prices them against the
cluster, signs, and hands the transaction to ``TransactionSender``. Results
are printed as compact JSON on stdout; progress goes to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import closing
from typing import Any, Callable, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .config import ClusterConfig, ConfigurationError, load_cluster_config, set_default_config_path
from .errors import describe_transaction_error, report_error
from .fees import NoFeeData, select_priority_fee
from .keypairs import KeypairError, load_keypair
from .model import SignedTransaction, SubmissionResult, TxStatusUpdate
from .rpc_client import PreflightRejected, RPCError, SolanaRPCClient
from .sender import TransactionSender
from .transport import RPCTransportError
from .tx_builder import (
    TokenTransactionBuilder,
    create_token_instructions,
    mint_tokens_instructions,
    to_base_units,
)

logger = logging.getLogger(__name__)

COMPACT_JSON_SEPARATORS = (",", ":")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid or a command fails."""


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--url", default=None, help="RPC HTTP URL (default: SOLANA_RPC_URL or devnet)")
    parser.add_argument(
        "--ws-url",
        default=None,
        help="RPC websocket URL (default: derived from --url)",
    )


def _add_signer_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--keypair",
        default=None,
        help="Path to the fee payer / authority keypair JSON (default: ~/.config/solana/id.json)",
    )
    parser.add_argument(
        "--priority-fee",
        type=int,
        default=None,
        help="Compute-unit price in micro-lamports (default: highest recent network fee)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SPL token tools")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create-token", help="create an SPL token mint with metadata")
    _add_connection_args(create_parser)
    _add_signer_args(create_parser)
    create_parser.add_argument("--name", required=True, help="Token name")
    create_parser.add_argument("--symbol", required=True, help="Token symbol")
    create_parser.add_argument("--metadata-uri", required=True, help="URI of the off-chain metadata JSON")
    create_parser.add_argument("--decimals", type=int, default=9, help="Mint decimals (default: 9)")
    create_parser.add_argument(
        "--mint-keypair",
        default=None,
        help="Keypair file for the new mint address (default: freshly generated)",
    )

    mint_parser = subparsers.add_parser("mint-tokens", help="mint tokens to an associated token account")
    _add_connection_args(mint_parser)
    _add_signer_args(mint_parser)
    mint_parser.add_argument("--mint", required=True, help="Token mint address")
    mint_parser.add_argument("--amount", required=True, help="Amount in whole tokens (decimals allowed)")
    mint_parser.add_argument(
        "--recipient",
        default=None,
        help="Recipient wallet address (default: the keypair's address)",
    )

    fee_parser = subparsers.add_parser("priority-fee", help="print the current priority fee estimate")
    _add_connection_args(fee_parser)

    return parser


def _config_from_args(args: argparse.Namespace) -> ClusterConfig:
    overrides = {
        "url": getattr(args, "url", None),
        "ws_url": getattr(args, "ws_url", None),
        "keypair_path": getattr(args, "keypair", None),
    }
    config = load_cluster_config(overrides=overrides)
    endpoint = config.endpoint
    logger.info("Using connection URL %s", endpoint.http_url)
    logger.info("Using websockets URL %s%s", endpoint.ws_url, " (computed)" if config.ws_url_computed else "")
    return config


def _parse_address(raw: str, label: str) -> Pubkey:
    try:
        return Pubkey.from_string(raw)
    except ValueError as exc:
        raise CLIError(f"Invalid {label} address provided: {raw}. Please check the address and try again.") from exc


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, separators=COMPACT_JSON_SEPARATORS))


def _stderr_progress(signed: SignedTransaction) -> Callable[[TxStatusUpdate], None]:
    def emit(update: TxStatusUpdate) -> None:
        print(f"{update.status}:: {signed.signature}", file=sys.stderr)

    return emit


def _submit(rpc: SolanaRPCClient, signed: SignedTransaction) -> SubmissionResult:
    logger.info("Sending and confirming transaction %s", signed.signature)
    result = TransactionSender(rpc).submit(signed, on_update=_stderr_progress(signed))
    if result.confirmed and result.status is not None and result.status.err is not None:
        raise CLIError(
            f"Transaction {result.signature} failed on-chain: {describe_transaction_error(result.status.err)}"
        )
    if not result.confirmed:
        logger.warning(
            "Transaction %s is unconfirmed; its status is unknown and it may still land before block height %d. "
            "Check the signature before retrying.",
            signed.signature,
            result.lifetime.last_valid_block_height,
        )
    return result


def _result_summary(result: SubmissionResult, signed: SignedTransaction) -> dict[str, Any]:
    return {
        "signature": signed.signature,
        "status": "confirmed" if result.confirmed else "unconfirmed",
        "confirmation": result.status.confirmation_status if result.status else "unknown",
        "last_valid_block_height": result.lifetime.last_valid_block_height,
    }


def _run_with_classification(action: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    try:
        return action()
    except PreflightRejected as exc:
        detail = report_error(exc)
        suffix = f" (signature {exc.signature})" if exc.signature else ""
        raise CLIError(f"{exc.message}: {detail}{suffix}") from exc


def cmd_create_token(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    payer = load_keypair(config.keypair_path)
    mint = load_keypair(args.mint_keypair) if args.mint_keypair else Keypair()

    logger.info("Creating SPL token mint %s with metadata URI: %s", mint.pubkey(), args.metadata_uri)
    instructions = create_token_instructions(
        payer.pubkey(),
        mint.pubkey(),
        name=args.name,
        symbol=args.symbol,
        uri=args.metadata_uri,
        decimals=args.decimals,
    )

    with closing(SolanaRPCClient.from_config(config)) as rpc:

        def action() -> dict[str, Any]:
            prepared = TokenTransactionBuilder(rpc).prepare(
                payer, instructions, extra_signers=[mint], priority_fee=args.priority_fee
            )
            result = _submit(rpc, prepared.signed)
            summary = _result_summary(result, prepared.signed)
            summary["mint"] = str(mint.pubkey())
            summary["priority_fee"] = prepared.priority_fee.fee
            return summary

        _print_json(_run_with_classification(action))


def cmd_mint_tokens(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    mint = _parse_address(args.mint, "mint")
    recipient = _parse_address(args.recipient, "recipient") if args.recipient else None
    payer = load_keypair(config.keypair_path)
    recipient = recipient or payer.pubkey()

    with closing(SolanaRPCClient.from_config(config)) as rpc:
        builder = TokenTransactionBuilder(rpc)
        decimals = builder.get_mint_decimals(mint)
        try:
            amount = to_base_units(args.amount, decimals)
        except ValueError as exc:
            raise CLIError(str(exc)) from exc

        logger.info("Minting %s of SPL token %s to %s", args.amount, mint, recipient)
        instructions = mint_tokens_instructions(payer.pubkey(), mint, recipient, amount)

        def action() -> dict[str, Any]:
            prepared = builder.prepare(payer, instructions, priority_fee=args.priority_fee)
            result = _submit(rpc, prepared.signed)
            summary = _result_summary(result, prepared.signed)
            summary.update(
                {
                    "mint": str(mint),
                    "recipient": str(recipient),
                    "amount": amount,
                    "priority_fee": prepared.priority_fee.fee,
                }
            )
            return summary

        _print_json(_run_with_classification(action))


def cmd_priority_fee(args: argparse.Namespace) -> None:
    config = _config_from_args(args)
    with closing(SolanaRPCClient.from_config(config)) as rpc:
        selection = select_priority_fee(rpc)
    _print_json(
        {
            "priority_fee": selection.fee,
            "source": selection.source,
            "samples": selection.sample_count,
            "clamped": selection.clamped,
        }
    )


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    set_default_config_path(args.config)
    try:
        if args.command == "create-token":
            cmd_create_token(args)
        elif args.command == "mint-tokens":
            cmd_mint_tokens(args)
        elif args.command == "priority-fee":
            cmd_priority_fee(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        KeypairError,
        NoFeeData,
        RPCError,
        RPCTransportError,
        ValueError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
