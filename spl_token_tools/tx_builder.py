"""Instruction assembly and signing for SPL token transactions."""

from __future__ import annotations

import logging
import math
import struct
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import CreateAccountParams, create_account
from solders.sysvar import RENT
from solders.transaction import VersionedTransaction
from spl.token.constants import MINT_LEN, TOKEN_PROGRAM_ID
from spl.token.models import InitializeMintParams, MintToParams
from spl.token.instructions import (
    create_idempotent_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
)

from .fees import PriorityFeeSelection, select_priority_fee
from .model import BlockhashLifetime, SignedTransaction
from .rpc_client import PreflightRejected

logger = logging.getLogger(__name__)

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
CREATE_METADATA_ACCOUNT_V3_DISCRIMINATOR = 33
MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200

MAX_COMPUTE_UNIT_LIMIT = 1_400_000
MIN_COMPUTE_UNIT_LIMIT = 1_000
COMPUTE_UNIT_MARGIN = Decimal("1.2")

ACCOUNT_STORAGE_OVERHEAD = 128
LAMPORTS_PER_BYTE_YEAR = 3480
EXEMPTION_THRESHOLD_YEARS = 2


def minimum_balance_for_rent_exemption(space: int) -> int:
    return (ACCOUNT_STORAGE_OVERHEAD + space) * LAMPORTS_PER_BYTE_YEAR * EXEMPTION_THRESHOLD_YEARS


def adjust_compute_units(units: int) -> int:
    """Pad a simulated compute-unit count for use as the transaction limit."""

    if units < MIN_COMPUTE_UNIT_LIMIT:
        return MIN_COMPUTE_UNIT_LIMIT
    return min(math.ceil(Decimal(units) * COMPUTE_UNIT_MARGIN), MAX_COMPUTE_UNIT_LIMIT)


def to_base_units(amount: str | Decimal, decimals: int) -> int:
    """Convert a UI amount to integer base units, rejecting sub-unit precision."""

    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {amount}") from exc
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Token amount must be positive: {amount}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more precision than the mint's {decimals} decimals")
    return int(scaled)


def metadata_address(mint: Pubkey) -> Pubkey:
    seeds = [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)]
    pda, _ = Pubkey.find_program_address(seeds, TOKEN_METADATA_PROGRAM_ID)
    return pda


def _borsh_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def create_metadata_account_v3(
    *,
    metadata: Pubkey,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    is_mutable: bool = True,
) -> Instruction:
    """Build a Metaplex ``CreateMetadataAccountV3`` instruction.

    Seller fee is zero and creators, collection, uses and collection details
    are all left unset.
    """

    if len(name.encode("utf-8")) > MAX_NAME_LENGTH:
        raise ValueError(f"Token name must be at most {MAX_NAME_LENGTH} bytes")
    if len(symbol.encode("utf-8")) > MAX_SYMBOL_LENGTH:
        raise ValueError(f"Token symbol must be at most {MAX_SYMBOL_LENGTH} bytes")
    if len(uri.encode("utf-8")) > MAX_URI_LENGTH:
        raise ValueError(f"Metadata URI must be at most {MAX_URI_LENGTH} bytes")

    data = (
        bytes([CREATE_METADATA_ACCOUNT_V3_DISCRIMINATOR])
        + _borsh_string(name)
        + _borsh_string(symbol)
        + _borsh_string(uri)
        + struct.pack("<H", 0)  # seller_fee_basis_points
        + bytes([0, 0, 0])  # creators, collection, uses
        + bytes([1 if is_mutable else 0])
        + bytes([0])  # collection_details
    )
    accounts = [
        AccountMeta(metadata, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(mint_authority, is_signer=True, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(update_authority, is_signer=True, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(RENT, is_signer=False, is_writable=False),
    ]
    return Instruction(TOKEN_METADATA_PROGRAM_ID, data, accounts)


def create_token_instructions(
    payer: Pubkey,
    mint: Pubkey,
    *,
    name: str,
    symbol: str,
    uri: str,
    decimals: int,
) -> List[Instruction]:
    """Instructions that allocate a mint, initialise it and attach metadata."""

    if not 0 <= decimals <= 255:
        raise ValueError("Decimals must be between 0 and 255")
    return [
        create_account(
            CreateAccountParams(
                from_pubkey=payer,
                to_pubkey=mint,
                lamports=minimum_balance_for_rent_exemption(MINT_LEN),
                space=MINT_LEN,
                owner=TOKEN_PROGRAM_ID,
            )
        ),
        initialize_mint(
            InitializeMintParams(
                decimals=decimals,
                program_id=TOKEN_PROGRAM_ID,
                mint=mint,
                mint_authority=payer,
                freeze_authority=None,
            )
        ),
        create_metadata_account_v3(
            metadata=metadata_address(mint),
            mint=mint,
            mint_authority=payer,
            payer=payer,
            update_authority=payer,
            name=name,
            symbol=symbol,
            uri=uri,
        ),
    ]


def mint_tokens_instructions(
    payer: Pubkey, mint: Pubkey, recipient: Pubkey, amount: int
) -> List[Instruction]:
    """Instructions that ensure the recipient's ATA exists and mint into it."""

    ata = get_associated_token_address(recipient, mint, TOKEN_PROGRAM_ID)
    return [
        create_idempotent_associated_token_account(payer, recipient, mint, TOKEN_PROGRAM_ID),
        mint_to(
            MintToParams(
                program_id=TOKEN_PROGRAM_ID,
                mint=mint,
                dest=ata,
                mint_authority=payer,
                amount=amount,
            )
        ),
    ]


@dataclass
class PreparedTransaction:
    signed: SignedTransaction
    compute_units: int
    priority_fee: PriorityFeeSelection


class TokenTransactionBuilder:
    """Price, size and sign token transactions against a live cluster."""

    def __init__(self, rpc: Any) -> None:
        self.rpc = rpc

    def estimate_compute_units(self, payer: Pubkey, instructions: Sequence[Instruction]) -> int:
        """Simulate ``instructions`` and return a padded compute-unit limit.

        Raises ``PreflightRejected`` if the simulation itself fails.
        """

        message = MessageV0.try_compile(
            payer,
            [set_compute_unit_limit(MAX_COMPUTE_UNIT_LIMIT), *instructions],
            [],
            Hash.default(),
        )
        placeholder = [Signature.default()] * message.header.num_required_signatures
        simulated = SignedTransaction(
            VersionedTransaction.populate(message, placeholder),
            BlockhashLifetime(Hash.default(), 0),
        )
        value = self.rpc.simulate_transaction(simulated.to_base64())
        if value.get("err") is not None:
            raise PreflightRejected.from_simulation(value, transaction=simulated)
        consumed = int(value.get("unitsConsumed") or 0)
        units = adjust_compute_units(consumed)
        logger.debug("Simulation consumed %d compute units; using limit %d", consumed, units)
        return units

    def get_mint_decimals(self, mint: Pubkey) -> int:
        return int(self.rpc.get_token_supply(str(mint))["decimals"])

    def prepare(
        self,
        payer: Keypair,
        instructions: Iterable[Instruction],
        *,
        extra_signers: Sequence[Keypair] = (),
        priority_fee: int | None = None,
    ) -> PreparedTransaction:
        """Fetch a blockhash, size and price the instructions, then sign."""

        instructions = list(instructions)
        lifetime = self.rpc.get_latest_blockhash()
        compute_units = self.estimate_compute_units(payer.pubkey(), instructions)
        fee = select_priority_fee(self.rpc, user_fee=priority_fee)

        message = MessageV0.try_compile(
            payer.pubkey(),
            [
                set_compute_unit_price(fee.fee),
                set_compute_unit_limit(compute_units),
                *instructions,
            ],
            [],
            lifetime.blockhash,
        )
        transaction = VersionedTransaction(message, [payer, *extra_signers])
        signed = SignedTransaction(transaction, lifetime)
        logger.info(
            "Signed transaction %s (cu_limit=%d, cu_price=%d, valid until height %d)",
            signed.signature,
            compute_units,
            fee.fee,
            lifetime.last_valid_block_height,
        )
        return PreparedTransaction(signed=signed, compute_units=compute_units, priority_fee=fee)
