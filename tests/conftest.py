from __future__ import annotations

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import mint_to
from spl.token.models import MintToParams

from spl_token_tools.model import BlockhashLifetime, SignedTransaction


def make_signed_transaction(payer: Keypair | None = None, last_valid_block_height: int = 1_000) -> SignedTransaction:
    """A system transfer at index 0 followed by an SPL ``mint_to`` at index 1."""

    payer = payer or Keypair()
    mint = Pubkey.new_unique()
    destination = Pubkey.new_unique()
    instructions = [
        transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=destination, lamports=1)),
        mint_to(
            MintToParams(
                program_id=TOKEN_PROGRAM_ID,
                mint=mint,
                dest=destination,
                mint_authority=payer.pubkey(),
                amount=1,
            )
        ),
    ]
    blockhash = Hash.new_unique()
    message = MessageV0.try_compile(payer.pubkey(), instructions, [], blockhash)
    return SignedTransaction(
        VersionedTransaction(message, [payer]),
        BlockhashLifetime(blockhash, last_valid_block_height),
    )


@pytest.fixture
def signed_transaction() -> SignedTransaction:
    return make_signed_transaction()
