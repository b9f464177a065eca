"""Human-friendly explanations for preflight rejections.

Only ``PreflightRejected`` is interpreted here; any other exception is raised
again unchanged so callers keep their normal propagation path.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from .model import SignedTransaction
from .rpc_client import PreflightRejected

logger = logging.getLogger(__name__)

SYSTEM_PROGRAM_ERRORS: Mapping[int, str] = {
    0: "an account with the same address already exists",
    1: "account does not have enough SOL to perform the operation",
    2: "cannot assign account to this program id",
    3: "cannot allocate account data of this length",
    4: "length of requested seed is too long",
    5: "provided address does not match addressed derived from seed",
    6: "advancing stored nonce requires a populated RecentBlockhashes sysvar",
    7: "stored nonce is still in recent_blockhashes",
    8: "specified nonce does not match stored nonce",
}

TOKEN_PROGRAM_ERRORS: Mapping[int, str] = {
    0: "Lamport balance below rent-exempt threshold",
    1: "Insufficient funds",
    2: "Invalid Mint",
    3: "Account not associated with this Mint",
    4: "Owner does not match",
    5: "Fixed supply",
    6: "Already in use",
    7: "Invalid number of provided signers",
    8: "Invalid number of required signers",
    9: "State is uninitialized",
    10: "Instruction does not support native tokens",
    11: "Non-native account can only be closed if its balance is zero",
    12: "Invalid instruction",
    13: "State is invalid for requested operation",
    14: "Operation overflowed",
    15: "Account does not support specified authority type",
    16: "This token mint cannot freeze accounts",
    17: "Account is frozen",
    18: "The provided decimals value different from the Mint decimals",
    19: "Instruction does not support non-native tokens",
}

ASSOCIATED_TOKEN_PROGRAM_ERRORS: Mapping[int, str] = {
    0: "Associated token account owner does not match address derivation",
}

PROGRAM_ERRORS: Mapping[str, Mapping[int, str]] = {
    str(SYSTEM_PROGRAM_ID): SYSTEM_PROGRAM_ERRORS,
    str(TOKEN_PROGRAM_ID): TOKEN_PROGRAM_ERRORS,
    str(ASSOCIATED_TOKEN_PROGRAM_ID): ASSOCIATED_TOKEN_PROGRAM_ERRORS,
}

# Builtin instruction errors and transaction-level errors reported by the runtime.
RUNTIME_ERRORS: Mapping[str, str] = {
    "InsufficientFunds": "insufficient funds for instruction",
    "MissingRequiredSignature": "missing required signature for instruction",
    "AccountAlreadyInitialized": "instruction requires an uninitialized account",
    "UninitializedAccount": "instruction requires an initialized account",
    "InvalidAccountData": "invalid account data for instruction",
    "IncorrectProgramId": "incorrect program id for instruction",
    "ComputationalBudgetExceeded": "Computational budget exceeded",
    "InsufficientFundsForFee": "Insufficient funds for fee",
    "InsufficientFundsForRent": "Transaction results in an account with insufficient funds for rent",
    "AccountNotFound": "Attempt to debit an account but found no record of a prior credit.",
    "BlockhashNotFound": "Blockhash not found",
    "AlreadyProcessed": "This transaction has already been processed",
    "AccountInUse": "Account in use",
}


def _instruction_error(cause: Any) -> tuple[int, Any] | None:
    if isinstance(cause, Mapping):
        payload = cause.get("InstructionError")
        if isinstance(payload, (list, tuple)) and len(payload) == 2:
            return int(payload[0]), payload[1]
    return None


def _error_name(detail: Any) -> str | None:
    if isinstance(detail, str):
        return detail
    if isinstance(detail, Mapping) and len(detail) == 1:
        return next(iter(detail))
    return None


def _program_for_instruction(signed_tx: SignedTransaction, index: int) -> str | None:
    message = signed_tx.transaction.message
    instructions = message.instructions
    if index < 0 or index >= len(instructions):
        return None
    account_keys = message.account_keys
    program_index = instructions[index].program_id_index
    if program_index >= len(account_keys):
        return None
    return str(account_keys[program_index])


def program_error_message(cause: Any, signed_tx: SignedTransaction) -> str | None:
    """Map a ``Custom`` instruction error to the failing program's message."""

    instruction_error = _instruction_error(cause)
    if instruction_error is None:
        return None
    index, detail = instruction_error
    if not isinstance(detail, Mapping) or "Custom" not in detail:
        return None
    program = _program_for_instruction(signed_tx, index)
    if program is None:
        return None
    return PROGRAM_ERRORS.get(program, {}).get(int(detail["Custom"]))


def runtime_error_message(cause: Any) -> str | None:
    instruction_error = _instruction_error(cause)
    name = _error_name(instruction_error[1] if instruction_error else cause)
    if name is None:
        return None
    return RUNTIME_ERRORS.get(name)


def describe_transaction_error(cause: Any) -> str:
    """Render a raw transaction error payload the way the runtime logs it."""

    if cause is None:
        return ""
    instruction_error = _instruction_error(cause)
    if instruction_error is not None:
        index, detail = instruction_error
        if isinstance(detail, Mapping) and "Custom" in detail:
            return f"Error processing Instruction {index}: custom program error: {int(detail['Custom']):#x}"
        return f"Error processing Instruction {index}: {_error_name(detail) or detail}"
    return str(_error_name(cause) or cause)


def classify_error(error: BaseException, signed_tx: SignedTransaction | None = None) -> str:
    """Return an actionable message for a preflight rejection.

    Non-preflight errors are re-raised untouched.
    """

    if not isinstance(error, PreflightRejected):
        raise error
    if signed_tx is None:
        signed_tx = error.transaction
    if signed_tx is None:
        return error.message

    detail = program_error_message(error.cause, signed_tx)
    if detail:
        return detail
    detail = runtime_error_message(error.cause)
    if detail:
        return detail
    return describe_transaction_error(error.cause) or error.message


def report_error(error: BaseException, signed_tx: SignedTransaction | None = None) -> str:
    """Log a classified preflight rejection with its simulation context."""

    detail = classify_error(error, signed_tx)
    rejection: PreflightRejected = error  # type: ignore[assignment]
    for line in rejection.context.get("logs") or []:
        logger.error("  %s", line)
    if rejection.signature:
        logger.error("%s: %s (signature %s)", rejection.message, detail, rejection.signature)
    else:
        logger.error("%s: %s", rejection.message, detail)
    return detail
