"""Domain models for the transaction submission pipeline.

The structures here describe what the cluster returned or what the sender
did. Nothing is persisted beyond a single command invocation.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from solders.hash import Hash
from solders.transaction import VersionedTransaction

CONFIRMED_LEVELS = frozenset({"confirmed", "finalized"})


@dataclass(frozen=True)
class BlockhashLifetime:
    """Reference blockhash plus the last block height it stays valid for."""

    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class SignedTransaction:
    """A fully signed transaction bound to a blockhash lifetime.

    The signature is taken from the fee payer slot once at construction, so
    rebroadcasting the same object always reports the same identifier.
    """

    transaction: VersionedTransaction
    lifetime: BlockhashLifetime
    signature: str = field(init=False)

    def __post_init__(self) -> None:
        signatures = self.transaction.signatures
        if not signatures:
            raise ValueError("Transaction carries no signatures")
        object.__setattr__(self, "signature", str(signatures[0]))

    def wire_bytes(self) -> bytes:
        return bytes(self.transaction)

    def to_base64(self) -> str:
        return base64.b64encode(self.wire_bytes()).decode("ascii")


@dataclass(frozen=True)
class PriorityFeeSample:
    slot: int
    prioritization_fee: int

    @classmethod
    def from_rpc(cls, entry: Mapping[str, Any]) -> "PriorityFeeSample":
        return cls(slot=int(entry["slot"]), prioritization_fee=int(entry["prioritizationFee"]))


@dataclass(frozen=True)
class ConfirmationStatus:
    """Latest known status of a signature as reported by ``getSignatureStatuses``."""

    confirmation_status: str = "unknown"
    slot: int | None = None
    confirmations: int | None = None
    err: Any = None
    raw: Mapping[str, Any] | None = None

    @classmethod
    def from_rpc(cls, entry: Mapping[str, Any] | None) -> "ConfirmationStatus":
        if entry is None:
            return cls()
        return cls(
            confirmation_status=str(entry.get("confirmationStatus") or "unknown"),
            slot=entry.get("slot"),
            confirmations=entry.get("confirmations"),
            err=entry.get("err"),
            raw=dict(entry),
        )

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation_status in CONFIRMED_LEVELS


class SenderState(Enum):
    CREATED = "created"
    SENT = "sent"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class SubmissionAttempt:
    """Outcome of a single broadcast within one ``submit`` call."""

    iteration: int
    timestamp: datetime
    succeeded: bool
    error: str | None = None


@dataclass(frozen=True)
class TxStatusUpdate:
    status: str
    signature: str | None = None
    result: Any = None


@dataclass
class SubmissionResult:
    """Final state of a ``TransactionSender.submit`` call.

    A ``TIMED_OUT`` result is not a failure: the broadcasts already made stay
    valid until ``lifetime.last_valid_block_height`` and may still land.
    """

    state: SenderState
    signature: str | None
    lifetime: BlockhashLifetime
    status: ConfirmationStatus | None = None
    iterations: int = 0
    attempts: list[SubmissionAttempt] = field(default_factory=list)

    @property
    def confirmed(self) -> bool:
        return self.state is SenderState.CONFIRMED
