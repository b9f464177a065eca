"""Priority fee selection for compute-unit pricing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .model import PriorityFeeSample

logger = logging.getLogger(__name__)

# 10k micro-lamports per CU is 0.03 cents at 150k CUs and $250 SOL
MIN_CU_PRICE = 10_000
# 10M micro-lamports per CU is $0.38 at 150k CUs and $250 SOL
MAX_CU_PRICE = 10_000_000


class NoFeeData(RuntimeError):
    """Raised when the cluster returned no recent prioritization fees."""


@dataclass
class PriorityFeeSelection:
    """Container for the chosen compute-unit price."""

    fee: int
    source: str
    sample_count: int = 0
    clamped: bool = False


def clamp_priority_fee(fee: int) -> int:
    return min(max(int(fee), MIN_CU_PRICE), MAX_CU_PRICE)


def highest_recent_fee(samples: Iterable[PriorityFeeSample]) -> int:
    """Return the highest fee in ``samples``; raises ``NoFeeData`` when empty."""

    fees = [sample.prioritization_fee for sample in samples]
    if not fees:
        raise NoFeeData("Cluster returned no recent prioritization fees")
    return max(fees)


def estimate_priority_fee(rpc: Any) -> int:
    """Fetch recent fees from ``rpc`` and return a bounded fee per compute unit."""

    return select_priority_fee(rpc).fee


def select_priority_fee(rpc: Any, *, user_fee: int | None = None) -> PriorityFeeSelection:
    """Pick the compute-unit price, preferring an explicit ``user_fee``."""

    if user_fee is not None:
        if user_fee < 0:
            raise ValueError("Priority fee must not be negative")
        return PriorityFeeSelection(fee=int(user_fee), source="user")

    samples = rpc.get_recent_prioritization_fees()
    highest = highest_recent_fee(samples)
    fee = clamp_priority_fee(highest)
    if fee != highest:
        logger.debug(
            "Clamped priority fee %d into [%d, %d] -> %d", highest, MIN_CU_PRICE, MAX_CU_PRICE, fee
        )
    logger.info("Priority fee %d micro-lamports/CU from %d samples", fee, len(samples))
    return PriorityFeeSelection(
        fee=fee,
        source="recent-max",
        sample_count=len(samples),
        clamped=fee != highest,
    )
