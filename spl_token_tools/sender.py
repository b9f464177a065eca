"""Send-and-confirm loop for a single signed transaction.

Each iteration rebroadcasts the transaction and, once a signature is known,
polls its status. Both run concurrently and are joined before the status is
inspected. Rebroadcasting is safe because the signature, and therefore the
cluster's view of the transaction, never changes.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from .model import (
    ConfirmationStatus,
    SenderState,
    SignedTransaction,
    SubmissionAttempt,
    SubmissionResult,
    TxStatusUpdate,
)
from .rpc_client import PreflightRejected, RPCError
from .transport import RPCTransportError

logger = logging.getLogger(__name__)

# A minute of retries at 2 second intervals
RETRY_INTERVAL_MS = 2000
MAX_RETRIES = 30

StatusObserver = Callable[[TxStatusUpdate], None]


class TransactionSender:
    """Drive one signed transaction to ``confirmed`` or until retries run out."""

    def __init__(
        self,
        rpc: Any,
        *,
        max_retries: int = MAX_RETRIES,
        retry_interval_ms: int = RETRY_INTERVAL_MS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.rpc = rpc
        self.max_retries = max_retries
        self.retry_interval_ms = retry_interval_ms
        self._sleep = sleep

    def submit(
        self, signed_tx: SignedTransaction, on_update: Optional[StatusObserver] = None
    ) -> SubmissionResult:
        """Broadcast ``signed_tx`` until it is confirmed or the retry budget is spent.

        Raises ``PreflightRejected`` if the cluster deterministically rejects the
        transaction. Running out of retries is reported as a ``TIMED_OUT``
        result, not an exception.
        """

        notify = on_update or _ignore_update
        notify(TxStatusUpdate(status="created"))

        state = SenderState.CREATED
        signature: str | None = None
        status: ConfirmationStatus | None = None
        attempts: List[SubmissionAttempt] = []

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="tx-sender") as pool:
            for iteration in range(1, self.max_retries + 1):
                known_signature = signature
                broadcast = pool.submit(self._broadcast, signed_tx, iteration)
                pending: List[Future] = [broadcast]
                poll: Future | None = None
                if known_signature is not None:
                    poll = pool.submit(self._poll, known_signature)
                    pending.append(poll)
                wait(pending)

                try:
                    attempt = broadcast.result()
                except PreflightRejected as exc:
                    exc.signature = signed_tx.signature
                    if exc.transaction is None:
                        exc.transaction = signed_tx
                    logger.error(
                        "Transaction %s rejected during preflight; not retrying", signed_tx.signature
                    )
                    raise
                attempts.append(attempt)

                if attempt.succeeded and signature is None:
                    signature = signed_tx.signature
                    state = SenderState.SENT
                    logger.info("Transaction sent: %s", signature)
                    notify(TxStatusUpdate(status="sent", signature=signature))

                if poll is not None:
                    polled = poll.result()
                    if polled is not None:
                        status = polled

                if status is not None and status.is_confirmed:
                    if status.err is not None:
                        logger.warning("Transaction %s landed with error: %s", signature, status.err)
                    logger.info(
                        "Transaction %s reached %s after %d iterations",
                        signature,
                        status.confirmation_status,
                        iteration,
                    )
                    notify(TxStatusUpdate(status="confirmed", signature=signature, result=status.raw))
                    return SubmissionResult(
                        state=SenderState.CONFIRMED,
                        signature=signature,
                        lifetime=signed_tx.lifetime,
                        status=status,
                        iterations=iteration,
                        attempts=attempts,
                    )

                if iteration < self.max_retries:
                    self._sleep(self.retry_interval_ms / 1000)

        logger.warning(
            "Transaction %s not confirmed after %d attempts (last state %s); it may still land "
            "before block height %d",
            signature or signed_tx.signature,
            self.max_retries,
            state.value,
            signed_tx.lifetime.last_valid_block_height,
        )
        return SubmissionResult(
            state=SenderState.TIMED_OUT,
            signature=signature,
            lifetime=signed_tx.lifetime,
            status=status,
            iterations=self.max_retries,
            attempts=attempts,
        )

    def _broadcast(self, signed_tx: SignedTransaction, iteration: int) -> SubmissionAttempt:
        timestamp = datetime.now(timezone.utc)
        try:
            self.rpc.send_transaction(
                signed_tx.to_base64(),
                skip_preflight=True,
                max_retries=0,
                preflight_commitment="confirmed",
            )
        except PreflightRejected:
            raise
        except (RPCTransportError, RPCError) as exc:
            logger.warning("Broadcast %d of %s failed: %s", iteration, signed_tx.signature, exc)
            return SubmissionAttempt(iteration=iteration, timestamp=timestamp, succeeded=False, error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error broadcasting %s (iteration %d)", signed_tx.signature, iteration)
            return SubmissionAttempt(iteration=iteration, timestamp=timestamp, succeeded=False, error=repr(exc))
        return SubmissionAttempt(iteration=iteration, timestamp=timestamp, succeeded=True)

    def _poll(self, signature: str) -> ConfirmationStatus | None:
        try:
            statuses = self.rpc.get_signature_statuses([signature])
        except (RPCTransportError, RPCError) as exc:
            logger.warning("Status poll for %s failed: %s", signature, exc)
            return None
        except Exception:
            logger.exception("Unexpected error polling status of %s", signature)
            return None
        if not statuses:
            return None
        return statuses[0]


def _ignore_update(update: TxStatusUpdate) -> None:
    return None
