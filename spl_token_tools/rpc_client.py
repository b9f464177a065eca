"""JSON-RPC client for Solana cluster nodes.

Each helper maps directly to one RPC method and returns parsed, lightly typed
results. Every request goes through the configured transport, which by default
is an ``HTTPTransport`` wrapped in a ``RetryingTransport``. No signing or
instruction logic lives here.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Mapping, Optional

from solders.hash import Hash

from .config import ClusterConfig, Endpoint
from .model import BlockhashLifetime, ConfirmationStatus, PriorityFeeSample
from .transport import HTTPTransport, RetryingTransport, Transport

logger = logging.getLogger(__name__)

PREFLIGHT_FAILURE_CODE = -32002


class RPCError(RuntimeError):
    """Raised when the cluster responds with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class PreflightRejected(RPCError):
    """The cluster rejected the transaction while simulating it.

    ``context`` holds the simulation details (logs, consumed units, accounts)
    and ``cause`` the transaction error payload, e.g.
    ``{"InstructionError": [0, {"Custom": 0}]}``. ``transaction`` is the
    simulated transaction when the rejection came from a local simulation.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        cause: Any = None,
        code: int = PREFLIGHT_FAILURE_CODE,
        signature: str | None = None,
        transaction: Any = None,
    ) -> None:
        context = dict(context or {})
        super().__init__(code, message, data=context)
        self.context = context
        self.cause = cause
        self.signature = signature
        self.transaction = transaction

    @classmethod
    def from_simulation(
        cls, value: Mapping[str, Any], *, transaction: Any = None
    ) -> "PreflightRejected":
        context = {key: value.get(key) for key in ("logs", "accounts", "unitsConsumed", "returnData")}
        return cls(
            f"Transaction simulation failed: {value.get('err')}",
            context=context,
            cause=value.get("err"),
            transaction=transaction,
        )


class SolanaRPCClient:
    """Typed JSON-RPC client covering the methods the token commands need."""

    def __init__(self, transport: Transport, *, commitment: str = "confirmed") -> None:
        self.transport = transport
        self.commitment = commitment
        self._ids = itertools.count(1)

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint, *, commitment: str = "confirmed") -> "SolanaRPCClient":
        return cls(RetryingTransport(HTTPTransport(endpoint.http_url)), commitment=commitment)

    @classmethod
    def from_config(cls, config: ClusterConfig) -> "SolanaRPCClient":
        return cls.from_endpoint(config.endpoint, commitment=config.commitment)

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def call(self, method: str, params: Optional[list[Any]] = None) -> Any:
        """Perform a JSON-RPC request and return its ``result``."""

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        response = self.transport.send(payload)
        error = response.get("error")
        if error:
            code = error.get("code", -1)
            message = error.get("message", "unknown")
            data = error.get("data")
            if code == PREFLIGHT_FAILURE_CODE:
                data = data if isinstance(data, dict) else {}
                context = {key: value for key, value in data.items() if key != "err"}
                raise PreflightRejected(message, context=context, cause=data.get("err"), code=code)
            raise RPCError(code, message, data)
        return response.get("result")

    # Convenience wrappers -------------------------------------------------

    def send_transaction(
        self,
        wire_transaction_b64: str,
        *,
        skip_preflight: bool = True,
        max_retries: int | None = 0,
        preflight_commitment: str | None = None,
    ) -> str:
        config: Dict[str, Any] = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": preflight_commitment or self.commitment,
        }
        if max_retries is not None:
            config["maxRetries"] = max_retries
        return self.call("sendTransaction", [wire_transaction_b64, config])

    def get_signature_statuses(
        self, signatures: List[str], *, search_transaction_history: bool = False
    ) -> List[ConfirmationStatus]:
        result = self.call(
            "getSignatureStatuses",
            [signatures, {"searchTransactionHistory": search_transaction_history}],
        )
        return [ConfirmationStatus.from_rpc(entry) for entry in (result or {}).get("value") or []]

    def get_recent_prioritization_fees(
        self, accounts: Optional[List[str]] = None
    ) -> List[PriorityFeeSample]:
        params: list[Any] = [accounts] if accounts else []
        result = self.call("getRecentPrioritizationFees", params)
        return [PriorityFeeSample.from_rpc(entry) for entry in result or []]

    def get_latest_blockhash(self, commitment: str | None = None) -> BlockhashLifetime:
        result = self.call("getLatestBlockhash", [{"commitment": commitment or self.commitment}])
        value = result["value"]
        return BlockhashLifetime(
            blockhash=Hash.from_string(value["blockhash"]),
            last_valid_block_height=int(value["lastValidBlockHeight"]),
        )

    def simulate_transaction(
        self,
        wire_transaction_b64: str,
        *,
        sig_verify: bool = False,
        replace_recent_blockhash: bool = True,
    ) -> Dict[str, Any]:
        result = self.call(
            "simulateTransaction",
            [
                wire_transaction_b64,
                {
                    "encoding": "base64",
                    "sigVerify": sig_verify,
                    "replaceRecentBlockhash": replace_recent_blockhash,
                    "commitment": self.commitment,
                },
            ],
        )
        return result["value"]

    def get_token_supply(self, mint: str) -> Dict[str, Any]:
        result = self.call("getTokenSupply", [mint, {"commitment": self.commitment}])
        return result["value"]
