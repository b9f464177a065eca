"""Tools for creating and minting SPL tokens with reliable submission."""

from .config import ClusterConfig, ConfigurationError, Endpoint, load_cluster_config
from .errors import classify_error, report_error
from .fees import (
    MAX_CU_PRICE,
    MIN_CU_PRICE,
    NoFeeData,
    PriorityFeeSelection,
    estimate_priority_fee,
    select_priority_fee,
)
from .model import (
    BlockhashLifetime,
    ConfirmationStatus,
    PriorityFeeSample,
    SenderState,
    SignedTransaction,
    SubmissionAttempt,
    SubmissionResult,
    TxStatusUpdate,
)
from .rpc_client import PreflightRejected, RPCError, SolanaRPCClient
from .sender import MAX_RETRIES, RETRY_INTERVAL_MS, TransactionSender
from .transport import HTTPTransport, RetryingTransport, RPCTransportError, TransportExhausted

__all__ = [
    "ClusterConfig",
    "ConfigurationError",
    "Endpoint",
    "load_cluster_config",
    "classify_error",
    "report_error",
    "MAX_CU_PRICE",
    "MIN_CU_PRICE",
    "NoFeeData",
    "PriorityFeeSelection",
    "estimate_priority_fee",
    "select_priority_fee",
    "BlockhashLifetime",
    "ConfirmationStatus",
    "PriorityFeeSample",
    "SenderState",
    "SignedTransaction",
    "SubmissionAttempt",
    "SubmissionResult",
    "TxStatusUpdate",
    "PreflightRejected",
    "RPCError",
    "SolanaRPCClient",
    "MAX_RETRIES",
    "RETRY_INTERVAL_MS",
    "TransactionSender",
    "HTTPTransport",
    "RetryingTransport",
    "RPCTransportError",
    "TransportExhausted",
]
