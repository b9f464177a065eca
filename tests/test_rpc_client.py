from __future__ import annotations

import pytest
from solders.hash import Hash

from spl_token_tools.rpc_client import PreflightRejected, RPCError, SolanaRPCClient


class ScriptedTransport:
    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.requests: list[dict] = []

    def send(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        return {"jsonrpc": "2.0", "id": request["id"], **response}


def test_preflight_failure_raises_preflight_rejected() -> None:
    transport = ScriptedTransport(
        {
            "error": {
                "code": -32002,
                "message": "Transaction simulation failed: Error processing Instruction 0: custom program error: 0x0",
                "data": {
                    "err": {"InstructionError": [0, {"Custom": 0}]},
                    "logs": ["Program 11111111111111111111111111111111 invoke [1]"],
                    "unitsConsumed": 150,
                },
            }
        }
    )
    rpc = SolanaRPCClient(transport)

    with pytest.raises(PreflightRejected) as excinfo:
        rpc.send_transaction("AAAA", skip_preflight=False)

    error = excinfo.value
    assert error.code == -32002
    assert error.cause == {"InstructionError": [0, {"Custom": 0}]}
    assert error.context["unitsConsumed"] == 150
    assert "err" not in error.context


def test_other_rpc_errors_keep_their_code() -> None:
    rpc = SolanaRPCClient(ScriptedTransport({"error": {"code": -32602, "message": "Invalid params"}}))

    with pytest.raises(RPCError) as excinfo:
        rpc.call("getBalance", ["bad"])

    assert not isinstance(excinfo.value, PreflightRejected)
    assert excinfo.value.code == -32602


def test_send_transaction_leaves_retries_to_the_caller() -> None:
    transport = ScriptedTransport({"result": "sig"})
    rpc = SolanaRPCClient(transport)

    assert rpc.send_transaction("AAAA") == "sig"

    params = transport.requests[0]["params"]
    assert params[0] == "AAAA"
    assert params[1] == {
        "encoding": "base64",
        "skipPreflight": True,
        "preflightCommitment": "confirmed",
        "maxRetries": 0,
    }


def test_signature_statuses_are_parsed() -> None:
    transport = ScriptedTransport(
        {
            "result": {
                "context": {"slot": 10},
                "value": [
                    {"slot": 9, "confirmations": None, "err": None, "confirmationStatus": "finalized"},
                    None,
                ],
            }
        }
    )
    rpc = SolanaRPCClient(transport)

    statuses = rpc.get_signature_statuses(["a", "b"])

    assert statuses[0].confirmation_status == "finalized"
    assert statuses[0].is_confirmed
    assert statuses[1].confirmation_status == "unknown"
    assert not statuses[1].is_confirmed


def test_prioritization_fees_and_blockhash() -> None:
    blockhash = str(Hash.default())
    transport = ScriptedTransport(
        {"result": [{"slot": 1, "prioritizationFee": 0}, {"slot": 2, "prioritizationFee": 5000}]},
        {"result": {"context": {"slot": 3}, "value": {"blockhash": blockhash, "lastValidBlockHeight": 150}}},
    )
    rpc = SolanaRPCClient(transport)

    samples = rpc.get_recent_prioritization_fees()
    lifetime = rpc.get_latest_blockhash()

    assert [sample.prioritization_fee for sample in samples] == [0, 5000]
    assert lifetime.blockhash == Hash.default()
    assert lifetime.last_valid_block_height == 150
    assert transport.requests[1]["params"] == [{"commitment": "confirmed"}]


def test_request_ids_increase() -> None:
    transport = ScriptedTransport({"result": 1}, {"result": 2})
    rpc = SolanaRPCClient(transport)
    rpc.call("getSlot")
    rpc.call("getSlot")
    assert [request["id"] for request in transport.requests] == [1, 2]
