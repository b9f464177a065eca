from __future__ import annotations

import json
from pathlib import Path

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from spl_token_tools import cli
from spl_token_tools.model import BlockhashLifetime, ConfirmationStatus, PriorityFeeSample
from spl_token_tools.rpc_client import PreflightRejected
from spl_token_tools.sender import TransactionSender


class CLIStubRPC:
    def __init__(self, confirm: bool = True, reject_broadcast: bool = False, status_err=None) -> None:
        self.confirm = confirm
        self.reject_broadcast = reject_broadcast
        self.status_err = status_err
        self.sent: list[str] = []
        self.closed = False

    def close(self):
        self.closed = True

    def get_latest_blockhash(self):
        return BlockhashLifetime(Hash.new_unique(), 900)

    def simulate_transaction(self, wire):
        return {"err": None, "logs": [], "unitsConsumed": 30_000}

    def get_recent_prioritization_fees(self):
        return [PriorityFeeSample(slot=1, prioritization_fee=15_000)]

    def get_token_supply(self, mint):
        return {"decimals": 2}

    def send_transaction(self, wire, **_options):
        if self.reject_broadcast:
            raise PreflightRejected(
                "Transaction simulation failed", cause={"InstructionError": [2, {"Custom": 0}]}
            )
        self.sent.append(wire)
        return "sig"

    def get_signature_statuses(self, signatures):
        if not self.confirm:
            return [None]
        return [
            ConfirmationStatus(
                confirmation_status="confirmed",
                err=self.status_err,
                raw={"confirmationStatus": "confirmed"},
            )
        ]


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("spl_token_tools.config.DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    for name in ("SOLANA_RPC_URL", "SOLANA_WS_URL", "SOLANA_KEYPAIR", "SOLANA_COMMITMENT"):
        monkeypatch.delenv(name, raising=False)
    payer = Keypair()
    monkeypatch.setattr(cli, "load_keypair", lambda _path: payer)
    monkeypatch.setattr(
        cli, "TransactionSender", lambda rpc: TransactionSender(rpc, max_retries=3, sleep=lambda _s: None)
    )

    def install(rpc: CLIStubRPC) -> CLIStubRPC:
        monkeypatch.setattr(cli.SolanaRPCClient, "from_config", classmethod(lambda cls, _config: rpc))
        return rpc

    return payer, install


def test_create_token_requires_metadata_uri() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["create-token", "--name", "Test", "--symbol", "TST"])
    assert excinfo.value.code == 2


def test_create_token_prints_confirmed_signature(cli_env, capsys) -> None:
    _payer, install = cli_env
    rpc = install(CLIStubRPC())

    cli.main(
        [
            "create-token",
            "--url",
            "http://127.0.0.1:8899",
            "--name",
            "Test",
            "--symbol",
            "TST",
            "--metadata-uri",
            "https://example.com/t.json",
        ]
    )

    captured = capsys.readouterr()
    result = json.loads(captured.out.strip())
    assert result["status"] == "confirmed"
    assert result["priority_fee"] == 15_000
    assert result["signature"] in captured.err
    assert "sent::" in captured.err
    assert len(set(rpc.sent)) == 1
    assert rpc.closed


def test_mint_tokens_reports_unconfirmed_status(cli_env, capsys) -> None:
    payer, install = cli_env
    install(CLIStubRPC(confirm=False))
    mint = Keypair().pubkey()

    cli.main(["mint-tokens", "--url", "http://127.0.0.1:8899", "--mint", str(mint), "--amount", "1.25"])

    result = json.loads(capsys.readouterr().out.strip())
    assert result["status"] == "unconfirmed"
    assert result["amount"] == 125
    assert result["recipient"] == str(payer.pubkey())
    assert result["last_valid_block_height"] == 900


def test_mint_tokens_rejects_invalid_recipient(cli_env, capsys) -> None:
    _payer, install = cli_env
    install(CLIStubRPC())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "mint-tokens",
                "--url",
                "http://127.0.0.1:8899",
                "--mint",
                str(Keypair().pubkey()),
                "--amount",
                "1",
                "--recipient",
                "not-an-address",
            ]
        )

    assert excinfo.value.code == 1
    assert "Invalid recipient address" in capsys.readouterr().err


def test_preflight_rejection_surfaces_classified_message(cli_env, capsys) -> None:
    _payer, install = cli_env
    rpc = install(CLIStubRPC(reject_broadcast=True))

    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            [
                "create-token",
                "--url",
                "http://127.0.0.1:8899",
                "--name",
                "Test",
                "--symbol",
                "TST",
                "--metadata-uri",
                "u",
            ]
        )

    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert "an account with the same address already exists" in err
    assert "signature" in err
    assert rpc.closed


def test_on_chain_failure_is_an_error(cli_env, capsys) -> None:
    _payer, install = cli_env
    install(CLIStubRPC(status_err={"InstructionError": [3, {"Custom": 1}]}))

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["mint-tokens", "--url", "http://127.0.0.1:8899", "--mint", str(Keypair().pubkey()), "--amount", "1"])

    assert excinfo.value.code == 1
    assert "failed on-chain" in capsys.readouterr().err


def test_priority_fee_command(cli_env, capsys) -> None:
    _payer, install = cli_env
    install(CLIStubRPC())

    cli.main(["priority-fee", "--url", "http://127.0.0.1:8899"])

    result = json.loads(capsys.readouterr().out.strip())
    assert result == {"priority_fee": 15_000, "source": "recent-max", "samples": 1, "clamped": False}
