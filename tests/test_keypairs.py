import json
from pathlib import Path

import pytest
from solders.keypair import Keypair

from spl_token_tools.keypairs import KeypairError, load_keypair


def test_load_keypair_round_trips_solana_cli_format(tmp_path: Path) -> None:
    keypair = Keypair()
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))))

    loaded = load_keypair(path)

    assert loaded.pubkey() == keypair.pubkey()


def test_load_keypair_expands_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    keypair = Keypair()
    (tmp_path / "id.json").write_text(json.dumps(list(bytes(keypair))))

    assert load_keypair("~/id.json").pubkey() == keypair.pubkey()


@pytest.mark.parametrize(
    "contents",
    ["not json", json.dumps({"secret": 1}), json.dumps([1, 2, 3]), json.dumps([300] * 64)],
)
def test_malformed_keypair_files(tmp_path: Path, contents: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(contents)
    with pytest.raises(KeypairError):
        load_keypair(path)


def test_missing_keypair_file(tmp_path: Path) -> None:
    with pytest.raises(KeypairError, match="Unable to locate keypair file"):
        load_keypair(tmp_path / "absent.json")
