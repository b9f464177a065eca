"""Load Solana CLI style keypair files."""

from __future__ import annotations

import json
from pathlib import Path

from solders.keypair import Keypair


class KeypairError(RuntimeError):
    """Raised when a keypair file is missing or malformed."""


def resolve_keypair_path(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def load_keypair(path: str | Path) -> Keypair:
    """Load a keypair stored as a JSON array of 64 secret key bytes."""

    resolved = resolve_keypair_path(path)
    if not resolved.exists():
        raise KeypairError(f"Unable to locate keypair file at path {resolved}. Aborting.")

    try:
        raw = json.loads(resolved.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise KeypairError(f"Keypair file {resolved} is not valid JSON") from exc

    if not isinstance(raw, list) or not all(isinstance(item, int) and 0 <= item <= 255 for item in raw):
        raise KeypairError(f"Keypair file {resolved} must contain a JSON array of bytes")
    if len(raw) != 64:
        raise KeypairError(f"Keypair file {resolved} must contain 64 bytes, found {len(raw)}")

    try:
        return Keypair.from_bytes(bytes(raw))
    except ValueError as exc:
        raise KeypairError(f"Keypair file {resolved} does not hold a valid ed25519 keypair") from exc
