from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_RPC_URL = "https://sepolia.base.org"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    rpc_url: str
    contract_address: str | None
    # Operator credential used to sign startGame/endGame/declareWinner.
    private_key: str | None
    confirmation_timeout_s: int


@dataclass(frozen=True, slots=True)
class GameSettings:
    tries_per_entry: int
    rotation_interval_s: int
    # Bearer token for administrative endpoints.
    operator_key: str | None


def ledger_settings_from_env() -> LedgerSettings:
    return LedgerSettings(
        rpc_url=os.environ.get("LEDGER_RPC_URL", DEFAULT_RPC_URL),
        contract_address=os.environ.get("LEDGER_CONTRACT_ADDRESS") or None,
        private_key=os.environ.get("AGENT_PRIVATE_KEY") or None,
        confirmation_timeout_s=_env_int("LEDGER_CONFIRMATION_TIMEOUT_SECONDS", 120),
    )


def game_settings_from_env() -> GameSettings:
    return GameSettings(
        tries_per_entry=_env_int("TRIES_PER_ENTRY", 5),
        rotation_interval_s=_env_int("ROTATION_INTERVAL_SECONDS", 30),
        operator_key=os.environ.get("AGENT_SECRET_KEY") or None,
    )


def redis_url_from_env() -> str:
    return os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)
