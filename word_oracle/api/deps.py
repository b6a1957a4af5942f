from __future__ import annotations

import logging
import secrets
from collections.abc import Generator
from functools import lru_cache

import redis
from fastapi import Depends, Header, HTTPException, status

from word_oracle.agents.ag2_backend import create_oracle_agent
from word_oracle.agents.oracle_responder import AgentResponder, Responder
from word_oracle.game_store import create_redis
from word_oracle.ledger import LedgerClient, Web3LedgerClient
from word_oracle.rotation import PassOutcome, RotationLoop
from word_oracle.settings import GameSettings, game_settings_from_env, ledger_settings_from_env
from word_oracle.websocket_hub import hub


logger = logging.getLogger(__name__)


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


@lru_cache(maxsize=1)
def get_game_settings() -> GameSettings:
    return game_settings_from_env()


@lru_cache(maxsize=1)
def get_ledger() -> LedgerClient:
    client = Web3LedgerClient(ledger_settings_from_env())
    if client.operator_address is None:
        logger.warning("Ledger client is read-only: no operator key configured")
    else:
        logger.info("Ledger client transacting as %s", client.operator_address)
    return client


@lru_cache(maxsize=1)
def get_responder() -> Responder:
    return AgentResponder(create_oracle_agent(name="zoltar"))


async def _broadcast_rotation(outcome: PassOutcome) -> None:
    await hub.publish_round(outcome.action, outcome.game_id)


_LOOP: RotationLoop | None = None


def get_rotation_loop() -> RotationLoop:
    """Process-wide rotation loop, created on first use inside the serving event loop."""

    global _LOOP
    if _LOOP is None:
        _LOOP = RotationLoop(
            r=create_redis(),
            ledger=get_ledger(),
            interval_s=get_game_settings().rotation_interval_s,
            on_change=_broadcast_rotation,
        )
    return _LOOP


def peek_rotation_loop() -> RotationLoop | None:
    return _LOOP


def require_operator(
    authorization: str | None = Header(default=None),
    settings: GameSettings = Depends(get_game_settings),
) -> None:
    expected = settings.operator_key
    if not expected or authorization is None or not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
