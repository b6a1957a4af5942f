from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TypeVar

import redis

from word_oracle.api.models import Difficulty, GameInfo, GameState, StartedGame
from word_oracle.commitment import commit
from word_oracle.errors import InvalidSecretError
from word_oracle.lock import session_lock
from word_oracle.settings import redis_url_from_env
from word_oracle.wordlist import select_secret


logger = logging.getLogger(__name__)

GAME_KEY = "oracle:game:current"

T = TypeVar("T")


def create_redis(*, url: str | None = None) -> redis.Redis:
    # Everything stored here is JSON text; decode to str on the way out.
    return redis.Redis.from_url(url or redis_url_from_env(), decode_responses=True)


def _now() -> datetime:
    return datetime.now(tz=UTC)


def load_game(*, r: redis.Redis) -> GameState | None:
    raw = r.get(GAME_KEY)
    if not raw:
        return None
    return GameState.model_validate_json(raw)


def save_game(*, r: redis.Redis, state: GameState) -> None:
    r.set(GAME_KEY, state.model_dump_json())


def new_game(*, game_id: int, rng: random.Random | None = None) -> GameState:
    """Draw a fresh secret and build (but don't store) a round for `game_id`."""

    secret, difficulty = select_secret(rng=rng)
    return GameState(
        game_id=game_id,
        secret=secret,
        difficulty=difficulty,
        # Secret and commitment are only ever set together.
        commitment=commit(secret),
        started_at=_now(),
    )


def install_game(*, r: redis.Redis, state: GameState) -> StartedGame:
    """Make `state` the active round, fully replacing whatever was there."""

    with session_lock(r=r):
        previous = load_game(r=r)
        save_game(r=r, state=state)

    if previous is not None and previous.game_id != state.game_id:
        logger.info("Replaced game #%s with game #%s", previous.game_id, state.game_id)
    logger.info("Game #%s active (%s), commitment %s", state.game_id, state.difficulty.value, state.commitment)
    return StartedGame(
        game_id=state.game_id,
        secret=state.secret,
        commitment=state.commitment,
        difficulty=state.difficulty,
    )


def start_game(*, r: redis.Redis, game_id: int, rng: random.Random | None = None) -> StartedGame:
    return install_game(r=r, state=new_game(game_id=game_id, rng=rng))


def normalize_secret(secret: str) -> str:
    normalized = secret.strip().lower()
    if not normalized:
        raise InvalidSecretError()
    return normalized


def set_secret(*, r: redis.Redis, game_id: int, secret: str) -> str:
    """Recovery path: force the secret for a round that is already live on the ledger.

    Used after server memory is lost mid-round. The difficulty can't be known, so
    it is recorded as medium.
    """

    secret = normalize_secret(secret)
    state = GameState(
        game_id=game_id,
        secret=secret,
        difficulty=Difficulty.medium,
        commitment=commit(secret),
        started_at=_now(),
    )
    install_game(r=r, state=state)
    return state.commitment


def end_game(*, r: redis.Redis) -> str | None:
    """Clear the active round and return its secret for audit. Idempotent."""

    with session_lock(r=r):
        state = load_game(r=r)
        r.delete(GAME_KEY)

    if state is None:
        return None
    logger.info("Game #%s ended", state.game_id)
    logger.debug("Game #%s secret revealed: %r", state.game_id, state.secret)
    return state.secret


def mutate_game(*, r: redis.Redis, fn: Callable[[GameState | None], T]) -> T:
    """Run `fn` against the active round inside the session lock and persist the result.

    `fn` receives None when no round is active; nothing is written in that case.
    """

    with session_lock(r=r):
        state = load_game(r=r)
        result = fn(state)
        if state is not None:
            save_game(r=r, state=state)
    return result


def get_info(*, r: redis.Redis) -> GameInfo | None:
    state = load_game(r=r)
    if state is None:
        return None
    return GameInfo(
        game_id=state.game_id,
        commitment=state.commitment,
        difficulty=state.difficulty,
        transcript_length=len(state.transcript),
        player_count=len(state.players),
        started_at=state.started_at,
        winner=state.winner,
    )


def get_secret(*, r: redis.Redis) -> str | None:
    state = load_game(r=r)
    return state.secret if state is not None else None


def get_game_id(*, r: redis.Redis) -> int | None:
    state = load_game(r=r)
    return state.game_id if state is not None else None
