from __future__ import annotations

import logging
from dataclasses import dataclass

import redis

from word_oracle.agents.oracle_responder import Responder
from word_oracle.api.models import GameState, PlayerState, TranscriptEntry
from word_oracle.engine import (
    DEFAULT_TRIES_PER_ENTRY,
    check_win,
    consume_attempt,
    contains_secret,
    declare_winner,
    get_player,
    get_transcript,
    normalize_address,
    record_transcript_entry,
    sync_entry_fees,
)
from word_oracle.errors import (
    InsufficientAttemptsError,
    NoActiveGameError,
    OracleError,
    UnconfirmedEntryFeeError,
)
from word_oracle.game_store import load_game, mutate_game
from word_oracle.ledger import LedgerClient


logger = logging.getLogger(__name__)

WIN_RESPONSE = "THE SPIRITS REJOICE! You have extracted the secret! Your prize is being sent..."
WIN_TRANSCRIPT_RESPONSE = "CORRECT! YOU WIN!"
LEAK_DEFLECTION = "The mists grow thick... Zoltar cannot speak clearly. Try a different approach, seeker."
CLOUDED_REPLY = "Zoltar's crystal ball has clouded... Ask again, seeker, and the spirits may answer."


@dataclass(frozen=True, slots=True)
class MessageResult:
    game_id: int
    won: bool
    response: str
    tries_remaining: int
    tx_hash: str | None = None


@dataclass(frozen=True, slots=True)
class _Turn:
    consumed: bool
    won: bool = False
    tries_remaining: int = 0
    snapshot: GameState | None = None


async def _ensure_entry_fees(
    *,
    r: redis.Redis,
    ledger: LedgerClient,
    state: GameState,
    address: str,
    tries_per_entry: int,
) -> None:
    """Pull confirmed entry fees from the ledger for a new or out-of-tries player."""

    player = get_player(state, address)
    if player is not None and player.tries > 0:
        return

    confirmed = await ledger.entry_fee_count(address)
    if player is None and confirmed <= 0:
        raise UnconfirmedEntryFeeError(address)

    game_id = state.game_id

    def _sync(s: GameState | None) -> int:
        if s is None or s.game_id != game_id:
            return 0
        return sync_entry_fees(s, address, confirmed_count=confirmed, tries_per_entry=tries_per_entry)

    added = mutate_game(r=r, fn=_sync)
    if added:
        logger.info("[game #%s] recorded %s new entry fee(s) for %s", game_id, added, address)


async def _declare_winner_on_chain(*, ledger: LedgerClient, game_id: int, address: str) -> str | None:
    try:
        tx_hash = await ledger.declare_winner(address)
    except OracleError:
        logger.exception("[game #%s] declareWinner(%s) could not be sent", game_id, address)
        return None

    if not await ledger.await_confirmation(tx_hash):
        logger.error("[game #%s] declareWinner tx %s not confirmed", game_id, tx_hash)
        return None
    return tx_hash


async def _generate_reply(*, responder: Responder, snapshot: GameState, message: str) -> str:
    try:
        reply = await responder.generate(
            secret=snapshot.secret,
            player_text=message,
            difficulty=snapshot.difficulty.value,
        )
    except Exception:
        logger.exception("[game #%s] responder failed", snapshot.game_id)
        return CLOUDED_REPLY

    if not reply.strip():
        logger.warning("[game #%s] responder returned an empty reply", snapshot.game_id)
        return CLOUDED_REPLY

    if contains_secret(snapshot, reply):
        logger.warning("[game #%s] responder leaked the secret; reply suppressed", snapshot.game_id)
        return LEAK_DEFLECTION
    return reply.strip()


async def submit_message(
    *,
    r: redis.Redis,
    ledger: LedgerClient,
    responder: Responder,
    address: str,
    message: str,
    tries_per_entry: int = DEFAULT_TRIES_PER_ENTRY,
) -> MessageResult:
    """Handle one guess/question from a player.

    One attempt is spent per submission whatever the outcome. The attempt, the
    win check and (on a win) the transcript line happen in a single locked step;
    ledger and LLM calls happen outside the lock.
    """

    address = normalize_address(address)

    state = load_game(r=r)
    if state is None:
        raise NoActiveGameError()

    await _ensure_entry_fees(r=r, ledger=ledger, state=state, address=address, tries_per_entry=tries_per_entry)

    def _take_turn(s: GameState | None) -> _Turn | None:
        if s is None:
            return None
        if not consume_attempt(s, address):
            return _Turn(consumed=False)

        won = check_win(s, message)
        if won:
            declare_winner(s, address)
            record_transcript_entry(s, address, message, WIN_TRANSCRIPT_RESPONSE)

        player = get_player(s, address)
        return _Turn(
            consumed=True,
            won=won,
            tries_remaining=player.tries if player is not None else 0,
            snapshot=s.model_copy(deep=True),
        )

    turn = mutate_game(r=r, fn=_take_turn)
    if turn is None:
        raise NoActiveGameError()
    if not turn.consumed or turn.snapshot is None:
        raise InsufficientAttemptsError(address)

    snapshot = turn.snapshot

    if turn.won:
        tx_hash = await _declare_winner_on_chain(ledger=ledger, game_id=snapshot.game_id, address=address)
        return MessageResult(
            game_id=snapshot.game_id,
            won=True,
            response=WIN_RESPONSE,
            tries_remaining=turn.tries_remaining,
            tx_hash=tx_hash,
        )

    reply = await _generate_reply(responder=responder, snapshot=snapshot, message=message)

    def _record(s: GameState | None) -> TranscriptEntry | None:
        # The round may have rotated while the responder was thinking.
        if s is None or s.game_id != snapshot.game_id:
            return None
        return record_transcript_entry(s, address, message, reply)

    if mutate_game(r=r, fn=_record) is None:
        logger.info("[game #%s] round ended before reply to %s was recorded", snapshot.game_id, address)

    return MessageResult(
        game_id=snapshot.game_id,
        won=False,
        response=reply,
        tries_remaining=turn.tries_remaining,
    )


def transcript_for(*, r: redis.Redis, address: str) -> list[TranscriptEntry] | None:
    return get_transcript(load_game(r=r), address)


def player_status(*, r: redis.Redis, address: str) -> PlayerState | None:
    return get_player(load_game(r=r), address)
