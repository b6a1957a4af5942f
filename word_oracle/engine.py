"""Attempt budgets, win detection and the leak filter.

Every function here operates on an already-loaded `GameState` (or `None` when no
round is active) and never raises for a missing game: "no round right now" is the
normal idle state, so callers get a `None`/`False` sentinel and decide what to
tell the player. Persistence and locking live in `word_oracle.game_store`.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime

from word_oracle.api.models import GameState, PlayerState, TranscriptEntry


logger = logging.getLogger(__name__)

DEFAULT_TRIES_PER_ENTRY = 5


def normalize_address(address: str) -> str:
    return address.strip().lower()


def get_player(state: GameState | None, address: str) -> PlayerState | None:
    if state is None:
        return None
    return state.players.get(normalize_address(address))


def record_entry_fee(
    state: GameState | None,
    address: str,
    *,
    tries_per_entry: int = DEFAULT_TRIES_PER_ENTRY,
) -> PlayerState | None:
    """Record one confirmed entry fee and grant its attempt allotment."""

    if state is None:
        return None

    key = normalize_address(address)
    player = state.players.get(key)
    if player is None:
        player = PlayerState(tries=tries_per_entry, has_participated=False, total_buy_ins=1)
        state.players[key] = player
    else:
        player.tries += tries_per_entry
        player.total_buy_ins += 1

    logger.info("[game #%s] %s paid entry fee (buy-ins=%s, tries=%s)", state.game_id, key, player.total_buy_ins, player.tries)
    return player


def sync_entry_fees(
    state: GameState | None,
    address: str,
    *,
    confirmed_count: int,
    tries_per_entry: int = DEFAULT_TRIES_PER_ENTRY,
) -> int:
    """Record any confirmed entry fees the round hasn't seen yet. Returns how many were added."""

    if state is None:
        return 0

    player = get_player(state, address)
    known = player.total_buy_ins if player is not None else 0
    added = 0
    for _ in range(max(0, confirmed_count - known)):
        record_entry_fee(state, address, tries_per_entry=tries_per_entry)
        added += 1
    return added


def consume_attempt(state: GameState | None, address: str) -> bool:
    player = get_player(state, address)
    if player is None or player.tries <= 0:
        return False

    player.tries -= 1
    player.has_participated = True
    return True


def _whole_word_pattern(secret: str) -> re.Pattern[str]:
    # Python's \b is unicode-aware, so accented secrets still get proper boundaries.
    return re.compile(rf"(?<!\w){re.escape(secret)}(?!\w)", re.IGNORECASE)


def check_win(state: GameState | None, text: str) -> bool:
    """True when the secret appears in `text` as a whole word.

    Only the first match of a round counts: once a winner is recorded this
    always returns False.
    """

    if state is None or state.winner is not None:
        return False

    secret = state.secret.strip().lower()
    if not secret:
        return False
    return _whole_word_pattern(secret).search(text.strip().lower()) is not None


def declare_winner(state: GameState | None, address: str) -> None:
    if state is None:
        return
    state.winner = normalize_address(address)
    logger.info("[game #%s] winner declared: %s", state.game_id, state.winner)


def contains_secret(state: GameState | None, text: str) -> bool:
    """Loose substring check used to keep generated replies from leaking the word."""

    if state is None or not state.secret:
        return False
    return state.secret.lower() in text.lower()


def record_transcript_entry(state: GameState | None, address: str, message: str, response: str) -> TranscriptEntry | None:
    if state is None:
        return None

    seq = (state.transcript[-1].seq + 1) if state.transcript else 1
    entry = TranscriptEntry(
        seq=seq,
        address=normalize_address(address),
        message=message,
        response=response,
        created_at=datetime.now(tz=UTC),
    )
    state.transcript.append(entry)
    return entry


def get_transcript(state: GameState | None, address: str) -> list[TranscriptEntry] | None:
    player = get_player(state, address)
    if state is None or player is None or not player.has_participated:
        return None
    return list(state.transcript)
