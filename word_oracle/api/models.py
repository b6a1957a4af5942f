from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class Difficulty(StrEnum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class PlayerState(BaseModel):
    tries: int = Field(default=0, ge=0)
    # A player must submit once before they can read the shared transcript.
    has_participated: bool = False
    total_buy_ins: int = 0


class TranscriptEntry(BaseModel):
    # Append order; authoritative over created_at, which can tie under concurrency.
    seq: int
    address: str
    message: str
    response: str
    created_at: datetime


class GameState(BaseModel):
    """The single active round. Server truth; never serialized to clients as-is."""

    game_id: int
    secret: str
    difficulty: Difficulty
    commitment: str
    started_at: datetime

    # Keys are lowercase wallet addresses.
    players: dict[str, PlayerState] = Field(default_factory=dict)
    transcript: list[TranscriptEntry] = Field(default_factory=list)

    winner: str | None = None


class GameInfo(BaseModel):
    """Public projection of the active round (no secret)."""

    game_id: int
    commitment: str
    difficulty: Difficulty
    transcript_length: int
    player_count: int
    started_at: datetime
    winner: str | None = None


class StartedGame(BaseModel):
    game_id: int
    secret: str
    commitment: str
    difficulty: Difficulty


class RoundStatusResponse(BaseModel):
    active: bool
    game: GameInfo | None = None


class MessageRequest(BaseModel):
    address: str = Field(..., min_length=1, max_length=128)
    message: str = Field(..., min_length=1, max_length=2000)


class MessageResponse(BaseModel):
    won: bool
    response: str
    tries_remaining: int
    tx_hash: str | None = None


class TranscriptResponse(BaseModel):
    transcript: list[TranscriptEntry] | None = None
    message: str | None = None


class PlayerStatusResponse(BaseModel):
    address: str
    tries: int
    has_participated: bool
    total_buy_ins: int


class SetSecretRequest(BaseModel):
    secret: str = Field(..., min_length=1, max_length=128)
    game_id: int | None = Field(default=None, ge=1)


class SetSecretResponse(BaseModel):
    game_id: int
    commitment: str
    message: str = "Server synced with on-chain round"


class EndGameResponse(BaseModel):
    message: str = "Game ended"
    revealed_secret: str | None = None
    tx_hash: str | None = None


class LoopStatusResponse(BaseModel):
    running: bool
    message: str | None = None


class PassOutcomeResponse(BaseModel):
    action: str
    game_id: int | None = None
    previous_game_id: int | None = None
    time_remaining: int | None = None
    difficulty: Difficulty | None = None
    detail: str | None = None
