from __future__ import annotations

import logging

import redis
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from word_oracle.actions import player_status, submit_message, transcript_for
from word_oracle.agents.oracle_responder import Responder
from word_oracle.api.deps import (
    get_game_settings,
    get_ledger,
    get_redis,
    get_responder,
    get_rotation_loop,
    require_operator,
)
from word_oracle.api.models import (
    EndGameResponse,
    LoopStatusResponse,
    MessageRequest,
    MessageResponse,
    PassOutcomeResponse,
    PlayerStatusResponse,
    RoundStatusResponse,
    SetSecretRequest,
    SetSecretResponse,
    TranscriptResponse,
)
from word_oracle.commitment import verify_reveal
from word_oracle.errors import (
    CommitmentMismatchError,
    InsufficientAttemptsError,
    InvalidSecretError,
    LedgerNotConfiguredError,
    LedgerTransactionError,
    LedgerUnavailableError,
    NoActiveGameError,
    OracleError,
    RoundAlreadyActiveError,
    SessionBusyError,
    UnconfirmedEntryFeeError,
)
from word_oracle.game_store import get_info, normalize_secret, set_secret
from word_oracle.ledger import LedgerClient
from word_oracle.rotation import PassOutcome, RotationLoop
from word_oracle.settings import GameSettings
from word_oracle.websocket_hub import hub


logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: OracleError) -> HTTPException:
    if isinstance(e, NoActiveGameError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"error": str(e), "active": False})
    if isinstance(e, UnconfirmedEntryFeeError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": str(e), "needs_entry_fee": True})
    if isinstance(e, InsufficientAttemptsError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail={"error": str(e), "tries_remaining": 0})
    if isinstance(e, RoundAlreadyActiveError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"error": str(e), "game_id": e.game_id})
    if isinstance(e, CommitmentMismatchError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"error": str(e), "game_id": e.game_id})
    if isinstance(e, InvalidSecretError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": str(e)})
    if isinstance(e, (LedgerNotConfiguredError, SessionBusyError)):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={"error": str(e)})
    if isinstance(e, (LedgerTransactionError, LedgerUnavailableError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail={"error": str(e)})
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": str(e)})


def _outcome_response(outcome: PassOutcome) -> PassOutcomeResponse:
    return PassOutcomeResponse(
        action=outcome.action,
        game_id=outcome.game_id,
        previous_game_id=outcome.previous_game_id,
        time_remaining=outcome.time_remaining,
        difficulty=outcome.difficulty,
        detail=outcome.detail,
    )


@router.websocket("/ws/round")
async def round_updates_ws(websocket: WebSocket) -> None:
    await hub.connect(websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/game", response_model=RoundStatusResponse)
async def get_round_route(r: redis.Redis = Depends(get_redis)) -> RoundStatusResponse:
    info = get_info(r=r)
    return RoundStatusResponse(active=info is not None, game=info)


@router.patch("/game", response_model=SetSecretResponse, dependencies=[Depends(require_operator)])
async def set_secret_route(
    payload: SetSecretRequest,
    r: redis.Redis = Depends(get_redis),
    ledger: LedgerClient = Depends(get_ledger),
) -> SetSecretResponse:
    """Recovery: re-supply the secret for a ledger round the server lost track of.

    The secret must reveal the commitment of the round that is live on the ledger.
    """

    try:
        secret = normalize_secret(payload.secret)
        chain = await ledger.read_round_info()
        if not chain.is_active:
            raise NoActiveGameError()
        game_id = payload.game_id or chain.game_id
        if game_id != chain.game_id:
            raise CommitmentMismatchError(game_id, f"ledger is on round #{chain.game_id}")
        if not verify_reveal(secret=secret, commitment=chain.commitment):
            raise CommitmentMismatchError(game_id, "secret does not match the ledger commitment")
        commitment = set_secret(r=r, game_id=game_id, secret=secret)
    except OracleError as e:
        raise _http_error(e) from e

    logger.warning("Operator re-supplied the secret for round #%s", game_id)
    await hub.publish_round("synced", game_id)
    return SetSecretResponse(game_id=game_id, commitment=commitment)


@router.delete("/game", response_model=EndGameResponse, dependencies=[Depends(require_operator)])
async def end_round_route(
    on_chain: bool = False,
    loop: RotationLoop = Depends(get_rotation_loop),
) -> EndGameResponse:
    try:
        ended = await loop.end_round_now(on_chain=on_chain)
    except OracleError as e:
        raise _http_error(e) from e

    logger.info("Operator ended the round (on_chain=%s)", on_chain)
    await hub.publish_round("ended", None)
    return EndGameResponse(revealed_secret=ended.revealed_secret, tx_hash=ended.tx_hash)


@router.post("/game/start", response_model=PassOutcomeResponse)
async def start_round_route(loop: RotationLoop = Depends(get_rotation_loop)) -> PassOutcomeResponse:
    # Open to anyone: the ledger-inactive precondition keeps it from clobbering a live round.
    try:
        outcome = await loop.start_round_now()
    except OracleError as e:
        raise _http_error(e) from e

    await hub.publish_round(outcome.action, outcome.game_id)
    return _outcome_response(outcome)


@router.post("/message", response_model=MessageResponse)
async def submit_message_route(
    payload: MessageRequest,
    r: redis.Redis = Depends(get_redis),
    ledger: LedgerClient = Depends(get_ledger),
    responder: Responder = Depends(get_responder),
    settings: GameSettings = Depends(get_game_settings),
) -> MessageResponse:
    try:
        result = await submit_message(
            r=r,
            ledger=ledger,
            responder=responder,
            address=payload.address,
            message=payload.message,
            tries_per_entry=settings.tries_per_entry,
        )
    except OracleError as e:
        raise _http_error(e) from e

    await hub.publish_round("won" if result.won else "message", result.game_id)
    return MessageResponse(
        won=result.won,
        response=result.response,
        tries_remaining=result.tries_remaining,
        tx_hash=result.tx_hash,
    )


@router.get("/message", response_model=TranscriptResponse)
async def get_transcript_route(
    address: str = Query(..., min_length=1),
    r: redis.Redis = Depends(get_redis),
) -> TranscriptResponse:
    transcript = transcript_for(r=r, address=address)
    if transcript is None:
        # Either no round or the player hasn't sent anything yet.
        return TranscriptResponse(transcript=None, message="Send a message to see the chat")
    return TranscriptResponse(transcript=transcript)


@router.get("/player/{address}", response_model=PlayerStatusResponse)
async def player_status_route(address: str, r: redis.Redis = Depends(get_redis)) -> PlayerStatusResponse:
    player = player_status(r=r, address=address)
    if player is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Player not found in the current round")
    return PlayerStatusResponse(
        address=address.strip().lower(),
        tries=player.tries,
        has_participated=player.has_participated,
        total_buy_ins=player.total_buy_ins,
    )


@router.get("/game/loop", response_model=LoopStatusResponse)
async def loop_status_route(loop: RotationLoop = Depends(get_rotation_loop)) -> LoopStatusResponse:
    return LoopStatusResponse(running=loop.is_running)


@router.post("/game/loop", response_model=LoopStatusResponse)
async def start_loop_route(loop: RotationLoop = Depends(get_rotation_loop)) -> LoopStatusResponse:
    try:
        started = loop.start()
    except OracleError as e:
        raise _http_error(e) from e

    message = "Rotation loop started" if started else "Rotation loop already running"
    return LoopStatusResponse(running=True, message=message)


@router.delete("/game/loop", response_model=LoopStatusResponse, dependencies=[Depends(require_operator)])
async def stop_loop_route(loop: RotationLoop = Depends(get_rotation_loop)) -> LoopStatusResponse:
    loop.stop()
    return LoopStatusResponse(running=False, message="Rotation loop stopped")


@router.post("/game/loop/tick", response_model=PassOutcomeResponse, dependencies=[Depends(require_operator)])
async def tick_route(loop: RotationLoop = Depends(get_rotation_loop)) -> PassOutcomeResponse:
    """Run one reconciliation pass now (cron-style trigger)."""

    return _outcome_response(await loop.run_pass())
