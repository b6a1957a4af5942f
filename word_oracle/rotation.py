from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

import redis
from statemachine import State, StateMachine

from word_oracle.api.models import Difficulty, StartedGame
from word_oracle.errors import LedgerNotConfiguredError, LedgerTransactionError, RoundAlreadyActiveError
from word_oracle.game_store import end_game, get_game_id, install_game, new_game
from word_oracle.ledger import LedgerClient


logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 30

PassAction = Literal["rotated", "started", "none", "desync", "failed"]


@dataclass(frozen=True, slots=True)
class PassOutcome:
    action: PassAction
    game_id: int | None = None
    previous_game_id: int | None = None
    time_remaining: int | None = None
    difficulty: Difficulty | None = None
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class EndedRound:
    revealed_secret: str | None
    tx_hash: str | None = None


class LoopFSM(StateMachine):
    """Idle <-> Running. Guards the loop's start/stop commands."""

    idle = State("idle", value="idle", initial=True)
    running = State("running", value="running")

    begin = idle.to(running)
    halt = running.to(idle)


class RotationLoop:
    """Keeps exactly one round live by reconciling the session store with the ledger.

    Every `interval_s` seconds one reconciliation pass runs:
      - ledger round active but out of time -> end it, then start the next one
      - no active ledger round -> start the next one
      - active and the session store holds the same round -> nothing to do
      - active but the session store holds a different round (e.g. after a
        restart) -> log a desync and wait for an operator to re-supply the secret
        through the set-secret recovery path. The secret can't be rebuilt from its
        commitment, so there is no automatic recovery.

    A new round is only written to the session store once its startGame
    transaction is confirmed, so the server never advertises an unpublished
    commitment. Passes never overlap; manual start/end commands share the same
    lock.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        ledger: LedgerClient,
        interval_s: float = DEFAULT_INTERVAL_S,
        rng: random.Random | None = None,
        on_change: Callable[[PassOutcome], Awaitable[None]] | None = None,
    ) -> None:
        self.r = r
        self.ledger = ledger
        self.interval_s = interval_s
        self._rng = rng
        self._on_change = on_change
        self._fsm = LoopFSM()
        self._pass_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._fsm.current_state == self._fsm.running

    def start(self) -> bool:
        """Begin periodic passes. Returns False if the loop was already running."""

        if self.is_running:
            logger.info("[rotation] already running")
            return False
        if not self.ledger.can_transact:
            logger.error("[rotation] cannot start: ledger operator credential not configured")
            raise LedgerNotConfiguredError()

        self._fsm.begin()
        # A pass from before the last stop() may still be finishing; it picks the
        # running state back up instead of a second task being spawned.
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run(), name="rotation-loop")
        logger.info("[rotation] started (%ss interval)", self.interval_s)
        return True

    def stop(self) -> bool:
        """Stop scheduling passes. An in-flight pass is allowed to finish."""

        was_running = self.is_running
        if was_running:
            self._fsm.halt()
            logger.info("[rotation] stopping")
        self._wake.set()
        return was_running

    async def wait_stopped(self, timeout: float | None = None) -> None:
        task = self._task
        if task is None or task.done():
            return
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)

    async def _run(self) -> None:
        while self.is_running:
            self._wake.clear()
            await self.run_pass()
            if not self.is_running:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval_s)
            except TimeoutError:
                pass
        logger.info("[rotation] stopped")

    async def run_pass(self) -> PassOutcome:
        """Run one reconciliation pass. Never raises: failures are logged and retried next tick."""

        async with self._pass_lock:
            try:
                outcome = await self._reconcile()
            except Exception as e:
                logger.exception("[rotation] pass failed; retrying next tick")
                return PassOutcome(action="failed", detail=str(e))

        if outcome.action in {"rotated", "started"} and self._on_change is not None:
            try:
                await self._on_change(outcome)
            except Exception:
                logger.exception("[rotation] change notification failed")
        return outcome

    async def _confirm(self, operation: str, tx_hash: str) -> None:
        if not await self.ledger.await_confirmation(tx_hash):
            raise LedgerTransactionError(operation, f"tx {tx_hash} not confirmed")

    async def _start_next(self, game_id: int) -> StartedGame:
        state = new_game(game_id=game_id, rng=self._rng)
        tx_hash = await self.ledger.start_round(state.commitment)
        await self._confirm("startGame", tx_hash)
        return install_game(r=self.r, state=state)

    async def _reconcile(self) -> PassOutcome:
        chain = await self.ledger.read_round_info()
        local_id = get_game_id(r=self.r)

        logger.info(
            "[rotation] check: ledger round #%s active=%s time_left=%ss pot=%s; local round #%s",
            chain.game_id,
            chain.is_active,
            chain.time_remaining,
            chain.pot,
            local_id if local_id is not None else "none",
        )

        if chain.is_active and chain.time_remaining == 0:
            logger.info("[rotation] round #%s expired; ending and starting the next one", chain.game_id)
            await self._confirm("endGame", await self.ledger.end_round())
            end_game(r=self.r)

            started = await self._start_next(chain.game_id + 1)
            logger.info("[rotation] round #%s started (%s)", started.game_id, started.difficulty.value)
            return PassOutcome(
                action="rotated",
                game_id=started.game_id,
                previous_game_id=chain.game_id,
                difficulty=started.difficulty,
            )

        if not chain.is_active:
            logger.info("[rotation] no active round; starting round #%s", chain.game_id + 1)
            started = await self._start_next(chain.game_id + 1)
            logger.info("[rotation] round #%s started (%s)", started.game_id, started.difficulty.value)
            return PassOutcome(action="started", game_id=started.game_id, difficulty=started.difficulty)

        if local_id == chain.game_id:
            return PassOutcome(action="none", game_id=chain.game_id, time_remaining=chain.time_remaining)

        logger.warning(
            "[rotation] desync: ledger round #%s is active but the server holds round #%s; "
            "an operator must re-supply the secret via PATCH /game",
            chain.game_id,
            local_id if local_id is not None else "none",
        )
        return PassOutcome(
            action="desync",
            game_id=chain.game_id,
            time_remaining=chain.time_remaining,
            detail=f"server holds round #{local_id}" if local_id is not None else "server holds no round",
        )

    async def start_round_now(self) -> PassOutcome:
        """Operator/manual start. Only allowed while the ledger has no active round."""

        if not self.ledger.can_transact:
            raise LedgerNotConfiguredError()

        async with self._pass_lock:
            chain = await self.ledger.read_round_info()
            if chain.is_active:
                raise RoundAlreadyActiveError(chain.game_id)
            started = await self._start_next(chain.game_id + 1)

        logger.info("[rotation] round #%s started manually (%s)", started.game_id, started.difficulty.value)
        return PassOutcome(action="started", game_id=started.game_id, difficulty=started.difficulty)

    async def end_round_now(self, *, on_chain: bool = False) -> EndedRound:
        """Operator end. Clears the session store; with `on_chain` ends the ledger round first."""

        async with self._pass_lock:
            tx_hash = None
            if on_chain:
                if not self.ledger.can_transact:
                    raise LedgerNotConfiguredError()
                tx_hash = await self.ledger.end_round()
                await self._confirm("endGame", tx_hash)
            secret = end_game(r=self.r)

        return EndedRound(revealed_secret=secret, tx_hash=tx_hash)
