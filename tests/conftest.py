from __future__ import annotations

import os
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path

import fakeredis
import pytest

from word_oracle.errors import LedgerTransactionError, LedgerUnavailableError
from word_oracle.ledger import RoundInfo


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs (PyCharm/CLI).

    This makes OPENAI_BASE_URL / OPENAI_MODEL available to the env-gated LLM
    test without exporting them in your shell.

    In CI, we *don't* auto-load `.env` by default, so integration tests that require
    a live model endpoint stay skipped unless explicitly opted-in.
    """

    # Opt-in locally with: WORD_ORACLE_LOAD_DOTENV_FOR_TESTS=1
    if os.environ.get("CI") and os.environ.get("WORD_ORACLE_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    # If using a local OpenAI-compatible endpoint, some clients require a key string.
    if os.environ.get("OPENAI_BASE_URL") and not os.environ.get("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = "ollama"


@pytest.fixture(scope="session", autouse=True)
def _init_word_tiers_from_test_fixtures() -> None:
    """Load word tiers from `tests/assets/words` instead of the production lists.

    The test lists are tiny and known (easy: luna/moon, medium: bitcoin/rocket,
    hard: serendipity) so round assertions stay deterministic.
    """

    from word_oracle.wordlist import init_word_tiers, reset_word_tiers_for_tests

    reset_word_tiers_for_tests()

    # tests/ contains an assets/words dir.
    test_root = Path(__file__).resolve().parent
    init_word_tiers(project_root=test_root)


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@dataclass
class FakeLedger:
    """In-memory round contract.

    Transactions take effect when `await_confirmation` succeeds, like a block
    being mined. Set `confirm=False` to simulate a tx that never lands, or
    `fail_send` to make sending itself fail.
    """

    game_id: int = 0
    is_active: bool = False
    time_remaining: int = 0
    commitment: str = "0x" + "00" * 32
    can_transact: bool = True
    confirm: bool = True
    # Operations whose confirmation fails even when `confirm` is set.
    reject: set[str] = field(default_factory=set)
    fail_send: bool = False
    # Entry-fee reads raise, like an RPC outage.
    fail_read: bool = False
    round_seconds: int = 300

    fees: dict[str, int] = field(default_factory=dict)
    winners: list[str] = field(default_factory=list)
    sent: list[str] = field(default_factory=list)
    _pending: dict[str, tuple[str, Callable[[], None]]] = field(default_factory=dict)

    def pay(self, address: str, times: int = 1) -> None:
        key = address.lower()
        self.fees[key] = self.fees.get(key, 0) + times

    def _send(self, operation: str, effect: Callable[[], None]) -> str:
        if self.fail_send:
            raise LedgerTransactionError(operation, "rpc down")
        tx_hash = f"0x{len(self.sent) + 1:064x}"
        self.sent.append(operation)
        self._pending[tx_hash] = (operation, effect)
        return tx_hash

    async def read_round_info(self) -> RoundInfo:
        return RoundInfo(
            game_id=self.game_id,
            commitment=self.commitment,
            pot=0,
            end_time=0,
            is_active=self.is_active,
            time_remaining=self.time_remaining,
        )

    async def start_round(self, commitment: str) -> str:
        def _effect() -> None:
            self.game_id += 1
            self.commitment = commitment
            self.is_active = True
            self.time_remaining = self.round_seconds
            self.fees.clear()

        return self._send("startGame", _effect)

    async def end_round(self) -> str:
        def _effect() -> None:
            self.is_active = False
            self.time_remaining = 0

        return self._send("endGame", _effect)

    async def declare_winner(self, address: str) -> str:
        def _effect() -> None:
            self.winners.append(address.lower())
            self.is_active = False
            self.time_remaining = 0

        return self._send("declareWinner", _effect)

    async def await_confirmation(self, tx_hash: str) -> bool:
        operation, effect = self._pending.pop(tx_hash)
        if not self.confirm or operation in self.reject:
            return False
        effect()
        return True

    async def has_entry_fee_paid(self, address: str) -> bool:
        if self.fail_read:
            raise LedgerUnavailableError("hasBoughtIn", "rpc down")
        return self.fees.get(address.lower(), 0) > 0

    async def entry_fee_count(self, address: str) -> int:
        if self.fail_read:
            raise LedgerUnavailableError("hasBoughtIn", "rpc down")
        return self.fees.get(address.lower(), 0)


@dataclass
class FakeResponder:
    reply: str = "The spirits whisper... not quite, seeker."
    error: Exception | None = None
    calls: list[dict[str, str]] = field(default_factory=list)
    before_reply: Callable[[], None] | None = None

    async def generate(self, *, secret: str, player_text: str, difficulty: str = "") -> str:
        self.calls.append({"secret": secret, "player_text": player_text, "difficulty": difficulty})
        if self.before_reply is not None:
            self.before_reply()
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def responder() -> FakeResponder:
    return FakeResponder()


@pytest.fixture()
def client_and_redis(r: fakeredis.FakeRedis, ledger: FakeLedger, responder: FakeResponder):
    """TestClient wired to fakeredis, the fake ledger and the fake responder.

    The rotation loop is created lazily inside the app's event loop.
    """

    from fastapi.testclient import TestClient

    from word_oracle.api.deps import (
        get_game_settings,
        get_ledger,
        get_redis,
        get_responder,
        get_rotation_loop,
    )
    from word_oracle.main import app
    from word_oracle.rotation import RotationLoop
    from word_oracle.settings import GameSettings

    loops: list[RotationLoop] = []

    def _redis_override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    def _loop_override() -> RotationLoop:
        if not loops:
            loops.append(RotationLoop(r=r, ledger=ledger, interval_s=3600))
        return loops[0]

    app.dependency_overrides[get_redis] = _redis_override
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_responder] = lambda: responder
    app.dependency_overrides[get_rotation_loop] = _loop_override
    app.dependency_overrides[get_game_settings] = lambda: GameSettings(
        tries_per_entry=5,
        rotation_interval_s=3600,
        operator_key="op-secret",
    )
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
