from __future__ import annotations

import asyncio
import random

import pytest

from word_oracle.errors import LedgerNotConfiguredError, RoundAlreadyActiveError
from word_oracle.game_store import get_game_id, load_game, start_game
from word_oracle.rotation import PassOutcome, RotationLoop


def _loop(r, ledger, **kwargs) -> RotationLoop:  # type: ignore[no-untyped-def]
    return RotationLoop(r=r, ledger=ledger, rng=random.Random(42), **kwargs)


async def test_pass_starts_round_when_ledger_idle(r, ledger) -> None:  # type: ignore[no-untyped-def]
    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "started"
    assert outcome.game_id == 1
    state = load_game(r=r)
    assert state is not None
    assert state.game_id == ledger.game_id == 1
    assert state.commitment == ledger.commitment
    assert ledger.sent == ["startGame"]


async def test_pass_rotates_expired_round(r, ledger) -> None:  # type: ignore[no-untyped-def]
    start_game(r=r, game_id=5, rng=random.Random(0))
    ledger.game_id = 5
    ledger.is_active = True
    ledger.time_remaining = 0

    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "rotated"
    assert outcome.previous_game_id == 5
    assert outcome.game_id == 6
    assert ledger.sent == ["endGame", "startGame"]
    state = load_game(r=r)
    assert state is not None
    assert state.game_id == 6
    assert state.commitment == ledger.commitment


async def test_pass_is_a_noop_when_in_sync(r, ledger) -> None:  # type: ignore[no-untyped-def]
    start_game(r=r, game_id=2, rng=random.Random(0))
    ledger.game_id = 2
    ledger.is_active = True
    ledger.time_remaining = 120

    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "none"
    assert outcome.time_remaining == 120
    assert ledger.sent == []


async def test_pass_reports_desync_without_touching_state(r, ledger) -> None:  # type: ignore[no-untyped-def]
    ledger.game_id = 3
    ledger.is_active = True
    ledger.time_remaining = 100

    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "desync"
    assert outcome.game_id == 3
    assert get_game_id(r=r) is None
    assert ledger.sent == []


async def test_unconfirmed_start_leaves_no_local_round(r, ledger) -> None:  # type: ignore[no-untyped-def]
    ledger.confirm = False

    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "failed"
    assert "startGame" in (outcome.detail or "")
    assert load_game(r=r) is None


async def test_send_failure_is_retried_next_pass(r, ledger) -> None:  # type: ignore[no-untyped-def]
    loop = _loop(r, ledger)
    ledger.fail_send = True
    assert (await loop.run_pass()).action == "failed"

    ledger.fail_send = False
    assert (await loop.run_pass()).action == "started"
    assert get_game_id(r=r) == 1


async def test_change_notification_only_for_new_rounds(r, ledger) -> None:  # type: ignore[no-untyped-def]
    seen: list[PassOutcome] = []

    async def _on_change(outcome: PassOutcome) -> None:
        seen.append(outcome)

    loop = _loop(r, ledger, on_change=_on_change)
    await loop.run_pass()
    await loop.run_pass()

    assert [o.action for o in seen] == ["started"]


async def test_start_round_now_requires_idle_ledger(r, ledger) -> None:  # type: ignore[no-untyped-def]
    loop = _loop(r, ledger)
    started = await loop.start_round_now()
    assert started.action == "started"
    assert started.game_id == 1

    with pytest.raises(RoundAlreadyActiveError):
        await loop.start_round_now()


async def test_start_requires_operator_credential(r, ledger) -> None:  # type: ignore[no-untyped-def]
    ledger.can_transact = False
    loop = _loop(r, ledger)

    with pytest.raises(LedgerNotConfiguredError):
        loop.start()
    with pytest.raises(LedgerNotConfiguredError):
        await loop.start_round_now()
    assert loop.is_running is False


async def test_end_round_now(r, ledger) -> None:  # type: ignore[no-untyped-def]
    loop = _loop(r, ledger)
    await loop.run_pass()
    secret = load_game(r=r).secret  # type: ignore[union-attr]

    ended = await loop.end_round_now(on_chain=True)
    assert ended.revealed_secret == secret
    assert ended.tx_hash is not None
    assert ledger.is_active is False
    assert load_game(r=r) is None

    again = await loop.end_round_now()
    assert again.revealed_secret is None
    assert again.tx_hash is None


async def test_loop_start_stop(r, ledger) -> None:  # type: ignore[no-untyped-def]
    loop = _loop(r, ledger, interval_s=0.01)

    assert loop.start() is True
    assert loop.start() is False
    assert loop.is_running is True

    for _ in range(100):
        if get_game_id(r=r) is not None:
            break
        await asyncio.sleep(0.01)
    assert get_game_id(r=r) == 1

    assert loop.stop() is True
    await loop.wait_stopped(timeout=1)
    assert loop.is_running is False
    assert loop.stop() is False

    # Restart after a clean stop.
    assert loop.start() is True
    loop.stop()
    await loop.wait_stopped(timeout=1)


async def test_unconfirmed_end_keeps_the_expired_round(r, ledger) -> None:  # type: ignore[no-untyped-def]
    start_game(r=r, game_id=7, rng=random.Random(0))
    ledger.game_id = 7
    ledger.is_active = True
    ledger.reject = {"endGame"}

    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "failed"
    assert ledger.sent == ["endGame"]
    assert get_game_id(r=r) == 7


async def test_new_round_only_installed_after_its_start_confirms(r, ledger) -> None:  # type: ignore[no-untyped-def]
    start_game(r=r, game_id=7, rng=random.Random(0))
    ledger.game_id = 7
    ledger.is_active = True
    ledger.reject = {"startGame"}

    outcome = await _loop(r, ledger).run_pass()

    assert outcome.action == "failed"
    assert ledger.sent == ["endGame", "startGame"]
    # Old round is gone, new one was never published.
    assert get_game_id(r=r) is None

    ledger.reject = set()
    retry = await _loop(r, ledger).run_pass()
    assert retry.action == "started"
    assert get_game_id(r=r) == 8


def _gate_confirmations(ledger):  # type: ignore[no-untyped-def]
    """Hold every confirmation until the returned `release` event is set."""

    entered = asyncio.Event()
    release = asyncio.Event()
    confirm = ledger.await_confirmation

    async def _gated(tx_hash: str) -> bool:
        entered.set()
        await release.wait()
        return await confirm(tx_hash)

    ledger.await_confirmation = _gated
    return entered, release


async def test_stop_lets_in_flight_pass_finish(r, ledger) -> None:  # type: ignore[no-untyped-def]
    entered, release = _gate_confirmations(ledger)
    loop = _loop(r, ledger, interval_s=3600)

    loop.start()
    await asyncio.wait_for(entered.wait(), timeout=1)

    assert loop.stop() is True
    assert get_game_id(r=r) is None

    release.set()
    await loop.wait_stopped(timeout=1)

    assert loop.is_running is False
    assert ledger.sent == ["startGame"]
    assert get_game_id(r=r) == 1


async def test_manual_start_waits_for_running_pass(r, ledger) -> None:  # type: ignore[no-untyped-def]
    entered, release = _gate_confirmations(ledger)
    loop = _loop(r, ledger)

    pass_task = asyncio.create_task(loop.run_pass())
    await asyncio.wait_for(entered.wait(), timeout=1)
    manual_task = asyncio.create_task(loop.start_round_now())
    for _ in range(5):
        await asyncio.sleep(0)

    # The manual start is parked behind the pass and has sent nothing.
    assert ledger.sent == ["startGame"]
    assert manual_task.done() is False

    release.set()
    outcome = await pass_task
    assert outcome.action == "started"
    with pytest.raises(RoundAlreadyActiveError):
        await manual_task

    assert ledger.sent == ["startGame"]
    assert get_game_id(r=r) == 1


async def test_concurrent_passes_do_not_overlap(r, ledger) -> None:  # type: ignore[no-untyped-def]
    entered, release = _gate_confirmations(ledger)
    loop = _loop(r, ledger)

    first = asyncio.create_task(loop.run_pass())
    await asyncio.wait_for(entered.wait(), timeout=1)
    second = asyncio.create_task(loop.run_pass())
    for _ in range(5):
        await asyncio.sleep(0)
    assert ledger.sent == ["startGame"]

    release.set()
    outcomes = await asyncio.gather(first, second)

    assert [o.action for o in outcomes] == ["started", "none"]
    assert ledger.sent == ["startGame"]
    assert get_game_id(r=r) == 1
