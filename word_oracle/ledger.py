from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from eth_account import Account
from web3 import Web3

from word_oracle.commitment import commitment_bytes
from word_oracle.errors import LedgerNotConfiguredError, LedgerTransactionError, LedgerUnavailableError
from word_oracle.ledger_abi import ROUND_CONTRACT_ABI
from word_oracle.settings import LedgerSettings


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RoundInfo:
    """Snapshot of the round contract's `getGameInfo()`."""

    game_id: int
    commitment: str
    pot: int
    end_time: int
    is_active: bool
    time_remaining: int


class LedgerClient(Protocol):
    """Round contract client. Every call is a (possibly slow, fallible) network round trip."""

    @property
    def can_transact(self) -> bool:  # pragma: no cover
        ...

    async def read_round_info(self) -> RoundInfo:  # pragma: no cover
        ...

    async def start_round(self, commitment: str) -> str:  # pragma: no cover
        ...

    async def end_round(self) -> str:  # pragma: no cover
        ...

    async def declare_winner(self, address: str) -> str:  # pragma: no cover
        ...

    async def await_confirmation(self, tx_hash: str) -> bool:  # pragma: no cover
        ...

    async def has_entry_fee_paid(self, address: str) -> bool:  # pragma: no cover
        ...

    async def entry_fee_count(self, address: str) -> int:  # pragma: no cover
        ...


class Web3LedgerClient:
    """web3.py client for the round contract.

    web3's HTTP provider is blocking, so every call is pushed to the default
    executor to keep the event loop free for player requests.
    """

    def __init__(self, settings: LedgerSettings, *, w3: Web3 | None = None) -> None:
        self._settings = settings
        self._w3 = w3 or Web3(Web3.HTTPProvider(settings.rpc_url))
        self._account = Account.from_key(settings.private_key) if settings.private_key else None
        self._contract = None
        if settings.contract_address:
            self._contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(settings.contract_address),
                abi=ROUND_CONTRACT_ABI,
            )

    @property
    def can_transact(self) -> bool:
        return self._account is not None and self._contract is not None

    @property
    def operator_address(self) -> str | None:
        return self._account.address if self._account is not None else None

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    def _require_contract(self) -> Any:
        if self._contract is None:
            raise LedgerNotConfiguredError("LEDGER_CONTRACT_ADDRESS not configured")
        return self._contract

    async def read_round_info(self) -> RoundInfo:
        contract = self._require_contract()
        try:
            game_id, commitment, pot, end_time, active, time_remaining = await self._run(
                lambda: contract.functions.getGameInfo().call()
            )
        except Exception as e:
            logger.exception("[ledger] getGameInfo failed")
            raise LedgerUnavailableError("getGameInfo", str(e)) from e
        return RoundInfo(
            game_id=int(game_id),
            commitment=Web3.to_hex(commitment),
            pot=int(pot),
            end_time=int(end_time),
            is_active=bool(active),
            time_remaining=int(time_remaining),
        )

    async def _transact(self, operation: str, build: Callable[[Any], Any]) -> str:
        contract = self._require_contract()
        account = self._account
        if account is None:
            raise LedgerNotConfiguredError()

        def _send() -> str:
            fn = build(contract.functions)
            tx = fn.build_transaction(
                {
                    "from": account.address,
                    "nonce": self._w3.eth.get_transaction_count(account.address, "pending"),
                    "chainId": self._w3.eth.chain_id,
                }
            )
            signed = account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            return Web3.to_hex(tx_hash)

        try:
            tx_hash = await self._run(_send)
        except Exception as e:
            logger.exception("[ledger] %s transaction failed to send", operation)
            raise LedgerTransactionError(operation, str(e)) from e

        logger.info("[ledger] %s tx sent: %s", operation, tx_hash)
        return tx_hash

    async def start_round(self, commitment: str) -> str:
        payload = commitment_bytes(commitment)
        return await self._transact("startGame", lambda f: f.startGame(payload))

    async def end_round(self) -> str:
        return await self._transact("endGame", lambda f: f.endGame())

    async def declare_winner(self, address: str) -> str:
        try:
            checksum = Web3.to_checksum_address(address)
        except (TypeError, ValueError) as e:
            raise LedgerTransactionError("declareWinner", f"invalid address {address!r}") from e
        return await self._transact("declareWinner", lambda f: f.declareWinner(checksum))

    async def await_confirmation(self, tx_hash: str) -> bool:
        timeout = self._settings.confirmation_timeout_s
        try:
            receipt = await self._run(
                lambda: self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            )
        except Exception:
            # web3 raises TimeExhausted on timeout; treat every failure the same.
            logger.exception("[ledger] no receipt for %s within %ss", tx_hash, timeout)
            return False

        ok = receipt["status"] == 1
        if ok:
            logger.info("[ledger] %s confirmed in block %s", tx_hash, receipt["blockNumber"])
        else:
            logger.error("[ledger] %s reverted in block %s", tx_hash, receipt["blockNumber"])
        return ok

    async def has_entry_fee_paid(self, address: str) -> bool:
        contract = self._require_contract()
        try:
            checksum = Web3.to_checksum_address(address)
        except (TypeError, ValueError):
            logger.warning("[ledger] %r is not an address; treating as unpaid", address)
            return False
        try:
            return bool(await self._run(lambda: contract.functions.hasBoughtIn(checksum).call()))
        except Exception as e:
            logger.exception("[ledger] hasBoughtIn(%s) failed", address)
            raise LedgerUnavailableError("hasBoughtIn", str(e)) from e

    async def entry_fee_count(self, address: str) -> int:
        """How many entry fees `address` has confirmed this round."""

        if not await self.has_entry_fee_paid(address):
            return 0

        contract = self._require_contract()
        checksum = Web3.to_checksum_address(address)
        try:
            total, unit = await self._run(
                lambda: (
                    contract.functions.getPlayerBuyIn(checksum).call(),
                    contract.functions.BUY_IN().call(),
                )
            )
        except Exception as e:
            logger.exception("[ledger] buy-in lookup for %s failed", address)
            raise LedgerUnavailableError("getPlayerBuyIn", str(e)) from e

        if not unit:
            return 1
        return max(1, int(total) // int(unit))
