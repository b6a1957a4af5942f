from __future__ import annotations


class OracleError(Exception):
    """Base class for failures surfaced to request handlers."""


class NoActiveGameError(OracleError):
    def __init__(self) -> None:
        super().__init__("No active game. The oracle sleeps...")


class UnconfirmedEntryFeeError(OracleError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__("You must pay the entry fee to play")


class InsufficientAttemptsError(OracleError):
    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__("No tries remaining. Pay the entry fee again to continue.")


class LedgerTransactionError(OracleError):
    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        msg = f"Ledger transaction '{operation}' failed"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class LedgerNotConfiguredError(OracleError):
    def __init__(self, detail: str = "Ledger operator credential (AGENT_PRIVATE_KEY) not configured") -> None:
        super().__init__(detail)


class RoundAlreadyActiveError(OracleError):
    def __init__(self, game_id: int) -> None:
        self.game_id = game_id
        super().__init__(f"Round #{game_id} is already active. Wait for it to end.")


class SessionBusyError(OracleError):
    def __init__(self) -> None:
        super().__init__("Game session is busy, try again")


class LedgerUnavailableError(OracleError):
    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        msg = f"Ledger read '{operation}' failed"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class InvalidSecretError(OracleError):
    def __init__(self) -> None:
        super().__init__("Secret must contain at least one non-space character")


class CommitmentMismatchError(OracleError):
    def __init__(self, game_id: int, detail: str) -> None:
        self.game_id = game_id
        super().__init__(f"Round #{game_id}: {detail}")
