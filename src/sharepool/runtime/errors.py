from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ApplyError(Exception):
    """Canonical error type for pool apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class Unauthorized(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("unauthorized", reason, details)


class InvalidAmount(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("invalid_amount", reason, details)


class InvalidIdentity(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("invalid_identity", reason, details)


class NothingToWithdraw(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("nothing_to_withdraw", reason, details)


class EmptyPool(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("empty_pool", reason, details)


class AlreadyInitialized(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("already_initialized", reason, details)


class NotInitialized(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("not_initialized", reason, details)


class UnknownOperation(ApplyError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("unknown_op", reason, details)


class TransferFailed(ApplyError):
    """Raised when the environment could not deliver a payout.

    The surrounding commit is aborted, so no ledger mutation survives.
    """

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("transfer_failed", reason, details)
