from __future__ import annotations

"""Payout delivery seam.

The ledger only decides amounts. Moving value is the environment's job: the
executor calls `transfer(recipient, amount)` inside the commit and treats any
exception as an irrecoverable failure that aborts the whole operation.
"""

import logging
import threading
from typing import Callable, List, Tuple

TransferFn = Callable[[str, int], None]

log = logging.getLogger("sharepool.transfer")


class TransferError(RuntimeError):
    """Raised by a transfer callable when the payout could not be delivered."""


def log_only_transfer(recipient: str, amount: int) -> None:
    """Default transfer for standalone deployments: record the intent only."""
    log.info("payout recipient=%s amount=%s", recipient, int(amount))


class RecordingTransfer:
    """In-process transfer sink that remembers every delivered payout.

    `fail_for` lets callers (tests, dry runs) simulate a refused recipient.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.delivered: List[Tuple[str, int]] = []
        self.fail_for: set[str] = set()

    def __call__(self, recipient: str, amount: int) -> None:
        if recipient in self.fail_for:
            raise TransferError(f"recipient refused payout: {recipient}")
        with self._lock:
            self.delivered.append((recipient, int(amount)))

    def total_to(self, recipient: str) -> int:
        with self._lock:
            return sum(a for r, a in self.delivered if r == recipient)
