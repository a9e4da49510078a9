# src/sharepool/ledger/constants.py
from __future__ import annotations

"""Pool ledger constants.

Amounts are integers in the smallest indivisible unit. `UNIT` is only used by
operator tooling to render human-readable balances (18 decimals, like wei).
"""

UNIT_DECIMALS: int = 18
UNIT: int = 10**UNIT_DECIMALS

# Capability name stored under state["roles"].
REWARD_DEPOSITOR_ROLE: str = "reward_depositors"

# Event kinds.
EVENT_DEPOSITED: str = "Deposited"
EVENT_REWARD_DEPOSITED: str = "RewardDeposited"
EVENT_WITHDRAWN: str = "Withdrawn"

DEFAULT_POOL_ID: str = "sharepool-dev"
