from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. Amount semantics (positivity,
share-price floor) are enforced by the pool core so that every entry point
shares one contract.
"""

from pydantic import BaseModel, Field, StrictInt


class AmountRequest(BaseModel):
    amount: StrictInt = Field(..., description="Amount in the smallest indivisible unit")

    model_config = {"extra": "forbid"}


class RoleTargetRequest(BaseModel):
    target: str = Field(..., min_length=1, description="Identity to grant/revoke the reward-depositor role")

    model_config = {"extra": "forbid"}


class OwnerTransferRequest(BaseModel):
    new_owner: str = Field(..., min_length=1, description="Identity that becomes the pool owner")

    model_config = {"extra": "forbid"}
