from __future__ import annotations

import pytest

from sharepool.api.errors import ApiError
from sharepool.runtime.errors import (
    AlreadyInitialized,
    ApplyError,
    EmptyPool,
    InvalidAmount,
    NotInitialized,
    TransferFailed,
    Unauthorized,
)


@pytest.mark.parametrize(
    "err, status",
    [
        (Unauthorized("caller_is_not_owner"), 403),
        (AlreadyInitialized("owner_already_set"), 409),
        (TransferFailed("payout_not_delivered"), 502),
        (NotInitialized("pool_has_no_owner"), 503),
        (InvalidAmount("amount_must_be_positive"), 400),
        (EmptyPool("no_shares_outstanding"), 400),
        (ApplyError("something_new", "unmapped"), 400),
    ],
)
def test_apply_errors_map_to_http_status(err: ApplyError, status: int) -> None:
    api_err = ApiError.from_apply_error(err)
    assert api_err.status_code == status
    assert api_err.code == err.code
    assert api_err.message == err.reason


def test_non_dict_details_are_wrapped() -> None:
    assert ApiError.from_apply_error(InvalidAmount("bad", 7)).details == {"detail": 7}
    assert ApiError.from_apply_error(InvalidAmount("bad")).details == {}


def test_constructors_set_status() -> None:
    assert ApiError.unauthorized("caller_missing", "missing header").status_code == 401
    assert ApiError.internal("not_ready", "no executor").status_code == 500


def test_to_json_shape() -> None:
    body = ApiError.internal("not_ready", "no executor", {"x": 1}).to_json()
    assert body == {"ok": False, "error": {"code": "not_ready", "message": "no executor", "details": {"x": 1}}}
