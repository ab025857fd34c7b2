from __future__ import annotations

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from villages.domain.errors import (
    ApiError,
    AuthorizationError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from villages.infrastructure.store_health import (
    StoreErrorKind,
    classify_store_error,
    describe_store_error,
    is_store_unavailable,
)


@pytest.mark.parametrize(
    "error",
    [
        StoreUnavailableError("down"),
        OperationalError("SELECT 1", {}, Exception("unable to open database file")),
        httpx.ConnectError("boom"),
        ConnectionRefusedError("refused"),
        TimeoutError(),
        ApiError("HTTP 504: gateway", status_code=504),
        RuntimeError("MongoServerSelectionError: Server selection timeout after 30000 ms"),
        "connect ECONNREFUSED 10.0.0.1:5432",
    ],
)
def test_outages_are_recognized(error):
    assert is_store_unavailable(error)


@pytest.mark.parametrize(
    "error",
    [
        None,
        ValueError("title is required"),
        ValidationError("Connection refused in a user supplied field"),
        AuthorizationError("forbidden"),
        NotFoundError("missing"),
        ApiError("HTTP 500: boom", status_code=500),
    ],
)
def test_other_errors_are_not_outages(error):
    assert not is_store_unavailable(error)


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (httpx.ReadTimeout("slow"), StoreErrorKind.TIMEOUT),
        (RuntimeError("Connection timeout"), StoreErrorKind.TIMEOUT),
        (httpx.ConnectError("refused"), StoreErrorKind.CONNECTION),
        (RuntimeError("No available servers"), StoreErrorKind.CONNECTION),
        (AuthorizationError("nope"), StoreErrorKind.AUTH),
        (RuntimeError("Authentication failed for user"), StoreErrorKind.AUTH),
        (RuntimeError("something else"), StoreErrorKind.UNKNOWN),
        (None, StoreErrorKind.UNKNOWN),
    ],
)
def test_classify_store_error(error, kind):
    assert classify_store_error(error) is kind


def test_every_kind_has_a_description():
    descriptions = {describe_store_error(kind) for kind in StoreErrorKind}
    assert len(descriptions) == len(StoreErrorKind)
