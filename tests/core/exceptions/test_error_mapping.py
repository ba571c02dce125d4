"""Tests for the loomsync error hierarchy and remote error mapping."""

from __future__ import annotations

import asyncio

import pytest

from loomsync.core.exceptions import (
    CacheError,
    ErrorCode,
    ErrorTracker,
    LoomSyncError,
    RecordValidationError,
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    create_error_response,
    format_error_response,
    map_remote_error,
)


def test_validation_error_carries_field_errors() -> None:
    error = RecordValidationError("bad record", {"base_quantity": "must not be negative"})

    assert error.error_code == ErrorCode.VALIDATION_ERROR.value
    assert error.details["validation_errors"] == {"base_quantity": "must not be negative"}
    assert isinstance(error, LoomSyncError)


def test_cache_error_records_backend() -> None:
    error = CacheError("disk full", cache_type="duckdb")

    assert error.error_code == ErrorCode.CACHE_ERROR.value
    assert error.details["cache_type"] == "duckdb"


@pytest.mark.parametrize("timeout_type", [asyncio.TimeoutError, TimeoutError])
def test_timeouts_map_to_remote_timeout(timeout_type: type[BaseException]) -> None:
    error = map_remote_error(timeout_type(), "memory", "fetch_all", timeout=2.0, collection_key="orders")

    assert isinstance(error, RemoteTimeoutError)
    assert error.details == {"operation": "fetch_all", "collection_key": "orders", "timeout": 2.0}


def test_other_errors_map_to_unavailable() -> None:
    class HTTPFailure(Exception):
        status_code = 503

    error = map_remote_error(HTTPFailure("service down"), "api", "upsert")

    assert isinstance(error, RemoteUnavailableError)
    assert error.status_code == 503
    assert error.details["error_type"] == "HTTPFailure"
    assert error.store_name == "api"


def test_remote_errors_pass_through_with_context() -> None:
    original = RemoteUnavailableError("offline", store_name="memory")

    mapped = map_remote_error(original, "memory", "delete", collection_key="orders")

    assert mapped is original
    assert isinstance(mapped, RemoteStoreError)
    assert mapped.details["collection_key"] == "orders"


def test_format_error_response_uses_templates() -> None:
    payload = format_error_response(ErrorCode.RECORD_NOT_FOUND, record_id="7", collection_key="orders")

    assert payload["error"]["code"] == "RECORD_NOT_FOUND"
    assert payload["error"]["message"] == "Record 7 not found in collection orders"


def test_format_error_response_falls_back_on_missing_variables() -> None:
    payload = format_error_response(ErrorCode.REMOTE_TIMEOUT)

    assert "REMOTE_TIMEOUT" in payload["error"]["message"]


def test_create_error_response_for_library_and_foreign_errors() -> None:
    library = create_error_response(RemoteTimeoutError("too slow", store_name="memory", timeout=1.0))
    foreign = create_error_response(RuntimeError("boom"))

    assert library["error"]["code"] == "REMOTE_TIMEOUT"
    assert library["error"]["details"]["timeout"] == 1.0
    assert foreign["error"]["code"] == "INTERNAL_ERROR"
    assert foreign["error"]["message"] == "boom"


def test_error_tracker_counts_per_code_store_and_operation() -> None:
    tracker = ErrorTracker()

    tracker.record_error("REMOTE_TIMEOUT", "memory", "fetch_all")
    tracker.record_error("REMOTE_TIMEOUT", "memory", "fetch_all")
    tracker.record_error("REMOTE_UNAVAILABLE", "memory", "upsert")

    stats = tracker.get_error_stats()
    assert stats["total_errors"] == 3
    assert stats["error_counts"]["REMOTE_TIMEOUT:memory:fetch_all"] == 2
    assert stats["last_errors"]["REMOTE_UNAVAILABLE:memory:upsert"]["count"] == 1

    tracker.reset()
    assert tracker.get_error_stats()["total_errors"] == 0
