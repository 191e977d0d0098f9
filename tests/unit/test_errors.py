"""Tests for sync/errors.py: error classification."""

from __future__ import annotations

import pytest

from replica_sync.sync.errors import (
    ErrorCategory,
    LocalStoreError,
    NotAuthenticatedError,
    RemoteStoreError,
    ReplicaSyncError,
    classify_error,
    get_user_friendly_error,
    is_offline_error,
    is_retryable,
)


class TestClassifyError:
    """Tests for classify_error()."""

    @pytest.mark.parametrize(
        ("code", "category"),
        [
            ("auth/user-disabled", ErrorCategory.AUTH),
            ("auth/network-request-failed", ErrorCategory.AUTH),
            ("unavailable", ErrorCategory.NETWORK),
            ("deadline-exceeded", ErrorCategory.NETWORK),
            ("cancelled", ErrorCategory.NETWORK),
            ("network-error", ErrorCategory.NETWORK),
            ("permission-denied", ErrorCategory.PERMISSION),
            ("unauthenticated", ErrorCategory.PERMISSION),
            ("invalid-argument", ErrorCategory.DATA),
            ("not-found", ErrorCategory.DATA),
            ("already-exists", ErrorCategory.DATA),
            ("internal", ErrorCategory.UNKNOWN),
        ],
    )
    def test_by_code(self, code: str, category: ErrorCategory) -> None:
        assert classify_error(RemoteStoreError("boom", code)) == category

    def test_transport_errors_without_code_are_network(self) -> None:
        assert classify_error(TimeoutError()) == ErrorCategory.NETWORK
        assert classify_error(ConnectionRefusedError()) == ErrorCategory.NETWORK
        assert classify_error(OSError("socket")) == ErrorCategory.NETWORK

    def test_plain_exception_is_unknown(self) -> None:
        assert classify_error(RuntimeError("huh")) == ErrorCategory.UNKNOWN

    def test_none_is_unknown(self) -> None:
        assert classify_error(None) == ErrorCategory.UNKNOWN

    def test_not_authenticated_is_permission(self) -> None:
        assert classify_error(NotAuthenticatedError()) == ErrorCategory.PERMISSION


class TestRetryable:
    """Tests for is_retryable()."""

    def test_only_permission_is_final(self) -> None:
        assert not is_retryable(ErrorCategory.PERMISSION)
        for category in (
            ErrorCategory.AUTH,
            ErrorCategory.NETWORK,
            ErrorCategory.DATA,
            ErrorCategory.UNKNOWN,
        ):
            assert is_retryable(category)


class TestOfflineError:
    """Tests for is_offline_error()."""

    @pytest.mark.parametrize("code", ["unavailable", "offline", "failed-precondition"])
    def test_offline_codes(self, code: str) -> None:
        assert is_offline_error(RemoteStoreError("x", code))

    def test_offline_message(self) -> None:
        assert is_offline_error(RuntimeError("Client is offline"))
        assert is_offline_error(RuntimeError("Network request failed"))

    def test_other_errors(self) -> None:
        assert not is_offline_error(RemoteStoreError("denied", "permission-denied"))
        assert not is_offline_error(None)


class TestUserFriendlyError:
    """Tests for get_user_friendly_error()."""

    def test_auth_known_code(self) -> None:
        message = get_user_friendly_error(RemoteStoreError("x", "auth/too-many-requests"))
        assert "Too many sign-in attempts" in message

    def test_auth_unknown_code(self) -> None:
        message = get_user_friendly_error(RemoteStoreError("x", "auth/other"))
        assert message == "Authentication failed. Please try again."

    def test_network(self) -> None:
        assert "Network connection issue" in get_user_friendly_error(TimeoutError())

    def test_permission(self) -> None:
        message = get_user_friendly_error(RemoteStoreError("x", "permission-denied"))
        assert "permission" in message

    def test_data(self) -> None:
        message = get_user_friendly_error(RemoteStoreError("x", "not-found"))
        assert message == "The requested data was not found."

    def test_unknown_uses_message(self) -> None:
        assert get_user_friendly_error(RuntimeError("disk on fire")) == "disk on fire"

    def test_none(self) -> None:
        assert get_user_friendly_error(None) == "An unknown error occurred."


class TestErrorTypes:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self) -> None:
        assert issubclass(RemoteStoreError, ReplicaSyncError)
        assert issubclass(LocalStoreError, ReplicaSyncError)
        assert issubclass(NotAuthenticatedError, ReplicaSyncError)

    def test_remote_store_error_fields(self) -> None:
        error = RemoteStoreError("gone", "not-found", status_code=404)
        assert str(error) == "gone"
        assert error.code == "not-found"
        assert error.status_code == 404

    def test_default_code(self) -> None:
        assert RemoteStoreError("x").code == "unknown"
