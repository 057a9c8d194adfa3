"""Exception types raised inside the profile sync subsystem.

None of these cross the public service boundary: the local store, remote
adapter and reconciliation service convert them into return values and
diagnostic events.
"""

from __future__ import annotations


class SalesProError(RuntimeError):
    """Base class for SalesPro errors."""


class StorageQuotaExceeded(SalesProError):
    """A local storage backend refused a write because its quota is spent."""

    def __init__(self, key: str, required: int, quota: int) -> None:
        super().__init__(f"Storage quota exceeded writing '{key}' ({required} > {quota} bytes)")
        self.key = key
        self.required = required
        self.quota = quota


class RemoteUnavailable(SalesProError):
    """The remote profile store could not serve a request."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"Remote profile store unavailable ({reason}): {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class BlobVersionError(SalesProError):
    """A cold-field blob carries a schema version this build cannot read."""


class InitDataError(SalesProError):
    """Telegram WebApp init data failed validation."""


class AuthError(SalesProError):
    """A login or registration attempt was rejected."""

    def __init__(self, field: str, message: str, *, conflict: bool = False) -> None:
        super().__init__(message)
        self.field = field
        self.message = message
        self.conflict = conflict
