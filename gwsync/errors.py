"""Error taxonomy for gateway policy reconciliation.

Every failure raised by gwsync derives from :class:`GatewaySyncError`.
The reconciler adds the resource identifier and operation name to an
error on its way out but never changes its type, so callers can still
catch :class:`ConflictError` and restart the cycle.
"""

from __future__ import annotations


class GatewaySyncError(Exception):
    """Base class for all gwsync errors."""

    retryable = False

    def __init__(self, message: str, resource_id: str = "", operation: str = ""):
        super().__init__(message)
        self.message = message
        self.resource_id = resource_id
        self.operation = operation

    def add_context(self, resource_id: str, operation: str) -> None:
        """Attach resource/operation context unless already present."""
        if not self.resource_id:
            self.resource_id = resource_id
        if not self.operation:
            self.operation = operation

    def __str__(self) -> str:
        if self.resource_id and self.operation:
            return f"{self.operation} of Gateway Policy {self.resource_id}: {self.message}"
        if self.resource_id:
            return f"Gateway Policy {self.resource_id}: {self.message}"
        return self.message


# --- Configuration ---


class ConfigurationError(GatewaySyncError):
    """The declared configuration is unusable. Raised before any remote call."""


class InvalidDefaultScopeError(ConfigurationError):
    """A default rule does not have exactly one scope."""


class DuplicateRuleIdError(ConfigurationError):
    """Two declared rules share the same identifier."""


# --- Remote ---


class NotFoundError(GatewaySyncError):
    """The policy or a scope target does not exist on the remote store."""


class ScopeResolutionError(GatewaySyncError):
    """The Tier-0 gateway behind a default rule scope could not be read."""


class RemoteStoreError(GatewaySyncError):
    """Opaque failure reported by the remote policy store."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_id: str = "",
        operation: str = "",
    ):
        super().__init__(message, resource_id=resource_id, operation=operation)
        self.status_code = status_code


class ConflictError(RemoteStoreError):
    """The submitted revision is stale. Restart the cycle from a fresh read."""

    retryable = True


class ValidationError(RemoteStoreError):
    """The remote store rejected the patch tree as malformed."""


class TransportError(RemoteStoreError):
    """The request never produced a usable response."""


class DecodeError(GatewaySyncError):
    """A policy object read back has an unexpected shape or value."""
