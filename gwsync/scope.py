"""Scope resolution and default rule derivation.

A default rule exists per scope. Its system-default shape depends on the
scope: a Tier-0 gateway scope takes its name and description from the
gateway (and ALLOW when the gateway forces whitelisting), anything else
falls back to the scope path itself with DROP.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from gwsync.errors import (
    DecodeError,
    InvalidDefaultScopeError,
    NotFoundError,
    RemoteStoreError,
    ScopeResolutionError,
)
from gwsync.models import GatewayInfo, RuleAction, RuleSpec, ScopeDefault
from gwsync.paths import get_id_from_path, is_tier0_path
from gwsync.store import PolicyStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeInfo:
    """Outcome of resolving a single scope path."""

    scope: str
    is_tier0: bool = False
    gateway: GatewayInfo | None = None


def require_single_scope(rule: RuleSpec) -> str:
    """Return the only scope of a default rule or raise InvalidDefaultScopeError."""
    if len(rule.scope) != 1:
        label = rule.path or rule.id or rule.display_name or "<unnamed>"
        raise InvalidDefaultScopeError(
            f"Expected default rule {label} to have a single scope, got {len(rule.scope)}"
        )
    return rule.scope[0]


class ScopeResolver:
    """Looks up the Tier-0 gateway behind a scope path.

    No result is cached: gateway attributes can change between cycles, and
    within a cycle every revert reads the gateway again.
    """

    def __init__(self, store: PolicyStore):
        self.store = store

    def resolve(self, scope: str) -> ScopeInfo:
        if not is_tier0_path(scope):
            return ScopeInfo(scope=scope)

        gateway_id = get_id_from_path(scope)
        try:
            gateway = self.store.fetch_gateway(gateway_id)
        except (NotFoundError, RemoteStoreError, DecodeError) as e:
            raise ScopeResolutionError(
                f"Failed to retrieve scope object {gateway_id}: {e.message}"
            ) from e

        return ScopeInfo(scope=scope, is_tier0=True, gateway=gateway)


def derive_scope_default(scope: str, gateway: GatewayInfo | None = None) -> ScopeDefault:
    """Compute the system-default name, description and action for a scope."""
    if gateway is None:
        return ScopeDefault(display_name=scope, description=scope, action=RuleAction.DROP)

    action = RuleAction.ALLOW if gateway.force_whitelisting else RuleAction.DROP
    return ScopeDefault(
        display_name=gateway.display_name,
        description=gateway.description,
        action=action,
    )


def revert_default_rule(rule: RuleSpec, resolver: ScopeResolver) -> RuleSpec:
    """Return ``rule`` restored to its derived system default, tags cleared."""
    scope = require_single_scope(rule)
    info = resolver.resolve(scope)
    default = derive_scope_default(scope, info.gateway)

    logger.debug("Reverting default rule %s on scope %s to %s", rule.id, scope, default.action.value)
    return replace(
        rule,
        display_name=default.display_name,
        description=default.description,
        action=default.action,
        tags=(),
    )
