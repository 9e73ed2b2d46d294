"""Default rule synchronizer.

Default rules pre-exist on the remote store, one per scope, and have no
client-assignable identifier before they exist. They are therefore
matched by their single scope rather than by id. Each remote default rule
gets exactly one outcome:

- OVERRIDE: the declaration has an entry for its scope; the declared
  description, action, log label, logging flag and tags are applied
- REVERT: no declared entry, but the rule was overridden last cycle; it is
  restored to the derived system default
- UNTOUCHED: neither; the rule stays out of the patch tree

A default rule is never created or deleted here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from gwsync.models import RuleSpec
from gwsync.scope import ScopeResolver, require_single_scope, revert_default_rule

logger = logging.getLogger(__name__)


class DefaultOutcome(Enum):
    OVERRIDE = "override"
    REVERT = "revert"
    UNTOUCHED = "untouched"


@dataclass(frozen=True)
class DefaultDecision:
    """What happens to one remote default rule this cycle."""

    outcome: DefaultOutcome
    rule: RuleSpec

    @property
    def is_update(self) -> bool:
        return self.outcome != DefaultOutcome.UNTOUCHED


@dataclass
class DefaultSyncResult:
    decisions: list[DefaultDecision] = field(default_factory=list)

    @property
    def updates(self) -> list[RuleSpec]:
        return [d.rule for d in self.decisions if d.is_update]

    def by_outcome(self, outcome: DefaultOutcome) -> list[RuleSpec]:
        return [d.rule for d in self.decisions if d.outcome == outcome]


def apply_override(rule: RuleSpec, declared: RuleSpec) -> RuleSpec:
    """Copy user-controlled attributes of ``declared`` onto remote ``rule``.

    An undeclared description (None) keeps the remote one.
    """
    description = rule.description if declared.description is None else declared.description
    return replace(
        rule,
        description=description,
        action=declared.action,
        log_label=declared.log_label,
        logged=declared.logged,
        tags=declared.tags,
    )


def validate_declared_defaults(declared: list[RuleSpec]) -> None:
    """Every declared default rule must have exactly one scope."""
    for rule in declared:
        require_single_scope(rule)


def sync_default_rules(
    remote_defaults: list[RuleSpec],
    declared_defaults: list[RuleSpec],
    previous_default_ids: set[str],
    resolver: ScopeResolver,
) -> DefaultSyncResult:
    """Decide override / revert / untouched for every remote default rule.

    When two declared entries share a scope, the first one wins.
    """
    validate_declared_defaults(declared_defaults)

    declared_by_scope: dict[str, RuleSpec] = {}
    for declared in declared_defaults:
        declared_by_scope.setdefault(declared.scope[0], declared)

    result = DefaultSyncResult()
    for rule in remote_defaults:
        override = None
        if len(rule.scope) == 1:
            override = declared_by_scope.get(rule.scope[0])

        if override is not None:
            logger.debug("Updating default rule %s on scope %s", rule.id, rule.scope[0])
            decision = DefaultDecision(DefaultOutcome.OVERRIDE, apply_override(rule, override))
        elif rule.id and rule.id in previous_default_ids:
            decision = DefaultDecision(DefaultOutcome.REVERT, revert_default_rule(rule, resolver))
        else:
            decision = DefaultDecision(DefaultOutcome.UNTOUCHED, rule)

        result.decisions.append(decision)

    return result


def overridden_default_ids(
    remote_defaults: list[RuleSpec], declared_defaults: list[RuleSpec]
) -> set[str]:
    """Ids of remote default rules whose scope has a declared override."""
    declared_scopes = {d.scope[0] for d in declared_defaults if len(d.scope) == 1}
    return {
        r.id
        for r in remote_defaults
        if r.id and len(r.scope) == 1 and r.scope[0] in declared_scopes
    }


def revert_all_default_rules(
    remote_defaults: list[RuleSpec], resolver: ScopeResolver
) -> list[RuleSpec]:
    """Revert every remote default rule, as done when the policy is deleted."""
    return [revert_default_rule(rule, resolver) for rule in remote_defaults]
