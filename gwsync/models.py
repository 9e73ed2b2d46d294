"""Core data models for gateway policy reconciliation.

Rules are immutable values: a reconciliation cycle builds fresh RuleSpec
instances from the declaration or from the remote snapshot and derives
new ones with :func:`dataclasses.replace` instead of mutating them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RuleAction(Enum):
    """What the gateway does with matching traffic."""

    ALLOW = "ALLOW"
    DROP = "DROP"
    REJECT = "REJECT"
    JUMP_TO_APPLICATION = "JUMP_TO_APPLICATION"


class RuleDirection(Enum):
    IN = "IN"
    OUT = "OUT"
    IN_OUT = "IN_OUT"


class IPVersion(Enum):
    IPV4 = "IPV4"
    IPV6 = "IPV6"
    IPV4_IPV6 = "IPV4_IPV6"


@dataclass(frozen=True)
class Tag:
    """A scope/tag pair attached to a policy or rule."""

    scope: str = ""
    tag: str = ""


@dataclass(frozen=True)
class RuleSpec:
    """A single gateway policy rule, ordinary or default.

    ``id`` is empty for newly declared rules; the diff engine assigns one.
    ``description`` is None on a declared default rule that keeps the
    remote description. ``sequence_number``, ``path`` and ``revision`` are
    owned by the remote store and only ever read back.
    """

    id: str = ""
    display_name: str = ""
    description: str | None = ""
    scope: tuple[str, ...] = ()
    action: RuleAction = RuleAction.ALLOW
    tags: tuple[Tag, ...] = ()
    is_default: bool = False
    logged: bool = False
    log_label: str = ""

    source_groups: tuple[str, ...] = ()
    destination_groups: tuple[str, ...] = ()
    services: tuple[str, ...] = ()
    profiles: tuple[str, ...] = ()
    sources_excluded: bool = False
    destinations_excluded: bool = False
    direction: RuleDirection = RuleDirection.IN_OUT
    ip_version: IPVersion = IPVersion.IPV4_IPV6
    disabled: bool = False
    notes: str = ""

    # Read-only, assigned by the remote store
    sequence_number: int | None = None
    path: str = ""
    revision: int | None = None


@dataclass(frozen=True)
class GatewayInfo:
    """Attributes of a Tier-0 gateway that shape its default rule."""

    id: str
    display_name: str = ""
    description: str = ""
    force_whitelisting: bool = False


@dataclass(frozen=True)
class ScopeDefault:
    """The system-default shape of a default rule for one scope.

    Derived fresh every cycle and never persisted.
    """

    display_name: str
    description: str
    action: RuleAction


@dataclass(frozen=True)
class PolicyResource:
    """Snapshot of a gateway policy as read from the remote store."""

    id: str
    domain: str
    display_name: str = ""
    description: str = ""
    path: str = ""
    revision: int | None = None
    tags: tuple[Tag, ...] = ()
    rules: tuple[RuleSpec, ...] = ()

    @property
    def ordinary_rules(self) -> list[RuleSpec]:
        return [r for r in self.rules if not r.is_default]

    @property
    def default_rules(self) -> list[RuleSpec]:
        return [r for r in self.rules if r.is_default]


@dataclass
class PolicyView:
    """Caller-facing result of a reconciliation cycle.

    ``overridden_default_ids`` holds the default rules whose scope had a
    declared override in the cycle that produced this view. Only those are
    reverted once their override disappears.
    """

    id: str
    domain: str
    path: str = ""
    description: str = ""
    revision: int | None = None
    tags: list[Tag] = field(default_factory=list)
    rules: list[RuleSpec] = field(default_factory=list)
    default_rules: list[RuleSpec] = field(default_factory=list)
    overridden_default_ids: set[str] = field(default_factory=set)

    @property
    def rule_ids(self) -> set[str]:
        return {r.id for r in self.rules if r.id}

    @property
    def default_rule_ids(self) -> set[str]:
        return {r.id for r in self.default_rules if r.id}

    @classmethod
    def from_resource(cls, policy: PolicyResource) -> PolicyView:
        """Split a snapshot into ordinary and default rules."""
        return cls(
            id=policy.id,
            domain=policy.domain,
            path=policy.path,
            description=policy.description,
            revision=policy.revision,
            tags=list(policy.tags),
            rules=policy.ordinary_rules,
            default_rules=policy.default_rules,
        )
