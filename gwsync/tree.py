"""Patch tree composition.

The remote store has no per-rule CRUD for this resource. All changes go
into one hierarchical patch: a root node holding one domain node holding
one rule node per changed rule. The tree is built by pure functions out
of frozen nodes and is never mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import ClassVar, Iterable, Union

from gwsync.models import PolicyResource, RuleSpec


@dataclass(frozen=True)
class RuleUpsertNode:
    """Create or update a rule with its full attributes."""

    resource_type: ClassVar[str] = "ChildRule"
    marked_for_delete: ClassVar[bool] = False

    rule: RuleSpec

    @property
    def rule_id(self) -> str:
        return self.rule.id


@dataclass(frozen=True)
class RuleDeleteNode:
    """Delete a rule. Only the identifier is carried."""

    resource_type: ClassVar[str] = "ChildRule"
    marked_for_delete: ClassVar[bool] = True

    rule_id: str


RuleNode = Union[RuleUpsertNode, RuleDeleteNode]


@dataclass(frozen=True)
class DomainNode:
    """Domain wrapper holding the policy header and its rule children.

    ``policy`` never carries rules itself; they only travel as children.
    """

    resource_type: ClassVar[str] = "ChildResourceReference"
    target_type: ClassVar[str] = "Domain"
    marked_for_delete: ClassVar[bool] = False

    domain: str
    policy: PolicyResource
    children: tuple[RuleNode, ...] = ()

    @property
    def policy_id(self) -> str:
        return self.policy.id


@dataclass(frozen=True)
class RootNode:
    """Root of a submittable patch tree."""

    resource_type: ClassVar[str] = "Infra"
    marked_for_delete: ClassVar[bool] = False

    children: tuple[DomainNode, ...] = ()

    @property
    def domain_node(self) -> DomainNode:
        return self.children[0]

    @property
    def rule_nodes(self) -> tuple[RuleNode, ...]:
        return tuple(n for d in self.children for n in d.children)

    @property
    def revision(self) -> int | None:
        return self.domain_node.policy.revision


ChildNode = Union[RuleUpsertNode, RuleDeleteNode, DomainNode, RootNode]


def rule_upsert_node(rule: RuleSpec) -> RuleUpsertNode:
    if not rule.id:
        raise ValueError("Cannot upsert a rule without an identifier")
    return RuleUpsertNode(rule=rule)


def rule_delete_node(rule_id: str) -> RuleDeleteNode:
    if not rule_id:
        raise ValueError("Cannot delete a rule without an identifier")
    return RuleDeleteNode(rule_id=rule_id)


def domain_node(domain: str, policy: PolicyResource, children: Iterable[RuleNode]) -> DomainNode:
    return DomainNode(domain=domain, policy=replace(policy, rules=()), children=tuple(children))


def root_node(domain: DomainNode) -> RootNode:
    return RootNode(children=(domain,))


def compose_patch_tree(
    policy: PolicyResource,
    upserts: Iterable[RuleSpec] = (),
    deletes: Iterable[str] = (),
    default_updates: Iterable[RuleSpec] = (),
) -> RootNode:
    """Compose one atomic patch tree for ``policy``.

    Ordinary upserts come first, then default rule updates, then deletions.
    The remote store applies the whole tree as a single transaction, so the
    order carries no meaning beyond readability.
    """
    children: list[RuleNode] = [rule_upsert_node(r) for r in upserts]
    children.extend(rule_upsert_node(r) for r in default_updates)
    children.extend(rule_delete_node(i) for i in deletes)
    return root_node(domain_node(policy.domain, policy, children))
