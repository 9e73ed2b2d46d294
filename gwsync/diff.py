"""Identifier-based diff of ordinary rules.

Matching policy for ordinary rules is by identifier only:
- every declared rule is upserted (new rules get a fresh identifier)
- every previously known identifier missing from the declaration is deleted

Default rules never go through here; they are matched by scope in
:mod:`gwsync.defaults`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from gwsync.errors import DuplicateRuleIdError
from gwsync.models import RuleSpec


def new_rule_id() -> str:
    return str(uuid.uuid4())


@dataclass
class RuleDiff:
    """Upsert and delete sets for one policy."""

    upserts: list[RuleSpec] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.upserts and not self.deletes

    @property
    def summary(self) -> dict[str, int]:
        return {"upserts": len(self.upserts), "deletes": len(self.deletes)}


def check_unique_ids(rules: Iterable[RuleSpec]) -> None:
    """Raise DuplicateRuleIdError when two rules carry the same identifier."""
    seen: set[str] = set()
    for rule in rules:
        if not rule.id:
            continue
        if rule.id in seen:
            raise DuplicateRuleIdError(f"Rule id {rule.id} is declared more than once")
        seen.add(rule.id)


def diff_rules(
    previous_ids: Iterable[str],
    declared: list[RuleSpec],
    id_factory: Callable[[], str] = new_rule_id,
) -> RuleDiff:
    """Partition declared rules into upserts and previous ids into deletes.

    A declared identifier that matches no previous rule (for example one
    reused after an external deletion) is still an upsert.
    """
    check_unique_ids(declared)

    upserts: list[RuleSpec] = []
    declared_ids: set[str] = set()
    for rule in declared:
        if not rule.id:
            rule = replace(rule, id=id_factory())
        declared_ids.add(rule.id)
        upserts.append(rule)

    deletes = sorted({i for i in previous_ids if i} - declared_ids)
    return RuleDiff(upserts=upserts, deletes=deletes)
