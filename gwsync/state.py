"""The last confirmed view of each reconciled policy.

The previous cycle's rule identifiers live here between runs. Storage is
a single JSON file ``.gwsync/state.json`` keyed by policy path.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

from gwsync.codec import rule_from_dict, rule_to_dict, tags_from_list, tags_to_list
from gwsync.errors import ConfigurationError, DecodeError
from gwsync.models import PolicyView, RuleSpec


class StateStore:
    """Stores and retrieves confirmed policy views for a working directory."""

    STATE_DIR = ".gwsync"
    STATE_FILE = "state.json"

    def __init__(self, base_dir: str | Path = "."):
        self.base_dir = Path(base_dir)
        self.store_dir = self.base_dir / self.STATE_DIR
        self.store_file = self.store_dir / self.STATE_FILE

    def _read(self) -> dict[str, dict]:
        if not self.store_file.exists():
            return {}
        try:
            data = json.loads(self.store_file.read_text())
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"State file {self.store_file} is unreadable: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"State file {self.store_file} is not a JSON object")
        return data

    def _write(self, data: dict[str, dict]) -> None:
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self.store_file.write_text(json.dumps(data, indent=2, sort_keys=True))

    def save(self, view: PolicyView) -> None:
        """Record ``view`` as the latest confirmed state of its policy."""
        data = self._read()
        data[view.path] = {
            "id": view.id,
            "domain": view.domain,
            "path": view.path,
            "description": view.description,
            "revision": view.revision,
            "tags": tags_to_list(tuple(view.tags)),
            "rules": [rule_to_dict(r, include_read_only=True) for r in view.rules],
            "default_rules": [
                rule_to_dict(r, include_read_only=True) for r in view.default_rules
            ],
            "overridden_default_ids": sorted(view.overridden_default_ids),
        }
        self._write(data)

    def load(self, path: str) -> PolicyView | None:
        entry = self._read().get(path)
        if not entry:
            return None
        try:
            return PolicyView(
                id=entry["id"],
                domain=entry["domain"],
                path=entry.get("path", path),
                description=entry.get("description", ""),
                revision=entry.get("revision"),
                tags=list(tags_from_list(entry.get("tags"))),
                rules=[rule_from_dict(r) for r in entry.get("rules") or []],
                default_rules=[rule_from_dict(r) for r in entry.get("default_rules") or []],
                overridden_default_ids=set(entry.get("overridden_default_ids") or []),
            )
        except (KeyError, TypeError, AttributeError, DecodeError) as e:
            raise ConfigurationError(f"State for {path} in {self.store_file} is corrupt: {e}") from e

    def forget(self, path: str) -> bool:
        """Drop the state for ``path``. Returns True if something was removed."""
        data = self._read()
        if path not in data:
            return False
        del data[path]
        self._write(data)
        return True


def adopt_rule_ids(declared: list[RuleSpec], previous: PolicyView | None) -> list[RuleSpec]:
    """Give id-less declared rules the id of their unique same-named predecessor.

    A previous id is adopted at most once and never when another declared
    rule already claims it explicitly.
    """
    if previous is None:
        return list(declared)

    by_name: dict[str, list[str]] = {}
    for rule in previous.rules:
        if rule.id and rule.display_name:
            by_name.setdefault(rule.display_name, []).append(rule.id)

    claimed = {r.id for r in declared if r.id}
    adopted: list[RuleSpec] = []
    for rule in declared:
        candidates = by_name.get(rule.display_name, []) if not rule.id else []
        if len(candidates) == 1 and candidates[0] not in claimed:
            rule = replace(rule, id=candidates[0])
            claimed.add(rule.id)
        adopted.append(rule)
    return adopted
