"""Reconciler — drives one read/diff/compose/submit/confirm cycle.

One cycle owns its policy snapshot exclusively and always starts from a
fresh read. Concurrency with other writers is handled by the revision
token carried in the patch tree: a stale revision comes back as
:class:`~gwsync.errors.ConflictError` and the caller restarts the cycle.
Nothing is retried here.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Callable

from gwsync.defaults import (
    overridden_default_ids,
    revert_all_default_rules,
    sync_default_rules,
    validate_declared_defaults,
)
from gwsync.diff import check_unique_ids, diff_rules, new_rule_id
from gwsync.errors import ConfigurationError, GatewaySyncError, NotFoundError
from gwsync.models import PolicyResource, PolicyView
from gwsync.paths import get_domain_from_path, get_id_from_path
from gwsync.scope import ScopeResolver
from gwsync.store import DeclarationSource, PolicyStore
from gwsync.tree import RootNode, compose_patch_tree

logger = logging.getLogger(__name__)


class Intent(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"


class _State(Enum):
    IDLE = "idle"
    READING = "reading"
    DIFFING = "diffing"
    COMPOSING = "composing"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


class Reconciler:
    """Reconciles a declared gateway policy against the remote store.

    Parameters
    ----------
    store:
        Remote policy store (fetch policy, fetch gateway, submit tree).
    declaration:
        The user's declared configuration and the previous cycle's ids.
    id_factory:
        Generates identifiers for newly declared rules.
    """

    def __init__(
        self,
        store: PolicyStore,
        declaration: DeclarationSource,
        id_factory: Callable[[], str] = new_rule_id,
    ) -> None:
        self.store = store
        self.declaration = declaration
        self.id_factory = id_factory
        self._state = _State.IDLE

        path = declaration.path
        self.policy_id = get_id_from_path(path)
        self.domain = get_domain_from_path(path)

    # -- entry points ----------------------------------------------------------

    def reconcile(self, intent: Intent) -> PolicyView | None:
        """Run one full cycle for ``intent``.

        Returns the confirmed view for CREATE/UPDATE, the current view (or
        ``None`` if the policy is gone) for READ, and ``None`` for DELETE.
        """
        try:
            if intent == Intent.READ:
                view = self._read()
            else:
                tree = self._plan(intent)
                self._submit(tree)
                view = None if intent == Intent.DELETE else self._confirm()
        except GatewaySyncError as e:
            self._transition(_State.FAILED)
            e.add_context(self.policy_id, intent.value)
            raise

        self._transition(_State.DONE)
        return view

    def plan(self, intent: Intent) -> RootNode:
        """Build the patch tree for ``intent`` without submitting it."""
        if intent == Intent.READ:
            raise ValueError("READ does not produce a patch tree")
        try:
            return self._plan(intent)
        except GatewaySyncError as e:
            self._transition(_State.FAILED)
            e.add_context(self.policy_id, intent.value)
            raise

    # -- states ----------------------------------------------------------------

    def _transition(self, state: _State) -> None:
        logger.debug("Gateway Policy %s: %s -> %s", self.policy_id, self._state.value, state.value)
        self._state = state

    def _require_path(self) -> None:
        if not self.policy_id or not self.domain:
            raise ConfigurationError(
                f"Failed to extract domain and ID from Gateway Policy path {self.declaration.path}"
            )

    def _validate(self) -> None:
        """Declaration checks that must fail before any remote call."""
        self._require_path()
        check_unique_ids(self.declaration.get_declared_rules())
        validate_declared_defaults(self.declaration.get_declared_default_rules())

    def _fetch(self) -> PolicyResource:
        self._transition(_State.READING)
        return self.store.fetch_policy(self.domain, self.policy_id)

    def _read(self) -> PolicyView | None:
        self._require_path()
        try:
            policy = self._fetch()
        except NotFoundError:
            logger.info("Gateway Policy %s not found, treating as absent", self.policy_id)
            return None
        return PolicyView.from_resource(policy)

    def _plan(self, intent: Intent) -> RootNode:
        if intent == Intent.DELETE:
            self._require_path()
        else:
            self._validate()

        policy = self._fetch()
        if intent == Intent.DELETE:
            return self._compose_revert(policy)
        return self._compose_update(policy, intent)

    def _compose_update(self, policy: PolicyResource, intent: Intent) -> RootNode:
        decl = self.declaration
        if intent == Intent.CREATE:
            previous_ids: set[str] = set()
            previous_default_ids: set[str] = set()
        else:
            previous_ids = decl.get_previous_rule_ids()
            previous_default_ids = decl.get_previous_default_rule_ids()

        self._transition(_State.DIFFING)
        diff = diff_rules(previous_ids, decl.get_declared_rules(), self.id_factory)
        for rule in diff.upserts:
            logger.debug("Adding child rule with id %s", rule.id)
        for rule_id in diff.deletes:
            logger.debug("Deleting child rule with id %s", rule_id)

        self._transition(_State.COMPOSING)
        synced = sync_default_rules(
            policy.default_rules,
            decl.get_declared_default_rules(),
            previous_default_ids,
            ScopeResolver(self.store),
        )

        header = policy
        if decl.description is not None:
            header = replace(header, description=decl.description)
        if decl.tags is not None:
            header = replace(header, tags=tuple(decl.tags))

        tree = compose_patch_tree(header, diff.upserts, diff.deletes, synced.updates)
        logger.info(
            "Updating Gateway Policy %s with %d child rules",
            self.policy_id,
            len(tree.rule_nodes),
        )
        return tree

    def _compose_revert(self, policy: PolicyResource) -> RootNode:
        self._transition(_State.COMPOSING)
        reverted = revert_all_default_rules(policy.default_rules, ScopeResolver(self.store))
        header = replace(policy, description=policy.display_name, tags=())
        deletes = [r.id for r in policy.ordinary_rules if r.id]

        logger.info(
            "Reverting Gateway Policy %s: %d default rules, %d rules removed",
            self.policy_id,
            len(reverted),
            len(deletes),
        )
        return compose_patch_tree(header, deletes=deletes, default_updates=reverted)

    def _submit(self, tree: RootNode) -> None:
        self._transition(_State.SUBMITTING)
        self.store.submit_tree(tree)

    def _confirm(self) -> PolicyView:
        self._transition(_State.CONFIRMING)
        view = PolicyView.from_resource(self.store.fetch_policy(self.domain, self.policy_id))
        view.overridden_default_ids = overridden_default_ids(
            view.default_rules, self.declaration.get_declared_default_rules()
        )
        return view
