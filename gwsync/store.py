"""Collaborator interfaces consumed by the reconciliation engine.

The engine never talks HTTP itself. It is handed a :class:`PolicyStore`
(see :mod:`gwsync.client` for the NSX-T implementation) and a
:class:`DeclarationSource` (see :mod:`gwsync.config`).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from gwsync.models import GatewayInfo, PolicyResource, RuleSpec

if TYPE_CHECKING:
    from gwsync.tree import RootNode


class PolicyStore(Protocol):
    """Remote hierarchical policy store that only accepts subtree patches."""

    def fetch_policy(self, domain: str, policy_id: str) -> PolicyResource:
        """Return the current policy. Raises NotFoundError when absent."""
        ...

    def fetch_gateway(self, gateway_id: str) -> GatewayInfo:
        """Return Tier-0 gateway attributes. Raises NotFoundError/TransportError.

        Tier-0 gateways live directly under ``/infra/tier-0s`` (or the
        global-infra equivalent), outside any domain, so the lookup takes no
        domain. The manager flavour is fixed by the store's configuration.
        """
        ...

    def submit_tree(self, tree: RootNode) -> None:
        """Apply a patch tree atomically.

        The policy revision travels inside the tree. Raises ConflictError on
        a stale revision, ValidationError on a malformed tree.
        """
        ...


class DeclarationSource(Protocol):
    """Accessors for the user's declared configuration."""

    path: str
    description: str | None
    tags: list | None

    def get_declared_rules(self) -> list[RuleSpec]: ...

    def get_declared_default_rules(self) -> list[RuleSpec]: ...

    def get_previous_rule_ids(self) -> set[str]: ...

    def get_previous_default_rule_ids(self) -> set[str]: ...
