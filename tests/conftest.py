"""Shared fixtures: an in-memory policy store that behaves like the remote one."""

from dataclasses import replace

import pytest

from gwsync.errors import ConflictError, NotFoundError
from gwsync.models import GatewayInfo, PolicyResource, RuleAction, RuleSpec
from gwsync.tree import RootNode, RuleDeleteNode

POLICY_PATH = "/infra/domains/default/gateway-policies/gp1"


class FakePolicyStore:
    """Records every call and applies submitted trees to its snapshot."""

    def __init__(self, policy: PolicyResource | None = None, gateways=None):
        self.policy = policy
        self.gateways = dict(gateways or {})
        self.calls: list[tuple] = []
        self.submitted: list[RootNode] = []
        self.submit_error: Exception | None = None
        self.gateway_error: Exception | None = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.calls.append(("close",))

    def fetch_policy(self, domain, policy_id):
        self.calls.append(("fetch_policy", domain, policy_id))
        if self.policy is None or self.policy.id != policy_id:
            raise NotFoundError(f"Gateway Policy {policy_id} not found")
        return self.policy

    def fetch_gateway(self, gateway_id):
        self.calls.append(("fetch_gateway", gateway_id))
        if self.gateway_error is not None:
            raise self.gateway_error
        if gateway_id not in self.gateways:
            raise NotFoundError(f"Tier-0 Gateway {gateway_id} not found")
        return self.gateways[gateway_id]

    def submit_tree(self, tree: RootNode):
        self.calls.append(("submit_tree",))
        if self.submit_error is not None:
            raise self.submit_error
        if tree.revision != self.policy.revision:
            raise ConflictError("stale revision", status_code=412)
        self.submitted.append(tree)
        self.policy = _apply_tree(self.policy, tree)

    @property
    def network_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] != "close"]


def _apply_tree(policy: PolicyResource, tree: RootNode) -> PolicyResource:
    rules = {r.id: r for r in policy.rules}
    next_seq = max((r.sequence_number or 0 for r in policy.rules), default=0) + 1

    for node in tree.rule_nodes:
        if isinstance(node, RuleDeleteNode):
            rules.pop(node.rule_id, None)
            continue
        existing = rules.get(node.rule.id)
        if existing is None:
            rules[node.rule.id] = replace(node.rule, sequence_number=next_seq)
            next_seq += 1
        else:
            rules[node.rule.id] = replace(
                node.rule,
                is_default=existing.is_default,
                sequence_number=existing.sequence_number,
            )

    header = tree.domain_node.policy
    return replace(
        policy,
        description=header.description,
        tags=header.tags,
        revision=(policy.revision or 0) + 1,
        rules=tuple(rules.values()),
    )


@pytest.fixture
def gateways():
    return {
        "gw1": GatewayInfo(
            id="gw1",
            display_name="Edge GW 1",
            description="Primary edge",
            force_whitelisting=True,
        ),
        "gw2": GatewayInfo(id="gw2", display_name="Edge GW 2", description="Secondary edge"),
    }


@pytest.fixture
def policy():
    return PolicyResource(
        id="gp1",
        domain="default",
        display_name="gp1",
        description="Edge policy",
        path=POLICY_PATH,
        revision=3,
        rules=(
            RuleSpec(id="r1", display_name="allow-dns", scope=("/infra/tier-0s/gw1",), sequence_number=1),
            RuleSpec(
                id="r2",
                display_name="drop-telnet",
                scope=("/infra/tier-0s/gw1",),
                action=RuleAction.DROP,
                sequence_number=2,
            ),
            RuleSpec(
                id="d1",
                display_name="Custom GW1 default",
                description="overridden",
                scope=("/infra/tier-0s/gw1",),
                action=RuleAction.REJECT,
                is_default=True,
                sequence_number=100,
                revision=4,
            ),
            RuleSpec(
                id="d2",
                display_name="/infra/tier-1s/t1",
                description="/infra/tier-1s/t1",
                scope=("/infra/tier-1s/t1",),
                action=RuleAction.DROP,
                is_default=True,
                sequence_number=101,
            ),
        ),
    )


@pytest.fixture
def store(policy, gateways):
    return FakePolicyStore(policy, gateways)
