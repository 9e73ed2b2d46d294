"""Tests for the NSX-T policy client against a mocked transport."""

import json

import httpx
import pytest

from gwsync.client import PolicyClient
from gwsync.codec import policy_from_dict
from gwsync.config import ManagerSettings
from gwsync.errors import (
    ConflictError,
    DecodeError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from gwsync.models import RuleAction, RuleDirection, RuleSpec
from gwsync.tree import compose_patch_tree

POLICY_JSON = {
    "id": "gp1",
    "display_name": "gp1",
    "path": "/infra/domains/default/gateway-policies/gp1",
    "_revision": 2,
    "rules": [
        {"id": "r1", "action": "ALLOW", "scope": ["/infra/tier-0s/gw1"]},
        {"id": "d1", "action": "DROP", "scope": ["/infra/tier-0s/gw1"], "is_default": True},
    ],
}


def _client(handler, **settings) -> PolicyClient:
    settings.setdefault("host", "nsx.example.com")
    settings.setdefault("username", "admin")
    settings.setdefault("password", "pw")
    return PolicyClient(ManagerSettings(**settings), transport=httpx.MockTransport(handler))


def test_fetch_policy():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=POLICY_JSON)

    with _client(handler) as client:
        policy = client.fetch_policy("default", "gp1")

    assert seen[0].method == "GET"
    assert seen[0].url.path == "/policy/api/v1/infra/domains/default/gateway-policies/gp1"
    assert seen[0].headers["authorization"].startswith("Basic ")
    assert policy.revision == 2
    assert [r.id for r in policy.default_rules] == ["d1"]


def test_global_manager_paths():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"id": "gw1", "display_name": "GW", "force_whitelisting": True})

    with _client(handler, global_manager=True) as client:
        gateway = client.fetch_gateway("gw1")

    assert seen == ["/global-manager/api/v1/global-infra/tier-0s/gw1"]
    assert gateway.force_whitelisting


def test_submit_tree_patches_infra():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    tree = compose_patch_tree(policy_from_dict(POLICY_JSON), [RuleSpec(id="r5")], ["r1"])
    with _client(handler) as client:
        client.submit_tree(tree)

    [request] = seen
    assert request.method == "PATCH"
    assert request.url.path == "/policy/api/v1/infra"
    assert request.url.params["enforce_revision_check"] == "true"
    body = json.loads(request.content)
    assert body["resource_type"] == "Infra"
    children = body["children"][0]["children"][0]["GatewayPolicy"]["children"]
    assert [c["marked_for_delete"] for c in children] == [False, True]


@pytest.mark.parametrize(
    "status,error",
    [
        (404, NotFoundError),
        (412, ConflictError),
        (409, ConflictError),
        (400, ValidationError),
        (500, TransportError),
    ],
)
def test_status_mapping(status, error):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error_message": "server says no"})

    with _client(handler) as client:
        with pytest.raises(error) as exc:
            client.fetch_policy("default", "gp1")

    assert "server says no" in str(exc.value)


def test_related_errors_kept_verbatim():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={
                "error_message": "Invalid tree",
                "related_errors": [{"error_message": "Rule r5 has no scope"}],
            },
        )

    with _client(handler) as client:
        with pytest.raises(ValidationError) as exc:
            client.fetch_gateway("gw1")
    assert "Invalid tree; Rule r5 has no scope" in str(exc.value)
    assert exc.value.status_code == 400


def test_connection_failure_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(TransportError) as exc:
            client.fetch_policy("default", "gp1")
    assert "nsx.example.com" in str(exc.value)


def test_null_enums_decode_to_defaults():
    rule = {"id": "r1", "action": None, "direction": None, "scope": None, "description": None}
    body = dict(POLICY_JSON, rules=[rule])

    with _client(lambda request: httpx.Response(200, json=body)) as client:
        policy = client.fetch_policy("default", "gp1")

    [decoded] = policy.rules
    assert decoded.action == RuleAction.ALLOW
    assert decoded.direction == RuleDirection.IN_OUT
    assert decoded.scope == ()
    assert decoded.description == ""


def test_unknown_action_is_decode_error():
    body = dict(POLICY_JSON, rules=[{"id": "r1", "action": "PERMIT"}])

    with _client(lambda request: httpx.Response(200, json=body)) as client:
        with pytest.raises(DecodeError) as exc:
            client.fetch_policy("default", "gp1")
    assert "PERMIT" in str(exc.value)


def test_non_json_body_is_decode_error():
    with _client(lambda request: httpx.Response(200, text="<html>login</html>")) as client:
        with pytest.raises(DecodeError):
            client.fetch_gateway("gw1")
