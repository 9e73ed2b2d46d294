"""Stateless conversion between NSX-T JSON and gwsync models.

Every function here is pure; there are no shared converter objects.
"""

from __future__ import annotations

from typing import Any

from gwsync.errors import DecodeError
from gwsync.models import (
    GatewayInfo,
    IPVersion,
    PolicyResource,
    RuleAction,
    RuleDirection,
    RuleSpec,
    Tag,
)
from gwsync.paths import get_domain_from_path
from gwsync.tree import DomainNode, RootNode, RuleDeleteNode, RuleNode, RuleUpsertNode


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected a {what} object, got {type(data).__name__}")
    return data


def _enum(enum_cls, value: Any, default):
    # An absent or null value decodes to the API default
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        raise DecodeError(f"Unexpected {enum_cls.__name__} value {value!r}") from None


def _strings(value: Any) -> tuple[str, ...]:
    return tuple(str(v) for v in value or [])


def tags_from_list(data: list[dict] | None) -> tuple[Tag, ...]:
    tags = (_mapping(t, "Tag") for t in data or [])
    return tuple(Tag(scope=t.get("scope") or "", tag=t.get("tag") or "") for t in tags)


def rule_from_dict(data: dict[str, Any]) -> RuleSpec:
    """Decode a ``Rule`` object."""
    data = _mapping(data, "Rule")
    return RuleSpec(
        id=data.get("id") or "",
        display_name=data.get("display_name") or "",
        description=data.get("description") or "",
        scope=_strings(data.get("scope")),
        action=_enum(RuleAction, data.get("action"), RuleAction.ALLOW),
        tags=tags_from_list(data.get("tags")),
        is_default=bool(data.get("is_default", False)),
        logged=bool(data.get("logged", False)),
        log_label=data.get("tag") or "",
        source_groups=_strings(data.get("source_groups")),
        destination_groups=_strings(data.get("destination_groups")),
        services=_strings(data.get("services")),
        profiles=_strings(data.get("profiles")),
        sources_excluded=bool(data.get("sources_excluded", False)),
        destinations_excluded=bool(data.get("destinations_excluded", False)),
        direction=_enum(RuleDirection, data.get("direction"), RuleDirection.IN_OUT),
        ip_version=_enum(IPVersion, data.get("ip_protocol"), IPVersion.IPV4_IPV6),
        disabled=bool(data.get("disabled", False)),
        notes=data.get("notes") or "",
        sequence_number=data.get("sequence_number"),
        path=data.get("path") or "",
        revision=data.get("_revision"),
    )


def policy_from_dict(data: dict[str, Any]) -> PolicyResource:
    """Decode a ``GatewayPolicy`` object."""
    data = _mapping(data, "GatewayPolicy")
    path = data.get("path") or ""
    return PolicyResource(
        id=data.get("id") or "",
        domain=get_domain_from_path(path),
        display_name=data.get("display_name") or "",
        description=data.get("description") or "",
        path=path,
        revision=data.get("_revision"),
        tags=tags_from_list(data.get("tags")),
        rules=tuple(rule_from_dict(r) for r in data.get("rules") or []),
    )


def gateway_from_dict(data: dict[str, Any]) -> GatewayInfo:
    """Decode the fields of a ``Tier0`` object the default rule depends on."""
    data = _mapping(data, "Tier0")
    return GatewayInfo(
        id=data.get("id") or "",
        display_name=data.get("display_name") or "",
        description=data.get("description") or "",
        force_whitelisting=bool(data.get("force_whitelisting", False)),
    )


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def tags_to_list(tags: tuple[Tag, ...]) -> list[dict[str, str]]:
    return [{"scope": t.scope, "tag": t.tag} for t in tags]


def rule_to_dict(rule: RuleSpec, include_read_only: bool = False) -> dict[str, Any]:
    """Encode a rule for upsert.

    Read-only fields (path, sequence number, default flag) are only written
    when ``include_read_only`` is set, as the local state store does.
    """
    data: dict[str, Any] = {
        "resource_type": "Rule",
        "id": rule.id,
        "display_name": rule.display_name or rule.id,
        "description": rule.description or "",
        "scope": list(rule.scope),
        "action": rule.action.value,
        "tags": tags_to_list(rule.tags),
        "logged": rule.logged,
        "disabled": rule.disabled,
        "direction": rule.direction.value,
        "ip_protocol": rule.ip_version.value,
        "sources_excluded": rule.sources_excluded,
        "destinations_excluded": rule.destinations_excluded,
        "source_groups": list(rule.source_groups) or ["ANY"],
        "destination_groups": list(rule.destination_groups) or ["ANY"],
        "services": list(rule.services) or ["ANY"],
    }
    if rule.log_label:
        data["tag"] = rule.log_label
    if rule.notes:
        data["notes"] = rule.notes
    if rule.profiles:
        data["profiles"] = list(rule.profiles)
    if rule.revision is not None:
        data["_revision"] = rule.revision
    if include_read_only:
        data["is_default"] = rule.is_default
        data["path"] = rule.path
        if rule.sequence_number is not None:
            data["sequence_number"] = rule.sequence_number
    return data


def rule_node_to_dict(node: RuleNode) -> dict[str, Any]:
    if isinstance(node, RuleDeleteNode):
        rule: dict[str, Any] = {"resource_type": "Rule", "id": node.rule_id}
    elif isinstance(node, RuleUpsertNode):
        rule = rule_to_dict(node.rule)
    else:
        raise TypeError(f"Not a rule node: {type(node).__name__}")
    return {
        "resource_type": node.resource_type,
        "Rule": rule,
        "marked_for_delete": node.marked_for_delete,
    }


def domain_node_to_dict(node: DomainNode) -> dict[str, Any]:
    policy = node.policy
    gateway_policy: dict[str, Any] = {
        "resource_type": "GatewayPolicy",
        "id": policy.id,
        "display_name": policy.display_name or policy.id,
        "description": policy.description,
        "tags": tags_to_list(policy.tags),
        "children": [rule_node_to_dict(c) for c in node.children],
    }
    if policy.revision is not None:
        gateway_policy["_revision"] = policy.revision

    return {
        "resource_type": node.resource_type,
        "id": node.domain,
        "target_type": node.target_type,
        "marked_for_delete": node.marked_for_delete,
        "children": [
            {
                "resource_type": "ChildGatewayPolicy",
                "GatewayPolicy": gateway_policy,
                "marked_for_delete": False,
            }
        ],
    }


def tree_to_dict(tree: RootNode) -> dict[str, Any]:
    """Encode a patch tree as the hierarchical ``Infra`` payload."""
    return {
        "resource_type": tree.resource_type,
        "children": [domain_node_to_dict(d) for d in tree.children],
    }
