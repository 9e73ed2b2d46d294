"""Manager connection settings and the declared policy.

The declaration is a YAML document::

    path: /infra/domains/default/gateway-policies/Policy_Default_Infra
    description: Edge policy
    tags:
      - {scope: env, tag: prod}
    rules:
      - display_name: allow-dns
        scope: [/infra/tier-0s/gw1]
        action: ALLOW
        services: [/infra/services/DNS]
    default_rules:
      - scope: /infra/tier-0s/gw1
        action: DROP
        logged: true
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from gwsync.errors import ConfigurationError
from gwsync.models import (
    IPVersion,
    PolicyView,
    RuleAction,
    RuleDirection,
    RuleSpec,
    Tag,
)
from gwsync.state import adopt_rule_ids


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in ("1", "true", "yes")


class ManagerSettings(BaseModel):
    """Connection settings for the NSX-T manager."""

    model_config = ConfigDict(validate_default=True)

    host: str = Field(
        default_factory=lambda: os.getenv("NSX_MANAGER", ""),
        description="Manager host name or URL",
    )
    username: str = Field(
        default_factory=lambda: os.getenv("NSX_USERNAME", "admin"),
        description="Basic auth user",
    )
    password: str = Field(
        default_factory=lambda: os.getenv("NSX_PASSWORD", ""),
        description="Basic auth password",
    )
    allow_unverified_ssl: bool = Field(
        default_factory=lambda: _env_flag("NSX_ALLOW_UNVERIFIED_SSL"),
        description="Skip TLS certificate verification",
    )
    global_manager: bool = Field(
        default_factory=lambda: _env_flag("NSX_GLOBAL_MANAGER"),
        description="Target the Global Manager API",
    )
    timeout: float = Field(
        default_factory=lambda: float(os.getenv("NSX_TIMEOUT", "60")),
        description="Request timeout in seconds",
        gt=0,
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("manager host is required (set NSX_MANAGER)")
        return v

    @property
    def base_url(self) -> str:
        if self.host.startswith(("http://", "https://")):
            return self.host
        return f"https://{self.host}"

    @classmethod
    def from_env(cls, **overrides: Any) -> ManagerSettings:
        """Build settings from ``NSX_*`` variables, with explicit overrides."""
        try:
            return cls(**{k: v for k, v in overrides.items() if v is not None})
        except (pydantic.ValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid manager settings: {e}") from e


# ---------------------------------------------------------------------------
# Declaration
# ---------------------------------------------------------------------------


@dataclass
class Declaration:
    """The user's declared gateway policy plus the previous cycle's view."""

    path: str
    description: str | None = None
    tags: list[Tag] | None = None
    rules: list[RuleSpec] = field(default_factory=list)
    default_rules: list[RuleSpec] = field(default_factory=list)
    previous: PolicyView | None = None

    def get_declared_rules(self) -> list[RuleSpec]:
        return adopt_rule_ids(self.rules, self.previous)

    def get_declared_default_rules(self) -> list[RuleSpec]:
        return list(self.default_rules)

    def get_previous_rule_ids(self) -> set[str]:
        return self.previous.rule_ids if self.previous else set()

    def get_previous_default_rule_ids(self) -> set[str]:
        return set(self.previous.overridden_default_ids) if self.previous else set()


def _enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"Invalid {what} '{value}' (expected one of {allowed})") from None


def _paths(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ConfigurationError(f"Expected a path or a list of paths, got {value!r}")
    return tuple(str(v) for v in value)


def parse_tags(data: Any) -> tuple[Tag, ...]:
    if data is not None and not isinstance(data, list):
        raise ConfigurationError(f"Tags must be a list of scope/tag mappings, got {data!r}")
    tags = []
    for item in data or []:
        if not isinstance(item, dict):
            raise ConfigurationError(f"Tag must be a mapping with scope/tag, got {item!r}")
        tags.append(Tag(scope=str(item.get("scope", "")), tag=str(item.get("tag", ""))))
    return tuple(tags)


def parse_rule(data: dict[str, Any]) -> RuleSpec:
    """Build an ordinary rule from a declaration entry."""
    return RuleSpec(
        id=str(data.get("nsx_id") or ""),
        display_name=str(data.get("display_name", "")),
        description=str(data.get("description", "")),
        scope=_paths(data.get("scope")),
        action=_enum(RuleAction, data.get("action", "ALLOW"), "action"),
        tags=parse_tags(data.get("tags")),
        logged=bool(data.get("logged", False)),
        log_label=str(data.get("log_label", "")),
        source_groups=_paths(data.get("source_groups")),
        destination_groups=_paths(data.get("destination_groups")),
        services=_paths(data.get("services")),
        profiles=_paths(data.get("profiles")),
        sources_excluded=bool(data.get("sources_excluded", False)),
        destinations_excluded=bool(data.get("destinations_excluded", False)),
        direction=_enum(RuleDirection, data.get("direction", "IN_OUT"), "direction"),
        ip_version=_enum(IPVersion, data.get("ip_version", "IPV4_IPV6"), "ip_version"),
        disabled=bool(data.get("disabled", False)),
        notes=str(data.get("notes", "")),
    )


def parse_default_rule(data: dict[str, Any]) -> RuleSpec:
    """Build a default rule override. Scope count is checked by the reconciler."""
    description = data.get("description")
    return RuleSpec(
        scope=_paths(data.get("scope")),
        description=None if description is None else str(description),
        action=_enum(RuleAction, data.get("action", "ALLOW"), "action"),
        tags=parse_tags(data.get("tags")),
        logged=bool(data.get("logged", False)),
        log_label=str(data.get("log_label", "")),
        is_default=True,
    )


def _entries(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    items = data.get(key) or []
    if not isinstance(items, list):
        raise ConfigurationError(f"'{key}' must be a list of mappings")
    for item in items:
        if not isinstance(item, dict):
            raise ConfigurationError(f"Each entry in '{key}' must be a mapping, got {item!r}")
    return items


def parse_declaration(data: dict[str, Any], previous: PolicyView | None = None) -> Declaration:
    if not isinstance(data, dict) or not data.get("path"):
        raise ConfigurationError("Declaration must be a mapping with a 'path'")

    tags = data.get("tags")
    return Declaration(
        path=str(data["path"]),
        description=data.get("description"),
        tags=list(parse_tags(tags)) if tags is not None else None,
        rules=[parse_rule(r) for r in _entries(data, "rules")],
        default_rules=[parse_default_rule(r) for r in _entries(data, "default_rules")],
        previous=previous,
    )


def load_declaration(path: str | Path, previous: PolicyView | None = None) -> Declaration:
    """Load a declaration from a YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read declaration {path}: {e}") from e
    return parse_declaration(data, previous)
