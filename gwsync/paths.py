"""Extract identifiers from NSX-T policy paths."""

from __future__ import annotations

TIER0_MARKER = "infra/tier-0s"


def get_id_from_path(path: str) -> str:
    """Return the last segment of a policy path, or empty string."""
    segments = [s for s in path.strip().split("/") if s]
    return segments[-1] if segments else ""


def get_domain_from_path(path: str) -> str:
    """Return the domain a policy path lives in.

    ``/infra/domains/default/gateway-policies/gp1`` -> ``default``
    """
    segments = [s for s in path.strip().split("/") if s]
    for i, segment in enumerate(segments[:-1]):
        if segment == "domains":
            return segments[i + 1]
    return ""


def is_tier0_path(path: str) -> bool:
    """True when the path references a Tier-0 gateway (local or global)."""
    return TIER0_MARKER in path
