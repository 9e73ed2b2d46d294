"""NSX-T policy API client — the concrete :class:`~gwsync.store.PolicyStore`.

Uses a synchronous ``httpx.Client`` with basic authentication. Failures
are translated into the gwsync error taxonomy; the server's own error
message is kept verbatim.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from gwsync.codec import gateway_from_dict, policy_from_dict, tree_to_dict
from gwsync.config import ManagerSettings
from gwsync.errors import (
    ConflictError,
    DecodeError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from gwsync.models import GatewayInfo, PolicyResource
from gwsync.tree import RootNode

logger = logging.getLogger(__name__)

LOCAL_BASE_PATH = "/policy/api/v1/infra"
GLOBAL_BASE_PATH = "/global-manager/api/v1/global-infra"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        message = body.get("error_message") or body.get("message")
        details = [
            d.get("error_message", "") for d in body.get("related_errors", []) if isinstance(d, dict)
        ]
        if message:
            return "; ".join([message] + [d for d in details if d])
    return response.text


def raise_for_status(response: httpx.Response, target: str) -> None:
    """Map an unsuccessful response to a GatewaySyncError."""
    if response.is_success:
        return

    status = response.status_code
    message = _error_message(response)
    if status == 404:
        raise NotFoundError(f"{target} not found: {message}")
    if status in (409, 412):
        raise ConflictError(f"Revision conflict on {target}: {message}", status_code=status)
    if status in (400, 422):
        raise ValidationError(f"{target} rejected: {message}", status_code=status)
    raise TransportError(f"{target} failed with HTTP {status}: {message}", status_code=status)


def _json(response: httpx.Response, target: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise DecodeError(f"{target} returned a body that is not JSON: {e}") from e


class PolicyClient:
    """Talks to an NSX-T (or NSX-T Global Manager) policy endpoint.

    Parameters
    ----------
    settings : ManagerSettings
        Connection settings, usually from :meth:`ManagerSettings.from_env`.
    transport : httpx.BaseTransport | None
        Optional transport override (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: ManagerSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.base_path = GLOBAL_BASE_PATH if settings.global_manager else LOCAL_BASE_PATH
        self._client = httpx.Client(
            base_url=settings.base_url,
            auth=(settings.username, settings.password),
            verify=not settings.allow_unverified_ssl,
            timeout=settings.timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def __enter__(self) -> PolicyClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # -- transport -------------------------------------------------------------

    def _request(self, method: str, url: str, target: str, **kwargs: Any) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out talking to {self.settings.host} for {target}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Could not reach {self.settings.host} for {target}: {e}") from e

        raise_for_status(response, target)
        return response

    # -- PolicyStore -----------------------------------------------------------

    def fetch_policy(self, domain: str, policy_id: str) -> PolicyResource:
        url = f"{self.base_path}/domains/{domain}/gateway-policies/{policy_id}"
        response = self._request("GET", url, f"Gateway Policy {policy_id}")
        return policy_from_dict(_json(response, f"Gateway Policy {policy_id}"))

    def fetch_gateway(self, gateway_id: str) -> GatewayInfo:
        url = f"{self.base_path}/tier-0s/{gateway_id}"
        response = self._request("GET", url, f"Tier-0 Gateway {gateway_id}")
        return gateway_from_dict(_json(response, f"Tier-0 Gateway {gateway_id}"))

    def submit_tree(self, tree: RootNode) -> None:
        payload = tree_to_dict(tree)
        target = f"Gateway Policy {tree.domain_node.policy_id}"
        self._request(
            "PATCH",
            self.base_path,
            target,
            params={"enforce_revision_check": "true"},
            json=payload,
        )
        logger.info("Submitted patch tree for %s (%d rule nodes)", target, len(tree.rule_nodes))
