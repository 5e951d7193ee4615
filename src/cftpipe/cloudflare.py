"""Thin synchronous client for the Cloudflare v4 API.

Only the calls cftpipe needs: zone lookup, DNS CNAME records and named
tunnel create/delete. Every failure raises; callers do not retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from cftpipe.constants import CLOUDFLARE_API_BASE, REQUEST_TIMEOUT
from cftpipe.exceptions import AuthError, ProviderError

logger = logging.getLogger(__name__)

_ZONES_PER_PAGE = 50


@dataclass(frozen=True)
class Zone:
    name: str
    id: str
    account_id: str = ""


@dataclass(frozen=True)
class CreatedTunnel:
    id: str
    token: str
    name: str


class CloudflareClient:
    """Bearer-token authenticated wrapper around ``requests.Session``."""

    def __init__(
        self,
        api_token: str,
        base_url: str = CLOUDFLARE_API_BASE,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            }
        )

    # -- internal helpers ---------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Send a request and return the decoded response envelope.

        Raises ``AuthError`` on 401/403 and ``ProviderError`` on any other
        failure, including ``"success": false`` envelopes.
        """
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method, url, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> HTTP %s", method, path, response.status_code)

        if response.status_code in (401, 403):
            raise AuthError(
                "Cloudflare rejected the API token "
                f"(HTTP {response.status_code}); check CF_API_TOKEN and its permissions",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{method} {path} returned non-JSON response "
                f"(HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e

        if not response.ok or not isinstance(payload, dict) or not payload.get("success"):
            raise ProviderError(
                f"{method} {path} failed (HTTP {response.status_code}): "
                f"{_format_errors(payload)}",
                status_code=response.status_code,
            )
        return payload

    def _result(self, method: str, path: str, **kwargs: Any) -> Any:
        return self._request(method, path, **kwargs).get("result")

    # -- zones --------------------------------------------------------------

    def list_active_zones(self) -> list[Zone]:
        """Return every active zone the token can see, sorted by name."""
        zones: list[Zone] = []
        page = 1
        while True:
            payload = self._request(
                "GET",
                "/zones",
                params={"status": "active", "page": page, "per_page": _ZONES_PER_PAGE},
            )
            for item in payload.get("result") or []:
                if not item.get("name") or not item.get("id"):
                    continue
                zones.append(
                    Zone(
                        name=item["name"],
                        id=item["id"],
                        account_id=(item.get("account") or {}).get("id", ""),
                    )
                )
            info = payload.get("result_info") or {}
            if page >= int(info.get("total_pages") or 1):
                break
            page += 1
        return sorted(zones, key=lambda z: z.name)

    def zone_id_for(self, name: str, zones: list[Zone] | None = None) -> str | None:
        """Return the id of the zone called *name*, or ``None``."""
        if zones is None:
            zones = self.list_active_zones()
        for zone in zones:
            if zone.name == name:
                return zone.id
        return None

    def account_id_from_zone(self, zone_id: str) -> str:
        result = self._result("GET", f"/zones/{zone_id}") or {}
        account_id = (result.get("account") or {}).get("id")
        if not account_id:
            raise ProviderError(f"Zone {zone_id} response has no account id")
        return account_id

    # -- tunnels ------------------------------------------------------------

    def create_tunnel(self, account_id: str, name: str) -> CreatedTunnel:
        """Create a remotely-managed tunnel and return its id and run token."""
        result = self._result(
            "POST",
            f"/accounts/{account_id}/cfd_tunnel",
            json={"name": name, "config_src": "cloudflare"},
        ) or {}
        tunnel_id = result.get("id")
        token = result.get("token")
        if not tunnel_id or not token:
            raise ProviderError(f"Tunnel '{name}' created without id or token")
        logger.info("Created tunnel %s (%s)", name, tunnel_id)
        return CreatedTunnel(id=tunnel_id, token=token, name=name)

    def delete_tunnel(self, account_id: str, tunnel_id: str) -> None:
        self._request("DELETE", f"/accounts/{account_id}/cfd_tunnel/{tunnel_id}")
        logger.info("Deleted tunnel %s", tunnel_id)

    # -- DNS ----------------------------------------------------------------

    def find_cname_record(self, zone_id: str, hostname: str) -> str | None:
        """Return the id of the CNAME record for *hostname*, if any.

        If Cloudflare returns duplicates the first one wins.
        """
        records = self._result(
            "GET",
            f"/zones/{zone_id}/dns_records",
            params={"type": "CNAME", "name": hostname},
        ) or []
        for record in records:
            if record.get("id"):
                return record["id"]
        return None

    def create_cname(
        self, zone_id: str, hostname: str, target: str, proxied: bool = True
    ) -> str:
        """Create a CNAME *hostname* -> *target* and return the record id."""
        result = self._result(
            "POST",
            f"/zones/{zone_id}/dns_records",
            json={
                "type": "CNAME",
                "name": hostname,
                "content": target,
                "proxied": proxied,
            },
        ) or {}
        logger.info("Created CNAME %s -> %s", hostname, target)
        return result.get("id", "")

    def delete_dns_record(self, zone_id: str, record_id: str) -> None:
        self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")
        logger.info("Deleted DNS record %s", record_id)


def _format_errors(payload: Any) -> str:
    if not isinstance(payload, dict):
        return "unexpected response body"
    errors = payload.get("errors") or []
    messages = [
        f"{e.get('code')}: {e.get('message')}" if isinstance(e, dict) else str(e)
        for e in errors
    ]
    return "; ".join(messages) or "unknown error"
