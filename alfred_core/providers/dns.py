# alfred_core/providers/dns.py
"""Cloudflare DNS client - manages A records for VM subdomains."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from alfred_core.core.errors import ConfigurationError
from alfred_core.core.validation import is_valid_ipv4

logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = {"name", "content", "ttl", "proxied", "comment"}


@dataclass
class DnsRecord:
    """A record as returned by the DNS provider."""
    id: str
    name: str
    type: str
    content: str
    ttl: int
    proxied: bool
    created: Optional[str] = None


@dataclass
class DnsResult:
    """Uniform DNS operation result. Never raised, always returned."""
    success: bool
    record: Optional[DnsRecord] = None
    records: List[DnsRecord] = field(default_factory=list)
    deleted_record_id: Optional[str] = None
    available: Optional[bool] = None
    error: Optional[str] = None


class CloudflareApiError(Exception):
    """Provider rejected the call. Internal to this module."""
    pass


class CloudflareDnsClient:
    """Client for the Cloudflare DNS records API of a single zone."""

    def __init__(
        self,
        api_token: str,
        zone_name: str,
        api_base: str = "https://api.cloudflare.com/client/v4",
        zone_id: Optional[str] = None,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize client.

        Args:
            api_token: Cloudflare API token with DNS edit permission
            zone_name: Zone that holds VM records (e.g., "alfredos.site")
            api_base: Cloudflare API base URL
            zone_id: Known zone ID; looked up by name and cached if omitted
            timeout: Request timeout in seconds
            session: HTTP session (injected in tests)
        """
        if not api_token:
            raise ConfigurationError("CLOUDFLARE_API_TOKEN environment variable is not set")

        self.base_url = api_base.rstrip('/')
        self.zone_name = zone_name
        self.timeout = timeout
        self._api_token = api_token
        self._zone_id = zone_id
        self._session = session or requests.Session()

    # ============================================
    # PUBLIC OPERATIONS
    # ============================================

    def create_record(
        self,
        subdomain: str,
        ip: str,
        ttl: int = 300,
        proxied: bool = False,
        comment: str = "Created by Alfred provisioning",
    ) -> DnsResult:
        """
        Create an A record for a subdomain.

        Args:
            subdomain: Label without the zone (e.g., "cozy-peanut")
            ip: IPv4 address for the record
            ttl: Record TTL; short so provisioning propagates fast
            proxied: Route through Cloudflare (off: VMs terminate their own TLS)
            comment: Record comment

        Returns:
            DnsResult with the created record
        """
        if not subdomain:
            return DnsResult(success=False, error="Subdomain is required")

        if not is_valid_ipv4(ip):
            return DnsResult(success=False, error="Valid IPv4 address is required")

        payload = {
            "type": "A",
            "name": self._full_name(subdomain),
            "content": ip,
            "ttl": ttl,
            "proxied": proxied,
            "comment": comment,
        }

        try:
            zone_id = self._get_zone_id()
            data = self._request("POST", f"/zones/{zone_id}/dns_records", json=payload)
            record = self._to_record(data.get("result"))

            logger.info(f"[dns] ✅ Created A record {record.name} -> {record.content}")

            return DnsResult(success=True, record=record)

        except (CloudflareApiError, requests.exceptions.RequestException) as e:
            logger.error(f"[dns] Failed to create record for {subdomain}: {e}")
            return DnsResult(success=False, error=str(e))

    def delete_record(self, record_id: str) -> DnsResult:
        """Delete a DNS record by its provider ID."""
        if not record_id:
            return DnsResult(success=False, error="Record ID is required")

        try:
            zone_id = self._get_zone_id()
            self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")

            logger.info(f"[dns] Deleted record {record_id}")

            return DnsResult(success=True, deleted_record_id=record_id)

        except (CloudflareApiError, requests.exceptions.RequestException) as e:
            logger.error(f"[dns] Failed to delete record {record_id}: {e}")
            return DnsResult(success=False, error=str(e))

    def get_record(self, subdomain: str) -> DnsResult:
        """
        Look up the A record for a subdomain.

        Returns:
            DnsResult with record=None when no record exists
        """
        if not subdomain:
            return DnsResult(success=False, error="Subdomain is required")

        try:
            zone_id = self._get_zone_id()
            data = self._request(
                "GET",
                f"/zones/{zone_id}/dns_records",
                params={"type": "A", "name": self._full_name(subdomain)},
            )

            results = self._results(data)
            if not results:
                return DnsResult(success=True, record=None)

            return DnsResult(success=True, record=self._to_record(results[0]))

        except (CloudflareApiError, requests.exceptions.RequestException) as e:
            logger.error(f"[dns] Failed to get record for {subdomain}: {e}")
            return DnsResult(success=False, error=str(e))

    def update_record(self, record_id: str, updates: Dict[str, Any]) -> DnsResult:
        """
        Patch an existing record.

        Args:
            record_id: Provider record ID
            updates: Subset of name, content, ttl, proxied, comment
        """
        if not record_id:
            return DnsResult(success=False, error="Record ID is required")

        if not updates:
            return DnsResult(success=False, error="No updates provided")

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            return DnsResult(
                success=False,
                error=f"Unsupported update field(s): {', '.join(sorted(unknown))}",
            )

        payload = dict(updates)

        if "content" in payload and not is_valid_ipv4(payload["content"]):
            return DnsResult(success=False, error="Valid IPv4 address is required")

        if "name" in payload:
            payload["name"] = self._full_name(payload["name"])

        try:
            zone_id = self._get_zone_id()
            data = self._request(
                "PATCH",
                f"/zones/{zone_id}/dns_records/{record_id}",
                json=payload,
            )
            return DnsResult(success=True, record=self._to_record(data.get("result")))

        except (CloudflareApiError, requests.exceptions.RequestException) as e:
            logger.error(f"[dns] Failed to update record {record_id}: {e}")
            return DnsResult(success=False, error=str(e))

    def list_records(self, filters: Optional[Dict[str, Any]] = None) -> DnsResult:
        """
        List records in the zone (A records unless filters say otherwise).

        Args:
            filters: Provider query filters, e.g. {"name": "cozy-peanut", "content": "1.2.3.4"}
        """
        params = {"type": "A", "per_page": 100}

        for key, value in (filters or {}).items():
            if key == "name":
                value = self._full_name(value)
            params[key] = value

        try:
            zone_id = self._get_zone_id()
            data = self._request("GET", f"/zones/{zone_id}/dns_records", params=params)

            records = [self._to_record(r) for r in self._results(data)]

            return DnsResult(success=True, records=records)

        except (CloudflareApiError, requests.exceptions.RequestException) as e:
            logger.error(f"[dns] Failed to list records: {e}")
            return DnsResult(success=False, error=str(e))

    def is_available(self, subdomain: str) -> DnsResult:
        """
        Check whether a subdomain has no A record.

        A provider error is reported as success=False, available=False:
        an unknown answer never reads as free.
        """
        lookup = self.get_record(subdomain)

        if not lookup.success:
            return DnsResult(success=False, available=False, error=lookup.error)

        return DnsResult(
            success=True,
            record=lookup.record,
            available=lookup.record is None,
        )

    # ============================================
    # HELPERS
    # ============================================

    def _full_name(self, subdomain: str) -> str:
        if subdomain.endswith(f".{self.zone_name}"):
            return subdomain
        return f"{subdomain}.{self.zone_name}"

    def _get_zone_id(self) -> str:
        """Zone ID for zone_name, cached after the first lookup."""
        if self._zone_id:
            return self._zone_id

        data = self._request("GET", "/zones", params={"name": self.zone_name})

        results = self._results(data)
        if not results:
            raise CloudflareApiError(f"Zone not found: {self.zone_name}")

        zone_id = results[0].get("id") if isinstance(results[0], dict) else None
        if not zone_id:
            raise CloudflareApiError(f"Zone lookup for {self.zone_name} returned no id")

        self._zone_id = zone_id
        return self._zone_id

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request.

        Raises:
            CloudflareApiError: provider reported failure or sent no JSON
            requests.exceptions.RequestException: transport failure
        """
        response = self._session.request(
            method,
            f"{self.base_url}{endpoint}",
            headers={
                "Authorization": f"Bearer {self._api_token}",
                "Content-Type": "application/json",
            },
            params=params,
            json=json,
            timeout=self.timeout,
        )

        try:
            data = response.json()
        except ValueError:
            raise CloudflareApiError(
                f"Cloudflare API error ({response.status_code}): non-JSON response"
            )

        if not isinstance(data, dict):
            raise CloudflareApiError(
                f"Cloudflare API error ({response.status_code}): unexpected response"
            )

        if not data.get("success"):
            errors = data.get("errors") or []
            message = ", ".join(
                e.get("message", "") if isinstance(e, dict) else str(e) for e in errors
            ) or "Unknown error"
            raise CloudflareApiError(f"Cloudflare API error: {message}")

        return data

    @staticmethod
    def _results(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """The list under "result"; anything else is a provider error."""
        results = data.get("result") or []
        if not isinstance(results, list):
            raise CloudflareApiError("Cloudflare API returned a non-list result")
        return results

    @staticmethod
    def _to_record(data: Dict[str, Any]) -> DnsRecord:
        if not isinstance(data, dict) or any(data.get(k) is None for k in ("id", "name", "content")):
            raise CloudflareApiError("Cloudflare API returned an incomplete DNS record")

        return DnsRecord(
            id=data["id"],
            name=data["name"],
            type=data.get("type", "A"),
            content=data["content"],
            ttl=data.get("ttl", 1),
            proxied=data.get("proxied", False),
            created=data.get("created_on"),
        )
