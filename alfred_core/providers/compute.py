# alfred_core/providers/compute.py
"""Hetzner Cloud client - creates and destroys user VMs."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from alfred_core.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


PROJECT_LABEL = "alfred"


@dataclass
class ServerInfo:
    """Compute instance as returned by the provider."""
    id: str
    name: str
    status: str
    public_ipv4: Optional[str] = None
    public_ipv6: Optional[str] = None
    server_type: Optional[str] = None
    datacenter: Optional[str] = None
    location: Optional[str] = None
    created: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class ServerAction:
    id: str
    status: str
    command: str


@dataclass
class ServerResult:
    """Uniform compute operation result. Never raised, always returned."""
    success: bool
    server: Optional[ServerInfo] = None
    servers: List[ServerInfo] = field(default_factory=list)
    action: Optional[ServerAction] = None
    status_code: Optional[int] = None
    error: Optional[str] = None


class HetznerApiError(Exception):
    """Provider rejected the call. Internal to this module."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HetznerComputeClient:
    """
    Client for the Hetzner Cloud servers API.

    Every server is labelled with its project, subdomain and creator so the
    fleet can be listed with a label selector instead of a separate database.
    No retries here; retry policy belongs to the orchestrator.
    """

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.hetzner.cloud/v1",
        location: str = "nbg1",
        server_type: str = "cx22",
        image: str = "ubuntu-24.04",
        project: str = PROJECT_LABEL,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ConfigurationError("HETZNER_API_KEY environment variable is not set")

        self.base_url = api_base.rstrip('/')
        self.location = location
        self.server_type = server_type
        self.image = image
        self.project = project
        self.timeout = timeout
        self._api_key = api_key
        self._session = session or requests.Session()

    # ============================================
    # SERVERS
    # ============================================

    def create_server(
        self,
        name: str,
        user_data: Optional[str] = None,
        location: Optional[str] = None,
        server_type: Optional[str] = None,
        image: Optional[str] = None,
        ssh_keys: Optional[List[str]] = None,
        labels: Optional[Dict[str, str]] = None,
        created_by: str = "alfred-core",
    ) -> ServerResult:
        """
        Create a server and start it immediately.

        Args:
            name: Server name, also the VM subdomain (e.g., "cozy-peanut")
            user_data: Cloud-init document run on first boot
            location: Datacenter location (default from client)
            server_type: Server type (default from client)
            image: OS image (default from client)
            ssh_keys: SSH key names or IDs
            labels: Extra labels; provenance labels are always added
            created_by: Creator label value

        Returns:
            ServerResult with server and the create action
        """
        if not name:
            return ServerResult(success=False, error="Server name is required")

        payload = {
            "name": name,
            "server_type": server_type or self.server_type,
            "image": image or self.image,
            "location": location or self.location,
            "start_after_create": True,
            "labels": {
                **(labels or {}),
                "managed_by": self.project,
                "subdomain": name,
                "created_by": created_by,
            },
        }

        if user_data:
            payload["user_data"] = user_data

        if ssh_keys:
            payload["ssh_keys"] = ssh_keys

        try:
            data, status_code = self._request("POST", "/servers", json=payload)
            server = self._to_server(self._field(data, "server"))

            logger.info(f"[compute] ✅ Created server {server.name} ({server.id}) at {server.public_ipv4}")

            return ServerResult(
                success=True,
                server=server,
                action=self._to_action(data.get("action")),
                status_code=status_code,
            )

        except HetznerApiError as e:
            logger.error(f"[compute] Failed to create server {name}: {e}")
            return ServerResult(success=False, status_code=e.status_code, error=str(e))
        except requests.exceptions.RequestException as e:
            logger.error(f"[compute] Failed to create server {name}: {e}")
            return ServerResult(success=False, error=str(e))

    def delete_server(self, server_id) -> ServerResult:
        """Destroy a server."""
        if not server_id:
            return ServerResult(success=False, error="Server ID is required")

        try:
            data, status_code = self._request("DELETE", f"/servers/{server_id}")

            logger.info(f"[compute] Deleted server {server_id}")

            return ServerResult(
                success=True,
                action=self._to_action((data or {}).get("action")),
                status_code=status_code,
            )

        except HetznerApiError as e:
            logger.error(f"[compute] Failed to delete server {server_id}: {e}")
            return ServerResult(success=False, status_code=e.status_code, error=str(e))
        except requests.exceptions.RequestException as e:
            logger.error(f"[compute] Failed to delete server {server_id}: {e}")
            return ServerResult(success=False, error=str(e))

    def get_server_status(self, server_id) -> ServerResult:
        """
        Get current server details.

        server.status is one of 'initializing', 'starting', 'running',
        'stopping', 'off', 'deleting', 'rebuilding', 'migrating', 'unknown'.
        """
        if not server_id:
            return ServerResult(success=False, error="Server ID is required")

        try:
            data, status_code = self._request("GET", f"/servers/{server_id}")
            return ServerResult(
                success=True,
                server=self._to_server(self._field(data, "server")),
                status_code=status_code,
            )

        except HetznerApiError as e:
            logger.error(f"[compute] Failed to get server {server_id}: {e}")
            return ServerResult(success=False, status_code=e.status_code, error=str(e))
        except requests.exceptions.RequestException as e:
            logger.error(f"[compute] Failed to get server {server_id}: {e}")
            return ServerResult(success=False, error=str(e))

    def list_servers(self, label_selector: Optional[str] = None) -> ServerResult:
        """
        List servers, optionally filtered (e.g., "managed_by=alfred").
        """
        params = {}
        if label_selector:
            params["label_selector"] = label_selector

        try:
            data, status_code = self._request("GET", "/servers", params=params or None)
            return ServerResult(
                success=True,
                servers=[self._to_server(s) for s in (data or {}).get("servers") or []],
                status_code=status_code,
            )

        except HetznerApiError as e:
            logger.error(f"[compute] Failed to list servers: {e}")
            return ServerResult(success=False, status_code=e.status_code, error=str(e))
        except requests.exceptions.RequestException as e:
            logger.error(f"[compute] Failed to list servers: {e}")
            return ServerResult(success=False, error=str(e))

    # ============================================
    # POWER ACTIONS
    # ============================================

    def power_on_server(self, server_id) -> ServerResult:
        return self._server_action(server_id, "poweron")

    def power_off_server(self, server_id) -> ServerResult:
        return self._server_action(server_id, "poweroff")

    def reboot_server(self, server_id) -> ServerResult:
        return self._server_action(server_id, "reboot")

    def _server_action(self, server_id, command: str) -> ServerResult:
        if not server_id:
            return ServerResult(success=False, error="Server ID is required")

        try:
            data, status_code = self._request("POST", f"/servers/{server_id}/actions/{command}")
            return ServerResult(
                success=True,
                action=self._to_action((data or {}).get("action")),
                status_code=status_code,
            )

        except HetznerApiError as e:
            logger.error(f"[compute] {command} failed for server {server_id}: {e}")
            return ServerResult(success=False, status_code=e.status_code, error=str(e))
        except requests.exceptions.RequestException as e:
            logger.error(f"[compute] {command} failed for server {server_id}: {e}")
            return ServerResult(success=False, error=str(e))

    # ============================================
    # HELPERS
    # ============================================

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ):
        """
        Make an authenticated request.

        Returns:
            (response JSON or None for empty bodies, HTTP status code)

        Raises:
            HetznerApiError: non-2xx answer, message taken from the provider
            requests.exceptions.RequestException: transport failure
        """
        response = self._session.request(
            method,
            f"{self.base_url}{endpoint}",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            params=params,
            json=json,
            timeout=self.timeout,
        )

        data = None
        if response.content:
            try:
                data = response.json()
            except ValueError:
                data = None

        if not response.ok:
            message = None
            if isinstance(data, dict):
                message = (data.get("error") or {}).get("message")
            raise HetznerApiError(
                message or f"Hetzner API error ({response.status_code})",
                status_code=response.status_code,
            )

        if data is not None and not isinstance(data, dict):
            raise HetznerApiError(
                f"Hetzner API returned an unexpected response ({response.status_code})",
                status_code=response.status_code,
            )

        return data, response.status_code

    @staticmethod
    def _field(data: Optional[Dict[str, Any]], key: str) -> Dict[str, Any]:
        """Required object in a 2xx body; a missing one is a provider error."""
        value = (data or {}).get(key)
        if not isinstance(value, dict):
            raise HetznerApiError(f"Hetzner API response is missing '{key}'")
        return value

    @staticmethod
    def _to_server(data: Dict[str, Any]) -> ServerInfo:
        if not isinstance(data, dict) or data.get("id") is None:
            raise HetznerApiError("Hetzner API returned a server without an id")

        public_net = data.get("public_net") or {}
        ipv4 = public_net.get("ipv4") or {}
        ipv6 = public_net.get("ipv6") or {}
        datacenter = data.get("datacenter") or {}

        return ServerInfo(
            id=str(data["id"]),
            name=data.get("name", ""),
            status=data.get("status", "unknown"),
            public_ipv4=ipv4.get("ip"),
            public_ipv6=ipv6.get("ip"),
            server_type=(data.get("server_type") or {}).get("name"),
            datacenter=datacenter.get("name"),
            location=(datacenter.get("location") or {}).get("name"),
            created=data.get("created"),
            labels=data.get("labels") or {},
        )

    @staticmethod
    def _to_action(data: Optional[Dict[str, Any]]) -> Optional[ServerAction]:
        if not isinstance(data, dict) or data.get("id") is None:
            return None
        return ServerAction(
            id=str(data["id"]),
            status=data.get("status", ""),
            command=data.get("command", ""),
        )
