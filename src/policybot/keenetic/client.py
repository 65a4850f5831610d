"""
Keenetic RCI Client.

Talks to the router's HTTP API: challenge-response authentication,
host listing and per-host policy assignment.
"""

import hashlib
from collections.abc import Iterable, Sequence
from typing import Any, Optional

import httpx
import structlog

from .models import DEFAULT_POLICY, Device

logger = structlog.get_logger(__name__)


class RouterError(Exception):
    """Base class for router failures."""


class RouterAuthError(RouterError):
    """Router session could not be established."""


def challenge_password(login: str, password: str, realm: str, challenge: str) -> str:
    """
    Compute the password hash expected by POST /auth.

    sha256(challenge + md5("login:realm:password")), both hex encoded.
    """
    md5 = hashlib.md5(f"{login}:{realm}:{password}".encode()).hexdigest()
    return hashlib.sha256(f"{challenge}{md5}".encode()).hexdigest()


def normalize_mac(mac: str) -> str:
    return mac.strip().lower()


class KeeneticClient:
    """Async client for the Keenetic RCI API."""

    def __init__(
        self,
        base_url: str,
        login: str,
        password: str,
        favorite_macs: Optional[Iterable[str]] = None,
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize KeeneticClient.

        Args:
            base_url: Router web interface URL (e.g. http://192.168.1.1)
            login: Router admin login
            password: Router admin password
            favorite_macs: MACs shown in the control panel, in display order.
                Empty or None shows every device the router reports.
            timeout: Per-request timeout in seconds
            http: Optional preconfigured client (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.login = login
        self._password = password
        self.favorite_macs = [normalize_mac(mac) for mac in favorite_macs or []]
        self._http = http or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def auth(self) -> None:
        """
        Establish a router session.

        Raises:
            RouterAuthError: If the router rejects the credentials or is unreachable
        """
        try:
            resp = await self._http.get("/auth")
            if resp.status_code == 200:
                logger.info("router_session_reused", base_url=self.base_url)
                return
            if resp.status_code != 401:
                raise RouterAuthError(f"Unexpected status {resp.status_code} from /auth")

            realm = resp.headers.get("X-NDM-Realm")
            challenge = resp.headers.get("X-NDM-Challenge")
            if not realm or not challenge:
                raise RouterAuthError("Router did not send an auth challenge")

            resp = await self._http.post(
                "/auth",
                json={
                    "login": self.login,
                    "password": challenge_password(self.login, self._password, realm, challenge),
                },
            )
        except httpx.HTTPError as e:
            logger.error(
                "router_auth_transport_error",
                base_url=self.base_url,
                error=str(e),
                error_type=type(e).__name__
            )
            raise RouterAuthError(f"Router unreachable: {e}") from e

        if resp.status_code != 200:
            logger.error("router_auth_rejected", base_url=self.base_url, status=resp.status_code)
            raise RouterAuthError(f"Router rejected credentials (status {resp.status_code})")

        logger.info("router_authenticated", base_url=self.base_url, login=self.login)

    async def get_devices(self) -> list[Device] | None:
        """
        List hosts known to the router with their assigned policy.

        Returns:
            Devices in router order, or None if the router could not be queried
        """
        try:
            hosts = await self._rci_get("show/ip/hotspot")
            registered = await self._rci_get("ip/hotspot/host")
        except httpx.HTTPError as e:
            logger.error(
                "router_device_list_failed",
                error=str(e),
                error_type=type(e).__name__
            )
            return None

        policies: dict[str, str] = {}
        for entry in _host_entries(registered):
            mac = entry.get("mac")
            policy = entry.get("policy")
            if mac and isinstance(policy, str) and policy:
                policies[normalize_mac(mac)] = policy

        devices = []
        seen = set()
        for entry in _host_entries(hosts):
            if not entry.get("mac"):
                continue
            mac = normalize_mac(entry["mac"])
            if mac in seen:
                continue
            seen.add(mac)
            policy = policies.get(mac) or entry.get("policy") or DEFAULT_POLICY
            devices.append(Device(
                mac=mac,
                name=entry.get("name") or entry.get("hostname") or mac,
                policy=policy if isinstance(policy, str) else DEFAULT_POLICY,
            ))

        logger.debug("router_devices_loaded", device_count=len(devices))
        return devices

    def get_fav_devices(self, devices: Sequence[Device]) -> dict[str, Device]:
        """
        Select the devices shown in the control panel.

        Args:
            devices: Devices as returned by get_devices()

        Returns:
            Ordered mapping mac -> Device
        """
        by_mac = {device.mac: device for device in devices}
        if not self.favorite_macs:
            return by_mac

        favorites = {}
        for mac in self.favorite_macs:
            if mac in by_mac:
                favorites[mac] = by_mac[mac]
            else:
                logger.debug("favorite_device_not_reported", mac=mac)
        return favorites

    async def set_policy_device(self, mac: str, policy: str) -> bool:
        """
        Assign a policy to a host.

        Args:
            mac: Host MAC address
            policy: Policy id, or DEFAULT_POLICY to remove the assignment

        Returns:
            True if the router accepted the change, False otherwise
        """
        payload: dict[str, Any] = {
            "mac": mac,
            "policy": {"no": True} if policy == DEFAULT_POLICY else policy,
        }
        try:
            resp = await self._http.post("/rci/ip/hotspot/host", json=payload)
            resp.raise_for_status()
            body = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "router_set_policy_failed",
                mac=mac,
                policy=policy,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

        errors = _rci_errors(body)
        if errors:
            logger.warning("router_set_policy_rejected", mac=mac, policy=policy, errors=errors)
            return False

        logger.info("router_policy_set", mac=mac, policy=policy)
        return True

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def _rci_get(self, path: str) -> Any:
        resp = await self._http.get(f"/rci/{path}")
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as e:
            raise httpx.DecodingError(f"Invalid JSON from /rci/{path}") from e


def _host_entries(data: Any) -> list[dict]:
    # RCI returns either a bare list or {"host": [...]}
    if isinstance(data, dict):
        data = data.get("host", [])
    if not isinstance(data, list):
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def _rci_errors(body: Any) -> list[str]:
    """Collect error messages from an RCI response body."""
    errors = []

    def _walk(node: Any):
        if isinstance(node, dict):
            status = node.get("status")
            if isinstance(status, list):
                for item in status:
                    if isinstance(item, dict) and item.get("status") == "error":
                        errors.append(str(item.get("message", "error")))
            for key, value in node.items():
                if key != "status":
                    _walk(value)
        elif isinstance(node, list):
            for value in node:
                _walk(value)

    _walk(body)
    return errors
