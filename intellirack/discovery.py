"""Local-network discovery of IntelliRack devices.

Racks answer ``GET http://<host>/api/discovery`` with a small JSON document.
Nothing here speaks a discovery protocol: the scanner tries a prioritized
list of strategies (ask the backend, guess ``*.local`` hostnames, sweep the
LAN, ask the backend to broadcast) and reports every rack the moment it
answers.  A probe that does not answer within its timeout is treated as
absent.

Usage::

    from intellirack.discovery import DeviceDiscovery

    scanner = DeviceDiscovery(network=client.network)
    devices = asyncio.run(scanner.discover(on_device_found=print))
"""

from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Iterable,
    List,
    Optional,
    Set,
)

import httpx

from .api_client import IntelliRackClientError
from .resources import NetworkAPI

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/api/discovery"

# Hostnames racks are commonly flashed with; exact device names first.
HOSTNAME_PATTERNS = [
    "intellirack_rack_002.local",
    "intellirack_rack_001.local",
    "intellirack_device.local",
    "intellirack_001.local",
    "intellirack_002.local",
    "intellirack_003.local",
    "intellirack_01.local",
    "intellirack_02.local",
    "intellirack_03.local",
]

FALLBACK_RANGES = ["192.168.0", "192.168.1"]

# DHCP pools on home routers usually hand out addresses from .100 upwards.
COMMON_HOSTS = list(range(100, 121))

MIN_PROBE_TIMEOUT = 0.8
MAX_PROBE_TIMEOUT = 2.0
MAX_BATCH_SIZE = 50

DEFAULT_NAME_PREFIX = "IntelliRack"
DEFAULT_LOCATION = "Discovered via Mobile"
DEFAULT_FIRMWARE = "v2.0"

DeviceCallback = Callable[["DiscoveredDevice"], None]
ProgressCallback = Callable[[str], None]


class DiscoveryError(RuntimeError):
    """Raised for an unusable scanner configuration."""


@dataclass
class DiscoveredDevice:
    """A rack that answered one of the discovery strategies."""

    rack_id: str
    ip_address: Optional[str]
    discovered_via: str
    priority: int
    name: Optional[str] = None
    firmware_version: Optional[str] = None
    location: Optional[str] = None
    mac_address: Optional[str] = None
    is_registered: bool = False
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def display_name(self) -> str:
        return self.name or f"{DEFAULT_NAME_PREFIX} {self.rack_id}"

    def registration_payload(self) -> dict[str, Any]:
        """Body for the ``registerDevice`` socket event."""
        return {
            "rackId": self.rack_id,
            "name": self.display_name,
            "location": self.location or DEFAULT_LOCATION,
            "firmwareVersion": self.firmware_version or DEFAULT_FIRMWARE,
            "ipAddress": self.ip_address,
            "macAddress": self.mac_address or "Unknown",
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "rackId": self.rack_id,
            "name": self.display_name,
            "ipAddress": self.ip_address,
            "firmwareVersion": self.firmware_version,
            "location": self.location,
            "macAddress": self.mac_address,
            "discoveredVia": self.discovered_via,
            "priority": self.priority,
            "isRegistered": self.is_registered,
        }


@dataclass
class DiscoveryStrategy:
    name: str
    priority: int
    run: Callable[[httpx.AsyncClient], AsyncIterator[dict[str, Any]]]


def payload_rack_id(payload: dict[str, Any]) -> Optional[str]:
    rid = payload.get("deviceId") or payload.get("rackId")
    return str(rid) if rid else None


def is_intellirack_device(payload: Any) -> bool:
    """Heuristic check that a discovery response came from a rack."""
    if not isinstance(payload, dict):
        return False
    if not payload_rack_id(payload):
        return False
    if "intellirack" in str(payload.get("type") or "").lower():
        return True
    if "intellirack" in str(payload.get("name") or "").lower():
        return True
    if "v" in str(payload.get("firmwareVersion") or ""):
        return True
    # Answered the discovery path with an identifier: close enough.
    return any(
        payload.get(key) is not None
        for key in ("deviceId", "rackId", "type", "firmwareVersion")
    )


def sort_devices(devices: Iterable[DiscoveredDevice]) -> List[DiscoveredDevice]:
    """New devices first, then by strategy priority."""
    return sorted(devices, key=lambda d: (d.is_registered, d.priority))


def candidate_hosts(full_sweep: bool = False) -> List[int]:
    hosts = list(COMMON_HOSTS)
    if full_sweep:
        hosts.extend(h for h in range(1, 255) if h not in COMMON_HOSTS)
    return hosts


def local_base_ip() -> Optional[str]:
    """The ``a.b.c`` prefix of this machine's LAN address, if it has one.

    Connecting a UDP socket sends nothing; it only makes the kernel pick the
    outbound interface.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            local_ip = s.getsockname()[0]
    except OSError as exc:
        logger.debug("Could not determine local address: %s", exc)
        return None
    parts = local_ip.split(".")
    if len(parts) != 4 or local_ip.startswith("127."):
        return None
    return ".".join(parts[:3])


def _batches(items: List[Any], size: int) -> Iterable[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class DeviceDiscovery:
    """Multi-strategy rack scanner.

    Args:
        network: Backend endpoints for the server-assisted, network-info and
            broadcast strategies.  Without it only local probing runs.
        probe_timeout: Per-probe timeout for the IP sweep, clamped to
            0.8-2.0 seconds.
        hostname_timeout: Per-probe timeout for ``*.local`` guesses, clamped
            like *probe_timeout*.
        batch_size: Concurrent probes per sweep batch, clamped to 1-50.
        batch_delay: Pause between sweep batches so the LAN is not flooded.
        full_sweep: Probe all of ``.1``-``.254`` instead of only ``.100``-``.120``.
        exhaustive: Keep running lower-priority strategies after the
            top-priority one has found devices.
        known_rack_ids: Rack IDs already registered to the user.
        server_assisted: Ask the backend for the devices it knows about.
            Needs a signed-in *network*; off when there is no token.
        base_ips: Explicit ``a.b.c`` ranges to sweep, skipping detection.
    """

    def __init__(
        self,
        network: Optional[NetworkAPI] = None,
        *,
        probe_timeout: float = 1.5,
        hostname_timeout: float = 2.0,
        batch_size: int = 25,
        batch_delay: float = 0.1,
        full_sweep: bool = False,
        exhaustive: bool = False,
        server_assisted: bool = True,
        known_rack_ids: Optional[Iterable[str]] = None,
        base_ips: Optional[List[str]] = None,
        hostnames: Optional[List[str]] = None,
        broadcast_timeout_ms: int = 5000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if probe_timeout <= 0 or hostname_timeout <= 0:
            raise DiscoveryError("probe timeouts must be positive")
        if batch_size < 1:
            raise DiscoveryError("batch_size must be at least 1")
        if batch_delay < 0:
            raise DiscoveryError("batch_delay cannot be negative")

        self.network = network
        self.probe_timeout = min(max(probe_timeout, MIN_PROBE_TIMEOUT), MAX_PROBE_TIMEOUT)
        self.hostname_timeout = min(max(hostname_timeout, MIN_PROBE_TIMEOUT), MAX_PROBE_TIMEOUT)
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)
        self.batch_delay = batch_delay
        self.full_sweep = full_sweep
        self.exhaustive = exhaustive
        self.server_assisted = server_assisted
        self.known_rack_ids: Set[str] = set(known_rack_ids or ())
        self.base_ips = base_ips
        self.hostnames = hostnames if hostnames is not None else list(HOSTNAME_PATTERNS)
        self.broadcast_timeout_ms = broadcast_timeout_ms
        self._transport = transport

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    @property
    def strategies(self) -> List[DiscoveryStrategy]:
        out = []
        if self.network is not None and self.server_assisted:
            out.append(DiscoveryStrategy("Server-Assisted Scan", 1, self._server_scan))
        out.append(DiscoveryStrategy("mDNS", 2, self._hostname_scan))
        out.append(DiscoveryStrategy("Smart Network Scan", 3, self._range_scan))
        if self.network is not None:
            out.append(DiscoveryStrategy("Broadcast Discovery", 4, self._broadcast))
        return out

    def stats(self) -> dict[str, Any]:
        strategies = self.strategies
        return {
            "methods": len(strategies),
            "timeout": self.probe_timeout,
            "priorityOrder": [s.name for s in strategies],
        }

    async def probe(
        self, client: httpx.AsyncClient, host: str, timeout: float
    ) -> Optional[dict[str, Any]]:
        """GET the discovery document from *host*; ``None`` if it does not answer."""
        url = f"http://{host}{DISCOVERY_PATH}"
        try:
            res = await client.get(
                url, timeout=timeout, headers={"Accept": "application/json"}
            )
        except httpx.TimeoutException:
            logger.debug("Timeout (%.1fs) connecting to %s", timeout, host)
            return None
        except httpx.HTTPError as exc:
            logger.debug("Connection failed to %s: %s", host, exc)
            return None
        if not res.is_success:
            return None
        try:
            data = res.json()
        except ValueError:
            logger.debug("Non-JSON discovery response from %s", host)
            return None
        return data if isinstance(data, dict) else None

    async def _server_scan(self, client: httpx.AsyncClient) -> AsyncIterator[dict[str, Any]]:
        assert self.network is not None
        for payload in await asyncio.to_thread(self.network.discovery_scan):
            if is_intellirack_device(payload):
                yield payload

    async def _hostname_scan(self, client: httpx.AsyncClient) -> AsyncIterator[dict[str, Any]]:
        for hostname in self.hostnames:
            payload = await self.probe(client, hostname, self.hostname_timeout)
            if payload is not None and is_intellirack_device(payload):
                logger.info("mDNS device found: %s", hostname)
                yield {**payload, "ipAddress": hostname}
                # One answering hostname is enough; the sweep covers the rest.
                return

    async def _resolve_ranges(self) -> List[str]:
        if self.base_ips:
            return list(self.base_ips)
        if self.network is not None:
            base = await asyncio.to_thread(self.network.base_ip)
            if base:
                return [base]
        base = local_base_ip()
        if base:
            return [base]
        return list(FALLBACK_RANGES)

    async def _range_scan(self, client: httpx.AsyncClient) -> AsyncIterator[dict[str, Any]]:
        hosts = candidate_hosts(self.full_sweep)
        for base in await self._resolve_ranges():
            addresses = [f"{base}.{h}" for h in hosts]
            batches = list(_batches(addresses, self.batch_size))
            logger.info("Scanning %s.0/24 (%d hosts, %d batches)", base, len(addresses), len(batches))
            for index, batch in enumerate(batches):
                if index:
                    await asyncio.sleep(self.batch_delay)
                tasks = [
                    asyncio.ensure_future(self._probe_address(client, ip)) for ip in batch
                ]
                try:
                    for fut in asyncio.as_completed(tasks):
                        payload = await fut
                        if payload is not None:
                            yield payload
                finally:
                    for task in tasks:
                        task.cancel()

    async def _probe_address(
        self, client: httpx.AsyncClient, ip: str
    ) -> Optional[dict[str, Any]]:
        payload = await self.probe(client, ip, self.probe_timeout)
        if payload is None or not is_intellirack_device(payload):
            return None
        return {**payload, "ipAddress": ip}

    async def _broadcast(self, client: httpx.AsyncClient) -> AsyncIterator[dict[str, Any]]:
        assert self.network is not None
        devices = await asyncio.to_thread(
            self.network.broadcast_discovery, self.broadcast_timeout_ms
        )
        for payload in devices:
            if is_intellirack_device(payload):
                yield payload

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def _make_device(self, payload: dict[str, Any], strategy: DiscoveryStrategy) -> DiscoveredDevice:
        rack_id = payload_rack_id(payload)
        assert rack_id is not None
        return DiscoveredDevice(
            rack_id=rack_id,
            ip_address=payload.get("ipAddress") or payload.get("ip"),
            discovered_via=strategy.name,
            priority=strategy.priority,
            name=payload.get("name"),
            firmware_version=payload.get("firmwareVersion"),
            location=payload.get("location"),
            mac_address=payload.get("macAddress"),
            is_registered=bool(payload.get("isRegistered")) or rack_id in self.known_rack_ids,
            raw=payload,
        )

    async def discover(
        self,
        on_device_found: Optional[DeviceCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[DiscoveredDevice]:
        """Run every strategy in priority order and return the unique racks found.

        *on_device_found* fires once per rack as soon as it answers; the
        first strategy to report a rack keeps the attribution.  A strategy
        that fails is logged and skipped.
        """

        def progress(message: str) -> None:
            logger.debug(message)
            if on_progress is not None:
                on_progress(message)

        found: dict[str, DiscoveredDevice] = {}
        progress("Initializing discovery...")

        async with httpx.AsyncClient(transport=self._transport) as client:
            for strategy in self.strategies:
                progress(f"Trying {strategy.name} discovery...")
                hits = 0
                try:
                    async for payload in strategy.run(client):
                        hits += 1
                        rack_id = payload_rack_id(payload)
                        if rack_id is None or rack_id in found:
                            continue
                        device = self._make_device(payload, strategy)
                        found[rack_id] = device
                        if on_device_found is not None:
                            on_device_found(device)
                        progress(f"Found {len(found)} devices! Scanning continues...")
                except (IntelliRackClientError, httpx.HTTPError, OSError) as exc:
                    logger.warning("%s failed: %s", strategy.name, exc)
                    continue

                logger.info("%s found %d devices", strategy.name, hits)
                if hits and strategy.priority == 1 and not self.exhaustive:
                    logger.info("High priority method successful, stopping discovery")
                    break

        progress(f"Discovery complete! Found {len(found)} devices total.")
        return sort_devices(found.values())


def discover_devices(
    network: Optional[NetworkAPI] = None,
    on_device_found: Optional[DeviceCallback] = None,
    on_progress: Optional[ProgressCallback] = None,
    **kwargs: Any,
) -> List[DiscoveredDevice]:
    """Blocking wrapper around :meth:`DeviceDiscovery.discover`."""
    scanner = DeviceDiscovery(network, **kwargs)
    return asyncio.run(scanner.discover(on_device_found, on_progress))
