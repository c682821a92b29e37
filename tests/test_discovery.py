"""Tests for intellirack.discovery: multi-strategy rack scanning."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from intellirack.api_client import IntelliRackClientError
from intellirack.discovery import (
    FALLBACK_RANGES,
    DeviceDiscovery,
    DiscoveredDevice,
    DiscoveryError,
    candidate_hosts,
    is_intellirack_device,
    payload_rack_id,
    sort_devices,
)


def _lan(answers, seen=None):
    """MockTransport where only hosts in *answers* respond.

    Values are either a dict (served as JSON) or an ``httpx.Response``.
    Every other host times out.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request.url.host)
        answer = answers.get(request.url.host)
        if answer is None:
            raise httpx.ConnectTimeout("timed out", request=request)
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json=answer)

    return httpx.MockTransport(handler)


class _SlowLan(httpx.AsyncBaseTransport):
    """Async LAN fake that takes *delay* per probe and records timing.

    Hosts in *answers* reply at once with JSON; every other host times out
    after *delay*.
    """

    def __init__(self, answers, delay=0.05):
        self.answers = answers
        self.delay = delay
        self.inflight = 0
        self.peak_inflight = 0
        self.completed = []
        self.done_before_start = []
        self.starts = []
        self.finishes = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        loop = asyncio.get_running_loop()
        host = request.url.host
        self.starts.append(loop.time())
        self.done_before_start.append(len(self.completed))
        self.inflight += 1
        self.peak_inflight = max(self.peak_inflight, self.inflight)
        try:
            if host not in self.answers:
                await asyncio.sleep(self.delay)
        finally:
            self.inflight -= 1
            self.completed.append(host)
            self.finishes.append(loop.time())
        if host not in self.answers:
            raise httpx.ConnectTimeout("timed out", request=request)
        return httpx.Response(200, json=self.answers[host])


def _network(scan=None, base_ip=None, broadcast=None):
    network = MagicMock()
    network.discovery_scan.return_value = scan or []
    network.base_ip.return_value = base_ip
    network.broadcast_discovery.return_value = broadcast or []
    return network


def _run(scanner, **kwargs):
    return asyncio.run(scanner.discover(**kwargs))


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


class TestPayloadHelpers:
    def test_device_id_preferred_over_rack_id(self):
        assert payload_rack_id({"deviceId": "d1", "rackId": "r1"}) == "d1"
        assert payload_rack_id({"rackId": "r1"}) == "r1"
        assert payload_rack_id({"name": "x"}) is None

    def test_recognizes_rack_by_type(self):
        assert is_intellirack_device({"deviceId": "rack_001", "type": "IntelliRack-Shelf"})

    def test_recognizes_rack_by_firmware(self):
        assert is_intellirack_device({"rackId": "rack_001", "firmwareVersion": "v2.1"})

    def test_rejects_payload_without_identifier(self):
        assert not is_intellirack_device({"type": "intellirack"})
        assert not is_intellirack_device(["rack_001"])
        assert not is_intellirack_device(None)

    def test_candidate_hosts(self):
        assert candidate_hosts() == list(range(100, 121))
        full = candidate_hosts(full_sweep=True)
        assert len(full) == 254
        assert full[:21] == list(range(100, 121))
        assert len(set(full)) == 254

    def test_sort_puts_new_devices_first(self):
        registered = DiscoveredDevice("r1", "10.0.0.1", "mDNS", 2, is_registered=True)
        late = DiscoveredDevice("r2", "10.0.0.2", "Smart Network Scan", 3)
        early = DiscoveredDevice("r3", None, "Server-Assisted Scan", 1)
        assert [d.rack_id for d in sort_devices([registered, late, early])] == ["r3", "r2", "r1"]


class TestDiscoveredDevice:
    def test_registration_payload_defaults(self):
        device = DiscoveredDevice("rack_007", "10.0.0.7", "mDNS", 2)
        assert device.registration_payload() == {
            "rackId": "rack_007",
            "name": "IntelliRack rack_007",
            "location": "Discovered via Mobile",
            "firmwareVersion": "v2.0",
            "ipAddress": "10.0.0.7",
            "macAddress": "Unknown",
        }

    def test_registration_payload_keeps_reported_fields(self):
        device = DiscoveredDevice(
            "rack_007",
            "10.0.0.7",
            "mDNS",
            2,
            name="Pantry",
            firmware_version="v3.1",
            location="Kitchen",
            mac_address="AA:BB",
        )
        payload = device.registration_payload()
        assert payload["name"] == "Pantry"
        assert payload["firmwareVersion"] == "v3.1"
        assert payload["location"] == "Kitchen"
        assert payload["macAddress"] == "AA:BB"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfiguration:
    def test_probe_timeout_is_clamped(self):
        assert DeviceDiscovery(probe_timeout=0.1).probe_timeout == 0.8
        assert DeviceDiscovery(probe_timeout=9).probe_timeout == 2.0
        assert DeviceDiscovery(probe_timeout=1.2).probe_timeout == 1.2

    def test_hostname_timeout_is_clamped(self):
        assert DeviceDiscovery(hostname_timeout=0.2).hostname_timeout == 0.8
        assert DeviceDiscovery(hostname_timeout=30).hostname_timeout == 2.0
        assert DeviceDiscovery().hostname_timeout == 2.0

    def test_batch_size_capped(self):
        assert DeviceDiscovery(batch_size=500).batch_size == 50

    @pytest.mark.parametrize(
        "kwargs",
        [{"probe_timeout": 0}, {"hostname_timeout": -1}, {"batch_size": 0}, {"batch_delay": -0.5}],
    )
    def test_invalid_settings_rejected(self, kwargs):
        with pytest.raises(DiscoveryError):
            DeviceDiscovery(**kwargs)

    def test_stats_without_backend(self):
        stats = DeviceDiscovery().stats()
        assert stats["methods"] == 2
        assert stats["priorityOrder"] == ["mDNS", "Smart Network Scan"]

    def test_server_assisted_can_be_left_out(self):
        stats = DeviceDiscovery(_network(), server_assisted=False).stats()
        assert stats["priorityOrder"] == ["mDNS", "Smart Network Scan", "Broadcast Discovery"]

    def test_stats_with_backend(self):
        stats = DeviceDiscovery(_network(), probe_timeout=1.0).stats()
        assert stats == {
            "methods": 4,
            "timeout": 1.0,
            "priorityOrder": [
                "Server-Assisted Scan",
                "mDNS",
                "Smart Network Scan",
                "Broadcast Discovery",
            ],
        }


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------


class TestProbe:
    async def _probe(self, answers, host):
        async with httpx.AsyncClient(transport=_lan(answers)) as client:
            return await DeviceDiscovery().probe(client, host, 1.0)

    @pytest.mark.asyncio
    async def test_returns_json_document(self):
        result = await self._probe({"10.0.0.5": {"deviceId": "r"}}, "10.0.0.5")
        assert result == {"deviceId": "r"}

    @pytest.mark.asyncio
    async def test_timeout_is_absent(self):
        assert await self._probe({}, "10.0.0.5") is None

    @pytest.mark.asyncio
    async def test_error_status_is_absent(self):
        answers = {"10.0.0.5": httpx.Response(500, json={"deviceId": "r"})}
        assert await self._probe(answers, "10.0.0.5") is None

    @pytest.mark.asyncio
    async def test_non_json_is_absent(self):
        answers = {"10.0.0.5": httpx.Response(200, text="<html>")}
        assert await self._probe(answers, "10.0.0.5") is None

    @pytest.mark.asyncio
    async def test_hostname_scan_rewrites_address(self):
        scanner = DeviceDiscovery(hostnames=["rack-a.local"])
        answers = {"rack-a.local": {"rackId": "rack_001", "type": "IntelliRack"}}
        async with httpx.AsyncClient(transport=_lan(answers)) as client:
            hits = [p async for p in scanner._hostname_scan(client)]
        assert hits == [{"rackId": "rack_001", "type": "IntelliRack", "ipAddress": "rack-a.local"}]


# ---------------------------------------------------------------------------
# discover()
# ---------------------------------------------------------------------------


class TestDiscover:
    def test_local_strategies_deduplicate_and_report_progress(self):
        answers = {
            "rack-a.local": {"deviceId": "rack_001", "type": "IntelliRack"},
            "10.0.0.105": {"deviceId": "rack_002", "name": "IntelliRack Pantry"},
            "10.0.0.110": {"deviceId": "rack_001", "type": "IntelliRack"},
            "10.0.0.111": {"hello": "world"},
        }
        scanner = DeviceDiscovery(
            hostnames=["rack-a.local", "rack-b.local"],
            base_ips=["10.0.0"],
            batch_delay=0,
            transport=_lan(answers),
        )
        found, progress = [], []

        devices = _run(scanner, on_device_found=found.append, on_progress=progress.append)

        by_id = {d.rack_id: d for d in devices}
        assert set(by_id) == {"rack_001", "rack_002"}
        assert by_id["rack_001"].discovered_via == "mDNS"
        assert by_id["rack_001"].ip_address == "rack-a.local"
        assert by_id["rack_002"].discovered_via == "Smart Network Scan"
        assert by_id["rack_002"].ip_address == "10.0.0.105"
        assert [d.rack_id for d in found] == ["rack_001", "rack_002"]
        assert progress[0] == "Initializing discovery..."
        assert "Trying mDNS discovery..." in progress
        assert "Found 2 devices! Scanning continues..." in progress
        assert progress[-1] == "Discovery complete! Found 2 devices total."

    def test_hostname_scan_stops_at_first_answer(self):
        seen = []
        answers = {
            "rack-a.local": {"deviceId": "rack_001", "type": "IntelliRack"},
            "rack-b.local": {"deviceId": "rack_002", "type": "IntelliRack"},
        }
        scanner = DeviceDiscovery(
            hostnames=["rack-a.local", "rack-b.local"],
            base_ips=["10.9.9"],
            batch_delay=0,
            transport=_lan(answers, seen),
        )
        devices = _run(scanner)
        assert [d.rack_id for d in devices] == ["rack_001"]
        assert "rack-b.local" not in seen

    def test_sweep_probes_every_common_host(self):
        seen = []
        scanner = DeviceDiscovery(
            hostnames=[],
            base_ips=["10.0.0", "10.0.1"],
            batch_size=8,
            batch_delay=0,
            transport=_lan({}, seen),
        )
        assert _run(scanner) == []
        assert len(seen) == 2 * 21
        assert "10.0.1.120" in seen

    def test_server_assisted_hit_stops_discovery(self):
        seen = []
        network = _network(scan=[{"rackId": "rack_009", "type": "intellirack", "ip": "10.0.0.9"}])
        scanner = DeviceDiscovery(
            network, hostnames=["rack-a.local"], base_ips=["10.0.0"], transport=_lan({}, seen)
        )

        devices = _run(scanner)

        assert len(devices) == 1
        assert devices[0].discovered_via == "Server-Assisted Scan"
        assert devices[0].priority == 1
        assert devices[0].ip_address == "10.0.0.9"
        assert seen == []
        network.broadcast_discovery.assert_not_called()

    def test_exhaustive_runs_every_strategy(self):
        network = _network(
            scan=[{"rackId": "rack_009", "type": "intellirack"}],
            broadcast=[{"rackId": "rack_010", "firmwareVersion": "v2.0"}],
        )
        scanner = DeviceDiscovery(
            network,
            hostnames=[],
            base_ips=["10.0.0"],
            batch_delay=0,
            exhaustive=True,
            transport=_lan({}),
        )

        devices = _run(scanner)

        assert {d.rack_id: d.discovered_via for d in devices} == {
            "rack_009": "Server-Assisted Scan",
            "rack_010": "Broadcast Discovery",
        }
        network.broadcast_discovery.assert_called_once_with(5000)

    def test_failed_strategy_is_skipped(self):
        network = _network(base_ip="10.1.1")
        network.discovery_scan.side_effect = IntelliRackClientError("Not authenticated")
        scanner = DeviceDiscovery(
            network,
            hostnames=[],
            batch_delay=0,
            transport=_lan({"10.1.1.100": {"deviceId": "rack_003", "type": "IntelliRack"}}),
        )

        devices = _run(scanner)

        assert [d.rack_id for d in devices] == ["rack_003"]
        assert devices[0].discovered_via == "Smart Network Scan"
        network.base_ip.assert_called_once()

    def test_fallback_ranges_when_nothing_known(self, monkeypatch):
        monkeypatch.setattr("intellirack.discovery.local_base_ip", lambda: None)
        seen = []
        scanner = DeviceDiscovery(hostnames=[], batch_delay=0, transport=_lan({}, seen))
        _run(scanner)
        assert {host.rsplit(".", 1)[0] for host in seen} == set(FALLBACK_RANGES)

    def test_registered_racks_sorted_last(self):
        answers = {
            "10.0.0.100": {"deviceId": "rack_001", "type": "IntelliRack"},
            "10.0.0.101": {"deviceId": "rack_002", "type": "IntelliRack"},
        }
        scanner = DeviceDiscovery(
            hostnames=[],
            base_ips=["10.0.0"],
            batch_delay=0,
            known_rack_ids=["rack_001"],
            transport=_lan(answers),
        )
        devices = _run(scanner)
        assert [(d.rack_id, d.is_registered) for d in devices] == [
            ("rack_002", False),
            ("rack_001", True),
        ]

    def test_device_reported_before_sweep_finishes(self):
        lan = _SlowLan({"10.0.0.100": {"deviceId": "rack_001", "type": "IntelliRack"}})
        completed_at_callback = []
        scanner = DeviceDiscovery(
            hostnames=[], base_ips=["10.0.0"], batch_size=5, batch_delay=0, transport=lan
        )

        devices = _run(
            scanner, on_device_found=lambda d: completed_at_callback.append(len(lan.completed))
        )

        assert [d.rack_id for d in devices] == ["rack_001"]
        assert len(lan.completed) == 21
        assert completed_at_callback == [1]

    def test_sweep_concurrency_bounded_by_batch_size(self):
        lan = _SlowLan({}, delay=0.02)
        scanner = DeviceDiscovery(
            hostnames=[], base_ips=["10.0.0"], batch_size=5, batch_delay=0.05, transport=lan
        )

        assert _run(scanner) == []

        assert lan.peak_inflight == 5
        # Each batch starts only once the previous one has fully finished.
        assert sorted(set(lan.done_before_start)) == [0, 5, 10, 15, 20]

    def test_batch_delay_separates_batches(self):
        lan = _SlowLan({}, delay=0.01)
        scanner = DeviceDiscovery(
            hostnames=[], base_ips=["10.0.0"], batch_size=7, batch_delay=0.05, transport=lan
        )
        _run(scanner)

        for batch in (1, 2):
            first_start = lan.starts[batch * 7]
            previous_finish = max(lan.finishes[: batch * 7])
            assert first_start - previous_finish >= 0.04
