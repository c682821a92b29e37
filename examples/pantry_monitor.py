#!/usr/bin/env python3
"""Find racks, list their stock and follow one of them live.

Walks through the SDK end to end:
1. Connect to the IntelliRack backend
2. Print every registered rack with its stock level
3. Scan the local network for racks not yet registered
4. Follow weight changes on the first rack until Ctrl+C

Usage:
    export INTELLIRACK_API_URL="http://192.168.1.20:5000/api"
    export INTELLIRACK_TOKEN="$(intellirack login --email me@example.com --token-only)"
    python pantry_monitor.py
"""

import asyncio
import os
import sys

import intellirack


def main():
    if not os.environ.get("INTELLIRACK_TOKEN"):
        print("Set INTELLIRACK_TOKEN environment variable first.")
        sys.exit(1)

    client = intellirack.IntelliRackClient()

    # --- Step 1: Who are we? ---
    user = client.current_user()
    if user is None:
        print("Token rejected, log in again.")
        sys.exit(1)
    print(f"Connected to {client.server_url} as {user.get('email')}\n")

    # --- Step 2: Registered racks ---
    devices = client.devices.my()
    counts = intellirack.count_online(devices)
    print(f"{len(devices)} racks ({counts['online']} online):")
    for device in devices:
        status = intellirack.weight_status(device.get("lastWeight"), device.get("weightThresholds"))
        print(f"  {device.get('rackId')}: {device.get('ingredient') or '-'} "
              f"{device.get('lastWeight', '?')} g [{status}]")

    # --- Step 3: Anything new on the network? ---
    print("\nScanning for unregistered racks...")
    scanner = client.discovery()
    found = asyncio.run(scanner.discover(on_progress=lambda msg: print(f"  {msg}")))
    new = [d for d in found if not d.is_registered]
    for device in new:
        print(f"  new: {device.display_name} at {device.ip_address} via {device.discovered_via}")
    if not new:
        print("  nothing new")

    if not devices:
        return

    # --- Step 4: Follow the first rack ---
    rack_id = devices[0].get("rackId") or devices[0].get("_id")
    tracker = intellirack.DeviceStateTracker(rack_id, devices[0])
    rt = client.realtime()
    tracker.attach(rt)
    rt.on("update", lambda data: print(f"  {rack_id}: {tracker.state['weight']} g "
                                       f"({tracker.state['status']})"))

    print(f"\nFollowing {rack_id} (Ctrl+C to stop)...")
    rt.connect()
    try:
        rt.wait()
    except KeyboardInterrupt:
        pass
    finally:
        rt.disconnect()
        client.close()


if __name__ == "__main__":
    main()
