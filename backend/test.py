"""Manual smoke run against a live relay (start it with `videosync-relay` first)."""
import asyncio

import httpx

from videosync.client.relay_client import RelayClient

BASE_URL = "http://127.0.0.1:8080"
WS_URL = "ws://127.0.0.1:8080"
ROOM_ID = "smoke-room"


async def run_test():
    # --- Part 1: Check the relay is up ---
    print("\n▶️ 1. Checking relay status...")
    try:
        response = httpx.get(f"{BASE_URL}/status")
        response.raise_for_status()
        print(f"✅ Relay running, stats: {response.json()['stats']}\n")
    except httpx.HTTPError as e:
        print(f"❌ ERROR: Could not connect to the relay at {BASE_URL}. Is it running?")
        print(e)
        return

    # --- Part 2: Two viewers join the same room ---
    print(f"▶️ 2. Joining two clients to room '{ROOM_ID}'...")
    alice = RelayClient(WS_URL, ROOM_ID, client_id="alice", ignore_echoes=True)
    bob = RelayClient(WS_URL, ROOM_ID, client_id="bob", ignore_echoes=True)
    received: asyncio.Queue = asyncio.Queue()
    for kind in ("user_joined", "play", "seek", "chat_message"):
        alice.on(kind, received.put_nowait)

    await alice.connect()
    await bob.connect()
    print("✅ Both clients connected.\n")

    # --- Part 3: Bob drives playback ---
    print("▶️ 3. Bob sends play / seek / chat...")
    await bob.send({"type": "play", "data": {"currentTime": 0.0}})
    await bob.send({"type": "seek", "data": {"currentTime": 42.0}})
    await bob.send({"type": "chat_message", "message": "hello from bob"})
    try:
        for _ in range(4):
            message = await asyncio.wait_for(received.get(), timeout=5.0)
            print(f"   - alice got {message['type']} from {message.get('clientId')}")
        print("✅ Relay mirrored everything.\n")
    except asyncio.TimeoutError:
        print("❌ ERROR: Timed out waiting for relayed messages.")

    # --- Part 4: Room listing ---
    print("▶️ 4. Current rooms:")
    print(httpx.get(f"{BASE_URL}/rooms").json())

    await bob.disconnect()
    await alice.disconnect()
    print("🎉 Test Finished!")


if __name__ == "__main__":
    asyncio.run(run_test())
