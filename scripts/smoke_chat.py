# scripts/smoke_chat.py
# Run against a live server: python scripts/smoke_chat.py
from __future__ import annotations
import asyncio, json, os

import websockets

URI = os.environ.get("MENTOR_CHAT_WS", "ws://127.0.0.1:8000/ws")
ROOM = os.environ.get("MENTOR_CHAT_ROOM", "smoke-room")


async def recv_until(ws, frame_type: str, timeout: float = 3) -> dict:
    while True:
        frame = json.loads(await asyncio.wait_for(ws.recv(), timeout=timeout))
        if frame.get("type") == frame_type:
            return frame


async def user_client(user_id: str, name: str):
    ws = await websockets.connect(URI)
    await ws.send(json.dumps({"type": "authenticate", "data": {"userId": user_id}}))
    await ws.send(json.dumps({"type": "joinChat", "data": ROOM}))

    # Ping doubles as a barrier: once acked, the join has been handled
    await ws.send(json.dumps({"type": "pingServer", "ack_id": f"{name}-ready"}))
    ack = await recv_until(ws, "ack")
    assert "serverTime" in ack["data"], f"{name} got bad ping ack: {ack}"
    print(f"[{name}] authenticate + joinChat + ping OK")

    return ws


async def run_smoke_test():
    print("Starting smoke test against", URI)

    alice = await user_client(os.environ.get("ALICE_ID", "alice"), "alice")
    bob = await user_client(os.environ.get("BOB_ID", "bob"), "bob")

    await alice.send(json.dumps({
        "type": "sendMessage",
        "data": {"chatId": ROOM, "content": "hello-bob"},
        "ack_id": 1,
    }))
    ack = await recv_until(alice, "ack")
    assert ack["data"]["success"], ack
    print("[alice] -> sendMessage acked")

    got = await recv_until(bob, "receiveMessage")
    assert got["data"]["content"] == "hello-bob", got
    print("[bob] <- receiveMessage OK")

    # Burst past the per-second limit
    for i in range(6):
        await bob.send(json.dumps({"type": "sendMessage", "data": {"chatId": ROOM, "content": f"burst {i}"}}))
    err = await recv_until(bob, "error")
    assert err["data"]["code"] == "RATE_LIMIT", err
    print("[bob] rate limit OK")

    await bob.close()
    offline = await recv_until(alice, "userOffline")
    print(f"[alice] <- userOffline {offline['data']} OK")

    await alice.close()
    print("Smoke test PASSED")

if __name__ == "__main__":
    asyncio.run(run_smoke_test())
