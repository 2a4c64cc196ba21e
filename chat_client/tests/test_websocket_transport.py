import asyncio
import json

import pytest
import websockets

from chat_client.domain.exceptions import TransportError
from chat_client.transport.websocket_transport import WebSocketTransport


class RecordingListener:
    def __init__(self):
        self.events = []
        self.opened = asyncio.Event()
        self.finished = asyncio.Event()

    def on_open(self):
        self.events.append("open")
        self.opened.set()

    def on_message(self, raw):
        self.events.append(json.loads(raw))

    def on_error(self, error):
        self.events.append("error")

    def on_close(self):
        self.events.append("close")
        self.finished.set()


async def _answer_three_fragments(ws):
    raw = await ws.recv()
    query = json.loads(raw)["query"]
    for fragment in [f"echo:{query}", " there", "!"]:
        await ws.send(json.dumps({"answer": fragment}))
    await ws.close()


def test_transport_streams_frames_in_order():
    async def scenario():
        async with websockets.serve(_answer_three_fragments, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            listener = RecordingListener()
            handle = WebSocketTransport(ping_interval=None).connect(f"ws://127.0.0.1:{port}/chat", listener)
            await asyncio.wait_for(listener.opened.wait(), 5)
            handle.send(json.dumps({"query": "hi"}))
            await asyncio.wait_for(listener.finished.wait(), 5)
            return listener.events

    events = asyncio.run(scenario())
    assert events == [
        "open",
        {"answer": "echo:hi"},
        {"answer": " there"},
        {"answer": "!"},
        "close",
    ]


def test_transport_reports_refused_connection():
    async def scenario():
        async with websockets.serve(_answer_three_fragments, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
        listener = RecordingListener()
        WebSocketTransport(open_timeout=2.0).connect(f"ws://127.0.0.1:{port}/chat", listener)
        await asyncio.wait_for(listener.finished.wait(), 5)
        return listener.events

    assert asyncio.run(scenario()) == ["error", "close"]


def test_transport_close_is_silent():
    async def hold_open(ws):
        await ws.wait_closed()

    async def scenario():
        async with websockets.serve(hold_open, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            listener = RecordingListener()
            handle = WebSocketTransport(ping_interval=None).connect(f"ws://127.0.0.1:{port}/chat", listener)
            await asyncio.wait_for(listener.opened.wait(), 5)
            handle.close()
            handle.close()
            handle.send(json.dumps({"query": "ignored"}))
            await asyncio.sleep(0.4)
            return listener.events, handle.closed

    events, closed = asyncio.run(scenario())
    assert events == ["open"]
    assert closed


def test_transport_rejects_non_websocket_url():
    with pytest.raises(TransportError) as exc:
        WebSocketTransport().connect("http://localhost:8080/chat", RecordingListener())
    assert exc.value.code == "INVALID_URL"
