"""Pytest configuration and shared fixtures."""
import math

import pytest
import trio
import trio.testing

from discord_ipc.client import IPCClient
from discord_ipc.packet import FrameDecoder, HEADER, IPCOpcode, IPCPacket, encode
from discord_ipc.transport import IPCTransport

IPC_PATH = "/run/user/1000/discord-ipc-0"


class FakeDiscord(object):
    """
    Plays the part of the Discord desktop client on the other end of an in-memory stream.
    """

    def __init__(self, nursery: trio.Nursery):
        self.nursery = nursery

        #: Server ends of every connection opened so far.
        self.streams = []

        #: Refuse every connection with FileNotFoundError.
        self.refuse = False

        #: Commands that never get a response.
        self.silent = set()

        #: Commands answered with an ERROR response, mapped to the error message.
        self.errors = {}

        #: Dispatch READY after every handshake, like Discord does.
        self.ready_on_handshake = True

        self._send, self._receive = trio.open_memory_channel(math.inf)

    async def opener(self, path: str) -> trio.abc.Stream:
        if self.refuse:
            raise FileNotFoundError(2, "No such file or directory", path)

        client_end, server_end = trio.testing.memory_stream_pair()
        index = len(self.streams)
        self.streams.append(server_end)
        self.nursery.start_soon(self._serve, index, server_end)
        return client_end

    async def _serve(self, index: int, stream: trio.abc.Stream):
        decoder = FrameDecoder()
        try:
            while True:
                chunk = await stream.receive_some()
                if not chunk:
                    return

                for frame in decoder.feed(chunk):
                    packet = IPCPacket.from_frame(frame)
                    await self._send.send((index, packet))
                    await self._respond(stream, packet)
        except (trio.ClosedResourceError, trio.BrokenResourceError):
            return

    async def _respond(self, stream: trio.abc.Stream, packet: IPCPacket):
        if packet.opcode == IPCOpcode.HANDSHAKE:
            if self.ready_on_handshake:
                await stream.send_all(encode(IPCOpcode.FRAME, {
                    "cmd": "DISPATCH", "evt": "READY", "data": {"v": 1}
                }))
            return

        if packet.opcode != IPCOpcode.FRAME or packet.nonce is None:
            return

        if packet.cmd in self.silent:
            return

        if packet.cmd in self.errors:
            response = {
                "cmd": packet.cmd, "nonce": packet.nonce, "evt": "ERROR",
                "data": {"code": 4000, "message": self.errors[packet.cmd]}
            }
        else:
            response = {
                "cmd": packet.cmd, "nonce": packet.nonce, "evt": None,
                "data": {"echo": packet.payload.get("args")}
            }

        await stream.send_all(encode(IPCOpcode.FRAME, response))

    async def push(self, data, opcode: int = IPCOpcode.FRAME, index: int = -1):
        await self.streams[index].send_all(encode(opcode, data))

    async def push_raw(self, payload: bytes, opcode: int = IPCOpcode.FRAME, index: int = -1):
        await self.streams[index].send_all(HEADER.pack(opcode, len(payload)) + payload)

    async def next_packet(self):
        """
        :return: The next (connection index, packet) received from the client.
        """
        with trio.fail_after(60):
            return await self._receive.receive()

    @property
    def unread_packets(self) -> int:
        """
        :return: The number of packets received that haven't been taken by next_packet().
        """
        return self._receive.statistics().current_buffer_used

    async def drop(self, index: int = -1):
        await self.streams[index].aclose()


class EventRecorder(object):
    """
    Collects events fired by a client, in the order the listeners ran.
    """

    def __init__(self, client: IPCClient, *event_types):
        self._send, self._receive = trio.open_memory_channel(math.inf)
        for event_type in event_types:
            client.events.add_listener(event_type, self._record)

    async def _record(self, event):
        await self._send.send(event)

    async def next(self):
        with trio.fail_after(60):
            return await self._receive.receive()

    @property
    def unread(self) -> int:
        return self._receive.statistics().current_buffer_used


@pytest.fixture
async def discord(nursery):
    return FakeDiscord(nursery)


@pytest.fixture
async def make_client(nursery, discord):
    def _make(client_id="1234", opener=None, **kwargs):
        kwargs.setdefault("reconnect_delay", 1.0)
        transport = IPCTransport(paths=[IPC_PATH], opener=opener or discord.opener)
        client = IPCClient(client_id, transport=transport, **kwargs)
        client.start(nursery)
        return client

    return _make


@pytest.fixture
async def client(make_client):
    return make_client()


@pytest.fixture
def recorder():
    return EventRecorder
