import pytest
import trio
import trio.testing

from discord_ipc.exc import ConnectionFailure, NotConnected
from discord_ipc.transport import IPCTransport, connect_first, get_ipc_paths


def test_windows_paths_use_the_pipe_namespace():
    paths = get_ipc_paths("Windows", {})

    assert len(paths) == 10
    assert paths[0] == r"\\.\pipe\discord-ipc-0"
    assert paths[9] == r"\\.\pipe\discord-ipc-9"


def test_unix_paths_prefer_xdg_runtime_dir():
    paths = get_ipc_paths("Linux", {"XDG_RUNTIME_DIR": "/run/user/1000", "TMPDIR": "/var/tmp"})

    assert paths == ["/run/user/1000/discord-ipc-{}".format(i) for i in range(10)]


@pytest.mark.parametrize("environ, base", [
    ({"TMPDIR": "/var/folders/xy/T/"}, "/var/folders/xy/T"),
    ({"TMP": "/tmp/a", "TEMP": "/tmp/b"}, "/tmp/a"),
    ({"TEMP": "/tmp/b"}, "/tmp/b"),
    ({"XDG_RUNTIME_DIR": ""}, "/tmp"),
    ({}, "/tmp"),
])
def test_unix_paths_fall_back_through_environment(environ, base):
    paths = get_ipc_paths("Darwin", environ)

    assert paths[0] == base + "/discord-ipc-0"


@pytest.mark.trio
async def test_connect_first_stops_at_first_success():
    tried = []
    client_end, _ = trio.testing.memory_stream_pair()

    async def opener(path):
        tried.append(path)
        if path != "b":
            raise ConnectionRefusedError(path)
        return client_end

    path, stream = await connect_first(["a", "b", "c"], opener, timeout=2)

    assert path == "b"
    assert stream is client_end
    assert tried == ["a", "b"]


@pytest.mark.trio
async def test_connect_first_aggregates_every_failure(autojump_clock):
    async def opener(path):
        if path == "slow":
            await trio.sleep_forever()
        raise FileNotFoundError(path)

    with pytest.raises(ConnectionFailure) as exc_info:
        await connect_first(["a", "slow", "c"], opener, timeout=2)

    errors = exc_info.value.errors
    assert [path for path, _ in errors] == ["a", "slow", "c"]
    assert isinstance(errors[0][1], FileNotFoundError)
    assert isinstance(errors[1][1], TimeoutError)
    assert "Discord desktop app is running" in exc_info.value.troubleshooting
    assert "Troubleshooting Steps" in str(exc_info.value)


@pytest.mark.trio
async def test_transport_send_requires_connection():
    transport = IPCTransport(paths=["a"])

    with pytest.raises(NotConnected):
        await transport.send(b"data")


@pytest.mark.trio
async def test_transport_round_trip_and_idempotent_close():
    client_end, server_end = trio.testing.memory_stream_pair()

    async def opener(path):
        return client_end

    transport = IPCTransport(paths=["/tmp/discord-ipc-0"], opener=opener)
    assert await transport.connect() == "/tmp/discord-ipc-0"
    assert transport.connected

    await transport.send(b"hello")
    assert await server_end.receive_some() == b"hello"

    await server_end.send_all(b"world")
    assert await transport.receive_some() == b"world"

    await transport.close()
    await transport.close()
    assert not transport.connected
    assert transport.path is None
    assert await transport.receive_some() == b""


@pytest.mark.trio
async def test_overlapping_connects_keep_one_stream(autojump_clock):
    opened = []

    async def opener(path):
        await trio.sleep(0.5)
        client_end, _ = trio.testing.memory_stream_pair()
        opened.append(client_end)
        return client_end

    transport = IPCTransport(paths=["/tmp/discord-ipc-0"], opener=opener)
    async with trio.open_nursery() as nursery:
        nursery.start_soon(transport.connect)
        nursery.start_soon(transport.connect)

    assert len(opened) == 2
    assert transport.connected

    closed = []
    for stream in opened:
        try:
            await stream.send_all(b"x")
        except trio.ClosedResourceError:
            closed.append(stream)

    assert len(closed) == 1
    assert transport._stream is not closed[0]
