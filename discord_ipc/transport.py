# This file is part of discord-ipc.
#
# discord-ipc is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# discord-ipc is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with discord-ipc.  If not, see <http://www.gnu.org/licenses/>.

"""
The byte-stream connection to the local Discord client.

.. currentmodule:: discord_ipc.transport
"""
import logging
import os
import platform
from typing import Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

import trio

from discord_ipc.exc import ConnectionFailure, NotConnected

logger = logging.getLogger("discord_ipc.transport")

#: The number of IPC slots Discord may listen on.
IPC_SLOTS = 10

#: Environment variables checked, in order, for the IPC socket directory.
RUNTIME_DIR_VARIABLES = ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP")

Opener = Callable[[str], Awaitable[trio.abc.Stream]]


def get_ipc_paths(system: str = None, environ: Mapping[str, str] = None) -> List[str]:
    """
    Gets the IPC paths Discord might be listening on, in the order they should be tried.

    :param system: The platform name, as returned by :func:`platform.system`.
    :param environ: The environment to look up the runtime directory in.
    """
    if system is None:
        system = platform.system()

    if environ is None:
        environ = os.environ

    if system == "Windows":
        return [r"\\.\pipe\discord-ipc-{}".format(slot) for slot in range(IPC_SLOTS)]

    base_dir = next((environ[var] for var in RUNTIME_DIR_VARIABLES if environ.get(var)), "/tmp")
    base_dir = base_dir.rstrip("/") or "/"
    return [os.path.join(base_dir, "discord-ipc-{}".format(slot)) for slot in range(IPC_SLOTS)]


class NamedPipeStream(trio.abc.Stream):
    """
    A :class:`trio.abc.Stream` over a Windows named pipe. The pipe is opened as a regular file
    and all IO happens in worker threads.
    """

    def __init__(self, handle):
        self._handle = handle
        self._closed = False

    @classmethod
    async def open(cls, path: str) -> 'NamedPipeStream':
        handle = await trio.to_thread.run_sync(open, path, "r+b", 0)
        return cls(handle)

    async def send_all(self, data: bytes):
        if self._closed:
            raise trio.ClosedResourceError("Pipe is closed")

        def _write():
            self._handle.write(data)
            self._handle.flush()

        try:
            await trio.to_thread.run_sync(_write)
        except OSError as e:
            raise trio.BrokenResourceError("Pipe write failed") from e

    async def wait_send_all_might_not_block(self):
        await trio.lowlevel.checkpoint()

    async def receive_some(self, max_bytes: int = None) -> bytes:
        if self._closed:
            raise trio.ClosedResourceError("Pipe is closed")

        if max_bytes is None:
            max_bytes = 65536

        try:
            return await trio.to_thread.run_sync(
                self._handle.read, max_bytes, abandon_on_cancel=True
            )
        except OSError as e:
            if self._closed:
                return b""

            raise trio.BrokenResourceError("Pipe read failed") from e

    async def aclose(self):
        if self._closed:
            return

        self._closed = True
        self._handle.close()
        await trio.lowlevel.checkpoint()


async def open_ipc_stream(path: str) -> trio.abc.Stream:
    """
    Opens a stream to a single IPC path.
    """
    if path.startswith("\\\\"):
        return await NamedPipeStream.open(path)

    return await trio.open_unix_socket(path)


async def connect_first(candidates: Sequence[str], opener: Opener,
                        timeout: float) -> Tuple[str, trio.abc.Stream]:
    """
    Tries each candidate path in order, returning the first one that connects.

    :param candidates: The paths to try.
    :param opener: The async function used to open a path.
    :param timeout: The maximum time to spend on a single path, in seconds.
    :return: A tuple of (path, stream).
    :raises ConnectionFailure: If no candidate could be connected to.
    """
    errors = []

    for path in candidates:
        try:
            with trio.fail_after(timeout):
                stream = await opener(path)
        except trio.TooSlowError:
            error = TimeoutError("Connection timeout")
        except OSError as e:
            error = e
        else:
            return path, stream

        logger.debug("Failed to connect to %s: %s", path, error)
        errors.append((path, error))

    raise ConnectionFailure(errors)


class IPCTransport(object):
    """
    Owns the single byte-stream connection to Discord.
    """

    def __init__(self, *, paths: Sequence[str] = None, opener: Opener = None,
                 connect_timeout: float = 2.0):
        """
        :param paths: The paths to try. Defaults to :func:`.get_ipc_paths`.
        :param opener: The async function used to open a path.
        :param connect_timeout: The maximum time to spend connecting to a single path.
        """
        self._paths = paths
        self._opener = opener or open_ipc_stream
        self.connect_timeout = connect_timeout

        #: The path that is currently connected to, if any.
        self.path = None  # type: Optional[str]

        self._stream = None  # type: Optional[trio.abc.Stream]
        self._send_lock = trio.Lock()

    @property
    def connected(self) -> bool:
        return self._stream is not None

    def resolve_candidate_addresses(self) -> List[str]:
        if self._paths is not None:
            return list(self._paths)

        return get_ipc_paths()

    async def connect(self) -> str:
        """
        Connects to the first available IPC path.

        :return: The path connected to.
        """
        if self._stream is not None:
            return self.path

        path, stream = await connect_first(
            self.resolve_candidate_addresses(), self._opener, self.connect_timeout
        )
        if self._stream is not None:
            # another connect() won the race
            logger.debug("Already connected to %s, closing the connection to %s", self.path, path)
            await trio.aclose_forcefully(stream)
            return self.path

        self.path = path
        self._stream = stream
        logger.info("Connected to Discord via %s", path)
        return path

    async def send(self, data: bytes):
        """
        Writes raw bytes to the connection.
        """
        if self._stream is None:
            raise NotConnected()

        async with self._send_lock:
            await self._stream.send_all(data)

    async def receive_some(self) -> bytes:
        """
        Reads some bytes off of the connection. An empty result means the connection was closed.
        """
        stream = self._stream
        if stream is None:
            return b""

        return await stream.receive_some()

    async def close(self):
        """
        Closes the connection. Does nothing if already closed.
        """
        stream, self._stream = self._stream, None
        self.path = None

        if stream is None:
            return

        await trio.aclose_forcefully(stream)
