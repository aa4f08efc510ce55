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
Matches command responses to the callers waiting on them.

.. currentmodule:: discord_ipc.correlator
"""
import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional

import trio

from discord_ipc.exc import CommandTimeout, RemoteError
from discord_ipc.packet import IPCOpcode, IPCPacket

logger = logging.getLogger("discord_ipc.correlator")

Sender = Callable[[int, dict], Awaitable[None]]


def get_nonce() -> str:
    """
    Gets a random nonce.
    """
    return str(uuid.uuid4())


class PendingRequest(object):
    """
    A command that has been sent and is waiting on its response.
    """

    __slots__ = "nonce", "cmd", "_event", "_result", "_error"

    def __init__(self, nonce: str, cmd: str):
        self.nonce = nonce
        self.cmd = cmd

        self._event = trio.Event()
        self._result = None  # type: Optional[IPCPacket]
        self._error = None  # type: Optional[BaseException]

    def __repr__(self) -> str:
        return "<PendingRequest cmd={} nonce={} done={}>".format(self.cmd, self.nonce, self.done)

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def resolve(self, packet: IPCPacket) -> bool:
        """
        Sets the result of this request. Does nothing if it already finished.
        """
        if self.done:
            return False

        self._result = packet
        self._event.set()
        return True

    def reject(self, error: BaseException) -> bool:
        """
        Fails this request. Does nothing if it already finished.
        """
        if self.done:
            return False

        self._error = error
        self._event.set()
        return True

    async def wait(self) -> IPCPacket:
        await self._event.wait()
        if self._error is not None:
            raise self._error

        return self._result


class RequestCorrelator(object):
    """
    Tracks every in-flight command by nonce.
    """

    def __init__(self, sender: Sender):
        """
        :param sender: The async function used to write a frame, called with (opcode, data).
        """
        self._sender = sender
        self._pending = {}  # type: Dict[str, PendingRequest]

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, nonce: str) -> bool:
        return nonce in self._pending

    async def send_command(self, cmd: str, args: dict = None,
                           timeout: float = 10.0) -> IPCPacket:
        """
        Sends a command and waits for its response.

        :param cmd: The command name, e.g. ``GET_USER``.
        :param args: The arguments for the command.
        :param timeout: How long to wait for a response, in seconds.
        :return: The response :class:`.IPCPacket`.
        :raises CommandTimeout: If no response arrives in time.
        :raises RemoteError: If Discord responds with an error.
        """
        nonce = get_nonce()
        while nonce in self._pending:
            nonce = get_nonce()

        request = PendingRequest(nonce, cmd)
        self._pending[nonce] = request

        try:
            with trio.move_on_after(timeout):
                await self._sender(IPCOpcode.FRAME, {
                    "cmd": cmd,
                    "nonce": nonce,
                    "args": args if args is not None else {}
                })
                return await request.wait()
        finally:
            self._pending.pop(nonce, None)

        request.reject(CommandTimeout(cmd, timeout))
        logger.debug("Command %s (%s) timed out after %ss", cmd, nonce, timeout)
        return await request.wait()

    def resolve(self, packet: IPCPacket) -> bool:
        """
        Hands an inbound packet to the request with the same nonce.

        :return: True if the packet was a response to a pending request, False otherwise.
        """
        nonce = packet.nonce
        if nonce is None:
            return False

        request = self._pending.pop(nonce, None)
        if request is None:
            return False

        if packet.event == "ERROR":
            data = packet.data if isinstance(packet.data, dict) else {}
            request.reject(RemoteError(data.get("message", "Unknown error"), data.get("code")))
        else:
            request.resolve(packet)

        return True

    def reject_all(self, error: BaseException):
        """
        Fails every pending request with the specified error.
        """
        pending, self._pending = self._pending, {}
        for request in pending.values():
            request.reject(error)
