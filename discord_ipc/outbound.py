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
Buffers outbound frames whilst the client is disconnected.

.. currentmodule:: discord_ipc.outbound
"""
import collections
import logging
from typing import Any, Awaitable, Callable, Iterator, Tuple

logger = logging.getLogger("discord_ipc.outbound")


class OutboundQueue(object):
    """
    A FIFO queue of (opcode, data) pairs waiting to be sent.
    """

    def __init__(self):
        self._items = collections.deque()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Tuple[int, Any]]:
        return iter(self._items)

    def push(self, opcode: int, data: Any):
        """
        Adds a message to the back of the queue.
        """
        self._items.append((opcode, data))

    def clear(self):
        self._items.clear()

    async def flush(self, writer: Callable[[int, Any], Awaitable[None]]) -> int:
        """
        Writes out every queued message, oldest first.

        If a write fails, that message and everything behind it stays queued and the error is
        raised.

        :param writer: The async function used to write a message, called with (opcode, data).
        :return: The number of messages written.
        """
        written = 0
        while self._items:
            opcode, data = self._items[0]
            await writer(opcode, data)
            self._items.popleft()
            written += 1

        if written:
            logger.debug("Flushed %d queued message(s)", written)

        return written
