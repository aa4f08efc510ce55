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
Represents a Discord IPC frame, and the codec used to put frames on the wire.

Every frame is an 8 byte header of two little-endian unsigned ints (opcode, length) followed
by ``length`` bytes of UTF-8 JSON.

.. currentmodule:: discord_ipc.packet
"""
import enum
import json
import struct
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from discord_ipc.exc import ProtocolDecodeError

HEADER = struct.Struct("<II")


class IPCOpcode(enum.IntEnum):
    """
    Represents an IPC opcode.
    """
    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2
    PING = 3
    PONG = 4


@dataclass(frozen=True)
class Frame:
    """
    A single undecoded frame off the wire.
    """

    #: The opcode for this frame. Unknown opcodes are left as plain ints.
    opcode: Union[IPCOpcode, int]

    #: The length of the payload, from the header.
    length: int

    #: The raw payload bytes.
    payload: bytes


def _pack_json(data: Any) -> bytes:
    """
    Packs JSON in a compact representation.
    """
    return json.dumps(data, separators=(',', ':'), ensure_ascii=False).encode("utf-8")


def encode(opcode: int, data: Any) -> bytes:
    """
    Encodes some data into a full frame.

    :param opcode: The opcode for the frame.
    :param data: The JSON-serializable data to put in the frame.
    """
    payload = _pack_json(data)
    # length is in bytes, not characters
    return HEADER.pack(int(opcode), len(payload)) + payload


def decode(buffer: bytes) -> Tuple[Optional[Frame], bytes]:
    """
    Decodes a single frame from the start of ``buffer``.

    :return: A tuple of (frame, remainder). If the buffer doesn't hold a complete frame yet,
        the frame is None and the remainder is the buffer, untouched.
    """
    if len(buffer) < HEADER.size:
        return None, buffer

    opcode, length = HEADER.unpack_from(buffer)
    end = HEADER.size + length
    if len(buffer) < end:
        return None, buffer

    try:
        opcode = IPCOpcode(opcode)
    except ValueError:
        pass

    return Frame(opcode, length, bytes(buffer[HEADER.size:end])), bytes(buffer[end:])


class FrameDecoder(object):
    """
    A streaming frame decoder. Feed it chunks as they come off the connection, and it hands
    back every frame that has been completed.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """
        :return: The number of buffered bytes that don't make up a complete frame yet.
        """
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[Frame]:
        """
        Adds a chunk of data to the buffer.

        :param chunk: The bytes received.
        :return: A list of every complete :class:`.Frame`, in order.
        """
        self._buffer.extend(chunk)
        frames = []

        while True:
            frame, remainder = decode(self._buffer)
            if frame is None:
                break

            frames.append(frame)
            self._buffer = bytearray(remainder)

        return frames

    def clear(self):
        """
        Throws away any partially received frame.
        """
        self._buffer.clear()


class IPCPacket(object):
    """
    Represents an IPC packet, i.e. a frame with its JSON payload decoded.
    """

    def __init__(self, opcode: Union[IPCOpcode, int], data: Any):
        """
        :param opcode: The :class:`.IPCOpcode` for this packet.
        :param data: The decoded JSON enclosed in this packet.
        """
        self.opcode = opcode
        self._json_data = data

    def __repr__(self) -> str:
        return "<IPCPacket opcode={!r} cmd={} evt={} nonce={}>".format(
            self.opcode, self.cmd, self.event, self.nonce
        )

    @classmethod
    def from_frame(cls, frame: Frame) -> 'IPCPacket':
        """
        Decodes the payload of a :class:`.Frame`.

        :raises ProtocolDecodeError: If the payload is not valid UTF-8 JSON.
        """
        try:
            data = json.loads(frame.payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ProtocolDecodeError(
                "Failed to decode frame payload: {}".format(e), frame.payload
            ) from e

        return cls(frame.opcode, data)

    def _get(self, key: str, default=None):
        if not isinstance(self._json_data, dict):
            return default

        return self._json_data.get(key, default)

    # properties
    @property
    def payload(self) -> Any:
        """
        Gets the full decoded payload for this packet.
        """
        return self._json_data

    @property
    def event(self) -> Optional[str]:
        """
        Gets the event for this packet. Received packets only.
        """
        return self._get("evt")

    @property
    def cmd(self) -> Optional[str]:
        """
        Gets the command for this packet.
        """
        return self._get("cmd")

    @property
    def nonce(self) -> Optional[str]:
        """
        Gets the nonce for this packet.
        """
        return self._get("nonce")

    @property
    def data(self) -> Any:
        """
        Gets the inner data for this packet.
        """
        return self._get("data")

    def serialize(self) -> bytes:
        """
        Serializes this packet into a series of bytes.
        """
        return encode(self.opcode, self._json_data)
