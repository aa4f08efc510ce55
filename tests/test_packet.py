import json
import struct

import pytest

from discord_ipc.exc import ProtocolDecodeError
from discord_ipc.packet import Frame, FrameDecoder, IPCOpcode, IPCPacket, decode, encode


def test_encode_uses_little_endian_header_and_byte_length():
    data = {"name": "café"}
    encoded = encode(IPCOpcode.FRAME, data)

    opcode, length = struct.unpack("<II", encoded[:8])
    payload = encoded[8:]

    assert opcode == 1
    # the accented character is two bytes long
    assert length == len(payload) == len('{"name":"café"}') + 1
    assert json.loads(payload.decode("utf-8")) == data


@pytest.mark.parametrize("opcode, data", [
    (IPCOpcode.HANDSHAKE, {"v": 1, "client_id": "1234"}),
    (IPCOpcode.FRAME, {"cmd": "GET_USER", "nonce": "abc", "args": {"user_id": "42"}}),
    (IPCOpcode.CLOSE, {"code": 4000, "message": "Invalid Client ID"}),
    (IPCOpcode.PING, {}),
])
def test_decode_reverses_encode(opcode, data):
    frame, remainder = decode(encode(opcode, data))

    assert remainder == b""
    assert frame.opcode == opcode
    assert frame.length == len(frame.payload)

    packet = IPCPacket.from_frame(frame)
    assert packet.opcode == opcode
    assert packet.payload == data


def test_decode_needs_full_header():
    buffer = encode(IPCOpcode.FRAME, {"cmd": "DISPATCH"})[:5]

    assert decode(buffer) == (None, buffer)


def test_decode_needs_full_payload():
    buffer = encode(IPCOpcode.FRAME, {"cmd": "DISPATCH"})[:-1]

    assert decode(buffer) == (None, buffer)


def test_decode_leaves_the_next_frame_alone():
    first = encode(IPCOpcode.FRAME, {"n": 1})
    second = encode(IPCOpcode.FRAME, {"n": 2})

    frame, remainder = decode(first + second[:3])

    assert IPCPacket.from_frame(frame).payload == {"n": 1}
    assert remainder == second[:3]


def test_decode_keeps_unknown_opcodes():
    buffer = struct.pack("<II", 9, 2) + b"{}"
    frame, _ = decode(buffer)

    assert frame.opcode == 9
    assert not isinstance(frame.opcode, IPCOpcode)


def test_decoder_handles_every_split_point():
    payloads = [{"n": 1}, {"cmd": "DISPATCH", "evt": "READY", "data": {"v": 1}}, {"n": "ü" * 5}]
    stream = b"".join(encode(IPCOpcode.FRAME, payload) for payload in payloads)

    for split in range(len(stream) + 1):
        decoder = FrameDecoder()
        frames = decoder.feed(stream[:split]) + decoder.feed(stream[split:])

        assert [IPCPacket.from_frame(f).payload for f in frames] == payloads
        assert decoder.pending == 0


def test_decoder_handles_single_bytes():
    payloads = [{"n": i} for i in range(4)]
    stream = b"".join(encode(IPCOpcode.FRAME, payload) for payload in payloads)

    decoder = FrameDecoder()
    frames = []
    for i in range(len(stream)):
        frames.extend(decoder.feed(stream[i:i + 1]))

    assert [IPCPacket.from_frame(f).payload for f in frames] == payloads


def test_decoder_keeps_partial_frame():
    encoded = encode(IPCOpcode.FRAME, {"cmd": "SUBSCRIBE"})
    decoder = FrameDecoder()

    assert decoder.feed(encoded[:10]) == []
    assert decoder.pending == 10

    decoder.clear()
    assert decoder.pending == 0


def test_from_frame_rejects_bad_json():
    frame = Frame(IPCOpcode.FRAME, 9, b"{not json")

    with pytest.raises(ProtocolDecodeError) as exc_info:
        IPCPacket.from_frame(frame)

    assert exc_info.value.payload == b"{not json"


def test_packet_properties():
    packet = IPCPacket(IPCOpcode.FRAME, {
        "cmd": "DISPATCH", "evt": "ACTIVITY_JOIN", "nonce": None, "data": {"secret": "s"}
    })

    assert packet.cmd == "DISPATCH"
    assert packet.event == "ACTIVITY_JOIN"
    assert packet.nonce is None
    assert packet.data == {"secret": "s"}
    assert decode(packet.serialize())[0].opcode == IPCOpcode.FRAME


def test_packet_properties_on_non_dict_payload():
    packet = IPCPacket(IPCOpcode.FRAME, [1, 2])

    assert packet.cmd is None
    assert packet.data is None
