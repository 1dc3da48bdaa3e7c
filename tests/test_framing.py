from io import BytesIO

import pytest
from cryptography.exceptions import InvalidTag

import salvo.encryption as encryption
from salvo.common import (
    HEADER_LEN,
    FrameError,
    IncompleteError,
    PacketType,
    pack,
    recv_pkt,
    send_pkt,
    unpack,
)
from salvo.encryption import HEADER_STRUCT, MAGIC, VERSION


@pytest.fixture
def restore_key():
    key = encryption.current_key()
    yield
    encryption.enable_encryption(key)


def test_pack_unpack_roundtrip():
    obj = {"type": "attack", "data": {"x": 1, "y": [2, {"z": True}]}}
    ptype, seq, out = unpack(pack(PacketType.GAME, 12345, obj))
    assert ptype == PacketType.GAME
    assert seq == 12345
    assert out == obj


def test_header_fields():
    data = pack(PacketType.ERROR, 7, {"type": "error", "message": "x"})
    magic, version, ptype_byte, seq, nonce, length = HEADER_STRUCT.unpack(data[:HEADER_LEN])
    assert (magic, version) == (MAGIC, VERSION)
    assert ptype_byte == PacketType.ERROR.value
    assert seq == 7
    assert len(nonce) == 12
    assert length == len(data) - HEADER_LEN


def test_same_payload_never_encrypts_the_same():
    frames = {pack(PacketType.GAME, 1, {"a": 1}) for _ in range(20)}
    assert len(frames) == 20


def test_magic_mismatch_raises_FrameError():
    data = pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(FrameError):
        unpack(b"\x00\x00" + data[2:])


def test_version_mismatch_raises_FrameError():
    data = pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(FrameError):
        recv_pkt(BytesIO(data[:2] + b"\x02" + data[3:]))


def test_unknown_packet_type_raises_FrameError():
    data = pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(FrameError):
        unpack(data[:3] + b"\x09" + data[4:])


def test_oversized_length_field_rejected_before_reading_body():
    header = HEADER_STRUCT.pack(MAGIC, VERSION, 0, 0, b"\x00" * 12, 64 * 1024 * 1024)
    with pytest.raises(FrameError):
        recv_pkt(BytesIO(header))


def test_incomplete_header_raises_IncompleteError():
    data = pack(PacketType.GAME, 0, {"x": 1})
    with pytest.raises(IncompleteError):
        recv_pkt(BytesIO(data[: HEADER_LEN - 1]))


def test_empty_stream_raises_IncompleteError():
    with pytest.raises(IncompleteError):
        recv_pkt(BytesIO(b""))


def test_incomplete_payload_raises_IncompleteError():
    data = pack(PacketType.GAME, 0, {"x": 1})
    cut = HEADER_LEN + (len(data) - HEADER_LEN) // 2
    with pytest.raises(IncompleteError):
        recv_pkt(BytesIO(data[:cut]))


def test_tampered_ciphertext_raises_FrameError():
    corrupt = bytearray(pack(PacketType.GAME, 5, {"foo": "bar"}))
    corrupt[HEADER_LEN] ^= 0xFF
    with pytest.raises(FrameError):
        unpack(bytes(corrupt))


def test_tampered_tag_fails_authentication():
    corrupt = bytearray(pack(PacketType.GAME, 5, {"foo": "bar"}))
    corrupt[-1] ^= 0xFF
    with pytest.raises(InvalidTag):
        encryption.unpack(bytes(corrupt))


def test_wrong_key_fails(restore_key):
    frame = pack(PacketType.GAME, 1, {"secret": "data"})
    encryption.enable_encryption(bytes(range(16)))
    with pytest.raises(FrameError):
        unpack(frame)


def test_rejects_bad_key_length():
    with pytest.raises(ValueError):
        encryption.enable_encryption(b"short")


def test_oversized_payload_rejected():
    with pytest.raises(ValueError):
        pack(PacketType.GAME, 0, {"blob": "x" * (2 * 1024 * 1024)})


def test_multiple_frames_stream():
    buf = BytesIO()
    send_pkt(buf, PacketType.GAME, 1, {"msg": 1})
    send_pkt(buf, PacketType.ERROR, 2, {"msg": 2})
    buf.seek(0)
    assert recv_pkt(buf) == (PacketType.GAME, 1, {"msg": 1})
    assert recv_pkt(buf) == (PacketType.ERROR, 2, {"msg": 2})
    with pytest.raises(IncompleteError):
        recv_pkt(buf)


def test_non_json_plaintext_raises_FrameError():
    frame = encryption.pack(PacketType.GAME.value, 0, b"\xff not json")
    with pytest.raises(FrameError):
        unpack(frame)
