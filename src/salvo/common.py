"""Low-level packet framing utilities.

Frame layout (24-byte header + AES-GCM sealed JSON payload):
0-1   : 0x5A1F     magic bytes
2     : version (1)
3     : PacketType (enum)
4-7   : seq u32 (big-endian)
8-19  : 12-byte GCM nonce
20-23 : len u32 (ciphertext+tag length)
24-   : ciphertext of the UTF-8 JSON payload, followed by the 16-byte tag
"""

from __future__ import annotations

import enum
import json
from io import BufferedReader, BufferedWriter
from typing import Any, Final, Tuple

from cryptography.exceptions import InvalidTag

from . import config as _cfg
from .encryption import (
    HEADER_STRUCT,
    MAGIC,
    TAG_LEN,
    VERSION,
    enable_encryption,
    pack as aead_pack,
    unpack as aead_unpack,
)

HEADER_LEN: Final[int] = HEADER_STRUCT.size


class PacketType(int, enum.Enum):
    """Enumerate wire-protocol packet categories."""

    GAME = 0  # commands and notifications
    ERROR = 1  # error{message} notifications


class FrameError(Exception):
    """Base for framing problems."""


class IncompleteError(FrameError):
    """Raised when the stream closes before a full frame could be read."""


def _check_header(magic: int, version: int, ptype_val: int, length: int) -> None:
    if magic != MAGIC or version != VERSION:
        raise FrameError("magic/version mismatch")
    if ptype_val not in PacketType._value2member_map_:
        raise FrameError(f"unknown packet type {ptype_val}")
    if length > _cfg.MAX_PAYLOAD + TAG_LEN:
        raise FrameError(f"frame too large: {length} bytes")


def _decode(ptype_val: int, seq: int, plaintext: bytes) -> Tuple[PacketType, int, Any]:
    try:
        obj = json.loads(plaintext)
    except ValueError as e:
        raise FrameError(f"payload is not JSON: {e}") from e
    return PacketType(ptype_val), seq, obj


# ---------------------------------------------------------------------------
# Public pack / unpack
# ---------------------------------------------------------------------------

def pack(ptype: PacketType, seq: int, obj: Any) -> bytes:
    """Serialize *obj* as JSON and seal it into a single frame."""
    payload = json.dumps(obj, separators=(",", ":")).encode()
    return aead_pack(int(ptype), seq & 0xFFFFFFFF, payload)


def unpack(frame: bytes) -> Tuple[PacketType, int, Any]:
    """Decode one complete frame held in memory into `(ptype, seq, obj)`."""
    if len(frame) < HEADER_LEN:
        raise IncompleteError("Incomplete header")
    magic, version, ptype_val, seq, _nonce, length = HEADER_STRUCT.unpack(frame[:HEADER_LEN])
    _check_header(magic, version, ptype_val, length)
    if len(frame) < HEADER_LEN + length:
        raise IncompleteError("Incomplete payload")
    try:
        _, _, _, _, plaintext = aead_unpack(frame)
    except InvalidTag:
        raise FrameError("AEAD authentication failed")
    return _decode(ptype_val, seq, plaintext)


# ---------------------------------------------------------------------------
# Convenience wrappers for file-like objects
# ---------------------------------------------------------------------------


def send_pkt(w: BufferedWriter, ptype: PacketType, seq: int, obj: Any) -> None:
    """Write a single framed packet to buffered writer *w* and flush."""
    w.write(pack(ptype, seq, obj))
    w.flush()


def recv_pkt(r: BufferedReader) -> Tuple[PacketType, int, Any]:
    """Blocking helper that returns the next `(ptype, seq, obj)` tuple from *r*."""
    header = r.read(HEADER_LEN)
    if not header or len(header) < HEADER_LEN:
        raise IncompleteError("Incomplete header")
    magic, version, ptype_val, seq, _nonce, length = HEADER_STRUCT.unpack(header)
    _check_header(magic, version, ptype_val, length)
    body = r.read(length)
    if body is None or len(body) < length:
        raise IncompleteError("Incomplete payload")
    return unpack(header + body)


__all__ = [
    "PacketType",
    "FrameError",
    "IncompleteError",
    "HEADER_LEN",
    "enable_encryption",
    "pack",
    "unpack",
    "send_pkt",
    "recv_pkt",
]
