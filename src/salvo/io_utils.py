# io_utils.py
"""
Output-side helpers shared by the server and the routers
––––––––––––––––––––––––––––––––––––––––––––––––––––––––
• OutputPort  – the capability a Player holds for receiving notifications
• send()      – frame + flush one payload, never raises
• StreamPort  – OutputPort over a buffered socket writer
"""

from __future__ import annotations

import logging
import threading
from typing import Any, BinaryIO, Protocol

from .common import PacketType, send_pkt

logger = logging.getLogger("salvo.io_utils")


class OutputPort(Protocol):
    """Anything a notification can be delivered to."""

    def send(self, obj: dict[str, Any]) -> bool:
        ...


def send(w: BinaryIO, seq: int, ptype: PacketType = PacketType.GAME, *, obj: Any) -> bool:
    """Write one framed packet; return False instead of raising on a dead peer."""
    logger.debug("send() start – ptype=%s seq=%d obj=%r", ptype, seq, obj)
    try:
        send_pkt(w, ptype, seq, obj)  # type: ignore[arg-type]
        return True
    except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError):
        # peer closed or reset during send
        logger.debug("send() peer gone – seq=%d", seq)
        return False
    except (OSError, ValueError):
        # ValueError: write to a closed file object
        logger.exception("send() failed – seq=%d ptype=%s", seq, ptype)
        return False


class StreamPort:
    """OutputPort writing framed packets to one connection.

    Several connection threads may broadcast to the same player at once, so
    every write (and its sequence number) is taken under a per-port lock.
    """

    def __init__(self, wfile: BinaryIO, label: str = "") -> None:
        self._w = wfile
        self._lock = threading.Lock()
        self._seq = 0
        self.label = label
        self.closed = False

    def send(self, obj: dict[str, Any]) -> bool:
        ptype = PacketType.ERROR if obj.get("type") == "error" else PacketType.GAME
        with self._lock:
            if self.closed:
                return False
            ok = send(self._w, self._seq, ptype, obj=obj)
            self._seq += 1
            if not ok:
                self.closed = True
            return ok

    def close(self) -> None:
        with self._lock:
            self.closed = True

    def __repr__(self) -> str:
        return f"<StreamPort {self.label} seq={self._seq}>"
