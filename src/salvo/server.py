"""TCP entry point for the room coordinator.

Every accepted connection gets its own daemon thread that reads framed
envelopes and hands them to the shared CommandRouter. Rooms serialise their
own mutations, so connection threads need no further coordination. A
separate reaper thread finishes and drops rooms nobody has touched for
``ROOM_IDLE_TIMEOUT`` seconds.
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import socket
import sys
import threading
from typing import Optional

from . import config as _cfg
from .common import FrameError, PacketType, enable_encryption, recv_pkt
from .io_utils import StreamPort
from .registry import Registry
from .router import CommandRouter

# Initialize module-level logger
logger = logging.getLogger(__name__)


def serve_connection(conn: socket.socket, router: CommandRouter, label: str = "") -> None:
    """Read envelopes from *conn* until it closes, then run the disconnect path."""
    rfile = conn.makefile("rb")
    wfile = conn.makefile("wb")
    port = StreamPort(wfile, label)
    try:
        while True:
            try:
                ptype, seq, obj = recv_pkt(rfile)  # type: ignore[arg-type]
            except FrameError as e:
                logger.debug("%s: closing on frame error: %s", label or "conn", e)
                break
            except OSError as e:
                logger.debug("%s: socket error: %s", label or "conn", e)
                break
            if ptype != PacketType.GAME:
                logger.debug("%s: ignoring %s frame seq=%d", label or "conn", ptype.name, seq)
                continue
            logger.debug("%s: received %r", label or "conn", obj)
            router.handle(obj, port)
    finally:
        port.close()
        router.handle_disconnect(port)
        for f in (rfile, wfile):
            with contextlib.suppress(Exception):
                f.close()
        with contextlib.suppress(OSError):
            conn.shutdown(socket.SHUT_RDWR)
        conn.close()
        logger.info("%s disconnected", label or "Client")


def run_reaper(registry: Registry, stop: threading.Event, interval: float = _cfg.REAP_INTERVAL) -> None:
    """Sweep idle rooms every *interval* seconds until *stop* is set."""
    while not stop.wait(interval):
        try:
            registry.reap_idle()
        except Exception:
            logger.exception("Idle-room sweep failed")


def start_reaper(registry: Registry, interval: float = _cfg.REAP_INTERVAL) -> threading.Event:
    stop = threading.Event()
    threading.Thread(target=run_reaper, args=(registry, stop, interval), daemon=True, name="reaper").start()
    return stop


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Salvo room coordinator")
    parser.add_argument("--host", default=_cfg.DEFAULT_HOST, help="Address to bind.")
    parser.add_argument("--port", type=int, default=_cfg.DEFAULT_PORT, help="Port to listen on.")
    parser.add_argument("--key", default=None, help="Hex AES key for frame encryption.")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity.",
    )
    parser.add_argument(
        "-s",
        "--silent",
        "-q",
        "--quiet",
        dest="silent",
        action="store_true",
        help="Suppress all output.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:  # pragma: no cover – side-effect entrypoint
    """Accept connections forever, one reader thread per client."""
    args = _parse_args(argv)

    # Determine log level from CLI flags:
    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if args.key:
        enable_encryption(bytes.fromhex(args.key))

    registry = Registry()
    router = CommandRouter(registry)
    stop_reaper = start_reaper(registry)

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_sock:
        server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server_sock.bind((args.host, args.port))
        server_sock.listen()
        logger.info(f"Salvo server listening on {args.host}:{args.port}")

        def _shutdown(signum, frame):
            # ensure the "C" echo doesn't get stuck on our log line
            sys.stderr.write("\n")
            logger.info("Received signal %s, shutting down", signum)
            stop_reaper.set()
            registry.close()
            server_sock.close()
            sys.exit(0)

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

        while True:
            conn, addr = server_sock.accept()
            label = f"{addr[0]}:{addr[1]}"
            logger.info(f"Connection from {label}")
            threading.Thread(
                target=serve_connection,
                args=(conn, router, label),
                daemon=True,
                name=f"conn-{label}",
            ).start()


if __name__ == "__main__":  # pragma: no cover
    main()
