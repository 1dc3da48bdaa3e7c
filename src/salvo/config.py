"""Central configuration for runtime-tunable parameters.

All constants can be overridden via environment variables so that the
production server runs with sensible defaults, while the automated
test-suite can shrink timeouts or pin ports when it needs to.
"""

from __future__ import annotations

import os


# ===========================================================================
# Network Defaults
# ===========================================================================
# SALVO_HOST: Default host address for the server to bind to.
#   Defaults to "127.0.0.1".
#   Example: export SALVO_HOST=0.0.0.0
DEFAULT_HOST: str = os.getenv("SALVO_HOST", "127.0.0.1")

# SALVO_PORT: Default port for the server to listen on.
#   Defaults to 3000.
#   Example: export SALVO_PORT=3001
DEFAULT_PORT: int = int(os.getenv("SALVO_PORT", "3000"))


# ===========================================================================
# Game Constants
# ===========================================================================
# SALVO_BOARD_SIZE: Width and height of every player's grid.
#   Defaults to 10 (for a 10x10 grid).
BOARD_SIZE: int = int(os.getenv("SALVO_BOARD_SIZE", "10"))

# SALVO_ROOM_CODE_LENGTH: Number of characters in a generated room code.
#   Codes are drawn from [a-z0-9]; 6 characters give ~2.2e9 codes.
ROOM_CODE_LENGTH: int = int(os.getenv("SALVO_ROOM_CODE_LENGTH", "6"))

# Player ids are longer than room codes because nobody has to type them.
PLAYER_ID_LENGTH: int = 13


# ===========================================================================
# Room Expiry
# ===========================================================================
# SALVO_ROOM_IDLE_TIMEOUT: seconds without activity before a room is
#   force-finished and dropped from the registry.
#   Defaults to 600 (10 minutes). Example: export SALVO_ROOM_IDLE_TIMEOUT=60
ROOM_IDLE_TIMEOUT: float = float(os.getenv("SALVO_ROOM_IDLE_TIMEOUT", "600"))

# SALVO_REAP_INTERVAL: how often (seconds) the server sweeps for idle rooms.
REAP_INTERVAL: float = float(os.getenv("SALVO_REAP_INTERVAL", "30"))


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# SALVO_DEBUG: If "1", enables detailed debug logging across modules.
#   Defaults to "0" (disabled).
DEBUG: bool = os.getenv("SALVO_DEBUG", "0") == "1"


# ===========================================================================
# Cryptography Defaults
# ===========================================================================
# SALVO_KEY: AES-GCM frame key as a hex string (16, 24 or 32 bytes).
# Defaults to "00112233445566778899AABBCCDDEEFF".
DEFAULT_KEY_HEX: str = os.getenv("SALVO_KEY", "00112233445566778899AABBCCDDEEFF")
DEFAULT_KEY: bytes = bytes.fromhex(DEFAULT_KEY_HEX)

# Frames carrying more than this many plaintext bytes are refused.
MAX_PAYLOAD: int = 1024 * 1024
