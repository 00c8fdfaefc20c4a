from __future__ import annotations

HEADER_FORMAT = "<BI"  # opcode, payload_len (little-endian)
HEADER_SIZE = 5
MAX_PAYLOAD = 0xFFFFFFFF

INIT = 0x0
NEW_FILE_PATH = 0x1
NEW_FILE_PART = 0x2
NEW_FILE_END = 0x3
CLOSE = 0x4

ENCODING = "utf-8"
MANIFEST_SEPARATOR = "\n"

DEFAULT_CHUNK_SIZE = 10_000_000
DEFAULT_RECV_SIZE = 65536
DEFAULT_BIND_HOST = "0.0.0.0"

DEBUG_HOST = "localhost"
DEBUG_PORT = 8080
DEBUG_API_KEY = "SUPER-SECRET-API-KEY"
DEBUG_CHUNK_SIZE = 10_000_000
DEBUG_CLIENT_FOLDER = "mounted-client-folder"
DEBUG_SERVER_FOLDER = "mounted-server-folder"
