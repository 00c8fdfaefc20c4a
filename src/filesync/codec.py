from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Iterable

from .constants import (
    CLOSE,
    ENCODING,
    HEADER_FORMAT,
    HEADER_SIZE,
    INIT,
    MANIFEST_SEPARATOR,
    MAX_PAYLOAD,
    NEW_FILE_END,
    NEW_FILE_PART,
    NEW_FILE_PATH,
)

_HEADER = struct.Struct(HEADER_FORMAT)


class Opcode(enum.IntEnum):
    INIT = INIT
    NEW_FILE_PATH = NEW_FILE_PATH
    NEW_FILE_PART = NEW_FILE_PART
    NEW_FILE_END = NEW_FILE_END
    CLOSE = CLOSE


@dataclass(frozen=True, slots=True)
class Frame:
    opcode: int
    payload: bytes = b""

    @property
    def kind(self) -> Opcode | None:
        """The recognized opcode, or None for a byte outside the enumeration."""
        try:
            return Opcode(self.opcode)
        except ValueError:
            return None

    def to_bytes(self) -> bytes:
        return encode(self.opcode, self.payload)


def encode(opcode: int, payload: bytes) -> bytes:
    payload_len = len(payload)
    if payload_len > MAX_PAYLOAD:
        raise ValueError(f"payload too large: {payload_len}")
    if not 0 <= int(opcode) <= 0xFF:
        raise ValueError(f"opcode out of range: {opcode}")
    return _HEADER.pack(int(opcode), payload_len) + bytes(payload)


class FrameCodec:
    """Stateful decoder for a byte stream that may be split at any boundary.

    Bytes that do not yet form a complete frame are held over in a growable
    buffer; consumed bytes are trimmed once per call.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        return bytes(self._buffer)

    def decode(self, chunk: bytes) -> list[Frame]:
        buf = self._buffer
        buf += chunk
        frames: list[Frame] = []
        offset = 0
        end = len(buf)

        while end - offset >= HEADER_SIZE:
            opcode, payload_len = _HEADER.unpack_from(buf, offset)
            payload_start = offset + HEADER_SIZE
            payload_end = payload_start + payload_len
            if payload_end > end:
                break
            frames.append(Frame(opcode, bytes(buf[payload_start:payload_end])))
            offset = payload_end

        if offset:
            del buf[:offset]
        return frames


def encode_manifest(paths: Iterable[str]) -> bytes:
    return MANIFEST_SEPARATOR.join(paths).encode(ENCODING)


def decode_manifest(payload: bytes) -> list[str]:
    text = payload.decode(ENCODING)
    return [p for p in text.split(MANIFEST_SEPARATOR) if p.strip()]


def decode_path(payload: bytes) -> str:
    return payload.decode(ENCODING)
