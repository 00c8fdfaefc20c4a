from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from .codec import Opcode
from .constants import DEFAULT_CHUNK_SIZE, ENCODING
from .storage import UnsafePathError, resolve_within

log = logging.getLogger(__name__)

Emit = Callable[[int, bytes], None]


@dataclass(slots=True)
class FileSender:
    root: Path
    emit: Emit
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk size must be positive: {self.chunk_size}")
        self.root = Path(self.root)

    def open_source(self, path: str) -> BinaryIO:
        return open(resolve_within(self.root, path), "rb")

    def stream(self, path: str, source: BinaryIO) -> int:
        encoded = path.encode(ENCODING)
        sent = 0
        self.emit(Opcode.NEW_FILE_PATH, encoded)
        while True:
            chunk = source.read(self.chunk_size)
            if not chunk:
                break
            self.emit(Opcode.NEW_FILE_PART, chunk)
            sent += len(chunk)
        self.emit(Opcode.NEW_FILE_END, encoded)
        log.info("sent file; path=%s bytes=%d", path, sent)
        return sent

    def send_file(self, path: str) -> Optional[int]:
        """Stream path, or return None when it cannot be opened.

        Nothing is emitted for a file that is skipped. Errors raised by emit
        propagate to the caller.
        """
        try:
            source = self.open_source(path)
        except (UnsafePathError, OSError) as exc:
            log.warning("skipping requested file; path=%s error=%s", path, exc)
            return None
        with source:
            return self.stream(path, source)
