from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .storage import ensure_directories, resolve_within

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NoActiveTransfer:
    pass


@dataclass(slots=True)
class ActiveTransfer:
    path: str
    target: Path
    handle: Optional[BinaryIO] = None
    bytes_written: int = 0


TransferState = Union[NoActiveTransfer, ActiveTransfer]

IDLE = NoActiveTransfer()


class IncomingFileWriter:
    """Materializes one announced file at a time under root.

    The destination is opened lazily on the first part, so an announcement
    that is immediately contradicted by a mismatched end never touches disk.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.state: TransferState = IDLE

    @property
    def pending_path(self) -> Optional[str]:
        if isinstance(self.state, ActiveTransfer):
            return self.state.path
        return None

    def announce_path(self, path: str) -> None:
        target = resolve_within(self.root, path)
        if isinstance(self.state, ActiveTransfer):
            log.warning("new path announced before end; discarding=%s", self.state.path)
            self._discard(self.state)
        self.state = ActiveTransfer(path=path, target=target)
        log.debug("incoming file announced; path=%s", path)

    def append_bytes(self, buffer: bytes) -> bool:
        state = self.state
        if isinstance(state, NoActiveTransfer):
            log.debug("part without pending path; dropped %d bytes", len(buffer))
            return False
        if state.handle is None:
            state.handle = self._open(state)
        state.handle.write(buffer)
        state.bytes_written += len(buffer)
        return True

    def finalize(self, path: str) -> bool:
        state = self.state
        self.state = IDLE
        if isinstance(state, NoActiveTransfer):
            log.warning("end without pending path; path=%s", path)
            return False
        if state.path != path:
            log.warning("end path mismatch; pending=%s got=%s", state.path, path)
            self._discard(state)
            return False

        if state.handle is None:
            # no parts were sent: the file is empty
            state.handle = self._open(state)
        state.handle.close()
        log.info("received file; path=%s bytes=%d", state.path, state.bytes_written)
        return True

    def abort(self, keep_partial: bool = True) -> None:
        state = self.state
        self.state = IDLE
        if not isinstance(state, ActiveTransfer) or state.handle is None:
            return
        if keep_partial:
            log.info("connection closed mid-file; partial=%s bytes=%d", state.path, state.bytes_written)
            state.handle.close()
        else:
            log.info("connection closed mid-file; removed=%s bytes=%d", state.path, state.bytes_written)
            self._discard(state)

    def _open(self, state: ActiveTransfer) -> BinaryIO:
        ensure_directories(self.root, state.target.parent.relative_to(self.root))
        return open(state.target, "wb")

    def _discard(self, state: ActiveTransfer) -> None:
        if state.handle is None:
            return
        state.handle.close()
        state.target.unlink(missing_ok=True)
