from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Protocol, Union

from .codec import Frame, FrameCodec, Opcode, decode_manifest, decode_path, encode, encode_manifest
from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_RECV_SIZE
from .receiver import IncomingFileWriter
from .sender import FileSender
from .storage import UnsafePathError

log = logging.getLogger(__name__)

OutboundItem = Union[str, Frame]


class Transport(Protocol):
    def write(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class Endpoint(Transport, Protocol):
    def recv(self, bufsize: int = DEFAULT_RECV_SIZE) -> bytes: ...


@dataclass(slots=True)
class SessionStats:
    files_sent: int = 0
    files_received: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    def as_dict(self) -> dict:
        out = asdict(self)
        out["duration_s"] = self.duration_s
        return out


class SyncEngine:
    """Protocol state machine for one connection.

    Inbound frames are handled on the caller's thread in arrival order.
    Outbound files go through a FIFO work queue drained by a single worker,
    so a file's NEW_FILE_END is always written before the next NEW_FILE_PATH.
    """

    keep_partial_on_close = True

    def __init__(
        self,
        root: Union[str, Path],
        transport: Transport,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        known_files: Iterable[str] = (),
        codec: Optional[FrameCodec] = None,
    ):
        self.root = Path(root)
        self.transport = transport
        self.codec = codec or FrameCodec()
        self.known_files: list[str] = list(known_files)
        self.writer = IncomingFileWriter(self.root)
        self.sender = FileSender(self.root, self.send_frame, chunk_size)
        self.outbound: "queue.Queue[Optional[OutboundItem]]" = queue.Queue()
        self.stats = SessionStats()
        self.closed = False

    # inbound

    def connection_made(self, token: bytes) -> None:
        self.transport.write(token)
        self.send_frame(Opcode.INIT, encode_manifest(self.known_files))
        log.info("handshake sent; files=%d", len(self.known_files))

    def data_received(self, chunk: bytes) -> None:
        if self.closed:
            return
        for frame in self.codec.decode(chunk):
            self.handle_frame(frame)
            if self.closed:
                break

    def handle_frame(self, frame: Frame) -> None:
        kind = frame.kind
        log.debug("frame; opcode=%d len=%d", frame.opcode, len(frame.payload))
        try:
            if kind is Opcode.INIT:
                self.handle_init(decode_manifest(frame.payload))
            elif kind is Opcode.NEW_FILE_PATH:
                self.handle_new_file_path(decode_path(frame.payload))
            elif kind is Opcode.NEW_FILE_PART:
                if self.writer.append_bytes(frame.payload):
                    self.stats.bytes_received += len(frame.payload)
            elif kind is Opcode.NEW_FILE_END:
                self.handle_new_file_end(decode_path(frame.payload))
            else:
                log.info("close requested; opcode=%d", frame.opcode)
                self.close()
        except (UnicodeDecodeError, UnsafePathError) as exc:
            log.warning("protocol violation; opcode=%d error=%s", frame.opcode, exc)
            self.close()

    def handle_init(self, paths: list[str]) -> None:
        if not paths:
            return
        log.info("files requested; count=%d", len(paths))
        for path in paths:
            self.enqueue_file(path)

    def handle_new_file_path(self, path: str) -> None:
        previous = self.writer.pending_path
        self.writer.announce_path(path)
        if previous is not None:
            self.transfer_discarded(previous)

    def handle_new_file_end(self, path: str) -> None:
        announced = self.writer.pending_path
        if self.writer.finalize(path):
            self.stats.files_received += 1
            self.file_received(path)
        elif announced is not None:
            self.transfer_discarded(announced)

    def file_received(self, path: str) -> None:
        if path not in self.known_files:
            self.known_files.append(path)

    def transfer_discarded(self, path: str) -> None:
        pass

    # outbound

    def send_frame(self, opcode: int, payload: bytes) -> None:
        self.transport.write(encode(opcode, payload))

    def enqueue_file(self, path: str) -> None:
        self.outbound.put(path)

    def enqueue_frame(self, opcode: int, payload: bytes) -> None:
        self.outbound.put(Frame(int(opcode), payload))

    def send_next(self) -> bool:
        try:
            item = self.outbound.get_nowait()
        except queue.Empty:
            return False
        if item is None:
            return False
        self._send_item(item)
        return True

    def drain_outbound(self) -> int:
        sent = 0
        while self.send_next():
            sent += 1
        return sent

    def run_outbound(self) -> None:
        while True:
            item = self.outbound.get()
            if item is None or self.closed:
                return
            try:
                self._send_item(item)
            except OSError as exc:
                if not self.closed:
                    log.warning("outbound transfer failed; error=%s", exc)
                self.transport.close()
                return

    def _send_item(self, item: OutboundItem) -> None:
        if isinstance(item, Frame):
            self.transport.write(item.to_bytes())
            return
        sent = self.sender.send_file(item)
        if sent is None:
            return
        self.stats.files_sent += 1
        self.stats.bytes_sent += sent

    # teardown

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        pending = self.writer.pending_path
        self.writer.abort(keep_partial=self.keep_partial_on_close)
        if pending is not None:
            self.transfer_discarded(pending)
        self.outbound.put(None)
        self.transport.close()
        self.stats.end_ts = time.monotonic()

    def connection_lost(self) -> None:
        if not self.closed:
            log.info("connection lost; received=%d sent=%d", self.stats.files_received, self.stats.files_sent)
        self.close()


def run_engine(engine: SyncEngine, endpoint: Endpoint, bufsize: int = DEFAULT_RECV_SIZE) -> SessionStats:
    """Pump received bytes into engine until the connection ends.

    The outbound worker runs on its own thread; all protocol state is
    mutated here, on the calling thread.
    """
    worker = threading.Thread(target=engine.run_outbound, name="filesync-outbound", daemon=True)
    worker.start()
    try:
        while not engine.closed:
            try:
                chunk = endpoint.recv(bufsize)
                if not chunk:
                    break
                engine.data_received(chunk)
            except OSError as exc:
                if not engine.closed:
                    log.warning("session failed; error=%s", exc)
                break
    finally:
        engine.connection_lost()
        worker.join()
    return engine.stats
