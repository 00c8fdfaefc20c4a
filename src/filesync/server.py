from __future__ import annotations

import hmac
import logging
import socket
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from .codec import Frame, Opcode, encode, encode_manifest
from .config import ServerConfig, require_directory
from .constants import DEFAULT_CHUNK_SIZE, ENCODING
from .engine import SyncEngine, Transport, run_engine
from .net import TcpEndpoint
from .storage import resolve_within, scan_manifest

log = logging.getLogger(__name__)

ACCEPT_POLL_S = 0.5
AUTH_TIMEOUT_S = 10.0


@dataclass
class SharedSyncState:
    root: Path
    available: List[str] = field(default_factory=list)
    in_progress: Set[str] = field(default_factory=set)
    sessions: Dict[str, "HubSession"] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


MID_FILE_OPCODES = frozenset({Opcode.NEW_FILE_PART, Opcode.NEW_FILE_END})


class HubSession(SyncEngine):
    """Server side of one client connection.

    The client's INIT carries its full manifest. The hub answers with the
    files the client lacks and an INIT listing the files it wants back, and
    relays every file it receives to the other initialized sessions.

    A partial upload is removed when the session ends, so a restarted hub
    never lists a truncated file as available.
    """

    keep_partial_on_close = False

    def __init__(
        self,
        state: SharedSyncState,
        client_id: str,
        transport: Transport,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__(state.root, transport, chunk_size=chunk_size)
        self.state = state
        self.client_id = client_id
        self.initialized = False

    def handle_frame(self, frame: Frame) -> None:
        pending = self.writer.pending_path
        if pending is not None and frame.kind not in MID_FILE_OPCODES:
            log.warning(
                "wrong opcode in the middle of a file; client=%s path=%s opcode=%d",
                self.client_id,
                pending,
                frame.opcode,
            )
            self.close()
            return
        super().handle_frame(frame)

    def handle_init(self, paths: list[str]) -> None:
        offered = list(dict.fromkeys(paths))
        offered_set = set(offered)
        with self.state.lock:
            missing_on_client = [p for p in self.state.available if p not in offered_set]
            known = set(self.state.available) | self.state.in_progress
            self.initialized = True
        missing_on_hub = [p for p in offered if p not in known]

        log.info(
            "client init; client=%s offered=%d to_send=%d to_request=%d",
            self.client_id,
            len(offered),
            len(missing_on_client),
            len(missing_on_hub),
        )
        for path in missing_on_client:
            self.enqueue_file(path)
        if missing_on_hub:
            self.enqueue_frame(Opcode.INIT, encode_manifest(missing_on_hub))

    def handle_new_file_path(self, path: str) -> None:
        resolve_within(self.root, path)
        with self.state.lock:
            collision = path in self.state.in_progress or path in self.state.available
            if not collision:
                self.state.in_progress.add(path)
        if collision:
            log.warning("file collision; client=%s path=%s", self.client_id, path)
            self.close_with_notice()
            return
        super().handle_new_file_path(path)

    def file_received(self, path: str) -> None:
        with self.state.lock:
            self.state.in_progress.discard(path)
            if path not in self.state.available:
                self.state.available.append(path)
            others = [s for s in self.state.sessions.values() if s is not self and s.initialized]
        log.info("relaying file; client=%s path=%s peers=%d", self.client_id, path, len(others))
        for session in others:
            session.enqueue_file(path)

    def transfer_discarded(self, path: str) -> None:
        with self.state.lock:
            self.state.in_progress.discard(path)

    def close_with_notice(self) -> None:
        try:
            self.transport.write(encode(Opcode.CLOSE, b""))
        except OSError:
            pass  # peer already gone
        self.close()


class SyncServer:
    def __init__(self, config: ServerConfig):
        require_directory(config.root)
        self.config = config
        self.state = SharedSyncState(root=config.root, available=scan_manifest(config.root))
        self.listener: Optional[TcpEndpoint] = None
        self._running = threading.Event()
        self._threads: List[threading.Thread] = []

    def bind(self) -> Tuple[str, int]:
        self.listener = TcpEndpoint.listening(self.config.host, self.config.port)
        self.listener.sock.settimeout(ACCEPT_POLL_S)
        self._running.set()
        return self.listener.address

    def serve_forever(self) -> None:
        if self.listener is None:
            self.bind()
        host, port = self.listener.address
        log.info("server listening; addr=%s:%d files=%d", host, port, len(self.state.available))
        try:
            while self._running.is_set():
                try:
                    endpoint, addr = self.listener.accept()
                except socket.timeout:
                    continue
                except OSError:
                    if not self._running.is_set():
                        break
                    raise
                t = threading.Thread(target=self._handle_client, args=(endpoint, addr), daemon=True)
                t.start()
                self._track(t)
        finally:
            self.listener.close()

    def _track(self, thread: threading.Thread) -> None:
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)

    def shutdown(self, timeout_s: float = 5.0) -> None:
        self._running.clear()
        with self.state.lock:
            sessions = list(self.state.sessions.values())
        for session in sessions:
            session.transport.close()
        for t in self._threads:
            t.join(timeout=timeout_s)

    def _handle_client(self, endpoint: TcpEndpoint, addr: Tuple[str, int]) -> None:
        client_id = uuid.uuid4().hex[:8]
        log.info("client connected; client=%s addr=%s:%d", client_id, addr[0], addr[1])
        if not self._authenticate(endpoint, client_id):
            endpoint.close()
            return

        session = HubSession(self.state, client_id, endpoint, self.config.chunk_size)
        with self.state.lock:
            self.state.sessions[client_id] = session
        try:
            stats = run_engine(session, endpoint)
        finally:
            with self.state.lock:
                self.state.sessions.pop(client_id, None)
        log.info(
            "client closed; client=%s received=%d sent=%d",
            client_id,
            stats.files_received,
            stats.files_sent,
        )

    def _authenticate(self, endpoint: TcpEndpoint, client_id: str) -> bool:
        expected = self.config.api_key.encode(ENCODING)
        endpoint.sock.settimeout(AUTH_TIMEOUT_S)
        try:
            presented = endpoint.recv_exact(len(expected))
        except OSError as exc:
            log.warning("handshake failed; client=%s error=%s", client_id, exc)
            return False
        finally:
            endpoint.sock.settimeout(None)
        if not hmac.compare_digest(presented, expected):
            log.warning("invalid key; client=%s", client_id)
            return False
        log.info("key validated; client=%s", client_id)
        return True
