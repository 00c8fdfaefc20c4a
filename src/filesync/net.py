from __future__ import annotations

import socket
import threading
from typing import Tuple

from .constants import DEFAULT_RECV_SIZE


class TcpEndpoint:
    """One side of a stream connection.

    write() holds a lock for the whole sendall so frames written from
    different threads never interleave mid-frame.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._write_lock = threading.Lock()
        self._closed = False

    @classmethod
    def connect(cls, host: str, port: int, timeout_s: float | None = None) -> "TcpEndpoint":
        sock = socket.create_connection((host, port), timeout=timeout_s)
        sock.settimeout(None)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return cls(sock)

    @classmethod
    def listening(cls, host: str, port: int, backlog: int = 32) -> "TcpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
        return cls(sock)

    @property
    def address(self) -> Tuple[str, int]:
        return self.sock.getsockname()[:2]

    def accept(self) -> Tuple["TcpEndpoint", Tuple[str, int]]:
        conn, addr = self.sock.accept()
        conn.settimeout(None)
        conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return TcpEndpoint(conn), addr

    def write(self, data: bytes) -> None:
        with self._write_lock:
            self.sock.sendall(data)

    def recv(self, bufsize: int = DEFAULT_RECV_SIZE) -> bytes:
        return self.sock.recv(bufsize)

    def recv_exact(self, n: int) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            chunk = self.sock.recv(n - len(buf))
            if not chunk:
                raise ConnectionError(f"connection closed after {len(buf)} of {n} bytes")
            buf.extend(chunk)
        return bytes(buf)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected, or a listening socket
        self.sock.close()
