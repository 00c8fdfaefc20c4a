from __future__ import annotations

import pytest

from filesync.codec import FrameCodec


class RecordingTransport:
    def __init__(self, fail_writes: bool = False):
        self.data = bytearray()
        self.closed = False
        self.fail_writes = fail_writes

    def write(self, data: bytes) -> None:
        if self.fail_writes or self.closed:
            raise BrokenPipeError("transport closed")
        self.data.extend(data)

    def close(self) -> None:
        self.closed = True

    def take(self) -> bytes:
        out = bytes(self.data)
        self.data.clear()
        return out

    def frames(self):
        return FrameCodec().decode(bytes(self.data))


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def make_transport():
    return RecordingTransport
