from __future__ import annotations

import pytest

from filesync.receiver import ActiveTransfer, IncomingFileWriter, NoActiveTransfer
from filesync.storage import UnsafePathError


def test_full_transfer(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("nested/dir/file.bin")
    assert w.append_bytes(b"\x01\x02")
    assert w.append_bytes(b"\x03")
    assert w.finalize("nested/dir/file.bin") is True
    assert (tmp_path / "nested" / "dir" / "file.bin").read_bytes() == b"\x01\x02\x03"
    assert isinstance(w.state, NoActiveTransfer)


def test_announce_does_not_touch_disk(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("sub/a.txt")
    assert isinstance(w.state, ActiveTransfer)
    assert w.state.handle is None
    assert not (tmp_path / "sub").exists()


def test_append_without_pending_path_is_dropped(tmp_path):
    w = IncomingFileWriter(tmp_path)
    assert w.append_bytes(b"stray") is False
    assert list(tmp_path.iterdir()) == []


def test_mismatched_finalize_is_isolated(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("a")
    w.append_bytes(b"XXXX")
    assert w.finalize("b") is False
    assert not (tmp_path / "a").exists()
    assert w.pending_path is None

    w.announce_path("c")
    w.append_bytes(b"ok")
    assert w.finalize("c") is True
    assert (tmp_path / "c").read_bytes() == b"ok"


def test_mismatch_before_any_part_creates_nothing(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("x/a")
    assert w.finalize("x/b") is False
    assert not (tmp_path / "x").exists()


def test_finalize_without_announce(tmp_path):
    w = IncomingFileWriter(tmp_path)
    assert w.finalize("a") is False


def test_zero_byte_file_is_created(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("empty/file")
    assert w.finalize("empty/file") is True
    assert (tmp_path / "empty" / "file").read_bytes() == b""


def test_overwrites_existing_content(tmp_path):
    (tmp_path / "f").write_bytes(b"old content that is long")
    w = IncomingFileWriter(tmp_path)
    w.announce_path("f")
    w.append_bytes(b"new")
    w.finalize("f")
    assert (tmp_path / "f").read_bytes() == b"new"


def test_reannounce_discards_previous(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("first")
    w.append_bytes(b"1")
    w.announce_path("second")
    assert not (tmp_path / "first").exists()
    w.append_bytes(b"2")
    assert w.finalize("second") is True
    assert (tmp_path / "second").read_bytes() == b"2"


def test_abort_leaves_partial_file(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("partial")
    w.append_bytes(b"half")
    w.abort()
    assert w.pending_path is None
    assert (tmp_path / "partial").read_bytes() == b"half"


def test_abort_can_remove_partial_file(tmp_path):
    w = IncomingFileWriter(tmp_path)
    w.announce_path("sub/partial")
    w.append_bytes(b"half")
    w.abort(keep_partial=False)
    assert w.pending_path is None
    assert not (tmp_path / "sub" / "partial").exists()


def test_unsafe_path_rejected(tmp_path):
    w = IncomingFileWriter(tmp_path / "root")
    with pytest.raises(UnsafePathError):
        w.announce_path("../escape")
    assert w.pending_path is None
