from __future__ import annotations

import pytest

from filesync.codec import Frame, FrameCodec, Opcode, decode_manifest, encode, encode_manifest


def _stream(frames):
    return b"".join(encode(f.opcode, f.payload) for f in frames)


SAMPLE = [
    Frame(Opcode.INIT, b"a.txt\nsub/b.txt"),
    Frame(Opcode.NEW_FILE_PATH, b"sub/b.txt"),
    Frame(Opcode.NEW_FILE_PART, bytes(range(256)) * 3),
    Frame(Opcode.NEW_FILE_PART, b""),
    Frame(Opcode.NEW_FILE_END, b"sub/b.txt"),
    Frame(Opcode.CLOSE, b""),
]


def test_encode_layout():
    raw = encode(Opcode.NEW_FILE_PATH, b"abc")
    assert raw == b"\x01\x03\x00\x00\x00abc"


def test_length_is_little_endian():
    raw = encode(Opcode.NEW_FILE_PART, b"x" * 0x0102)
    assert raw[1:5] == b"\x02\x01\x00\x00"


@pytest.mark.parametrize("opcode", [*Opcode, 0x8, 0xFF])
@pytest.mark.parametrize("size", [0, 1, 4, 5, 65536, 1_000_003])
def test_roundtrip(opcode, size):
    payload = bytes(i % 251 for i in range(size))
    frames = FrameCodec().decode(encode(opcode, payload))
    assert frames == [Frame(int(opcode), payload)]


def test_large_frame_arriving_in_small_reads():
    payload = bytes(i % 253 for i in range(300_000))
    raw = encode(Opcode.NEW_FILE_PART, payload) + encode(Opcode.NEW_FILE_END, b"big")
    codec = FrameCodec()
    out = []
    for i in range(0, len(raw), 4096):
        out.extend(codec.decode(raw[i : i + 4096]))
        if not out:
            assert codec.pending == raw[: i + 4096]
    assert out == [Frame(Opcode.NEW_FILE_PART, payload), Frame(Opcode.NEW_FILE_END, b"big")]
    assert codec.pending == b""


def test_one_byte_at_a_time():
    raw = _stream(SAMPLE)
    codec = FrameCodec()
    out = []
    for i in range(len(raw)):
        out.extend(codec.decode(raw[i : i + 1]))
    assert out == SAMPLE
    assert codec.pending == b""


def test_every_split_point():
    raw = _stream(SAMPLE[:3])
    for cut in range(len(raw) + 1):
        codec = FrameCodec()
        out = codec.decode(raw[:cut]) + codec.decode(raw[cut:])
        assert out == SAMPLE[:3], cut


def test_many_frames_in_one_chunk():
    codec = FrameCodec()
    out = codec.decode(_stream(SAMPLE))
    assert out == SAMPLE
    assert codec.pending == b""


def test_partial_header_is_held_over():
    raw = encode(Opcode.NEW_FILE_END, b"done")
    codec = FrameCodec()
    assert codec.decode(raw[:3]) == []
    assert codec.pending == raw[:3]
    assert codec.decode(raw[3:]) == [Frame(Opcode.NEW_FILE_END, b"done")]
    assert codec.pending == b""


def test_partial_payload_is_held_over():
    raw = encode(Opcode.NEW_FILE_PART, b"0123456789")
    codec = FrameCodec()
    assert codec.decode(raw + raw[:7]) == [Frame(Opcode.NEW_FILE_PART, b"0123456789")]
    assert codec.pending == raw[:7]


def test_unknown_opcode_still_decodes():
    frames = FrameCodec().decode(encode(0x8, b"?"))
    assert frames[0].opcode == 0x8
    assert frames[0].kind is None


def test_opcode_out_of_range():
    with pytest.raises(ValueError):
        encode(256, b"")


def test_manifest_roundtrip():
    paths = ["docs/readme.txt", "a.bin"]
    assert encode_manifest(paths) == b"docs/readme.txt\na.bin"
    assert decode_manifest(encode_manifest(paths)) == paths


def test_empty_manifest():
    assert encode_manifest([]) == b""
    assert decode_manifest(b"") == []
    assert decode_manifest(b"a\n\nb\n") == ["a", "b"]
