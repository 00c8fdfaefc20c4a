from __future__ import annotations

import os
from pathlib import Path, PurePosixPath


class UnsafePathError(ValueError):
    pass


def resolve_within(root: str | os.PathLike[str], relative: str) -> Path:
    """Map a '/'-separated wire path onto a location under root.

    Raises UnsafePathError for anything that is empty, absolute, climbs out of
    root with '..', contains NUL, or names the root itself.
    """
    if not relative or "\x00" in relative:
        raise UnsafePathError(f"invalid path: {relative!r}")
    rel = PurePosixPath(relative)
    if rel.is_absolute() or ".." in rel.parts:
        raise UnsafePathError(f"path escapes root: {relative!r}")
    parts = [p for p in rel.parts if p not in ("", ".")]
    if not parts:
        raise UnsafePathError(f"path names the root: {relative!r}")
    return Path(root).joinpath(*parts)


def ensure_directories(root: str | os.PathLike[str], relative_dir: str | os.PathLike[str]) -> Path:
    """Create root/relative_dir one segment at a time, top down.

    Segments that already exist (or appear concurrently) are left alone, so
    calling this repeatedly converges on the same tree.
    """
    current = Path(root)
    current.mkdir(parents=True, exist_ok=True)
    for part in Path(relative_dir).parts:
        if part in ("", "."):
            continue
        current = current / part
        try:
            current.mkdir()
        except FileExistsError:
            if not current.is_dir():
                raise
    return current


def scan_manifest(root: str | os.PathLike[str]) -> list[str]:
    base = Path(root)
    found: list[str] = []
    stack = [base]
    while stack:
        directory = stack.pop()
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
                elif entry.is_file():
                    found.append(Path(entry.path).relative_to(base).as_posix())
    return sorted(found)
