"""Cheap change detection for save files.

A signature is the file's modification time plus its size, read from
``os.stat`` without opening the file. A missing file has no signature
(``None``).
"""

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FileSignature:
    mtime_ns: int
    size: int


def compute_signature(path) -> FileSignature | None:
    """Return the signature of ``path``, or None if it does not exist."""
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return None
    return FileSignature(mtime_ns=st.st_mtime_ns, size=st.st_size)


def compute_signatures(source_dir, target_files: list[str]) -> dict[str, FileSignature | None]:
    root = Path(source_dir)
    return {name: compute_signature(root / name) for name in target_files}


def signatures_equal(a: FileSignature | None, b: FileSignature | None) -> bool:
    """Absent signatures never compare equal, not even to each other."""
    if a is None or b is None:
        return False
    return a == b


def has_changed(old: FileSignature | None, new: FileSignature | None) -> bool:
    """Change test used between monitor cycles.

    A file that stays missing is not a change; appearing, disappearing or
    a differing mtime/size is.
    """
    if old is None and new is None:
        return False
    return not signatures_equal(old, new)
