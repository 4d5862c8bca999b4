"""File copying and archive extraction helpers."""

from __future__ import annotations

import os
import shutil
import tarfile
from pathlib import Path
from typing import BinaryIO


def copy_file(src: str | os.PathLike, dest: str | os.PathLike) -> None:
    """Copy the contents of src to dest, creating or truncating dest."""
    with open(src, "rb") as source, open(dest, "wb") as target:
        shutil.copyfileobj(source, target)


def _target(dest_dir: Path, name: str) -> Path:
    base = dest_dir.resolve()
    target = (dest_dir / name).resolve()
    if target != base and base not in target.parents:
        raise ValueError(f"archive member escapes destination: {name}")
    return target


def extract_tar_gz(stream: BinaryIO, dest_dir: str | os.PathLike) -> None:
    """Extract a gzip-compressed tar stream into dest_dir.

    Directories and regular files are written; other member types are reported
    and skipped.
    """
    dest = Path(dest_dir)
    with tarfile.open(fileobj=stream, mode="r|gz") as archive:
        for member in archive:
            target = _target(dest, member.name)
            if member.isdir():
                target.mkdir(mode=member.mode & 0o777 or 0o755, parents=True, exist_ok=True)
            elif member.isreg():
                target.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
                source = archive.extractfile(member)
                with open(target, "wb") as out:
                    if source is not None:
                        shutil.copyfileobj(source, out)
            else:
                print(f"Unknown type: {member.type[0]} in {member.name}")