"""Archive writer — reproducible zip files.

``write_archive`` takes ``(local_path, root_path)`` pairs and produces one
zip. Entries are written sorted by local path with a fixed timestamp and
fixed permissions, so unchanged inputs give a byte-identical archive.

With ``use_native_tool`` the files are staged in a temporary directory and
the system ``zip`` binary does the compression; the entry set is the same.

The archive is written next to its destination and moved into place, so a
failed write never leaves a truncated file at the canonical path.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from collections.abc import Sequence
from pathlib import Path

from fnpack.core.errors import PackagingError
from fnpack.core.logging import get_logger
from fnpack.models import CandidateFile
from fnpack.utils.process import CommandNotFoundError, SpawnError, spawn

logger = get_logger(__name__)

# Earliest timestamp the zip format can represent.
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
FIXED_EPOCH = 315532800

_EXEC_MODE = 0o755
_FILE_MODE = 0o644


def _ordered_entries(files: Sequence[CandidateFile], destination: Path) -> list[CandidateFile]:
    entries = sorted(files, key=lambda f: f.local_path)
    seen: set[str] = set()
    for entry in entries:
        if entry.local_path in seen:
            raise PackagingError(
                f"Duplicate archive entry {entry.local_path!r} in {destination}",
                path=entry.local_path,
            )
        seen.add(entry.local_path)
    return entries


def _file_mode(root_path: str) -> int:
    return _EXEC_MODE if os.stat(root_path).st_mode & 0o111 else _FILE_MODE


def _write_in_process(target: Path, entries: list[CandidateFile]) -> None:
    with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zf:
        for entry in entries:
            zinfo = zipfile.ZipInfo(filename=entry.local_path, date_time=FIXED_DATE_TIME)
            zinfo.external_attr = _file_mode(entry.root_path) << 16
            zinfo.compress_type = zipfile.ZIP_DEFLATED
            with open(entry.root_path, "rb") as src, zf.open(zinfo, "w") as dst:
                shutil.copyfileobj(src, dst)


def _write_native(target: Path, entries: list[CandidateFile]) -> None:
    staging = tempfile.mkdtemp(prefix="fnpack_zip_")
    try:
        for entry in entries:
            staged = Path(staging) / entry.local_path
            staged.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(entry.root_path, staged)
            os.chmod(staged, _file_mode(entry.root_path))
            os.utime(staged, (FIXED_EPOCH, FIXED_EPOCH))

        # -X: no extra attributes, -D: no directory entries, -@: names from stdin
        spawn(
            ["zip", "-X", "-D", "-q", "-@", str(target)],
            cwd=staging,
            input="\n".join(e.local_path for e in entries) + "\n",
        )
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def write_archive(
    destination: str | Path,
    files: Sequence[CandidateFile],
    use_native_tool: bool = False,
) -> Path:
    """Write ``files`` into the zip at ``destination``.

    Raises:
        PackagingError: duplicate entries, unreadable files, or a failing
            ``zip`` binary.
    """
    dest = Path(destination)
    entries = _ordered_entries(files, dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        if use_native_tool:
            # zip appends to an existing archive
            tmp_path.unlink()
            _write_native(tmp_path, entries)
        else:
            _write_in_process(tmp_path, entries)
        os.replace(tmp_path, dest)
    except (OSError, SpawnError, CommandNotFoundError, zipfile.BadZipFile) as exc:
        raise PackagingError(f"Failed to write archive {dest}: {exc}", path=str(dest), cause=exc) from exc
    finally:
        tmp_path.unlink(missing_ok=True)

    logger.debug("archive.written", path=str(dest), entries=len(entries), native=use_native_tool)
    return dest


def read_archive_listing(archive: str | Path) -> list[str]:
    """Entry names of an archive, in stored order."""
    with zipfile.ZipFile(archive, "r") as zf:
        return zf.namelist()


__all__ = ["FIXED_DATE_TIME", "read_archive_listing", "write_archive"]
