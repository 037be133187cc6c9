"""
# QuizForge
# Copyright (c) 2026 Dale Chapman
# Licensed under the MIT License. See LICENSE in the project root.

archive.py

In-memory access to zip-based inputs (IMS packages and DOCX files).

SECURITY:
- Members are read into memory only, never extracted to disk
- Per-member and total size limits guard against zip bombs
- Suspicious compression ratios are refused
"""

from __future__ import annotations

import io
import zipfile
import zlib
from typing import List, Optional


# SECURITY: Size limits to prevent zip bombs and DoS
MAX_TOTAL_SIZE = 500 * 1024 * 1024  # 500 MB total
MAX_FILE_SIZE = 50 * 1024 * 1024    # 50 MB per member
MAX_FILES = 10000                    # Maximum member count
MAX_COMPRESSION_RATIO = 100          # Maximum compression ratio


class ArchiveError(Exception):
    """The archive is unreadable or exceeds safety limits."""
    pass


def open_archive(data: bytes) -> zipfile.ZipFile:
    """
    Open a zip payload held in memory.

    Raises:
        ArchiveError: if the payload is not a zip or breaks a safety limit
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data), "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"Not a readable zip archive: {e}")

    infos = archive.infolist()
    if len(infos) > MAX_FILES:
        archive.close()
        raise ArchiveError(f"Archive contains too many files: {len(infos)}")

    total_size = sum(info.file_size for info in infos)
    if total_size > MAX_TOTAL_SIZE:
        archive.close()
        raise ArchiveError(
            f"Archive too large: {total_size / (1024*1024):.1f} MB "
            f"(max {MAX_TOTAL_SIZE / (1024*1024):.0f} MB)"
        )

    return archive


def member_names(archive: zipfile.ZipFile) -> List[str]:
    """File (non-directory) member names in archive order."""
    return [info.filename for info in archive.infolist() if not info.is_dir()]


def find_member(archive: zipfile.ZipFile, name: str) -> Optional[str]:
    """Exact member lookup, tolerating a leading './' or '/'."""
    candidate = name.lstrip("/")
    if candidate.startswith("./"):
        candidate = candidate[2:]
    try:
        archive.getinfo(candidate)
    except KeyError:
        return None
    return candidate


def read_member(archive: zipfile.ZipFile, name: str) -> bytes:
    """
    Read one member, enforcing the per-member safety limits.

    Raises:
        ArchiveError: if the member is missing, too large or over-compressed
    """
    try:
        info = archive.getinfo(name)
    except KeyError:
        raise ArchiveError(f"Missing archive member: {name}")

    if info.file_size > MAX_FILE_SIZE:
        raise ArchiveError(f"Member too large: {name} ({info.file_size / (1024*1024):.1f} MB)")

    if info.file_size > 0 and info.compress_size > 0:
        ratio = info.file_size / info.compress_size
        if ratio > MAX_COMPRESSION_RATIO:
            raise ArchiveError(f"Suspicious compression: {name} ({ratio:.0f}x)")

    try:
        return archive.read(info)
    except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as e:
        raise ArchiveError(f"Failed to read {name}: {e}")


def read_member_text(archive: zipfile.ZipFile, name: str) -> str:
    return read_member(archive, name).decode("utf-8-sig", errors="replace")
