"""
Filesystem utilities for cpmkeeper.

This module provides safe helpers for reading workspace files and for
discovering manifests, project files and lock graphs below a workspace
root. All filesystem errors are normalized to ``FileOperationError``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

from cpmkeeper.utils.logger import get_logger
from cpmkeeper.exceptions import FileOperationError
from cpmkeeper.constants import (
    IGNORED_DIRECTORIES,
    LOCK_FILE_RELATIVE_PATH,
    MAX_FILE_SIZE,
)


logger = get_logger("filesystem")

PathLike = Union[str, Path]


def _validated_file(path: Path) -> Path:
    """Validate and resolve a file path."""
    if not path.exists():
        raise FileOperationError(
            f"File not found: {path}",
            file_path=str(path),
            operation="read",
        )
    if not path.is_file():
        raise FileOperationError(
            f"Not a file: {path}",
            file_path=str(path),
            operation="read",
        )
    return path.resolve()


def safe_read_file(
    file_path: PathLike,
    *,
    max_size: Optional[int] = MAX_FILE_SIZE,
    encoding: str = "utf-8-sig",
) -> str:
    """Safely read a text file with optional size limits.

    MSBuild and NuGet files frequently start with a UTF-8 BOM, so the
    default encoding strips one if present.

    Args:
        file_path: Path to the file.
        max_size: Maximum allowed file size in bytes (None disables limit).
        encoding: Text encoding.

    Returns:
        File contents as a string.
    """
    path = _validated_file(Path(file_path))
    size = path.stat().st_size

    if max_size is not None and size > max_size:
        raise FileOperationError(
            f"File too large: {size} bytes (max {max_size})",
            file_path=str(path),
            operation="read",
        )

    try:
        return path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        raise FileOperationError(
            f"Failed to read file: {exc}",
            file_path=str(path),
            operation="read",
            original_error=exc,
        ) from exc


def find_files(
    directory: PathLike,
    *,
    suffix: Optional[str] = None,
    name: Optional[str] = None,
    ignored: Iterable[str] = IGNORED_DIRECTORIES,
) -> List[Path]:
    """Recursively find files by exact *name* or by *suffix*.

    Directories listed in *ignored* (build output, VCS metadata) are not
    descended into. Matching is case-insensitive, as on Windows.
    """
    root = Path(directory).resolve()
    if not root.is_dir():
        return []

    skip = {d.lower() for d in ignored}
    wanted_name = name.lower() if name else None
    wanted_suffix = suffix.lower() if suffix else None
    matches: List[Path] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d.lower() not in skip)
        for filename in filenames:
            lowered = filename.lower()
            if wanted_name is not None and lowered != wanted_name:
                continue
            if wanted_suffix is not None and not lowered.endswith(wanted_suffix):
                continue
            matches.append(Path(dirpath) / filename)

    return sorted(matches)


def lock_file_path(project_path: PathLike) -> Path:
    """Return where ``dotnet restore`` writes a project's lock graph."""
    return Path(project_path).parent.joinpath(*LOCK_FILE_RELATIVE_PATH)
