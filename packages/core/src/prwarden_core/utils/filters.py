"""Reviewable-file selection.

Include lists are permissive by default: an empty include list means "no
restriction", never "match nothing". Exclude lists only bite when non-empty.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from prwarden_core.diff import DELETED, DiffFile


def normalize_path(filename: str) -> str:
    return filename.replace("\\", "/")


def _clean(entries: Iterable[str] | None) -> list[str]:
    # "".split(",") yields [""], which would otherwise match every file.
    return [e.strip() for e in (entries or []) if e and e.strip()]


def is_reviewable(
    filename: str,
    include_extensions: Sequence[str] = (),
    exclude_extensions: Sequence[str] = (),
    include_paths: Sequence[str] = (),
    exclude_paths: Sequence[str] = (),
) -> bool:
    name = normalize_path(filename)
    include_ext = _clean(include_extensions)
    exclude_ext = _clean(exclude_extensions)
    include_dirs = [normalize_path(p) for p in _clean(include_paths)]
    exclude_dirs = [normalize_path(p) for p in _clean(exclude_paths)]

    included_ext = not include_ext or any(name.endswith(ext) for ext in include_ext)
    excluded_ext = bool(exclude_ext) and any(name.endswith(ext) for ext in exclude_ext)
    included_path = not include_dirs or any(name.startswith(p) for p in include_dirs)
    excluded_path = bool(exclude_dirs) and any(name.startswith(p) for p in exclude_dirs)

    return included_ext and not excluded_ext and included_path and not excluded_path


def filter_reviewable(
    files: Iterable[DiffFile],
    include_extensions: Sequence[str] = (),
    exclude_extensions: Sequence[str] = (),
    include_paths: Sequence[str] = (),
    exclude_paths: Sequence[str] = (),
) -> list[DiffFile]:
    """Return the files that enter the review pipeline, preserving order.

    Deleted files never qualify: there are no new-side lines to comment on.
    """
    return [
        f
        for f in files
        if f.status != DELETED
        and is_reviewable(f.path, include_extensions, exclude_extensions, include_paths, exclude_paths)
    ]
