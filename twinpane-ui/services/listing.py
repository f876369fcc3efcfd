"""Directory listing for the panels.

One unreadable child (broken symlink, permission denied, vanished while
listing) degrades to an entry with ``error=True`` instead of failing the
whole listing.
"""

from __future__ import annotations

import datetime
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_directory: bool
    size: int = 0
    mtime: Optional[float] = None
    error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "name": self.name,
            "isDirectory": self.is_directory,
            "size": self.size,
            "mtime": _iso_utc(self.mtime),
        }
        if self.error:
            item["error"] = True
        return item


def _iso_utc(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    dt = datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def _entry_from_dirent(entry: os.DirEntry) -> DirectoryEntry:
    try:
        is_dir = entry.is_dir()
    except OSError:
        is_dir = False
    try:
        st = entry.stat()
    except OSError:
        return DirectoryEntry(name=entry.name, is_directory=is_dir, error=True)
    return DirectoryEntry(
        name=entry.name,
        is_directory=is_dir,
        size=0 if is_dir else int(st.st_size),
        mtime=float(st.st_mtime),
    )


def list_directory(path: str) -> List[DirectoryEntry]:
    """Immediate children of ``path``: directories first, then by name.

    Raises ``OSError`` only when ``path`` itself cannot be read.
    """
    with os.scandir(path) as it:
        entries = [_entry_from_dirent(e) for e in it]
    entries.sort(key=lambda e: (not e.is_directory, e.name))
    return entries


def find_conflicts(names: Iterable[str], directory: str) -> List[str]:
    """Names that already exist in ``directory`` (pre-check before copy/move)."""
    try:
        existing = {e.name for e in list_directory(directory)}
    except FileNotFoundError:
        return []
    out: List[str] = []
    for name in names:
        n = str(name or "")
        if n and n in existing and n not in out:
            out.append(n)
    return out
