"""Recycle bin support for deletes.

Deletes are soft by default: the entry is moved into a hidden recycle
directory that lives directly under its top-level segment ("drive"):

    <root>/<drive>/$Recycle.Bin/<epoch_ms>_<name>

An entry that *is* a top-level segment goes to ``<root>/$Recycle.Bin``
instead, since a directory cannot be moved into its own subtree.
Every delete goes through ``allocate``; an entry already inside a recycle
directory is trashed again next to itself. A recycle directory itself
cannot be deleted, since it would have to be moved into its own subtree.
"""

from __future__ import annotations

import os
import time
from typing import Callable, Iterable, List

from services.logging_setup import core_log as _core_log
from services.sandbox import Sandbox


class OperationRefused(PermissionError):
    """The sandbox policy forbids this operation on this path."""


def _trash_safe_name(base: str) -> str:
    s = (base or "item").replace("/", "_").replace("\x00", "")
    # Keep reasonably short to avoid NAME_MAX issues.
    if len(s) > 200:
        s = s[:200]
    return s


class RecycleStore:
    def __init__(
        self,
        sandbox: Sandbox,
        *,
        dirname: str = "$Recycle.Bin",
        protected: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.sandbox = sandbox
        self.dirname = dirname
        self.protected: List[str] = [p.strip("/") for p in protected if p and p.strip("/")]
        self._clock = clock

    def trash_dir_for(self, source: str) -> str:
        segment = self.sandbox.top_segment(source)
        root = self.sandbox.root
        if segment is None or os.path.normpath(source) == os.path.join(root, segment):
            return os.path.join(root, self.dirname)
        return os.path.join(root, segment, self.dirname)

    def is_trash_dir(self, path: str) -> bool:
        """True if ``path`` is the recycle directory its own deletes would go to."""
        return os.path.normpath(path) == self.trash_dir_for(path)

    def check_deletable(self, path: str) -> None:
        if self.sandbox.is_root(path):
            raise OperationRefused("refuse_delete_root")
        if self.is_trash_dir(path):
            raise OperationRefused("refuse_delete_recycle_bin")
        segment = self.sandbox.top_segment(path)
        if segment is not None and segment in self.protected:
            raise OperationRefused("protected_path")

    def allocate(self, source: str) -> str:
        """Return a fresh path inside the recycle directory for ``source``.

        Creating the recycle directory is best-effort: some mounts refuse
        mkdir on hidden/system names but still accept writes into an
        existing one, so failures here are logged and the path is returned
        anyway.
        """
        trash_dir = self.trash_dir_for(source)
        try:
            os.makedirs(trash_dir, exist_ok=True)
        except OSError as e:
            _core_log("warning", "trash.mkdir_failed", path=trash_dir, error=str(e))

        base = _trash_safe_name(os.path.basename(source.rstrip("/")))
        ts = int(self._clock() * 1000)
        dst = os.path.join(trash_dir, f"{ts}_{base}")
        # Same name deleted twice within one millisecond: add a counter.
        n = 1
        while os.path.lexists(dst):
            dst = os.path.join(trash_dir, f"{ts}_{n}_{base}")
            n += 1
        return dst

