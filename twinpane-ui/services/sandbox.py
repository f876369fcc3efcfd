"""Path sandbox: maps client-supplied paths to absolute paths under one root.

Two policies for paths that try to leave the root:

- ``clamp`` (default): every ``..`` substring is stripped from the raw input
  before it is joined onto the root; anything that still ends up outside
  the root resolves to the root itself. ``resolve`` never raises.
- ``reject``: the input is normalised per path segment and any ``..``
  segment, NUL byte or symlinked parent leading outside the root raises
  ``PathEscapeError`` instead.

``resolve`` never follows the final path component, so operations on a
symlink act on the link itself. Parents are checked with ``realpath`` so a
symlinked directory inside the root cannot be used to reach outside it.
``resolve_followed`` additionally requires the final component to resolve
inside the root; it is used wherever the path is read or written through.
"""

from __future__ import annotations

import os
from typing import Optional

from services.logging_setup import core_log as _core_log


class PathEscapeError(PermissionError):
    """Raised by the ``reject`` policy for paths leading outside the root."""


class Sandbox:
    def __init__(self, root: str, *, policy: str = "clamp") -> None:
        self.root = os.path.realpath(root)
        self.policy = policy

    def contains(self, path: str) -> bool:
        """Lexical containment check for an absolute, normalised path."""
        try:
            return os.path.commonpath([path, self.root]) == self.root
        except ValueError:
            return False

    def is_root(self, path: str) -> bool:
        return os.path.normpath(path) == self.root

    def _escape(self, raw: str) -> str:
        if self.policy == "reject":
            raise PathEscapeError("path_not_allowed")
        _core_log("warning", "sandbox.clamp", raw=repr(raw))
        return self.root

    def _clean(self, raw: str) -> Optional[str]:
        if "\x00" in raw:
            return None
        if self.policy == "reject":
            parts = [p for p in raw.split("/") if p not in ("", ".")]
            if ".." in parts:
                return None
            return "/".join(parts)
        return raw.replace("..", "").lstrip("/")

    def resolve(self, raw: Optional[str]) -> str:
        """Return the absolute path for ``raw``, guaranteed to be inside the root."""
        s = "" if raw is None else str(raw)
        cleaned = self._clean(s)
        if cleaned is None:
            return self._escape(s)

        joined = os.path.normpath(os.path.join(self.root, cleaned.lstrip("/")))
        if not self.contains(joined):
            return self._escape(s)
        if joined != self.root:
            parent = os.path.realpath(os.path.dirname(joined))
            if not self.contains(parent):
                return self._escape(s)
        return joined

    def resolve_followed(self, raw: Optional[str]) -> str:
        """Like ``resolve`` for paths whose contents are read or written
        (listing, download, upload target): the fully resolved path,
        final symlink included, must stay inside the root as well.
        """
        rp = self.resolve(raw)
        if not self.contains(os.path.realpath(rp)):
            return self._escape("" if raw is None else str(raw))
        return rp

    def relative(self, path: str) -> str:
        """Client-facing form of an absolute path: ``/a/b`` (``/`` for the root)."""
        rel = os.path.relpath(path, self.root)
        if rel == ".":
            return "/"
        return "/" + rel.replace(os.sep, "/")

    def top_segment(self, path: str) -> Optional[str]:
        """First path segment below the root (the "drive"), or None for the root."""
        rel = os.path.relpath(os.path.normpath(path), self.root)
        if rel == "." or rel.startswith(".."):
            return None
        return rel.split(os.sep, 1)[0]
