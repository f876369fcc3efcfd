"""Runtime settings for the file manager backend.

Everything is read from environment variables once at process start.
Tests (and embedders) build ``Settings(root=...)`` directly instead.

Environment variables
- TWINPANE_ROOT: sandbox root directory (default: /data)
- TWINPANE_PATH_POLICY: clamp|reject, what to do with escaping paths (default: clamp)
- TWINPANE_TRASH_DIRNAME: recycle bin directory name (default: $Recycle.Bin)
- TWINPANE_PROTECTED: colon-separated top-level segments that refuse deletes
- TWINPANE_MAX_UPLOAD_MB: upload size limit, 0 disables it (default: 0)
- TWINPANE_PROGRESS_INTERVAL: seconds between progress events (default: 0.2)
- TWINPANE_CHUNK_KB: copy chunk size in KiB (default: 64)
- TWINPANE_CHANNEL_SIZE: max queued progress events per operation (default: 256)
- TWINPANE_HOST / TWINPANE_PORT: listen address for run_server.py
- TWINPANE_LOG_DIR: see services/logging_setup.py
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


PATH_POLICIES = ("clamp", "reject")

DEFAULT_ROOT = "/data"
DEFAULT_TRASH_DIRNAME = "$Recycle.Bin"


def _env_str(name: str, default: str) -> str:
    v = (os.getenv(name, "") or "").strip()
    return v or default


def _env_int(name: str, default: int) -> int:
    try:
        v = str(os.getenv(name, "") or "").strip()
        if not v:
            return int(default)
        return int(float(v))
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    try:
        v = str(os.getenv(name, "") or "").strip()
        if not v:
            return float(default)
        return float(v)
    except Exception:
        return float(default)


def _env_list(name: str) -> List[str]:
    raw = (os.getenv(name, "") or "").strip()
    return [p.strip().strip("/") for p in raw.split(":") if p.strip().strip("/")]


@dataclass
class Settings:
    root: str = DEFAULT_ROOT
    path_policy: str = "clamp"
    trash_dirname: str = DEFAULT_TRASH_DIRNAME
    protected: List[str] = field(default_factory=list)
    max_upload_mb: int = 0
    progress_interval: float = 0.2
    chunk_size: int = 64 * 1024
    channel_size: int = 256
    host: str = "0.0.0.0"
    port: int = 3000
    log_dir: Optional[str] = None

    def __post_init__(self) -> None:
        self.root = os.path.realpath(str(self.root or DEFAULT_ROOT))
        policy = str(self.path_policy or "clamp").strip().lower()
        self.path_policy = policy if policy in PATH_POLICIES else "clamp"
        name = str(self.trash_dirname or "").strip().replace("/", "_")
        self.trash_dirname = name if name not in ("", ".", "..") else DEFAULT_TRASH_DIRNAME
        self.max_upload_mb = max(0, int(self.max_upload_mb or 0))
        self.progress_interval = max(0.0, float(self.progress_interval))
        self.chunk_size = max(4096, int(self.chunk_size or 0))
        self.channel_size = max(8, int(self.channel_size or 0))

    @property
    def max_upload_bytes(self) -> Optional[int]:
        if self.max_upload_mb <= 0:
            return None
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            root=_env_str("TWINPANE_ROOT", DEFAULT_ROOT),
            path_policy=_env_str("TWINPANE_PATH_POLICY", "clamp"),
            trash_dirname=_env_str("TWINPANE_TRASH_DIRNAME", DEFAULT_TRASH_DIRNAME),
            protected=_env_list("TWINPANE_PROTECTED"),
            max_upload_mb=_env_int("TWINPANE_MAX_UPLOAD_MB", 0),
            progress_interval=_env_float("TWINPANE_PROGRESS_INTERVAL", 0.2),
            chunk_size=_env_int("TWINPANE_CHUNK_KB", 64) * 1024,
            channel_size=_env_int("TWINPANE_CHANNEL_SIZE", 256),
            host=_env_str("TWINPANE_HOST", "0.0.0.0"),
            port=_env_int("TWINPANE_PORT", 3000),
            log_dir=(os.getenv("TWINPANE_LOG_DIR", "") or "").strip() or None,
        )
