"""Local tunnel state: the active configuration and the session history.

Both documents live in ``~/.cloudflared/`` (configurable for testing) as
plain JSON so they stay readable and editable by hand.
"""

from __future__ import annotations

import contextlib
import datetime
import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from cftpipe.constants import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_DIR,
    ENV_CONFIG_DIR,
    HISTORY_FILENAME,
    HISTORY_LIMIT,
    LIST_LIMIT,
    TUNNEL_TARGET_SUFFIX,
)
from cftpipe.exceptions import StateError

logger = logging.getLogger(__name__)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ------------------------------------------------------------------
# Data structures
# ------------------------------------------------------------------


@dataclass
class Configuration:
    """The single active tunnel created by ``setup``."""

    domain: str
    zone_id: str
    tunnel_id: str
    tunnel_name: str
    token: str
    created_at: datetime.datetime

    @property
    def tunnel_target(self) -> str:
        """CNAME target that routes a hostname into this tunnel."""
        return f"{self.tunnel_id}.{TUNNEL_TARGET_SUFFIX}"

    def hostname_for(self, slug: str) -> str:
        return f"{slug}.{self.domain}"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Configuration:
        """Build from a stored document, tolerating missing fields.

        ``created_at`` may be an ISO string or a Unix epoch number.
        """
        created = data.get("created_at")
        if isinstance(created, (int, float)):
            created_at = datetime.datetime.fromtimestamp(
                created, tz=datetime.timezone.utc
            )
        elif isinstance(created, str) and created:
            try:
                created_at = datetime.datetime.fromisoformat(created)
            except ValueError:
                created_at = datetime.datetime.fromtimestamp(
                    0, tz=datetime.timezone.utc
                )
        else:
            created_at = datetime.datetime.fromtimestamp(0, tz=datetime.timezone.utc)
        return cls(
            domain=str(data.get("domain") or ""),
            zone_id=str(data.get("zone_id") or ""),
            tunnel_id=str(data.get("tunnel_id") or ""),
            tunnel_name=str(data.get("tunnel_name") or ""),
            token=str(data.get("token") or ""),
            created_at=created_at,
        )


@dataclass(frozen=True)
class HistoryEntry:
    """One past tunnel session."""

    directory: str
    project: str
    hostname: str
    port: str
    timestamp: str

    @classmethod
    def create(
        cls,
        directory: str | Path,
        hostname: str,
        port: str | int,
        now: datetime.datetime | None = None,
    ) -> HistoryEntry:
        path = Path(directory)
        stamp = (now or utcnow()).astimezone(datetime.timezone.utc)
        return cls(
            directory=str(path),
            project=path.name,
            hostname=hostname,
            port=str(port),
            timestamp=stamp.strftime(_TIMESTAMP_FORMAT),
        )

    @classmethod
    def from_dict(cls, data: dict) -> HistoryEntry:
        return cls(**{f.name: str(data.get(f.name) or "") for f in fields(cls)})

    def to_dict(self) -> dict:
        return asdict(self)

    def format_line(self) -> str:
        return (
            f"{self.timestamp} | {self.project} | "
            f"https://{self.hostname} | port {self.port}"
        )


# ------------------------------------------------------------------
# Store
# ------------------------------------------------------------------


def default_config_dir() -> Path:
    override = os.environ.get(ENV_CONFIG_DIR, "").strip()
    return Path(override).expanduser() if override else DEFAULT_CONFIG_DIR


class StateStore:
    """Read and write the tunnel configuration and the bounded history log."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or default_config_dir()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def config_path(self) -> Path:
        return self._base_dir / CONFIG_FILENAME

    @property
    def history_path(self) -> Path:
        return self._base_dir / HISTORY_FILENAME

    # -- internal helpers ---------------------------------------------------

    def _atomic_write(self, path: Path, content: str, mode: int | None = None) -> None:
        """Write *content* to a temp file beside *path*, then rename over it."""
        self._base_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self._base_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            if mode is not None:
                os.chmod(tmp, mode)
            os.replace(tmp, str(path))
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise
        if mode is not None:
            os.chmod(path, mode)
        logger.debug("Wrote %s", path)

    def _load_history(self) -> list[dict]:
        try:
            text = self.history_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError:
            logger.warning("Cannot read %s; treating history as empty", self.history_path)
            return []
        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Corrupt history file %s; starting fresh", self.history_path)
            return []
        if not isinstance(data, list):
            logger.warning("History file %s is not a list; starting fresh", self.history_path)
            return []
        return [item for item in data if isinstance(item, dict)]

    # -- configuration ------------------------------------------------------

    def read_raw_config(self) -> dict | None:
        """Return the stored configuration document, or ``None`` if absent.

        Raises ``StateError`` if the file exists but is not a JSON object.
        """
        try:
            text = self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StateError(f"Cannot read {self.config_path}: {e}") from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StateError(f"Config file {self.config_path} is not valid JSON") from e
        if not isinstance(data, dict):
            raise StateError(f"Config file {self.config_path} is not a JSON object")
        return data

    def read_config(self) -> Configuration | None:
        data = self.read_raw_config()
        if data is None:
            return None
        return Configuration.from_dict(data)

    def write_config(self, config: Configuration) -> Path:
        """Replace the stored configuration. The file is owner-only (0600)."""
        self._atomic_write(
            self.config_path,
            json.dumps(config.to_dict(), indent=2) + "\n",
            mode=0o600,
        )
        return self.config_path

    def status(self) -> dict | None:
        return self.read_raw_config()

    # -- history ------------------------------------------------------------

    def append_history(self, entry: HistoryEntry) -> None:
        """Append *entry*, keeping only the newest ``HISTORY_LIMIT`` entries."""
        items = self._load_history()
        items.append(entry.to_dict())
        items = items[-HISTORY_LIMIT:]
        self._atomic_write(self.history_path, json.dumps(items, indent=2) + "\n")

    def read_history(self, limit: int = LIST_LIMIT) -> list[HistoryEntry]:
        """Return the last *limit* entries, oldest first."""
        if limit <= 0:
            return []
        items = self._load_history()[-limit:]
        return [HistoryEntry.from_dict(item) for item in items]

    def find_last_by_directory(self, directory: str | Path) -> str | None:
        """Return the hostname of the newest entry recorded for *directory*."""
        target = str(directory)
        for item in reversed(self._load_history()):
            if item.get("directory") == target:
                hostname = item.get("hostname")
                return str(hostname) if hostname else None
        return None
