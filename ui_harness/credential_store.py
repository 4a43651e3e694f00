"""On-disk credential store shared by every worker of a test run.

Maps a logical test identity (label) to the Conduit account the harness
logs in with. The file lives outside the browser cache so it survives
``rm -rf tmp/auth-states`` and is only replaced by a forced regeneration.

Layout::

    {
      "identities": {
        "default": {"username": ..., "email": ..., "password": ..., "created_at": ...}
      },
      "last_updated_at": "...",
      "updated_by": "bootstrap"
    }
"""
from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX platforms
    fcntl = None

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class CredentialRecord:
    """Conduit account used by the harness for one logical identity."""

    label: str
    username: str
    email: str
    password: str
    created_at: str

    @property
    def identity(self) -> str:
        """Login identifier; Conduit signs in by email."""
        return self.email

    @property
    def masked_password(self) -> str:
        return "*" * len(self.password)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("label")
        return data

    @classmethod
    def from_dict(cls, label: str, data: dict) -> "CredentialRecord":
        return cls(
            label=label,
            username=data["username"],
            email=data["email"],
            password=data["password"],
            created_at=data["created_at"],
        )


def write_json_atomic(path: Path, data: dict) -> None:
    """Write JSON next to ``path`` and rename it into place.

    Readers see either the old file or the new one, never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_file, path)
    except BaseException:
        temp_file.unlink(missing_ok=True)
        raise


class CredentialStore:
    """JSON-file backed store of CredentialRecords, keyed by label."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def _read(self) -> Dict:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def exists(self, label: str = "default") -> bool:
        return self.load(label) is not None

    def load(self, label: str = "default") -> Optional[CredentialRecord]:
        """Read the record for ``label`` fresh from disk.

        A missing file or missing label means "not bootstrapped yet" and
        returns None.
        """
        state = self._read()
        data = state.get("identities", {}).get(label)
        if not data:
            return None
        return CredentialRecord.from_dict(label, data)

    def save(self, record: CredentialRecord, updated_by: str = "bootstrap") -> None:
        """Replace the record for ``record.label``, leaving other labels intact."""
        state = self._read()
        identities = state.setdefault("identities", {})
        identities[record.label] = record.to_dict()
        state["last_updated_at"] = utc_now()
        state["updated_by"] = updated_by
        write_json_atomic(self.path, state)
        logger.info("Stored credential for %s (%s) in %s", record.label, record.email, self.path)

    def delete(self, label: str = "default") -> bool:
        state = self._read()
        identities = state.get("identities", {})
        if label not in identities:
            return False
        del identities[label]
        state["last_updated_at"] = utc_now()
        state["updated_by"] = "delete"
        write_json_atomic(self.path, state)
        logger.info("Deleted credential for %s from %s", label, self.path)
        return True

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive advisory lock shared by all workers of the run.

        Without fcntl the lock degrades to a no-op and concurrent first-time
        bootstraps fall back to last-writer-wins.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a+") as lock_fp:
            if fcntl is not None:
                fcntl.flock(lock_fp.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                if fcntl is not None:
                    fcntl.flock(lock_fp.fileno(), fcntl.LOCK_UN)
