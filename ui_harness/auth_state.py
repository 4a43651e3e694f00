"""
Session cache: persisted Playwright storage state for the harness account.

Captured once after a successful interactive login and replayed into every
later browser context, so tests skip the login round trip. Conduit keeps its
JWT in localStorage, which Playwright's storage state includes alongside the
cookies.

The cache is never patched in place. A stale or broken cache is deleted and
captured again from a fresh login.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from playwright.async_api import BrowserContext

from ui_harness.credential_store import CredentialRecord, utc_now, write_json_atomic

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Serialized authenticated browsing state, tagged with its credential."""

    label: str
    email: str
    credential_created_at: str
    captured_at: str
    storage_state: dict = field(default_factory=dict)

    def belongs_to(self, credential: CredentialRecord) -> bool:
        return (
            self.label == credential.label
            and self.email == credential.email
            and self.credential_created_at == credential.created_at
        )

    def is_stale_for(self, credential: Optional[CredentialRecord]) -> bool:
        """Stale once its credential is gone or has been regenerated."""
        return credential is None or not self.belongs_to(credential)

    @property
    def cookie_count(self) -> int:
        return len(self.storage_state.get("cookies", []))

    def to_dict(self) -> dict:
        return {
            "credential": {
                "label": self.label,
                "email": self.email,
                "created_at": self.credential_created_at,
            },
            "captured_at": self.captured_at,
            "storage_state": self.storage_state,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionState":
        credential = data["credential"]
        return cls(
            label=credential["label"],
            email=credential["email"],
            credential_created_at=credential["created_at"],
            captured_at=data.get("captured_at", ""),
            storage_state=data.get("storage_state", {}),
        )


class SessionCache:
    """File-backed cache of one SessionState per credential label."""

    def __init__(self, directory: Path, label: str = "default") -> None:
        self.directory = Path(directory)
        self.label = label

    @property
    def path(self) -> Path:
        return self.directory / f"{self.label}_session.json"

    async def capture(self, context: BrowserContext, credential: CredentialRecord) -> SessionState:
        """Snapshot ``context`` after a successful login and persist it.

        Args:
            context: Playwright browser context that just logged in
            credential: The credential the login used

        Returns:
            The persisted SessionState
        """
        storage = await context.storage_state()
        state = SessionState(
            label=credential.label,
            email=credential.email,
            credential_created_at=credential.created_at,
            captured_at=utc_now(),
            storage_state=storage,
        )
        write_json_atomic(self.path, state.to_dict())
        logger.info("Saved session state (%d cookies) to %s", state.cookie_count, self.path)
        return state

    def load(self) -> Optional[SessionState]:
        """Read the cached SessionState, or None if absent or unreadable.

        An unreadable file is treated as absent; the next login recaptures it.
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                state = SessionState.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable session state %s: %s", self.path, exc)
            return None
        logger.debug("Loaded session state for %s from %s", state.email, self.path)
        return state

    def clear(self) -> None:
        """Delete the cached SessionState."""
        if self.path.exists():
            self.path.unlink(missing_ok=True)
            logger.info("Cleared session state: %s", self.path)
