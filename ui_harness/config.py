"""Shared configuration for the Conduit UI harness.

Configuration is read from environment variables, falling back to values in
the workspace ``.env.defaults`` file and finally to the built-in defaults for
the public Conduit demo deployment.

Set UI_BASE_URL / UI_API_URL to point the harness at another deployment, or
use ``settings.override(...)`` inside tests to switch temporarily.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterator
from urllib.parse import urljoin

from ui_harness.env_defaults import REPO_ROOT, env

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://conduit.bondaracademy.com"
DEFAULT_API_URL = "https://conduit-api.bondaracademy.com/api"

TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: str) -> bool:
    return value.strip().lower() in TRUTHY


def _path(value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else REPO_ROOT / path


@dataclass
class HarnessProfile:
    """Concrete set of target URLs, cache locations and bounds for one run."""

    name: str
    base_url: str
    api_url: str
    credentials_file: Path
    session_dir: Path
    identity: str = "default"
    force_regenerate: bool = False
    headless: bool = True
    browser_type: str = "chromium"
    operation_timeout: float = 30.0
    login_timeout: float = 30.0
    probe_timeout: float = 2.0
    registration_timeout: float = 20.0
    viewport_width: int = 1280
    viewport_height: int = 720

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}


def load_profile(name: str = "primary") -> HarnessProfile:
    """Build a profile from the current environment."""
    return HarnessProfile(
        name=name,
        base_url=env("UI_BASE_URL", DEFAULT_BASE_URL),
        api_url=env("UI_API_URL", DEFAULT_API_URL),
        credentials_file=_path(env("HARNESS_CREDENTIALS_FILE", "tmp/credentials.json")),
        session_dir=_path(env("HARNESS_SESSION_DIR", "tmp/auth-states")),
        identity=env("HARNESS_IDENTITY", "default"),
        force_regenerate=_flag(env("HARNESS_FORCE_REGENERATE", "0")),
        headless=_flag(env("PLAYWRIGHT_HEADLESS", "true")),
        browser_type=env("PLAYWRIGHT_BROWSER", "chromium"),
        operation_timeout=float(env("HARNESS_OPERATION_TIMEOUT", "30")),
        login_timeout=float(env("HARNESS_LOGIN_TIMEOUT", "30")),
        probe_timeout=float(env("HARNESS_PROBE_TIMEOUT", "2")),
        registration_timeout=float(env("HARNESS_REGISTRATION_TIMEOUT", "20")),
        viewport_width=int(env("HARNESS_VIEWPORT_WIDTH", "1280")),
        viewport_height=int(env("HARNESS_VIEWPORT_HEIGHT", "720")),
    )


class HarnessConfig:
    """Process-wide view of the active harness profile.

    Reads happen through properties so a profile switched in with
    ``override`` is seen by every module that imported ``settings``.
    """

    def __init__(self) -> None:
        self._active: HarnessProfile = load_profile()
        logger.debug(
            "Harness config: base_url=%s api_url=%s credentials=%s",
            self._active.base_url,
            self._active.api_url,
            self._active.credentials_file,
        )

    # ---- active profile helpers -------------------------------------------------
    @property
    def active(self) -> HarnessProfile:
        return self._active

    @property
    def base_url(self) -> str:
        return self._active.base_url

    @property
    def api_url(self) -> str:
        return self._active.api_url

    @property
    def credentials_file(self) -> Path:
        return self._active.credentials_file

    @property
    def session_dir(self) -> Path:
        return self._active.session_dir

    @property
    def identity(self) -> str:
        return self._active.identity

    @property
    def force_regenerate(self) -> bool:
        return self._active.force_regenerate

    @property
    def playwright_headless(self) -> bool:
        return self._active.headless

    @property
    def browser_type(self) -> str:
        return self._active.browser_type

    @property
    def operation_timeout(self) -> float:
        return self._active.operation_timeout

    @property
    def login_timeout(self) -> float:
        return self._active.login_timeout

    @property
    def probe_timeout(self) -> float:
        return self._active.probe_timeout

    @property
    def registration_timeout(self) -> float:
        return self._active.registration_timeout

    @property
    def viewport(self) -> dict:
        return self._active.viewport

    # ---- profile orchestration --------------------------------------------------
    @contextmanager
    def override(self, **changes) -> Iterator[HarnessProfile]:
        """Temporarily replace fields of the active profile.

        The original profile object is never mutated.
        """
        previous = self._active
        self._active = replace(previous, **changes)
        try:
            yield self._active
        finally:
            self._active = previous

    # ---- utility helpers --------------------------------------------------------
    def url(self, path: str) -> str:
        """Return an absolute front-end URL for the provided path."""
        return urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))

    def api(self, path: str) -> str:
        """Return an absolute API URL for the provided path."""
        return urljoin(self.api_url.rstrip("/") + "/", path.lstrip("/"))


# Singleton instance - initialized on first import
settings = HarnessConfig()
