"""
Surface health checks and the recovery ladder.

A surface (page) is valid when it is open and still answers a trivial
script evaluation. When a test finds its surface invalid the monitor
repairs it in bounded steps:

1. new page from the same context
2. new context rebuilt from the session cache, then a new page
3. give up with SurfaceRecoveryError

The caller awaits the whole ladder; a test never carries on with an
invalid surface.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional

import anyio
from playwright.async_api import Page

from ui_harness.config import settings
from ui_harness.errors import SurfaceRecoveryError

if TYPE_CHECKING:
    from ui_harness.surface_manager import SurfaceHandle, SurfaceManager

logger = logging.getLogger(__name__)

LIVENESS_SCRIPT = "() => document.readyState"

STEP_PAGE = "page"
STEP_CONTEXT = "context"


class SurfaceState(str, Enum):
    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"


async def check_surface(page: Optional[Page], probe_timeout: float = 2.0) -> SurfaceState:
    """Return VALID or INVALID for ``page``. Never raises."""
    try:
        if page is None or page.is_closed():
            return SurfaceState.INVALID
        with anyio.fail_after(probe_timeout):
            await page.evaluate(LIVENESS_SCRIPT)
    except Exception as exc:
        logger.debug("Liveness probe failed: %s", exc)
        return SurfaceState.INVALID
    return SurfaceState.VALID


class SurfaceHealthMonitor:
    """Validity predicate plus bounded recovery for SurfaceManager handles."""

    def __init__(self, manager: "SurfaceManager", probe_timeout: Optional[float] = None) -> None:
        self.manager = manager
        self.probe_timeout = probe_timeout if probe_timeout is not None else settings.probe_timeout
        self._last_error: Optional[BaseException] = None

    async def is_valid(self, handle: "SurfaceHandle") -> bool:
        handle.state = await check_surface(handle.page, self.probe_timeout)
        return handle.state is SurfaceState.VALID

    async def ensure_valid(self, handle: "SurfaceHandle") -> "SurfaceHandle":
        """Return ``handle`` with a valid surface, recovering it if needed."""
        if await self.is_valid(handle):
            return handle
        logger.warning("Surface %s is invalid, starting recovery", handle.handle_id)
        return await self.recover(handle)

    async def recover(self, handle: "SurfaceHandle") -> "SurfaceHandle":
        """Run the recovery ladder on ``handle``.

        Raises:
            SurfaceRecoveryError: when neither a new page nor a new context
                yields a valid surface
        """
        started = anyio.current_time()
        self._last_error = None

        if await self._attempt(handle, STEP_PAGE, self.manager.recreate_page):
            return handle
        if await self._attempt(handle, STEP_CONTEXT, self.manager.recreate_context):
            return handle

        error = SurfaceRecoveryError(
            f"surface {handle.handle_id} still invalid after recreating page and context",
            operation="recover_surface",
            elapsed=anyio.current_time() - started,
            surface_state=handle.state.value,
        )
        logger.error("%s", error)
        raise error from self._last_error

    async def _attempt(self, handle: "SurfaceHandle", step: str, rebuild) -> bool:
        handle.recoveries.append(step)
        try:
            await rebuild(handle)
        except Exception as exc:
            # Page/context creation fails when the underlying context is broken
            self._last_error = exc
            logger.warning("Recovery step %s failed for %s: %s", step, handle.handle_id, exc)
            handle.state = SurfaceState.INVALID
            return False

        if await self.is_valid(handle):
            logger.info("Recovered %s with step %s", handle.handle_id, step)
            return True
        logger.warning("Surface %s still invalid after step %s", handle.handle_id, step)
        return False
