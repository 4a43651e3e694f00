"""
Execution surface manager for UI tests.

Turns the cached Conduit session into a ready, authenticated page for each
test. Every test gets its own Playwright BrowserContext, so cookies, storage
and network identity never leak between tests running side by side.

Usage:
    manager = SurfaceManager(browser, SessionCache(...), ensure_credential)
    async with manager.surface() as handle:
        await handle.page.goto(settings.url("/settings"))
"""
from __future__ import annotations

import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import anyio
from playwright.async_api import Browser, BrowserContext
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ui_harness.auth_state import SessionCache
from ui_harness.browser import ToolError
from ui_harness.config import settings
from ui_harness.credential_store import CredentialRecord
from ui_harness.errors import SessionEstablishmentError, operation_timeout
from ui_harness.surface_health import SurfaceState
from ui_harness.workflows import interactive_login

logger = logging.getLogger(__name__)

LoginCallable = Callable[[Page, CredentialRecord], Awaitable[bool]]
CredentialProvider = Callable[[], CredentialRecord]


@dataclass
class SurfaceHandle:
    """A test's context and page, plus what the harness did to produce them."""

    handle_id: str
    context: BrowserContext
    page: Page
    credential: CredentialRecord
    state: SurfaceState = SurfaceState.UNKNOWN
    logged_in: bool = False
    recoveries: List[str] = field(default_factory=list)
    released: bool = False

    def __repr__(self) -> str:
        return f"SurfaceHandle(id={self.handle_id}, user={self.credential.email}, state={self.state.value})"


class SurfaceManager:
    """
    Supplies authenticated execution surfaces and owns their teardown.

    Lifecycle per handle: ``acquire`` -> (``recreate_page`` /
    ``recreate_context`` while recovering) -> ``release``. ``surface()``
    wraps acquire/release so release runs on every exit path.
    """

    DEFAULT_LOCALE = "en-US"

    def __init__(
        self,
        browser: Browser,
        session_cache: SessionCache,
        ensure_credential: CredentialProvider,
        login: Optional[LoginCallable] = None,
        viewport: Optional[dict] = None,
        locale: str = DEFAULT_LOCALE,
        operation_timeout: Optional[float] = None,
        login_timeout: Optional[float] = None,
    ):
        """
        Args:
            browser: Launched Playwright browser
            session_cache: Cache of the authenticated storage state
            ensure_credential: Returns the run's CredentialRecord, bootstrapping if needed
            login: Coroutine performing an interactive login (defaults to the Conduit form)
            viewport: Viewport for new contexts
            locale: Browser locale setting
            operation_timeout: Bound for context/page creation, in seconds
            login_timeout: Bound for an interactive login, in seconds
        """
        self.browser = browser
        self.session_cache = session_cache
        self._ensure_credential = ensure_credential
        self._login = login or interactive_login
        self.viewport = viewport or settings.viewport
        self.locale = locale
        self.operation_timeout = operation_timeout or settings.operation_timeout
        self.login_timeout = login_timeout or settings.login_timeout
        self.handles: Dict[str, SurfaceHandle] = {}
        self.login_count = 0
        self._counter = itertools.count(1)

    async def __aenter__(self) -> "SurfaceManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release_all()

    # ---- contexts and pages -----------------------------------------------------
    async def credential(self) -> CredentialRecord:
        """Ensure a credential exists; bootstrap I/O runs off the event loop."""
        return await anyio.to_thread.run_sync(self._ensure_credential)

    async def _new_context(self, storage_state: Optional[dict] = None) -> BrowserContext:
        async with operation_timeout("new_context", self.operation_timeout):
            context = await self.browser.new_context(
                viewport=self.viewport,
                locale=self.locale,
                storage_state=storage_state,
            )
        context.set_default_timeout(self.operation_timeout * 1000)
        return context

    async def _new_page(self, context: BrowserContext) -> Page:
        async with operation_timeout("new_page", self.operation_timeout):
            return await context.new_page()

    async def open_context(self, credential: CredentialRecord) -> Tuple[BrowserContext, Optional[Page], bool]:
        """Build a context for ``credential``.

        Uses the cached session when it belongs to ``credential``; otherwise
        logs in on a clean context and captures a new cache entry.

        Returns:
            (context, page opened during login or None, whether a login happened)
        """
        state = self.session_cache.load()
        if state is not None and state.is_stale_for(credential):
            logger.info("Session state for %s is stale, discarding", state.email)
            self.session_cache.clear()
            state = None

        if state is not None:
            logger.debug("Reusing cached session for %s", credential.email)
            return await self._new_context(storage_state=state.storage_state), None, False

        context = await self._new_context()
        try:
            page = await self._new_page(context)
            await self._establish_session(context, page, credential)
        except BaseException:
            await self._close_quietly(context, "context")
            raise
        return context, page, True

    async def _establish_session(self, context: BrowserContext, page: Page, credential: CredentialRecord) -> None:
        started = anyio.current_time()
        self.login_count += 1
        try:
            async with operation_timeout("interactive_login", self.login_timeout, surface_state="open"):
                authenticated = await self._login(page, credential)
        except (ToolError, PlaywrightError) as exc:
            raise self._session_error(f"interactive login failed: {exc}", started, page) from exc

        if not authenticated:
            raise self._session_error(f"interactive login as {credential.email} was rejected", started, page)

        await self.session_cache.capture(context, credential)

    def _session_error(self, message: str, started: float, page: Page) -> SessionEstablishmentError:
        error = SessionEstablishmentError(
            message,
            operation="interactive_login",
            elapsed=anyio.current_time() - started,
            surface_state="closed" if page.is_closed() else "open",
        )
        logger.error("%s", error)
        return error

    # ---- handle lifecycle -------------------------------------------------------
    async def acquire(self) -> SurfaceHandle:
        """Produce a ready, authenticated surface for one test."""
        credential = await self.credential()
        context, page, logged_in = await self.open_context(credential)
        if page is None:
            try:
                page = await self._new_page(context)
            except BaseException:
                await self._close_quietly(context, "context")
                raise

        handle = SurfaceHandle(
            handle_id=f"surface_{next(self._counter)}",
            context=context,
            page=page,
            credential=credential,
            logged_in=logged_in,
        )
        self.handles[handle.handle_id] = handle
        logger.debug("Acquired %r (logged_in=%s)", handle, logged_in)
        return handle

    async def recreate_page(self, handle: SurfaceHandle) -> Page:
        """Replace the handle's page with a new one from the same context."""
        if not handle.page.is_closed():
            await self._close_quietly(handle.page, "page")
        handle.page = await self._new_page(handle.context)
        handle.state = SurfaceState.UNKNOWN
        return handle.page

    async def recreate_context(self, handle: SurfaceHandle) -> Page:
        """Discard the handle's context and rebuild it from the session cache."""
        if not handle.page.is_closed():
            await self._close_quietly(handle.page, "page")
        await self._close_quietly(handle.context, "context")

        context, page, logged_in = await self.open_context(handle.credential)
        if page is None:
            try:
                page = await self._new_page(context)
            except BaseException:
                await self._close_quietly(context, "context")
                raise
        handle.context = context
        handle.page = page
        handle.logged_in = handle.logged_in or logged_in
        handle.state = SurfaceState.UNKNOWN
        return page

    async def release(self, handle: SurfaceHandle) -> None:
        """Close the handle's page and context.

        Runs shielded from cancellation so a timed-out test still tears
        down; failures are logged and never raised.
        """
        with anyio.CancelScope(shield=True):
            if handle.released:
                return
            handle.released = True
            self.handles.pop(handle.handle_id, None)
            if not handle.page.is_closed():
                await self._close_quietly(handle.page, "page")
            await self._close_quietly(handle.context, "context")
            logger.debug("Released %r", handle)

    async def release_all(self) -> None:
        for handle in list(self.handles.values()):
            await self.release(handle)

    @asynccontextmanager
    async def surface(self) -> AsyncIterator[SurfaceHandle]:
        """Scoped acquisition: the surface is released however the block exits."""
        handle = await self.acquire()
        try:
            yield handle
        finally:
            await self.release(handle)

    @staticmethod
    async def _close_quietly(target, kind: str) -> None:
        try:
            await target.close()
        except Exception as exc:
            logger.warning("Error closing %s: %s", kind, exc)

    @property
    def handle_count(self) -> int:
        return len(self.handles)
