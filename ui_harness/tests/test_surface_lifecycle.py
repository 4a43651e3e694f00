"""Browser-backed checks of the surface lifecycle against the mock Conduit app."""
import os

import pytest

from ui_harness import mock_conduit_api
from ui_harness.browser import Browser
from ui_harness.config import settings
from ui_harness.surface_health import SurfaceHealthMonitor, SurfaceState
from ui_harness.workflows import is_authenticated

LIVE = os.environ.get("HARNESS_LIVE", "").lower() in {"1", "true", "yes"}

pytestmark = [
    pytest.mark.asyncio,
    pytest.mark.skipif(LIVE, reason="Counts calls on the mock Conduit app"),
]


async def test_first_surface_logs_in_and_caches_session(surface_manager, session_cache):
    async with surface_manager.surface() as handle:
        assert handle.logged_in is True
        assert await is_authenticated(Browser(handle.page))

    assert mock_conduit_api.CALLS["login"] == 1
    assert session_cache.load() is not None


async def test_cached_session_skips_login(surface_manager):
    async with surface_manager.surface():
        pass
    assert mock_conduit_api.CALLS["login"] == 1

    async with surface_manager.surface() as handle:
        assert handle.logged_in is False
        browser = Browser(handle.page)
        await browser.goto(settings.url("/"))
        assert await is_authenticated(browser)
        assert await browser.text("#nav-user") == "signed in"

    assert mock_conduit_api.CALLS["login"] == 1


async def test_closed_page_recovers_without_new_context(surface_manager):
    monitor = SurfaceHealthMonitor(surface_manager)
    async with surface_manager.surface() as handle:
        context = handle.context
        await handle.page.close()

        await monitor.ensure_valid(handle)

        assert handle.state is SurfaceState.VALID
        assert handle.recoveries == ["page"]
        assert handle.context is context


async def test_teardown_runs_when_test_body_raises(surface_manager):
    captured = {}
    with pytest.raises(RuntimeError):
        async with surface_manager.surface() as handle:
            captured["page"] = handle.page
            raise RuntimeError("test body failed")

    assert captured["page"].is_closed()
    assert surface_manager.handle_count == 0

