"""pytest fixtures exposing the harness to test specifications.

Tests ask for ``authenticated_page`` (or ``surface_handle`` when they need
the context and recovery bookkeeping too) and receive a page that is already
signed in to Conduit. Teardown is guaranteed by the fixture.
"""
import threading

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError
from werkzeug.serving import make_server

from ui_harness.auth_state import SessionCache
from ui_harness.bootstrap import CredentialBootstrapper
from ui_harness.config import settings
from ui_harness.credential_store import CredentialStore
from ui_harness.playwright_client import PlaywrightClient
from ui_harness.surface_health import SurfaceHealthMonitor
from ui_harness.surface_manager import SurfaceManager


# ============================================================================
# Credential and session cache fixtures
# ============================================================================

@pytest.fixture()
def credential_store():
    """Credential store at the configured path."""
    return CredentialStore(settings.credentials_file)


@pytest.fixture()
def session_cache():
    """Session cache for the configured identity."""
    return SessionCache(settings.session_dir, settings.identity)


@pytest.fixture()
def bootstrapper(credential_store):
    """Bootstrapper for the configured identity and API."""
    return CredentialBootstrapper(
        store=credential_store,
        api_url=settings.api_url,
        label=settings.identity,
        timeout=settings.registration_timeout,
    )


@pytest.fixture()
def credential(bootstrapper):
    """The run's CredentialRecord, registering an account on first use."""
    return bootstrapper.ensure_credential()


# ============================================================================
# Browser fixtures
# ============================================================================

@pytest_asyncio.fixture()
async def playwright_client():
    """Launch the configured browser; skip when it is not installed."""
    client = PlaywrightClient()
    try:
        await client.connect()
    except PlaywrightError as exc:
        pytest.skip(f"Playwright browser unavailable - run 'playwright install {client.browser_type}': {exc}")
    try:
        yield client
    finally:
        await client.close()


@pytest_asyncio.fixture()
async def surface_manager(playwright_client, session_cache, bootstrapper):
    """Per-test SurfaceManager; releases anything still open at the end."""
    async with SurfaceManager(
        browser=playwright_client.browser,
        session_cache=session_cache,
        ensure_credential=bootstrapper.ensure_credential,
    ) as manager:
        yield manager


@pytest_asyncio.fixture()
async def surface_handle(surface_manager):
    """Authenticated surface handle, closed however the test exits."""
    async with surface_manager.surface() as handle:
        yield handle


@pytest_asyncio.fixture()
async def authenticated_page(surface_handle):
    """Signed-in Conduit page for the test body."""
    return surface_handle.page


@pytest.fixture()
def health_monitor(surface_manager):
    """Health monitor bound to this test's SurfaceManager."""
    return SurfaceHealthMonitor(surface_manager)


# ============================================================================
# Mock Conduit fixtures
# ============================================================================

class MockServer:
    """Serve a Flask app from a background thread on a free port."""

    def __init__(self, app, host="127.0.0.1", port=0):
        self.host = host
        self.server = make_server(host, port, app, threaded=True)
        self.port = self.server.server_port
        self.thread = None

    def start(self):
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def stop(self):
        self.server.shutdown()
        if self.thread:
            self.thread.join(timeout=5)
        self.server.server_close()

    @property
    def url(self):
        return f"http://{self.host}:{self.port}"

    @property
    def api_url(self):
        return f"{self.url}/api"


@pytest.fixture(scope="function")
def mock_conduit_server():
    """Running mock Conduit application with fresh state."""
    from ui_harness.mock_conduit_api import create_mock_api_app, reset_mock_state

    reset_mock_state()
    server = MockServer(create_mock_api_app())
    server.start()

    yield server

    server.stop()
    reset_mock_state()


@pytest.fixture()
def mock_conduit_settings(mock_conduit_server, tmp_path):
    """Point the harness at the mock server with throwaway cache files."""
    with settings.override(
        base_url=mock_conduit_server.url,
        api_url=mock_conduit_server.api_url,
        credentials_file=tmp_path / "credentials.json",
        session_dir=tmp_path / "auth-states",
        force_regenerate=False,
    ) as profile:
        yield profile
