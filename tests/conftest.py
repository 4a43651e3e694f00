"""Fixtures for harness unit tests: in-memory stand-ins for Playwright objects."""
import sys
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ui_harness.auth_state import SessionCache
from ui_harness.conftest import mock_conduit_server  # noqa: F401
from ui_harness.credential_store import CredentialRecord, CredentialStore, utc_now


class FakePage:
    """Page with an open -> closed lifecycle and a scriptable liveness probe."""

    def __init__(self, context, broken=False):
        self.context = context
        self.broken = broken
        self.url = "about:blank"
        self._closed = False
        self.evaluations = 0

    def is_closed(self):
        return self._closed

    async def evaluate(self, script, arg=None):
        self.evaluations += 1
        if self._closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        if self.broken or self.context.broken:
            raise PlaywrightError("Execution context was destroyed")
        return "complete"

    async def close(self):
        self._closed = True


class FakeContext:
    def __init__(self, browser, storage_state=None, viewport=None, locale=None):
        self.browser = browser
        self.seeded_state = storage_state
        self.viewport = viewport
        self.locale = locale
        self.pages = []
        self.closed = False
        self.broken = False
        self.default_timeout = None

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    async def new_page(self):
        if self.closed:
            raise PlaywrightError("Target page, context or browser has been closed")
        page = FakePage(self, broken=self.browser.break_new_pages)
        self.pages.append(page)
        return page

    async def storage_state(self):
        return {
            "cookies": [{"name": "session", "value": "abc", "domain": "localhost", "path": "/"}],
            "origins": [{"origin": "http://localhost", "localStorage": [{"name": "jwtToken", "value": "jwt"}]}],
        }

    async def close(self):
        if self.browser.fail_close:
            raise PlaywrightError("Browser has been closed")
        self.closed = True
        for page in self.pages:
            await page.close()


class FakeBrowser:
    """Records every context it creates."""

    def __init__(self):
        self.contexts = []
        self.break_new_pages = False
        self.fail_close = False

    async def new_context(self, viewport=None, locale=None, storage_state=None):
        context = FakeContext(self, storage_state=storage_state, viewport=viewport, locale=locale)
        self.contexts.append(context)
        return context


class FakeLogin:
    """Login callable that counts calls instead of driving a form."""

    def __init__(self, result=True, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def __call__(self, page, credential):
        import anyio

        self.calls.append((page, credential))
        if self.delay:
            await anyio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture()
def fake_browser():
    return FakeBrowser()


@pytest.fixture()
def fake_login():
    return FakeLogin()


@pytest.fixture()
def login_factory():
    return FakeLogin


@pytest.fixture()
def credential_store(tmp_path):
    return CredentialStore(tmp_path / "credentials.json")


@pytest.fixture()
def session_cache(tmp_path):
    return SessionCache(tmp_path / "auth-states", "default")


@pytest.fixture()
def credential(credential_store):
    record = CredentialRecord(
        label="default",
        username="qa_fixture",
        email="qa.fixture@example.test",
        password="Secr3t!pass",
        created_at=utc_now(),
    )
    credential_store.save(record)
    return record
