"""Reusable Conduit workflows: interactive login and the settings page."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anyio
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Request, Response

from ui_harness.browser import Browser, ProbeResult, ToolError
from ui_harness.config import settings
from ui_harness.credential_store import CredentialRecord
from ui_harness.data_generator import SettingsUpdate
from ui_harness.errors import OperationTimeoutError, operation_timeout

logger = logging.getLogger(__name__)

LOGIN_EMAIL = "input[placeholder='Email']"
LOGIN_PASSWORD = "input[placeholder='Password']"
FORM_SUBMIT = "form button[type='submit']"
ERROR_MESSAGES = ".error-messages li"

SETTINGS_FIELDS = {
    "image": "input[placeholder='URL of profile picture']",
    "username": "input[placeholder='Username']",
    "bio": "textarea[placeholder='Short bio about you']",
    "email": "input[placeholder='Email']",
    "password": "input[type='password']",
}

JWT_SCRIPT = "() => window.localStorage.getItem('jwtToken')"
POPULATED_SCRIPT = "(selector) => { const el = document.querySelector(selector); return !!el && el.value !== ''; }"


async def wait_for_authentication(browser: Browser, timeout: float, interval: float = 0.25) -> bool:
    """Poll until the app stores a JWT, shows a login error, or time runs out."""
    deadline = anyio.current_time() + timeout
    while anyio.current_time() <= deadline:
        try:
            if await browser.evaluate(JWT_SCRIPT):
                return True
        except ToolError:
            # Execution context destroyed by the post-login navigation
            pass
        errors = await browser.probe_text(ERROR_MESSAGES, timeout=interval)
        if errors.found:
            logger.warning("Login rejected: %s", errors.value)
            return False
        await anyio.sleep(interval)
    return False


async def interactive_login(page: Page, credential: CredentialRecord, timeout: Optional[float] = None) -> bool:
    """Sign in through the Conduit login form.

    Returns True once the app holds a session token for ``credential``.
    """
    timeout = timeout if timeout is not None else settings.login_timeout
    browser = Browser(page, timeout=timeout)

    logger.info("Interactive login as %s / %s", credential.email, credential.masked_password)
    await browser.goto(settings.url("/login"))
    await browser.fill(LOGIN_EMAIL, credential.email)
    await browser.fill(LOGIN_PASSWORD, credential.password)
    await browser.click(FORM_SUBMIT)

    return await wait_for_authentication(browser, timeout)


async def is_authenticated(browser: Browser) -> bool:
    try:
        return bool(await browser.evaluate(JWT_SCRIPT))
    except ToolError:
        return False


# ---- settings page ----------------------------------------------------------


@dataclass
class SettingsSnapshot:
    username: str
    bio: str
    email: str
    image: str = ""

    def as_update(self) -> Dict[str, str]:
        return {"username": self.username, "bio": self.bio, "email": self.email, "image": self.image}


async def open_settings(browser: Browser) -> Browser:
    """Navigate to the settings page and wait for the app to populate the form."""
    await browser.goto(settings.url("/settings"))
    async with operation_timeout("open_settings", browser.timeout):
        await browser.page.wait_for_function(
            POPULATED_SCRIPT, arg=SETTINGS_FIELDS["email"], timeout=browser.timeout * 1000
        )
    return browser


async def read_settings(browser: Browser, attempts: int = 5, interval: float = 0.5) -> SettingsSnapshot:
    """Read the settings form once the app has populated it."""
    snapshot = SettingsSnapshot(username="", bio="", email="")
    for _ in range(attempts):
        snapshot = SettingsSnapshot(
            username=await browser.input_value(SETTINGS_FIELDS["username"]),
            bio=await browser.input_value(SETTINGS_FIELDS["bio"]),
            email=await browser.input_value(SETTINGS_FIELDS["email"]),
            image=await browser.input_value(SETTINGS_FIELDS["image"]),
        )
        if snapshot.email:
            break
        await anyio.sleep(interval)
    return snapshot


async def update_settings(browser: Browser, update: SettingsUpdate | Dict[str, str]) -> None:
    """Fill the given fields and submit the settings form."""
    fields = update.changed_fields() if isinstance(update, SettingsUpdate) else dict(update)
    for name, value in fields.items():
        selector = SETTINGS_FIELDS.get(name)
        if selector is None:
            raise ValueError(f"Unknown settings field: {name}")
        await browser.fill(selector, value)
    await browser.click(FORM_SUBMIT)


async def settings_error(browser: Browser, timeout: float = 2.0) -> ProbeResult:
    """Validation message shown by the settings form, if any."""
    return await browser.probe_text(ERROR_MESSAGES, timeout=timeout)


async def restore_settings(browser: Browser, snapshot: SettingsSnapshot) -> bool:
    """Put the account back the way a test found it.

    Returns False instead of raising when the page is already gone, so a
    failed restore never hides the test's own failure.
    """
    if browser.is_closed():
        logger.warning("Cannot restore settings: page already closed")
        return False
    try:
        await open_settings(browser)
        await update_settings(browser, snapshot.as_update())
    except (ToolError, OperationTimeoutError) as exc:
        logger.warning("Failed to restore original settings: %s", exc)
        return False
    return True


# ---- API traffic capture ----------------------------------------------------


@dataclass
class ApiCall:
    url: str
    method: str
    status: Optional[int] = None
    body: Any = None


@dataclass
class ApiTraffic:
    """PUT /api/user requests and responses seen by a page."""

    requests: List[ApiCall] = field(default_factory=list)
    responses: List[ApiCall] = field(default_factory=list)

    def successful(self) -> List[ApiCall]:
        return [call for call in self.responses if call.status is not None and call.status < 400]

    def rejected(self) -> List[ApiCall]:
        return [call for call in self.responses if call.status is not None and call.status >= 400]


def is_user_update(url: str, method: str) -> bool:
    """True for the settings form's PUT to the configured API's /user endpoint."""
    return method == "PUT" and url.split("?")[0].rstrip("/") == settings.api("user")


def capture_user_api_traffic(page: Page) -> ApiTraffic:
    """Record settings updates the page sends to the Conduit API."""
    traffic = ApiTraffic()

    def on_request(request: Request) -> None:
        if is_user_update(request.url, request.method):
            try:
                body = request.post_data_json
            except ValueError:
                body = request.post_data
            traffic.requests.append(ApiCall(url=request.url, method=request.method, body=body))

    async def on_response(response: Response) -> None:
        if not is_user_update(response.url, response.request.method):
            return
        call = ApiCall(url=response.url, method=response.request.method, status=response.status)
        try:
            call.body = await response.json()
        except (PlaywrightError, ValueError):
            # Response might not be JSON
            call.body = None
        traffic.responses.append(call)

    page.on("request", on_request)
    page.on("response", on_response)
    return traffic
