"""Thin wrapper around a Playwright page for ergonomic, bounded operations."""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, TimeoutError as PlaywrightTimeout

from ui_harness.config import settings
from ui_harness.errors import operation_timeout


@dataclass
class ToolError(Exception):
    """A page operation failed for a reason other than a timeout."""

    name: str
    payload: Dict[str, Any]
    message: str

    def __str__(self) -> str:
        return f"{self.name} failed ({self.message}) with payload={self.payload}"


class ProbeOutcome(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR_IGNORED = "error-ignored"


@dataclass
class ProbeResult:
    """Result of looking for an optional element.

    Lets assertions tell "the page has no such element" apart from "the
    probe itself failed and was ignored".
    """

    outcome: ProbeOutcome
    value: str = ""
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.outcome is ProbeOutcome.FOUND

    @property
    def absent(self) -> bool:
        return self.outcome is ProbeOutcome.ABSENT


class Browser:
    """Convenience wrapper over a Playwright page.

    Every call that waits on the target application runs under the
    configured operation timeout and raises OperationTimeoutError when it
    expires; any other Playwright failure becomes a ToolError.
    """

    def __init__(self, page: Page, timeout: Optional[float] = None) -> None:
        self._page = page
        self.timeout = timeout if timeout is not None else settings.operation_timeout
        self.current_url: str | None = None

    @property
    def page(self) -> Page:
        return self._page

    def is_closed(self) -> bool:
        return self._page.is_closed()

    @asynccontextmanager
    async def _guard(self, name: str, payload: Dict[str, Any], seconds: Optional[float] = None) -> AsyncIterator[None]:
        target = payload.get("selector") or payload.get("url")
        operation = f"{name} {target}" if target else name
        async with operation_timeout(operation, seconds or self.timeout):
            try:
                yield
            except PlaywrightTimeout:
                raise
            except PlaywrightError as exc:
                raise ToolError(name=name, payload=payload, message=str(exc)) from exc

    async def goto(self, url: str, wait_until: str = "domcontentloaded") -> Optional[int]:
        """Navigate to ``url`` and return the response status, if any.

        "networkidle" never settles on pages that keep polling, so a
        networkidle navigation that times out is retried once with
        "domcontentloaded".
        """
        timeout_ms = self.timeout * 1000
        async with self._guard("goto", {"url": url, "wait_until": wait_until}, seconds=self.timeout * 2):
            try:
                response = await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            except PlaywrightTimeout:
                if wait_until != "networkidle":
                    raise
                response = await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        self.current_url = self._page.url
        return response.status if response else None

    async def fill(self, selector: str, value: str) -> None:
        async with self._guard("fill", {"selector": selector}):
            await self._page.fill(selector, value)

    async def click(self, selector: str) -> None:
        async with self._guard("click", {"selector": selector}):
            await self._page.click(selector)
        self.current_url = self._page.url

    async def text(self, selector: str) -> str:
        async with self._guard("text", {"selector": selector}):
            content = await self._page.text_content(selector)
        return content or ""

    async def input_value(self, selector: str) -> str:
        """Current value of an input or textarea."""
        async with self._guard("input_value", {"selector": selector}):
            return await self._page.input_value(selector)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        async with self._guard("evaluate", {"script": script}):
            return await self._page.evaluate(script, arg)

    async def probe_text(self, selector: str, timeout: float = 2.0) -> ProbeResult:
        """Look for an optional element without failing the test.

        Returns FOUND with the element's text, ABSENT when nothing matches
        within ``timeout``, or ERROR_IGNORED with the error message.
        """
        try:
            locator = self._page.locator(selector).first
            await locator.wait_for(state="visible", timeout=timeout * 1000)
            text = await locator.text_content(timeout=timeout * 1000)
        except PlaywrightTimeout:
            return ProbeResult(ProbeOutcome.ABSENT)
        except PlaywrightError as exc:
            return ProbeResult(ProbeOutcome.ERROR_IGNORED, error=str(exc))
        return ProbeResult(ProbeOutcome.FOUND, value=(text or "").strip())
