"""Fatal error taxonomy for the session and surface lifecycle layer.

Every error carries the operation that failed, how long it ran and the last
known surface state, so a failing test report is diagnosable without a
re-run.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import anyio
from playwright.async_api import TimeoutError as PlaywrightTimeout

logger = logging.getLogger(__name__)


class HarnessError(Exception):
    """Base class for fatal harness errors."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        elapsed: Optional[float] = None,
        surface_state: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.elapsed = elapsed
        self.surface_state = surface_state

    def __str__(self) -> str:
        details = []
        if self.operation:
            details.append(f"operation={self.operation}")
        if self.elapsed is not None:
            details.append(f"elapsed={self.elapsed:.2f}s")
        if self.surface_state:
            details.append(f"surface_state={self.surface_state}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class BootstrapError(HarnessError):
    """Account creation failed; aborts the run's setup phase."""


class SessionEstablishmentError(HarnessError):
    """Neither a cached session nor a fresh login produced an authenticated surface."""


class SurfaceRecoveryError(HarnessError):
    """The health monitor's recovery ladder was exhausted."""


class OperationTimeoutError(HarnessError, TimeoutError):
    """A blocking operation against the target application exceeded its bound."""


@asynccontextmanager
async def operation_timeout(
    operation: str,
    seconds: float,
    surface_state: Optional[str] = None,
) -> AsyncIterator[None]:
    """Bound the wrapped block, raising OperationTimeoutError on expiry.

    Playwright's own timeout errors raised inside the block are translated
    too, so callers only ever see one timeout type.
    """
    started = anyio.current_time()
    try:
        with anyio.fail_after(seconds):
            yield
    except OperationTimeoutError:
        raise
    except (TimeoutError, PlaywrightTimeout) as exc:
        elapsed = anyio.current_time() - started
        error = OperationTimeoutError(
            f"{operation} did not complete within {seconds:g}s",
            operation=operation,
            elapsed=elapsed,
            surface_state=surface_state,
        )
        logger.error("%s", error)
        raise error from exc
