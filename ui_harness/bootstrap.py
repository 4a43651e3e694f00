"""One-time bootstrap of the Conduit account used by the whole run.

Runs before every suite. In the common case a credential already exists and
this is a single file read. Otherwise an account is registered through the
Conduit API and persisted to the credential store.

Usage:
    python -m ui_harness.bootstrap            # ensure a credential exists
    python -m ui_harness.bootstrap --force    # register a new account
"""
from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from typing import Callable, Optional, Set, Tuple

import httpx

from ui_harness.config import settings
from ui_harness.credential_store import CredentialRecord, CredentialStore, utc_now
from ui_harness.data_generator import UserData, generate_user
from ui_harness.errors import BootstrapError

logger = logging.getLogger(__name__)

REGISTRATION_ATTEMPTS = 2

# (credentials file, label) pairs already regenerated under HARNESS_FORCE_REGENERATE
_regenerated: Set[Tuple[str, str]] = set()
_regenerated_lock = threading.Lock()


class RegistrationRejected(Exception):
    """The target application refused the registration request."""

    def __init__(self, status_code: int, errors: dict) -> None:
        super().__init__(f"registration rejected with HTTP {status_code}: {errors}")
        self.status_code = status_code
        self.errors = errors


def register_account(client: httpx.Client, user: UserData) -> dict:
    """POST the user to Conduit's registration endpoint.

    Returns the ``user`` object of the response. Raises RegistrationRejected
    for 4xx answers; timeouts and transport errors propagate as httpx errors.
    """
    response = client.post("users", json=user.as_payload())
    if 400 <= response.status_code < 500:
        try:
            errors = response.json().get("errors", {})
        except ValueError:
            errors = {"body": [response.text[:200]]}
        raise RegistrationRejected(response.status_code, errors)
    response.raise_for_status()
    return response.json().get("user", {})


class CredentialBootstrapper:
    """Ensures exactly one usable CredentialRecord exists for a label."""

    def __init__(
        self,
        store: CredentialStore,
        api_url: str,
        label: str = "default",
        timeout: float = 20.0,
        client_factory: Optional[Callable[[], httpx.Client]] = None,
        user_factory: Callable[[], UserData] = generate_user,
    ) -> None:
        self.store = store
        self.api_url = api_url.rstrip("/") + "/"
        self.label = label
        self.timeout = timeout
        self._client_factory = client_factory or self._default_client
        self._user_factory = user_factory

    def _default_client(self) -> httpx.Client:
        return httpx.Client(base_url=self.api_url, timeout=self.timeout)

    @property
    def _regeneration_key(self) -> Tuple[str, str]:
        return str(self.store.path.resolve()), self.label

    def ensure_credential(self, force_regenerate: Optional[bool] = None) -> CredentialRecord:
        """Return the stored credential, registering a new account if needed.

        ``force_regenerate=None`` defers to the HARNESS_FORCE_REGENERATE flag,
        which forces one registration per process; later calls reuse the
        regenerated account.
        """
        if force_regenerate is None:
            if not settings.force_regenerate:
                return self._ensure(False)
            with _regenerated_lock:
                if self._regeneration_key in _regenerated:
                    return self._ensure(False)
                return self._force()
        if force_regenerate:
            with _regenerated_lock:
                return self._force()
        return self._ensure(False)

    def _force(self) -> CredentialRecord:
        record = self._ensure(True)
        _regenerated.add(self._regeneration_key)
        return record

    def _ensure(self, force_regenerate: bool) -> CredentialRecord:
        seen = self.store.load(self.label)
        if seen is not None and not force_regenerate:
            return seen

        with self.store.lock():
            current = self.store.load(self.label)
            if current is not None:
                if not force_regenerate:
                    logger.info("Credential for %s created by a concurrent worker", self.label)
                    return current
                if seen is None or current.identity != seen.identity:
                    logger.info("Credential for %s regenerated by a concurrent worker", self.label)
                    return current

            record = self._register()
            self.store.save(record, updated_by="bootstrap")
            return record

    def _register(self) -> CredentialRecord:
        started = time.monotonic()
        last_rejection: Optional[RegistrationRejected] = None

        with self._client_factory() as client:
            for attempt in range(1, REGISTRATION_ATTEMPTS + 1):
                user = self._user_factory()
                logger.info(
                    "Registering %s / %s (attempt %d/%d)",
                    user.email,
                    "*" * len(user.password),
                    attempt,
                    REGISTRATION_ATTEMPTS,
                )
                try:
                    registered = register_account(client, user)
                except RegistrationRejected as exc:
                    logger.warning("Registration of %s rejected: %s", user.email, exc.errors)
                    last_rejection = exc
                    continue
                except httpx.TimeoutException as exc:
                    raise self._error(f"registration timed out: {exc}", started) from exc
                except httpx.HTTPError as exc:
                    raise self._error(f"registration failed: {exc}", started) from exc

                return CredentialRecord(
                    label=self.label,
                    username=registered.get("username", user.username),
                    email=registered.get("email", user.email),
                    password=user.password,
                    created_at=utc_now(),
                )

        raise self._error(
            f"registration rejected {REGISTRATION_ATTEMPTS} times: {last_rejection}",
            started,
        ) from last_rejection

    def _error(self, message: str, started: float) -> BootstrapError:
        error = BootstrapError(message, operation="register_account", elapsed=time.monotonic() - started)
        logger.error("%s", error)
        return error


def default_bootstrapper() -> CredentialBootstrapper:
    return CredentialBootstrapper(
        store=CredentialStore(settings.credentials_file),
        api_url=settings.api_url,
        label=settings.identity,
        timeout=settings.registration_timeout,
    )


def ensure_credential(force_regenerate: Optional[bool] = None) -> CredentialRecord:
    """Module-level shortcut using the configured store and API."""
    return default_bootstrapper().ensure_credential(force_regenerate)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ensure the Conduit test account exists")
    parser.add_argument("--force", action="store_true", help="register a new account even if one is stored")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        record = ensure_credential(force_regenerate=True if args.force else None)
    except BootstrapError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1

    print(f"✓ Credential {record.label}: {record.email} (created {record.created_at})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
