import os

import pytest

from ui_harness.conftest import mock_conduit_server, mock_conduit_settings  # noqa: F401

LIVE = os.environ.get("HARNESS_LIVE", "").lower() in {"1", "true", "yes"}


@pytest.fixture(autouse=True)
def harness_target(request):
    """Run browser tests against the mock app unless HARNESS_LIVE=1.

    With HARNESS_LIVE=1 the configured Conduit deployment and cache paths
    are used as-is.
    """
    if LIVE:
        yield None
        return
    yield request.getfixturevalue("mock_conduit_settings")
