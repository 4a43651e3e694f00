"""Settings-update traffic is matched against the configured API root."""
import pytest

from ui_harness.config import settings
from ui_harness.workflows import is_user_update


@pytest.fixture(autouse=True)
def api_root():
    with settings.override(api_url="https://api.conduit.test/api"):
        yield


@pytest.mark.parametrize(
    "url, method, expected",
    [
        ("https://api.conduit.test/api/user", "PUT", True),
        ("https://api.conduit.test/api/user/?v=1", "PUT", True),
        ("https://api.conduit.test/api/user", "GET", False),
        ("https://api.conduit.test/api/users", "PUT", False),
        ("https://cdn.conduit.test/api/user", "PUT", False),
    ],
)
def test_is_user_update(url, method, expected):
    assert is_user_update(url, method) is expected
