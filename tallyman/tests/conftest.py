import pytest

from tallyman.conf import reset_backends


@pytest.fixture(autouse=True)
def _fresh_backends():
    """Backend singletons are cached per settings value; start clean."""
    reset_backends()
    yield
    reset_backends()
