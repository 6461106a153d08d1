import pytest

from .sync.logging_manager import LoggingManager


@pytest.fixture(autouse=True)
def reset_logging():
    """Each test starts with an unconfigured docsync logger bound to the current streams."""
    LoggingManager.reset()
    yield
    LoggingManager.reset()
