import pytest

from realtime.hub import reset_hub


@pytest.fixture(autouse=True)
def hub():
    """Fresh, empty relay state for every test."""
    return reset_hub()


@pytest.fixture
def drops(hub):
    """Collects (reason, sender) for every frame the router drops."""
    collected = []
    hub.router.on_drop = lambda reason, sender: collected.append((reason, sender))
    return collected
