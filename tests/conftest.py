import pytest

from cloudbot.browser.session import SessionRegistry
from cloudbot.mcp.context import Services, ToolContext
from cloudbot.mcp.retry import RetryPolicy

from fakes import DEFAULT_ID, FakeProvisioner, RecordingSleep


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def registry(provisioner):
    return SessionRegistry(provisioner, default_id=DEFAULT_ID)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def tool_context(registry, sleep):
    return ToolContext(Services(registry=registry), policy=RetryPolicy(), sleep=sleep)
