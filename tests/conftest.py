"""
Shared test fixtures and configuration.
"""

import pytest

from serverdeck.adapters.transport.mock import MockTransport
from serverdeck.core.services.applications import ApplicationRegistry
from serverdeck.core.services.sections import build_default_registry
from serverdeck.core.services.software import SoftwareServices
from serverdeck.core.session import ServerSession


@pytest.fixture
def mock_transport() -> MockTransport:
    """A transport that answers every command with exit 0 and no output."""
    return MockTransport()


@pytest.fixture
def session(mock_transport: MockTransport) -> ServerSession:
    return ServerSession(mock_transport, label="test-host")


@pytest.fixture
def services() -> SoftwareServices:
    return SoftwareServices()


@pytest.fixture
def app_registry() -> ApplicationRegistry:
    return ApplicationRegistry()


@pytest.fixture
def provider_registry(services: SoftwareServices):
    return build_default_registry(services)


@pytest.fixture
def allow_uploads(mock_transport: MockTransport) -> MockTransport:
    """Make ServerSession.write_file succeed against the mock transport."""
    mock_transport.set_response("echo INIT_OK", "INIT_OK")
    mock_transport.set_response("echo C_OK", "C_OK")
    mock_transport.set_response("echo INSTALL_OK", "INSTALL_OK")
    return mock_transport
