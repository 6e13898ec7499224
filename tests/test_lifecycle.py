"""
Tests for ApplicationLifecycleManager.
"""

import pytest

from serverdeck.core.errors import SessionNotAvailable
from serverdeck.core.services.lifecycle import (
    ApplicationLifecycleManager,
    LifecycleKind,
    LifecycleState,
)


@pytest.fixture
def manager(services, app_registry):
    return ApplicationLifecycleManager(services, app_registry)


class TestRefreshState:
    @pytest.mark.asyncio
    async def test_unknown_application_is_broken(self, manager, session):
        state = await manager.refresh_state("varnish", session)
        assert state.kind == LifecycleKind.BROKEN
        assert state.reason == "Service not found"
        assert manager.state("varnish") == state

    @pytest.mark.asyncio
    async def test_not_installed(self, manager, session):
        state = await manager.refresh_state("nginx", session)
        assert state.kind == LifecycleKind.NOT_INSTALLED

    @pytest.mark.asyncio
    async def test_running(self, manager, session, mock_transport):
        mock_transport.set_response("command -v nginx", "/usr/sbin/nginx")
        mock_transport.set_response("nginx -v", "nginx version: nginx/1.24.0")
        mock_transport.set_response("systemctl is-active nginx", "active")
        state = await manager.refresh_state("NGINX", session)
        assert state == LifecycleState.running("1.24.0")
        assert manager.state("nginx").kind == LifecycleKind.RUNNING

    @pytest.mark.asyncio
    async def test_stopped_with_unknown_version(self, manager, session, mock_transport):
        mock_transport.set_response("command -v redis-server", "/usr/bin/redis-server")
        state = await manager.refresh_state("redis", session)
        assert state == LifecycleState.stopped("unknown")

    @pytest.mark.asyncio
    async def test_multiple_php_versions(self, manager, session, mock_transport):
        mock_transport.set_response("command -v php", "/usr/bin/php")
        mock_transport.set_response("PHP_MAJOR_VERSION", "8.2")
        mock_transport.set_response("ls -1 /etc/php", "8.1\n8.2\n")
        state = await manager.refresh_state("php", session)
        assert state.kind == LifecycleKind.MULTIPLE_VERSIONS
        assert state.versions == ["8.2", "8.1"]
        assert state.active_version == "8.2"

    @pytest.mark.asyncio
    async def test_runtime_is_installed_not_running(self, manager, session, mock_transport):
        mock_transport.set_response("command -v python3", "/usr/bin/python3")
        mock_transport.set_response("python3 --version", "Python 3.11.4")
        state = await manager.refresh_state("python", session)
        assert state == LifecycleState.installed("3.11.4")

    @pytest.mark.asyncio
    async def test_requires_session(self, manager):
        with pytest.raises(SessionNotAvailable):
            await manager.refresh_state("nginx", None)

    @pytest.mark.asyncio
    async def test_states_are_cached_per_application(self, manager, session):
        await manager.refresh_state("nginx", session)
        await manager.refresh_state("mysql", session)
        assert set(manager.states) == {"nginx", "mysql"}
        assert manager.state("apache") is None


class TestLifecycleState:
    def test_display(self):
        assert LifecycleState.running("1.24.0").display == "Running (1.24.0)"
        assert LifecycleState.not_installed().display == "Not installed"
        assert LifecycleState.broken("No service").display == "Broken: No service"
        assert LifecycleState.multiple_versions(["8.2", "8.1"], "8.2").display == "2 versions (active 8.2)"

    def test_manual_update(self):
        manager = ApplicationLifecycleManager()
        manager.update_state("Redis", LifecycleState.stopped("7.2"))
        assert manager.state("redis").version == "7.2"
