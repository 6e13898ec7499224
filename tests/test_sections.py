"""
Tests for section dispatch and the built-in section providers.
"""

import pytest

from serverdeck.core.errors import LoadFailed, NotSupported, ServiceNotFound, SessionNotAvailable
from serverdeck.core.models.application import (
    ApplicationCategory,
    ApplicationDefinition,
    SectionProviderType,
    ServiceConfiguration,
)
from serverdeck.core.models.state import ConfigValueType
from serverdeck.core.services.applications import section
from serverdeck.core.services.sections.config_values import (
    parse_apache_directives,
    parse_config_values,
    parse_mongo_directives,
    parse_nginx_directives,
    parse_postgres_directives,
    parse_redis_directives,
)
from serverdeck.core.services.state_store import ApplicationStateStore


def _tool(*sections):
    return ApplicationDefinition(
        id="tool",
        name="Tool",
        category=ApplicationCategory.TOOL,
        sections=sections,
        service_config=ServiceConfiguration(service_name="tool"),
    )


async def _load(registry, app, section_id, session):
    async with ApplicationStateStore(app.id) as store:
        await registry.load_data(app.section(section_id), app, store, session)
        return store.snapshot()


# ── Dispatch ─────────────────────────────────────────────────────────


class TestRegistry:
    def test_registered_providers(self, provider_registry):
        providers = provider_registry.list_providers()
        assert "service" in providers
        assert "phpinfo" in providers
        for unsupported in ("waf_stats", "error_pages", "upload_limits", "timeouts", "backup"):
            assert unsupported not in providers

    @pytest.mark.asyncio
    async def test_unregistered_type_is_not_supported(self, provider_registry, session, mock_transport):
        app = _tool(section(SectionProviderType.WAF_STATS, 0))
        async with ApplicationStateStore("tool") as store:
            with pytest.raises(NotSupported) as exc:
                await provider_registry.load_data(app.sections[0], app, store, session)
        assert exc.value.section_type == "waf_stats"
        assert mock_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_session(self, provider_registry, app_registry):
        nginx = app_registry.application("nginx")
        async with ApplicationStateStore("nginx") as store:
            with pytest.raises(SessionNotAvailable):
                await provider_registry.load_data(nginx.default_section, nginx, store, None)

    @pytest.mark.asyncio
    async def test_failure_is_recorded_in_state(self, provider_registry, app_registry, session):
        php = app_registry.application("php")
        async with ApplicationStateStore("php") as store:
            with pytest.raises(LoadFailed):
                await provider_registry.load_data(php.section("extensions"), php, store, session)
            state = store.snapshot()
        assert state.error_message == "Failed to load data: php binary not found"
        assert not state.is_loading
        assert "extensions" not in state.loaded_sections

    @pytest.mark.asyncio
    async def test_application_without_service(self, provider_registry, session):
        app = _tool(section(SectionProviderType.SERVICE, 0, is_default=True))
        async with ApplicationStateStore("tool") as store:
            with pytest.raises(ServiceNotFound):
                await provider_registry.load_data(app.sections[0], app, store, session)
            assert store.state.error_message == "Service not found: tool"

    @pytest.mark.asyncio
    async def test_success_marks_loaded_and_clears_error(self, provider_registry, app_registry, session):
        nginx = app_registry.application("nginx")
        async with ApplicationStateStore("nginx") as store:
            await store.apply(error_message="stale")
            await provider_registry.load_data(nginx.section("service"), nginx, store, session)
            assert store.state.error_message is None
            assert store.state.loaded_sections == ["service"]

    @pytest.mark.asyncio
    async def test_load_all_collects_errors(self, provider_registry, app_registry, session):
        php = app_registry.application("php")
        async with ApplicationStateStore("php") as store:
            errors = await provider_registry.load_all(php, store, session)
            state = store.snapshot()
        assert "extensions" in errors
        assert "config_file" in errors
        assert "service" in state.loaded_sections
        assert "logs" in state.loaded_sections

    @pytest.mark.asyncio
    async def test_load_all_stops_without_session(self, provider_registry, app_registry):
        nginx = app_registry.application("nginx")
        async with ApplicationStateStore("nginx") as store:
            with pytest.raises(SessionNotAvailable):
                await provider_registry.load_all(nginx, store, None)


# ── Providers ────────────────────────────────────────────────────────


class TestServiceSection:
    @pytest.mark.asyncio
    async def test_running_nginx(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("command -v nginx", "/usr/sbin/nginx")
        mock_transport.set_response("nginx -v", "nginx version: nginx/1.24.0")
        mock_transport.set_response("systemctl is-active nginx", "active")
        mock_transport.set_response("nginx_status", "Active connections: 3\n")
        state = await _load(provider_registry, app_registry.application("nginx"), "service", session)
        assert state.is_running
        assert state.version == "1.24.0"
        assert state.binary_path == "/usr/sbin/nginx"
        assert state.nginx_status.active_connections == 3

    @pytest.mark.asyncio
    async def test_not_installed_uses_catalog_paths(self, provider_registry, app_registry, session):
        state = await _load(provider_registry, app_registry.application("redis"), "service", session)
        assert not state.is_running
        assert state.version == "Not Installed"
        assert state.config_path == "/etc/redis/redis.conf"


class TestLogsSection:
    @pytest.mark.asyncio
    async def test_first_readable_file(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("tail -n 200 /var/log/nginx/access.log", "GET / 200\nGET /a 404\n")
        state = await _load(provider_registry, app_registry.application("nginx"), "logs", session)
        assert state.log_path == "/var/log/nginx/access.log"
        assert state.logs == ["GET / 200", "GET /a 404"]
        assert state.log_files == ["/var/log/nginx/error.log", "/var/log/nginx/access.log"]

    @pytest.mark.asyncio
    async def test_denied_file_becomes_placeholder(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response(
            "tail -n 200 /var/log/nginx/error.log",
            "tail: cannot open '/var/log/nginx/error.log' for reading: Permission denied",
            exit_code=1,
        )
        state = await _load(provider_registry, app_registry.application("nginx"), "logs", session)
        assert state.logs == ["Permission denied: cannot read /var/log/nginx/error.log"]

    @pytest.mark.asyncio
    async def test_journal_fallback(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("journalctl -u redis-server", "Oct 18 10:00 redis-server[1]: Ready to accept connections")
        state = await _load(provider_registry, app_registry.application("redis"), "logs", session)
        assert state.log_path == "journal:redis-server"
        assert len(state.logs) == 1

    @pytest.mark.asyncio
    async def test_nothing_found(self, provider_registry, app_registry, session):
        state = await _load(provider_registry, app_registry.application("mongodb"), "logs", session)
        assert state.logs == []
        assert state.status_text.startswith("No logs found. Checked paths: /var/log/mongodb/mongod.log")


class TestConfigSections:
    @pytest.mark.asyncio
    async def test_config_file_tries_known_locations(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("cat /etc/redis.conf", "maxmemory 256mb\ntimeout 0\n")
        state = await _load(provider_registry, app_registry.application("redis"), "config_file", session)
        assert state.config_path == "/etc/redis.conf"
        assert state.config_content.startswith("maxmemory 256mb")

    @pytest.mark.asyncio
    async def test_config_file_missing(self, provider_registry, app_registry, session):
        redis = app_registry.application("redis")
        with pytest.raises(LoadFailed) as exc:
            await _load(provider_registry, redis, "config_file", session)
        assert exc.value.reason == "Could not load config file at /etc/redis/redis.conf"

    @pytest.mark.asyncio
    async def test_configuration_values(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("cat /etc/redis/redis.conf", "maxmemory 256mb\n# timeout 30\ntimeout 0\n")
        state = await _load(provider_registry, app_registry.application("redis"), "configuration", session)
        values = {v.key: v for v in state.config_values}
        assert values["maxmemory"].value == "256mb"
        assert values["maxmemory"].type == ConfigValueType.SIZE
        assert values["timeout"].value == "0"

    @pytest.mark.asyncio
    async def test_configuration_without_file_is_empty(self, provider_registry, app_registry, session):
        state = await _load(provider_registry, app_registry.application("redis"), "configuration", session)
        assert state.config_values == []
        assert state.error_message is None


class TestOtherSections:
    @pytest.mark.asyncio
    async def test_versions(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("ls -1 /etc/php", "7.4\n8.2\n")
        state = await _load(provider_registry, app_registry.application("php"), "versions", session)
        assert state.installed_versions == ["8.2", "7.4"]

    @pytest.mark.asyncio
    async def test_databases(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("information_schema.tables", "Database\tSize (MB)\tTables\nsys\t0.1\t100\nshop\t1.0\t5\n")
        state = await _load(provider_registry, app_registry.application("mysql"), "databases", session)
        assert [d.name for d in state.databases] == ["shop"]

    @pytest.mark.asyncio
    async def test_security_lists_refused_requests(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response(
            "tail -n 5000 /var/log/nginx/access.log",
            '203.0.113.9 - - [18/Oct/2026:10:00:01 +0000] "GET /.env HTTP/1.1" 403 162 "-" "curl/8.5"\n',
        )
        state = await _load(provider_registry, app_registry.application("nginx"), "security", session)
        assert [e.request for e in state.waf_entries] == ["GET /.env HTTP/1.1"]
        assert state.security_stats == {"total_blocked": 0, "last_24h": 0}

    @pytest.mark.asyncio
    async def test_redis_status_metrics(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("redis-cli INFO", "# Server\nredis_version:7.2.4\nconnected_clients:3\nmem_fragmentation_ratio:1.2\n")
        state = await _load(provider_registry, app_registry.application("redis"), "status", session)
        assert state.status_metrics == {"redis_version": "7.2.4", "connected_clients": "3"}

    @pytest.mark.asyncio
    async def test_disabled_functions(self, provider_registry, app_registry, session, mock_transport):
        mock_transport.set_response("disable_functions", "exec,system")
        state = await _load(provider_registry, app_registry.application("php"), "disabled_functions", session)
        assert state.disabled_functions == ["exec", "system"]

    @pytest.mark.asyncio
    async def test_sites_on_a_database_fail(self, provider_registry, app_registry, session):
        mysql = app_registry.application("mysql")
        sites = section(SectionProviderType.SITES, 9)
        async with ApplicationStateStore("mysql") as store:
            with pytest.raises(LoadFailed):
                await provider_registry.load_data(sites, mysql, store, session)


# ── Config value parsing ─────────────────────────────────────────────


class TestConfigValues:
    def test_nginx_ignores_comments(self):
        content = "#worker_processes 8;\nworker_processes auto;\n    gzip on;\n"
        values = parse_nginx_directives(content)
        assert [(v.key, v.value) for v in values] == [("worker_processes", "auto"), ("gzip", "on")]
        assert values[1].type == ConfigValueType.BOOLEAN

    def test_apache_case_insensitive(self):
        values = parse_apache_directives("timeout 300\nKeepAlive On\n")
        assert [(v.key, v.value) for v in values] == [("Timeout", "300"), ("KeepAlive", "On")]

    def test_php_ini(self):
        values = parse_config_values("php", "; memory_limit = 64M\nmemory_limit = 256M\ndate.timezone = UTC\n")
        assert [(v.key, v.value) for v in values] == [("memory_limit", "256M"), ("date.timezone", "UTC")]

    def test_postgres_quotes_and_comments(self):
        values = parse_postgres_directives("shared_buffers = '128MB'   # min 128kB\nmax_connections = 100\n")
        assert {v.key: v.value for v in values} == {"max_connections": "100", "shared_buffers": "128MB"}

    def test_redis_exact_keys(self):
        values = parse_redis_directives("maxmemory-policy allkeys-lru\n")
        assert [v.key for v in values] == ["maxmemory-policy"]

    def test_mongo_yaml(self):
        content = "net:\n  port: 27017\n  bindIp: 127.0.0.1\nstorage:\n  journal:\n    enabled: true\n"
        values = {v.key: v for v in parse_mongo_directives(content)}
        assert values["net.port"].value == "27017"
        assert values["storage.journal.enabled"].value == "true"
        assert values["net.port"].section == "net"

    def test_mongo_invalid_yaml(self):
        assert parse_mongo_directives("net: [unclosed") == []

    def test_unknown_application(self):
        assert parse_config_values("varnish", "anything") == []
