"""
Tests for ServerServiceAggregator — batched status, control routing, safe config updates.
"""

import pytest

from serverdeck.core.errors import ServiceNotFound, SessionNotAvailable
from serverdeck.core.models.status import StatusKind
from serverdeck.core.services.aggregator import (
    BATCH_SERVICES,
    ServerServiceAggregator,
    build_status_script,
    parse_batch_status,
    to_server_status,
)

BATCH_OUTPUT = """\
SVC_NGINX
active
VER_NGINX
nginx version: nginx/1.24.0 (Ubuntu)
SVC_APACHE2
inactive
VER_APACHE2
not installed
SVC_HTTPD
inactive
VER_HTTPD
Server version: Apache/2.4.57 (Red Hat)
SVC_MYSQL
failed
VER_MYSQL
mysql  Ver 8.0.35 for Linux on x86_64
SVC_POSTGRESQL
inactive
VER_POSTGRESQL
not installed
SVC_PHP
inactive
VER_PHP
PHP 8.2.7 (cli) (built: Jun  9 2023)
SVC_REDIS
active
VER_REDIS
Redis server v=7.0.12 sha=00000000:0 malloc=jemalloc
"""


@pytest.fixture
def aggregator(services, app_registry):
    return ServerServiceAggregator(services, app_registry)


# ── Batched status ───────────────────────────────────────────────────


class TestStatusScript:
    def test_markers_for_every_service(self):
        script = build_status_script()
        for svc in BATCH_SERVICES:
            assert f'echo "SVC_{svc.upper()}"' in script
            assert f'echo "VER_{svc.upper()}"' in script

    def test_version_probe_guarded_by_command_lookup(self):
        script = build_status_script(["redis"])
        assert "command -v redis-server >/dev/null 2>&1 && redis-server --version" in script
        assert 'echo "not installed"' in script


class TestParseBatchStatus:
    def test_running_and_stopped(self):
        statuses = parse_batch_status(BATCH_OUTPUT)
        assert statuses["nginx"].kind == StatusKind.RUNNING
        assert statuses["nginx"].version == "nginx/1.24.0"
        assert statuses["mysql"].kind == StatusKind.STOPPED
        assert statuses["mysql"].version == "8.0.35"
        assert statuses["redis"].version == "7.0.12"

    def test_not_installed_wins_over_activity(self):
        output = "SVC_NGINX\nactive\nVER_NGINX\nnot installed\n"
        assert parse_batch_status(output)["nginx"].kind == StatusKind.NOT_INSTALLED

    def test_missing_version_line(self):
        output = "SVC_NGINX\nactive\nVER_NGINX\nSVC_MYSQL\nactive\n"
        statuses = parse_batch_status(output)
        assert statuses["nginx"].kind == StatusKind.NOT_INSTALLED
        assert statuses["mysql"].kind == StatusKind.NOT_INSTALLED

    def test_version_without_dotted_token(self):
        output = "SVC_PHP\nactive\nVER_PHP\nsomething odd\n"
        assert parse_batch_status(output)["php"].version == "installed"

    def test_empty_output(self):
        assert parse_batch_status("") == {}

    def test_apache_falls_back_to_httpd(self):
        status = to_server_status(parse_batch_status(BATCH_OUTPUT))
        assert status.apache.kind == StatusKind.STOPPED
        assert status.apache.version == "Apache/2.4.57"
        assert status.postgresql.kind == StatusKind.NOT_INSTALLED
        assert status.installed == ["nginx", "apache", "mysql", "php", "redis"]


class TestFetchStatus:
    @pytest.mark.asyncio
    async def test_single_round_trip(self, aggregator, session, mock_transport):
        mock_transport.set_response("SVC_NGINX", BATCH_OUTPUT)
        status = await aggregator.fetch_installed_software(session)
        assert mock_transport.call_count == 1
        assert status.nginx.is_running
        assert status.redis.is_running

    @pytest.mark.asyncio
    async def test_requires_session(self, aggregator):
        with pytest.raises(SessionNotAvailable):
            await aggregator.fetch_installed_software(None)

    @pytest.mark.asyncio
    async def test_per_application(self, aggregator, session, mock_transport):
        mock_transport.set_response("command -v nginx", "/usr/sbin/nginx")
        mock_transport.set_response("nginx -v", "nginx version: nginx/1.24.0")
        mock_transport.set_response("systemctl is-active nginx", "active")
        statuses = await aggregator.fetch_status_concurrently(session, ["nginx", "httpd"])
        assert list(statuses) == ["nginx", "apache"]
        assert statuses["nginx"].kind == StatusKind.RUNNING
        assert statuses["apache"].kind == StatusKind.NOT_INSTALLED

    @pytest.mark.asyncio
    async def test_unknown_application(self, aggregator, session):
        with pytest.raises(ServiceNotFound):
            await aggregator.fetch_status(session, "varnish")


# ── Service control ──────────────────────────────────────────────────


class TestServiceControl:
    @pytest.mark.asyncio
    async def test_versioned_fpm_unit(self, aggregator, session, mock_transport):
        assert await aggregator.restart_service(session, "php8.2-fpm")
        assert mock_transport.ran("sudo -n systemctl restart php8.2-fpm")

    @pytest.mark.asyncio
    async def test_known_software_uses_its_handler(self, aggregator, session, mock_transport):
        mock_transport.set_response("mariadb.service", "mariadb.service enabled enabled")
        assert await aggregator.stop_service(session, "mariadb")
        assert mock_transport.ran("sudo -n systemctl stop mariadb")

    @pytest.mark.asyncio
    async def test_php_restart_checks_config_first(self, aggregator, session, mock_transport):
        mock_transport.set_failure("php-fpm -t", "ERROR: failed to load configuration file")
        assert not await aggregator.restart_service(session, "php-fpm")
        assert not mock_transport.ran("systemctl restart")

    @pytest.mark.asyncio
    async def test_unknown_unit_goes_to_systemctl(self, aggregator, session, mock_transport):
        assert await aggregator.start_service(session, "memcached")
        assert mock_transport.ran("sudo -n systemctl start memcached")

    @pytest.mark.asyncio
    async def test_invalid_name_is_refused(self, aggregator, session, mock_transport):
        assert not await aggregator.start_service(session, "nginx; reboot")
        assert mock_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_failure_reported(self, aggregator, session, mock_transport):
        mock_transport.set_failure("systemctl start", "Job for memcached.service failed")
        assert not await aggregator.start_service(session, "memcached")


# ── Safe config updates ──────────────────────────────────────────────


class TestUpdateConfig:
    @pytest.mark.asyncio
    async def test_valid_config_is_reloaded(self, aggregator, session, allow_uploads):
        allow_uploads.set_response("nginx -t", "nginx: the configuration file syntax is ok\nnginx: configuration file test is successful")
        result = await aggregator.update_config(session, "nginx", "worker_processes auto;\n")
        assert result.ok
        assert result.path == "/etc/nginx/nginx.conf"
        assert allow_uploads.ran("sudo -n tee /etc/nginx/nginx.conf")
        assert allow_uploads.ran("sudo -n systemctl reload nginx")

    @pytest.mark.asyncio
    async def test_invalid_config_is_not_reloaded(self, aggregator, session, allow_uploads):
        allow_uploads.set_response(
            "nginx -t",
            'nginx: [emerg] unknown directive "wrker_processes" in /etc/nginx/nginx.conf:1\n'
            "nginx: configuration file /etc/nginx/nginx.conf test failed",
            exit_code=1,
        )
        result = await aggregator.update_config(session, "nginx", "wrker_processes auto;\n")
        assert result.written
        assert not result.valid
        assert not result.reloaded
        assert "unknown directive" in result.validator_output
        assert not allow_uploads.ran("systemctl reload")
        assert not allow_uploads.ran("systemctl restart")

    @pytest.mark.asyncio
    async def test_silent_validator_failure_is_not_reloaded(self, aggregator, session, allow_uploads):
        allow_uploads.set_failure("nginx -t", "", exit_code=1)
        result = await aggregator.update_config(session, "nginx", "events {\n")
        assert result.written
        assert not result.valid
        assert result.validator_output == "nginx -t exited with code 1"
        assert not allow_uploads.ran("systemctl reload")

    @pytest.mark.asyncio
    async def test_validator_timeout_is_not_reloaded(self, aggregator, session, allow_uploads):
        allow_uploads.set_failure("nginx -t", "", exit_code=124)
        result = await aggregator.update_config(session, "nginx", "worker_processes auto;\n")
        assert not result.valid
        assert not result.reloaded
        assert not allow_uploads.ran("systemctl reload")

    @pytest.mark.asyncio
    async def test_apache_failed_configtest_is_not_restarted(self, aggregator, session, allow_uploads):
        allow_uploads.set_failure("configtest", "", exit_code=1)
        result = await aggregator.update_config(session, "apache", "ServerName x\n")
        assert result.written
        assert not result.valid
        assert not allow_uploads.ran("systemctl restart")
        assert not allow_uploads.ran("systemctl reload")

    @pytest.mark.asyncio
    async def test_write_failure(self, aggregator, session, mock_transport):
        result = await aggregator.update_config(session, "nginx", "x", path="/etc/nginx/conf.d/x.conf")
        assert result.path == "/etc/nginx/conf.d/x.conf"
        assert not result.written
        assert not mock_transport.ran("nginx -t")

    @pytest.mark.asyncio
    async def test_service_without_validator_restarts(self, aggregator, session, allow_uploads):
        result = await aggregator.update_config(session, "redis-server", "maxmemory 128mb\n")
        assert result.ok
        assert result.path == "/etc/redis/redis.conf"
        assert allow_uploads.ran("sudo -n systemctl restart redis-server")

    @pytest.mark.asyncio
    async def test_runtime_is_not_configurable(self, aggregator, session):
        with pytest.raises(ServiceNotFound):
            await aggregator.update_config(session, "python", "x")

    @pytest.mark.asyncio
    async def test_unknown_application(self, aggregator, session):
        with pytest.raises(ServiceNotFound):
            await aggregator.update_config(session, "varnish", "x")


# ── Websites ─────────────────────────────────────────────────────────


class TestWebsites:
    @pytest.mark.asyncio
    async def test_no_web_server_installed(self, aggregator, session):
        assert not await aggregator.create_website(session, "example.com")
        assert await aggregator.fetch_websites(session) == []

    @pytest.mark.asyncio
    async def test_invalid_domain_is_false(self, aggregator, session, mock_transport):
        mock_transport.set_response("command -v nginx", "/usr/sbin/nginx")
        assert not await aggregator.create_website(session, "bad domain")

    @pytest.mark.asyncio
    async def test_explicit_server(self, aggregator, session, allow_uploads):
        allow_uploads.set_response("echo LINKED", "LINKED")
        assert await aggregator.create_website(session, "example.com", web_server="nginx")
        assert allow_uploads.ran("sudo -n systemctl reload nginx")

    @pytest.mark.asyncio
    async def test_switch_site_php_version(self, aggregator, session, mock_transport):
        assert await aggregator.switch_site_php_version(session, "example.com", "8.3")
        edit = mock_transport.commands_matching("sed -i")[0]
        assert "s/php[0-9.]*-fpm.sock/php8.3-fpm.sock/g" in edit
        assert edit.endswith("/etc/nginx/sites-available/example.com")
        assert mock_transport.ran("sudo -n systemctl reload nginx")

    @pytest.mark.asyncio
    async def test_switch_site_rejects_bad_version(self, aggregator, session, mock_transport):
        assert not await aggregator.switch_site_php_version(session, "example.com", "8; reboot")
        assert mock_transport.call_count == 0


class TestApacheModule:
    @pytest.mark.asyncio
    async def test_enable(self, aggregator, session, mock_transport):
        mock_transport.set_response("echo ENABLED", "ENABLED")
        assert await aggregator.set_apache_module(session, "rewrite", enabled=True)
        assert mock_transport.ran("sudo -n systemctl restart apache2")

    @pytest.mark.asyncio
    async def test_requires_session(self, aggregator):
        with pytest.raises(SessionNotAvailable):
            await aggregator.set_apache_module(None, "rewrite", enabled=False)


# ── Databases ────────────────────────────────────────────────────────


class TestDatabases:
    @pytest.mark.asyncio
    async def test_only_installed_engines(self, aggregator, session, mock_transport):
        mock_transport.set_response("command -v mysql", "/usr/bin/mysql")
        mock_transport.set_response("information_schema.tables", "Database\tSize (MB)\tTables\nshop\t1.0\t5\n")
        found = await aggregator.fetch_databases(session)
        assert list(found) == ["mysql"]
        assert found["mysql"][0].name == "shop"

    @pytest.mark.asyncio
    async def test_create_routes_to_engine(self, aggregator, session, mock_transport):
        mock_transport.set_response("echo CREATED", "CREATED")
        assert await aggregator.create_database(session, "shop", engine="postgres")
        assert mock_transport.ran("createdb shop")

    @pytest.mark.asyncio
    async def test_engine_must_be_a_database(self, aggregator, session):
        with pytest.raises(ServiceNotFound):
            await aggregator.delete_database(session, "shop", engine="nginx")

    @pytest.mark.asyncio
    async def test_backup(self, aggregator, session, mock_transport):
        mock_transport.set_response("echo SUCCESS", "SUCCESS")
        path = await aggregator.backup_database(session, "shop")
        assert path.startswith("/tmp/shop_")

    @pytest.mark.asyncio
    async def test_root_password(self, aggregator, session, mock_transport):
        mock_transport.set_response("echo CHANGED", "CHANGED")
        assert await aggregator.change_mysql_root_password(session, "n3w-pass")
