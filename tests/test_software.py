"""
Tests for software services — status folding, site management, databases, PHP-FPM.
"""

import pytest

from serverdeck.core.models.status import StatusKind
from serverdeck.core.services.software import SoftwareServices, systemctl
from serverdeck.core.services.software.apache import build_apache_site, parse_apache_site
from serverdeck.core.services.software.base import is_safe_to_remove
from serverdeck.core.services.software.databases import (
    is_valid_identifier,
    parse_mongo_databases,
    parse_mongo_users,
    parse_mysql_databases,
    parse_mysql_status,
    parse_mysql_users,
    parse_postgres_users,
    parse_redis_acl,
    parse_redis_keyspace,
)
from serverdeck.core.services.software.nginx import (
    build_nginx_site,
    parse_nginx_modules,
    parse_nginx_site,
    parse_stub_status,
)
from serverdeck.core.services.software.php import (
    parse_disabled_functions,
    parse_fpm_status,
    parse_fpm_units,
    parse_php_modules,
)
from serverdeck.core.services.software.web import is_valid_site_name, normalise_domain, parse_access_log

# ── Status & systemctl ───────────────────────────────────────────────


class TestStatus:
    @pytest.mark.asyncio
    async def test_not_installed(self, session, services):
        status = await services.nginx.get_status(session)
        assert status.kind == StatusKind.NOT_INSTALLED
        assert status.version is None

    @pytest.mark.asyncio
    async def test_running_with_version(self, session, services, mock_transport):
        mock_transport.set_response("command -v nginx", "/usr/sbin/nginx")
        mock_transport.set_response("nginx -v", "nginx version: nginx/1.24.0")
        mock_transport.set_response("systemctl is-active nginx", "active")
        status = await services.nginx.get_status(session)
        assert status.kind == StatusKind.RUNNING
        assert status.version == "1.24.0"

    @pytest.mark.asyncio
    async def test_stopped_without_version(self, session, services, mock_transport):
        mock_transport.set_response("command -v redis-server", "/usr/bin/redis-server")
        status = await services.redis.get_status(session)
        assert status.kind == StatusKind.STOPPED
        assert status.version == "installed"


class TestSystemctl:
    @pytest.mark.asyncio
    async def test_runs_elevated(self, session, mock_transport):
        result = await systemctl(session, "restart", "nginx")
        assert result.ok
        assert mock_transport.ran("sudo -n systemctl restart nginx")

    @pytest.mark.asyncio
    async def test_rejects_unknown_verb(self, session):
        with pytest.raises(ValueError):
            await systemctl(session, "mask", "nginx")

    @pytest.mark.asyncio
    async def test_service_control_uses_detected_unit(self, session, services, mock_transport):
        mock_transport.set_response("mariadb.service", "mariadb.service enabled enabled")
        assert await services.mysql.stop(session)
        assert mock_transport.ran("systemctl stop mariadb")

    @pytest.mark.asyncio
    async def test_failure_is_false(self, session, services, mock_transport):
        mock_transport.set_failure("systemctl start", "Job for redis.service failed")
        assert not await services.redis.start(session)


# ── Web servers ──────────────────────────────────────────────────────


class TestSiteHelpers:
    def test_site_names(self):
        assert is_valid_site_name("example.com")
        assert not is_valid_site_name("default")
        assert not is_valid_site_name(".hidden")
        assert not is_valid_site_name("phpinfo.conf")
        assert not is_valid_site_name("ab")

    def test_normalise_domain(self):
        assert normalise_domain("  Example.COM ") == "example.com"
        with pytest.raises(ValueError):
            normalise_domain("bad domain;rm")

    def test_protected_roots(self):
        assert is_safe_to_remove("/var/www/example_com")
        assert not is_safe_to_remove("/var/www/")
        assert not is_safe_to_remove("/")
        assert not is_safe_to_remove("relative/path")
        assert not is_safe_to_remove("")


class TestNginxParsers:
    def test_site_with_php_and_ssl(self):
        output = (
            "listen 443 ssl;\n"
            "server_name shop.example.com www.shop.example.com;\n"
            "root /var/www/shop/public;\n"
            "fastcgi_pass unix:/run/php/php8.2-fpm.sock;\n"
        )
        site = parse_nginx_site(output, "shop.example.com", "/etc/nginx/sites-available/shop.example.com")
        assert site.domain == "shop.example.com"
        assert site.port == 443
        assert site.ssl
        assert site.php_version == "8.2"
        assert site.document_root == "/var/www/shop/public"

    def test_catch_all_is_skipped(self):
        assert parse_nginx_site("listen 80 default_server;\nserver_name _;\n", "catchall") is None

    def test_proxy_site(self):
        site = parse_nginx_site("listen 80;\nserver_name api.example.com;\nproxy_pass http://127.0.0.1:3000;\n", "api")
        assert site.proxy_pass == "http://127.0.0.1:3000"
        assert site.php_version is None
        assert site.port == 80

    def test_stub_status(self):
        output = (
            "Active connections: 2 \n"
            "server accepts handled requests\n"
            " 10 10 25 \n"
            "Reading: 0 Writing: 1 Waiting: 1 \n"
        )
        info = parse_stub_status(output)
        assert info.active_connections == 2
        assert (info.accepts, info.handled, info.requests) == (10, 10, 25)
        assert info.writing == 1

    def test_stub_status_missing(self):
        assert parse_stub_status("<html>404</html>") is None

    def test_modules(self):
        build = "configure arguments: --with-http_ssl_module --with-threads --add-dynamic-module=/build/ngx_brotli"
        assert parse_nginx_modules(build, ["50-mod-stream.conf"]) == ["50-mod-stream", "http_ssl", "ngx_brotli"]

    def test_site_template(self):
        config = build_nginx_site("example.com", "/var/www/example_com", 80, "/run/php/php8.2-fpm.sock")
        assert "server_name example.com www.example.com;" in config
        assert "fastcgi_pass unix:/run/php/php8.2-fpm.sock;" in config
        assert "fastcgi_pass" not in build_nginx_site("example.com", "/srv/x", 8080, None)


class TestApacheParsers:
    def test_site_falls_back_to_file_name(self):
        site = parse_apache_site("<VirtualHost *:8080>\nDocumentRoot /srv/blog\n", "blog.conf")
        assert site.domain == "blog"
        assert site.port == 8080
        assert site.document_root == "/srv/blog"

    def test_php_handler(self):
        output = 'ServerName a.example.com\nSetHandler "proxy:unix:/run/php/php8.1-fpm.sock|fcgi://localhost"\n'
        assert parse_apache_site(output, "a.conf").php_version == "8.1"

    def test_site_template(self):
        config = build_apache_site("example.com", "/var/www/example_com", 80, None)
        assert config.startswith("<VirtualHost *:80>")
        assert "DocumentRoot /var/www/example_com" in config


class TestNginxSites:
    @pytest.mark.asyncio
    async def test_fetch_sites(self, session, services, mock_transport):
        mock_transport.set_response("ls -1 --color=never /etc/nginx/sites-available", "default\nexample.com\n")
        mock_transport.set_response("ls -1 --color=never /etc/nginx/sites-enabled", "example.com\n")
        mock_transport.set_response("/etc/nginx/sites-available/example.com", "listen 80;\nserver_name example.com;\n")
        sites = await services.nginx.fetch_sites(session)
        assert [s.domain for s in sites] == ["example.com"]
        assert sites[0].enabled

    @pytest.mark.asyncio
    async def test_create_site(self, session, services, allow_uploads):
        allow_uploads.set_response("echo LINKED", "LINKED")
        assert await services.nginx.create_site(session, "Example.com")
        assert allow_uploads.ran("sudo -n tee /etc/nginx/sites-available/example.com")
        assert allow_uploads.ran("sudo -n mkdir -p /var/www/example_com")
        assert allow_uploads.ran("sudo -n systemctl reload nginx")

    @pytest.mark.asyncio
    async def test_invalid_site_is_rolled_back(self, session, services, allow_uploads):
        allow_uploads.set_response("echo LINKED", "LINKED")
        allow_uploads.set_response(
            "nginx -t",
            'nginx: [emerg] duplicate listen options for [::]:80\nnginx: configuration file test failed',
            exit_code=1,
        )
        assert not await services.nginx.create_site(session, "example.com")
        assert allow_uploads.ran("rm -f /etc/nginx/sites-enabled/example.com")
        assert allow_uploads.ran("sudo -n rm -f /etc/nginx/sites-available/example.com")
        assert not allow_uploads.ran("systemctl reload")

    @pytest.mark.asyncio
    async def test_create_rejects_bad_domain(self, session, services):
        with pytest.raises(ValueError):
            await services.nginx.create_site(session, "not a domain")

    @pytest.mark.asyncio
    async def test_delete_keeps_protected_root(self, session, services, mock_transport):
        mock_transport.set_response("awk '{print $2}'", "/var/www")
        assert await services.nginx.delete_site(session, "example.com", delete_files=True)
        assert not mock_transport.ran("rm -rf")
        assert mock_transport.ran("sudo -n rm -f /etc/nginx/sites-available/example.com")

    @pytest.mark.asyncio
    async def test_delete_removes_site_root(self, session, services, mock_transport):
        mock_transport.set_response("awk '{print $2}'", "/var/www/example_com")
        assert await services.nginx.delete_site(session, "example.com", delete_files=True)
        assert mock_transport.ran("sudo -n rm -rf /var/www/example_com")


class TestAccessLog:
    LOG = (
        '203.0.113.9 - - [18/Oct/2026:10:00:01 +0000] "GET /wp-login.php HTTP/1.1" 403 162 "-" "curl/8.5"\n'
        '198.51.100.4 - - [18/Oct/2026:10:00:07 +0000] "POST /xmlrpc.php HTTP/1.1" 444 - "-" "Mozilla/5.0"\n'
    )

    def test_combined_format(self):
        entries = parse_access_log(self.LOG + "not a log line\n")
        assert len(entries) == 2
        assert entries[0].ip == "203.0.113.9"
        assert entries[0].request == "GET /wp-login.php HTTP/1.1"
        assert entries[0].status == 403
        assert entries[0].size == 162
        assert entries[1].size == 0
        assert entries[1].user_agent == "Mozilla/5.0"

    @pytest.mark.asyncio
    async def test_blocked_requests_newest_first(self, session, services, mock_transport):
        mock_transport.set_response("tail -n 5000 /var/log/nginx/access.log", self.LOG)
        entries = await services.nginx.get_blocked_requests(session)
        assert [e.ip for e in entries] == ["198.51.100.4", "203.0.113.9"]
        assert mock_transport.ran("grep -E")


class TestApacheModules:
    @pytest.mark.asyncio
    async def test_enable_tests_then_restarts(self, session, services, mock_transport):
        mock_transport.set_response("echo ENABLED", "ENABLED")
        assert await services.apache.set_module(session, "rewrite_module", enabled=True)
        assert mock_transport.ran("sudo -n a2enmod rewrite")
        assert mock_transport.ran("configtest")
        assert mock_transport.ran("systemctl restart")

    @pytest.mark.asyncio
    async def test_failed_configtest_undoes_toggle(self, session, services, mock_transport):
        mock_transport.set_response("echo ENABLED", "ENABLED")
        mock_transport.set_failure("configtest", "AH00526: Syntax error on line 3", exit_code=1)
        assert not await services.apache.set_module(session, "headers", enabled=True)
        assert mock_transport.ran("sudo -n a2dismod headers")
        assert not mock_transport.ran("systemctl restart")

    @pytest.mark.asyncio
    async def test_rhel_has_no_a2enmod(self, session, services, mock_transport):
        mock_transport.set_response("echo RHEL_DIR", "RHEL_DIR")
        assert not await services.apache.enable_module(session, "rewrite")
        assert not mock_transport.ran("a2enmod")

    @pytest.mark.asyncio
    async def test_invalid_name_never_runs(self, session, services, mock_transport):
        assert not await services.apache.disable_module(session, "ssl; reboot")
        assert mock_transport.call_count == 0


# ── Databases ────────────────────────────────────────────────────────


class TestDatabaseParsers:
    def test_identifiers(self):
        assert is_valid_identifier("shop_db")
        assert not is_valid_identifier("shop; DROP")
        assert not is_valid_identifier("")

    def test_mysql_databases(self):
        output = "Database\tSize (MB)\tTables\nshop\t1.50\t12\nbroken line\n"
        databases = parse_mysql_databases(output)
        assert len(databases) == 1
        assert databases[0].name == "shop"
        assert databases[0].size == "1.50 MB"
        assert databases[0].table_count == 12

    def test_mysql_schema_without_tables(self):
        output = "Database\tSize (MB)\tTables\nempty_db\t0.00\t0\nshop\t1.50\t12\n"
        databases = parse_mysql_databases(output)
        assert [d.name for d in databases] == ["empty_db", "shop"]
        assert databases[0].table_count == 0
        assert databases[0].size == "0.00 MB"

    def test_mysql_users(self):
        users = parse_mysql_users("User\tHost\napp\tlocalhost\n")
        assert users[0].id == "app@localhost"

    def test_mysql_status(self):
        output = (
            "Uptime: 90061  Threads: 3  Questions: 1200  Slow queries: 1  Opens: 50  "
            "Flush tables: 1  Open tables: 40  Queries per second avg: 0.013"
        )
        status = parse_mysql_status(output, "8.0.35")
        assert status.uptime == "1d 1h 1m"
        assert status.threads_connected == 3
        assert status.open_tables == 40
        assert status.qps == 0.013
        assert parse_mysql_status("error: access denied") is None

    def test_postgres_users(self):
        users = parse_postgres_users("postgres|t|t\napp|f|t\n")
        assert users[0].privileges == ["SUPERUSER", "CREATEDB"]
        assert users[1].privileges == ["CREATEDB"]

    def test_redis(self):
        databases = parse_redis_keyspace("# Keyspace\ndb0:keys=12,expires=0,avg_ttl=0\n")
        assert databases[0].name == "db0"
        assert databases[0].table_count == 12
        users = parse_redis_acl("user default on nopass ~* &* +@all\n")
        assert users[0].username == "default"
        assert "+@all" in users[0].privileges

    def test_mongo(self):
        output = '{"databases":[{"name":"admin","sizeOnDisk":40960},{"name":"app","sizeOnDisk":2048}],"ok":1}'
        databases = parse_mongo_databases(output)
        assert [d.name for d in databases] == ["admin", "app"]
        assert databases[0].size == "40.0 KB"
        assert parse_mongo_databases("MongoNetworkError: connect ECONNREFUSED") == []

    def test_mongo_users_skip_shell_noise(self):
        output = "Current Mongosh Log ID: 65f0c0ffee\nadmin\troot,userAdminAnyDatabase\nreporter\t\n"
        users = parse_mongo_users(output)
        assert [u.username for u in users] == ["admin", "reporter"]
        assert users[0].privileges == ["root", "userAdminAnyDatabase"]
        assert users[1].privileges == []


class TestMySQLService:
    @pytest.mark.asyncio
    async def test_fetch_hides_system_databases(self, session, services, mock_transport):
        mock_transport.set_response("information_schema.tables", "Database\tSize (MB)\tTables\nmysql\t2.0\t30\nshop\t1.0\t5\n")
        assert [d.name for d in await services.mysql.fetch_databases(session)] == ["shop"]

    @pytest.mark.asyncio
    async def test_fetch_lists_schemas_without_tables(self, session, services, mock_transport):
        mock_transport.set_response("information_schema.schemata", "Database\tSize (MB)\tTables\nempty_db\t0.00\t0\n")
        assert [d.name for d in await services.mysql.fetch_databases(session)] == ["empty_db"]
        command = mock_transport.commands_matching("information_schema.schemata")[0]
        assert "LEFT JOIN information_schema.tables" in command
        assert "--defaults-file=/etc/mysql/debian.cnf" in command

    @pytest.mark.asyncio
    async def test_create_with_user(self, session, services, mock_transport):
        mock_transport.set_response("echo CREATED", "CREATED")
        mock_transport.set_response("echo GRANTED", "GRANTED")
        assert await services.mysql.create_database(session, "shop", username="app", password="s3cret")
        assert mock_transport.ran("CREATE DATABASE `shop`")
        assert mock_transport.ran("GRANT ALL PRIVILEGES ON `shop`.*")

    @pytest.mark.asyncio
    async def test_create_failure(self, session, services, mock_transport):
        mock_transport.set_response("CREATE DATABASE", "ERROR 1045 (28000): Access denied", exit_code=1)
        assert not await services.mysql.create_database(session, "shop")

    @pytest.mark.asyncio
    async def test_invalid_name_never_runs(self, session, services, mock_transport):
        assert not await services.mysql.create_database(session, "x`; DROP DATABASE y")
        assert mock_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_system_database_cannot_be_dropped(self, session, services, mock_transport):
        assert not await services.mysql.delete_database(session, "mysql")
        assert mock_transport.call_count == 0

    @pytest.mark.asyncio
    async def test_backup(self, session, services, mock_transport):
        mock_transport.set_response("echo SUCCESS", "SUCCESS")
        path = await services.mysql.backup_database(session, "shop")
        assert path.startswith("/tmp/shop_")
        assert path.endswith(".sql")

    @pytest.mark.asyncio
    async def test_root_password(self, session, services, mock_transport):
        mock_transport.set_response("echo CHANGED", "CHANGED")
        assert await services.mysql.change_root_password(session, "n3w")
        assert not await services.mysql.change_root_password(session, "")


class TestOtherDatabases:
    @pytest.mark.asyncio
    async def test_postgres_runs_as_postgres(self, session, services, mock_transport):
        mock_transport.set_response("echo CREATED", "CREATED")
        assert await services.postgresql.create_database(session, "shop")
        assert mock_transport.ran("sudo -n -u postgres createdb shop")

    @pytest.mark.asyncio
    async def test_postgres_refuses_templates(self, session, services):
        assert not await services.postgresql.delete_database(session, "template1")

    @pytest.mark.asyncio
    async def test_postgres_connection_count(self, session, services, mock_transport):
        mock_transport.set_response("pg_stat_activity;", "7")
        assert await services.postgresql.get_connection_count(session) == 7

    @pytest.mark.asyncio
    async def test_redis_numbered_databases(self, session, services, mock_transport):
        mock_transport.set_response("FLUSHDB", "OK")
        assert await services.redis.create_database(session, "db3")
        assert not await services.redis.create_database(session, "cache")
        assert await services.redis.delete_database(session, "db3")
        assert mock_transport.ran("redis-cli -n 3 FLUSHDB")

    @pytest.mark.asyncio
    async def test_redis_backup_location(self, session, services, mock_transport):
        mock_transport.set_response("BGSAVE", "Background saving started")
        mock_transport.set_response("CONFIG GET dir", "/var/lib/redis\ndump.rdb")
        assert await services.redis.backup_database(session, "db0") == "/var/lib/redis/dump.rdb"

    def test_engine_lookup(self):
        services = SoftwareServices()
        assert services.database("postgresql") is services.postgresql
        assert services.database("nginx") is None
        assert services.web_server("apache") is services.apache
        assert services.runtime("php") is services.php


# ── PHP ──────────────────────────────────────────────────────────────


class TestPHPParsers:
    def test_fpm_units_deduplicated(self):
        assert parse_fpm_units("php8.2-fpm.service\nphp7.4-fpm.service\nphp8.2-fpm\n") == ["php8.2-fpm", "php7.4-fpm"]

    def test_fpm_status(self):
        status = parse_fpm_status("pool:                 www\nprocess manager:      dynamic\nactive processes:     2\n")
        assert status.pool == "www"
        assert status.active_processes == 2
        assert parse_fpm_status("File not found.") is None

    def test_modules(self):
        extensions = parse_php_modules("[PHP Modules]\nCore\nmbstring\ncurl\n\n[Zend Modules]\n")
        assert [e.name for e in extensions] == ["Core", "curl", "mbstring"]
        assert extensions[0].is_core
        assert not extensions[1].is_core

    def test_disabled_functions(self):
        assert parse_disabled_functions("exec, system,,passthru") == ["exec", "passthru", "system"]


class TestPHPService:
    @pytest.mark.asyncio
    async def test_restart_active_unit(self, session, services, mock_transport):
        mock_transport.set_response("grep -oE 'php[0-9.]*-fpm' | head -n 1", "php8.2-fpm")
        assert await services.php.restart(session)
        assert mock_transport.ran("sudo -n php-fpm8.2 -t")
        assert mock_transport.ran("sudo -n systemctl restart php8.2-fpm")

    @pytest.mark.asyncio
    async def test_restart_refused_on_bad_config(self, session, services, mock_transport):
        mock_transport.set_response("grep -oE 'php[0-9.]*-fpm' | head -n 1", "php8.2-fpm")
        mock_transport.set_failure("php-fpm8.2 -t", "ERROR: [pool www] 'listen' is empty")
        assert not await services.php.restart(session)
        assert not mock_transport.ran("systemctl restart")

    @pytest.mark.asyncio
    async def test_missing_fpm_binary_validates(self, session, services, mock_transport):
        mock_transport.set_response("php-fpm -t", "sudo: php-fpm: command not found", exit_code=1)
        result = await services.php.validate_config(session)
        assert result.valid

    @pytest.mark.asyncio
    async def test_versioned_control(self, session, services, mock_transport):
        assert await services.php.fpm.control(session, "reload", "7.4")
        assert mock_transport.ran("systemctl reload php7.4-fpm")

    @pytest.mark.asyncio
    async def test_switch_version(self, session, services, mock_transport):
        mock_transport.set_response("update-alternatives --set", "SWITCHED")
        outcome = await services.php.switch_version(session, "8.3")
        assert outcome.success
        assert mock_transport.ran("/usr/bin/php8.3")
