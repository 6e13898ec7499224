"""
Database detection — MySQL/MariaDB, PostgreSQL, Redis, MongoDB.

Version strings come from each client's ``--version`` output; the
parsers are pure functions so every format quirk is testable without
a target.
"""

from __future__ import annotations

import re

from serverdeck.core.services.detection.base import SoftwareDetector, first_existing_command, first_regex
from serverdeck.core.services.versions.compare import sort_versions_desc
from serverdeck.core.session import ServerSession

# ── MySQL / MariaDB ─────────────────────────────────────────────


class MySQLDetector(SoftwareDetector):
    binaries = ("mysql", "mariadb")
    service_names = ("mysql", "mariadb", "mysqld")
    binary_paths = ("/usr/bin/mysql", "/usr/sbin/mysqld", "/usr/local/bin/mysql", "/www/server/mysql/bin/mysql")
    packages = ("mysql-server", "mariadb-server", "mysql-community-server", "percona-server-server")

    async def is_mariadb(self, session: ServerSession) -> bool:
        result = await session.execute("mysql --version 2>&1", timeout=10)
        return "mariadb" in result.output.lower()

    async def get_distribution_name(self, session: ServerSession) -> str:
        return "MariaDB" if await self.is_mariadb(session) else "MySQL"


_MARIADB_RE = re.compile(r"(\d+\.\d+\.\d+)-MariaDB", re.IGNORECASE)
_MYSQL_PATTERNS = (
    re.compile(r"Distrib\s+(\d+\.\d+\.\d+)"),
    re.compile(r"Ver\s+(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+)"),
)


def parse_mysql_version(output: str) -> str | None:
    """Server version from ``mysql --version``.

    ``mysql  Ver 8.0.35 for Linux on x86_64`` → ``8.0.35``;
    ``mysql  Ver 15.1 Distrib 10.6.12-MariaDB`` → ``10.6.12``.
    """
    text = output.strip()
    if not text:
        return None
    match = _MARIADB_RE.search(text)
    if match:
        return match.group(1)
    return first_regex(_MYSQL_PATTERNS, text)


class MySQLVersionResolver:
    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("mysql --version 2>&1 | head -n 1", timeout=10)
        return parse_mysql_version(result.output)


# ── PostgreSQL ──────────────────────────────────────────────────


# Data directory layouts, Debian first
_PG_DATA_DIRS = ("/var/lib/postgresql/*/main", "/var/lib/pgsql/*/data")


class PostgreSQLDetector(SoftwareDetector):
    binaries = ("psql", "pg_ctl")
    service_names = ("postgresql",)
    binary_paths = ("/usr/bin/psql", "/usr/lib/postgresql", "/usr/pgsql-16/bin/psql", "/usr/pgsql-15/bin/psql")
    packages = (r"postgresql(-[0-9]+)?", r"postgresql[0-9]*-server")

    async def get_data_directory(self, session: ServerSession) -> str | None:
        result = await session.execute(
            "sudo -n -u postgres psql -t -c 'SHOW data_directory;' 2>/dev/null | head -n 1", timeout=10
        )
        path = result.text
        if path.startswith("/"):
            return path
        found = await session.execute(
            first_existing_command(_PG_DATA_DIRS, expand_globs=True), timeout=5
        )
        return found.text or None


_PG_PATTERNS = (
    re.compile(r"PostgreSQL\)?\s*(\d+\.\d+)"),
    re.compile(r"(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+)"),
)


def parse_postgres_version(output: str) -> str | None:
    """``psql (PostgreSQL) 15.4 (Ubuntu 15.4-1)`` → ``15.4``."""
    return first_regex(_PG_PATTERNS, output)


def parse_pg_clusters(output: str) -> list[str]:
    """Versions from ``pg_lsclusters`` output (header row already stripped)."""
    versions = [line.split()[0] for line in output.splitlines() if line.strip()]
    return sort_versions_desc(v for v in versions if v[:1].isdigit())


class PostgreSQLVersionResolver:
    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("psql --version 2>/dev/null | head -n 1", timeout=10)
        return parse_postgres_version(result.output)

    async def get_cluster_versions(self, session: ServerSession) -> list[str]:
        result = await session.execute("pg_lsclusters 2>/dev/null | tail -n +2", timeout=10)
        versions = parse_pg_clusters(result.output)
        if versions:
            return versions
        rhel = await session.execute(
            "ls -1d /usr/pgsql-* 2>/dev/null | grep -oE '[0-9]+$'", timeout=10
        )
        return sort_versions_desc(rhel.lines)


# ── Redis ───────────────────────────────────────────────────────


class RedisDetector(SoftwareDetector):
    binaries = ("redis-server", "redis-cli")
    service_names = ("redis-server", "redis")
    binary_paths = ("/usr/bin/redis-server", "/usr/local/bin/redis-server", "/www/server/redis/src/redis-server")
    packages = ("redis-server", "redis")


_REDIS_PATTERNS = (
    re.compile(r"v=(\d+\.\d+\.\d+)"),
    re.compile(r"(\d+\.\d+\.\d+)"),
)


def parse_redis_version(output: str) -> str | None:
    """``Redis server v=7.0.12 sha=00000000:0 ...`` → ``7.0.12``."""
    return first_regex(_REDIS_PATTERNS, output)


class RedisVersionResolver:
    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("redis-server --version 2>/dev/null", timeout=10)
        return parse_redis_version(result.output)


# ── MongoDB ─────────────────────────────────────────────────────


class MongoDetector(SoftwareDetector):
    binaries = ("mongod", "mongosh", "mongo")
    service_names = ("mongod", "mongodb")
    binary_paths = ("/usr/bin/mongod", "/usr/local/bin/mongod")
    packages = ("mongodb-org", "mongodb-org-server", "mongodb-server", "mongodb")


def parse_mongo_version(output: str) -> str | None:
    """``db version v7.0.2`` → ``7.0.2``."""
    return first_regex((r"v(\d+\.\d+\.\d+)", r"(\d+\.\d+\.\d+)"), output)


class MongoVersionResolver:
    async def get_version(self, session: ServerSession) -> str | None:
        result = await session.execute("mongod --version 2>/dev/null | head -n 1", timeout=10)
        return parse_mongo_version(result.output)
