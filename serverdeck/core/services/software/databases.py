"""
Database services — MySQL/MariaDB, PostgreSQL, Redis, MongoDB.

Every engine answers the same questions (list, create, drop, back up,
list users) through a different client and a different output format:
tab-separated for ``mysql``, pipe-separated for ``psql``, key/value
lines for ``redis-cli`` and JSON printed from ``mongosh``. The parsers
are module-level functions; the services only compose commands.

Identifiers are validated before they reach a command line. Expected
failures (bad name, database already gone) return False or None.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from serverdeck.core.models.state import DatabaseInfo, DatabaseUser, MySQLStatusInfo
from serverdeck.core.services.detection.databases import (
    MongoDetector,
    MongoVersionResolver,
    MySQLDetector,
    MySQLVersionResolver,
    PostgreSQLDetector,
    PostgreSQLVersionResolver,
    RedisDetector,
    RedisVersionResolver,
)
from serverdeck.core.services.software.base import ControllableService
from serverdeck.core.session import ServerSession, quote, sudo

logger = logging.getLogger(__name__)

BACKUP_TIMEOUT = 120

MYSQL_SYSTEM_DATABASES = frozenset({"information_schema", "performance_schema", "mysql", "sys"})
# Maintenance account credentials shipped by the Debian packages
DEBIAN_MAINTENANCE_CNF = "/etc/mysql/debian.cnf"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_\-]{0,63}$")


def is_valid_identifier(name: str) -> bool:
    """Database and user names safe to splice into SQL and shell text."""
    return bool(_IDENTIFIER_RE.match(name or ""))


def sql_string(value: str) -> str:
    """A single-quoted SQL string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def backup_path(name: str, extension: str) -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    return f"/tmp/{name}_{stamp}.{extension}"


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


# ── Parsers ─────────────────────────────────────────────────────


def parse_mysql_databases(output: str) -> list[DatabaseInfo]:
    """Rows of ``Database  Size (MB)  Tables`` (tab-separated, header first)."""
    databases = []
    for line in output.splitlines()[1:]:
        parts = [p.strip() for p in line.split("\t")]
        if len(parts) != 3 or not parts[0]:
            continue
        count = int(parts[2]) if parts[2].isdigit() else 0
        databases.append(DatabaseInfo(name=parts[0], size=f"{parts[1]} MB", table_count=count))
    return databases


def parse_mysql_users(output: str) -> list[DatabaseUser]:
    """Rows of ``User  Host`` (tab-separated, header first)."""
    users = []
    for line in output.splitlines()[1:]:
        parts = [p.strip() for p in line.split("\t")]
        if len(parts) != 2 or not parts[0]:
            continue
        users.append(DatabaseUser(id=f"{parts[0]}@{parts[1]}", username=parts[0], host=parts[1]))
    return users


def parse_mysql_status(output: str, version: str = "") -> MySQLStatusInfo | None:
    """``mysqladmin status`` one-liner."""
    if "Uptime:" not in output:
        return None

    def _int(label: str) -> int:
        match = re.search(rf"{label}:\s*(\d+)", output)
        return int(match.group(1)) if match else 0

    qps = re.search(r"Queries per second avg:\s*([\d.]+)", output)
    return MySQLStatusInfo(
        version=version,
        uptime=_format_uptime(_int("Uptime")),
        threads_connected=_int("Threads"),
        questions=_int("Questions"),
        slow_queries=_int("Slow queries"),
        open_tables=_int("Open tables"),
        qps=float(qps.group(1)) if qps else 0.0,
    )


def _format_uptime(seconds: int) -> str:
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def parse_postgres_databases(output: str) -> list[DatabaseInfo]:
    """``datname|size`` rows from ``psql -t -A`` (no header)."""
    databases = []
    for line in output.splitlines():
        parts = [p.strip() for p in line.split("|")]
        if len(parts) != 2 or not parts[0]:
            continue
        databases.append(DatabaseInfo(name=parts[0], size=parts[1]))
    return databases


def parse_postgres_users(output: str) -> list[DatabaseUser]:
    """``usename|usesuper|usecreatedb`` rows (no header)."""
    users = []
    for line in output.splitlines():
        parts = [p.strip() for p in line.split("|")]
        if len(parts) != 3 or not parts[0]:
            continue
        privileges = []
        if parts[1] == "t":
            privileges.append("SUPERUSER")
        if parts[2] == "t":
            privileges.append("CREATEDB")
        users.append(DatabaseUser(id=f"{parts[0]}@local", username=parts[0], host="local", privileges=privileges))
    return users


def parse_redis_keyspace(output: str) -> list[DatabaseInfo]:
    """``db0:keys=12,expires=0,avg_ttl=0`` lines from ``INFO keyspace``."""
    databases = []
    for line in output.splitlines():
        match = re.match(r"^(db\d+):keys=(\d+)", line.strip())
        if match:
            keys = int(match.group(2))
            databases.append(DatabaseInfo(name=match.group(1), size=f"{keys} keys", table_count=keys))
    return databases


def parse_redis_info(output: str) -> dict[str, str]:
    """``key:value`` pairs from ``redis-cli INFO``; section headers skipped."""
    info = {}
    for line in output.splitlines():
        key, sep, value = line.strip().partition(":")
        if sep and key and not key.startswith("#"):
            info[key] = value.strip()
    return info


def parse_redis_acl(output: str) -> list[DatabaseUser]:
    """``user <name> on ... ~* +@all`` lines from ``ACL LIST``."""
    users = []
    for line in output.splitlines():
        parts = line.strip().split()
        if len(parts) < 2 or parts[0] != "user":
            continue
        privileges = [p for p in parts[2:] if p.startswith(("+", "-", "~", "&"))]
        users.append(DatabaseUser(id=parts[1], username=parts[1], host="", privileges=privileges))
    return users


def parse_mongo_databases(output: str) -> list[DatabaseInfo]:
    """JSON from ``listDatabases``; anything that is not JSON is nothing found."""
    text = output.strip()
    start = text.find("{")
    if start < 0:
        return []
    try:
        payload = json.loads(text[start:])
    except json.JSONDecodeError:
        logger.debug("Unparseable listDatabases output: %.200s", text)
        return []
    databases = []
    for entry in payload.get("databases", []):
        name = entry.get("name")
        if name:
            databases.append(DatabaseInfo(name=name, size=format_bytes(int(entry.get("sizeOnDisk", 0)))))
    return databases


def parse_mongo_users(output: str) -> list[DatabaseUser]:
    """``user<TAB>role,role`` lines printed by the users query."""
    users = []
    for line in output.splitlines():
        parts = [p.strip() for p in line.split("\t")]
        if len(parts) != 2 or not parts[0]:
            continue
        roles = [r for r in parts[1].split(",") if r]
        users.append(DatabaseUser(id=f"{parts[0]}@admin", username=parts[0], host="admin", privileges=roles))
    return users


# ── Services ────────────────────────────────────────────────────


class DatabaseService(ControllableService, ABC):
    """Database CRUD shared by every engine."""

    engine: str = ""

    @abstractmethod
    async def fetch_databases(self, session: ServerSession) -> list[DatabaseInfo]: ...

    @abstractmethod
    async def create_database(self, session: ServerSession, name: str) -> bool: ...

    @abstractmethod
    async def delete_database(self, session: ServerSession, name: str) -> bool: ...

    @abstractmethod
    async def backup_database(self, session: ServerSession, name: str) -> str | None: ...

    async def fetch_users(self, session: ServerSession) -> list[DatabaseUser]:
        return []

    def _reject(self, name: str) -> bool:
        if is_valid_identifier(name):
            return False
        logger.warning("%s: refusing invalid database name %r", self.engine, name)
        return True


class MySQLService(DatabaseService):
    engine = "mysql"
    detector = MySQLDetector()

    def __init__(self):
        self.versions = MySQLVersionResolver()

    async def get_version(self, session: ServerSession) -> str | None:
        return await self.versions.get_version(session)

    async def _sql(self, session: ServerSession, sql: str, marker: str) -> str:
        """Run SQL through the client; ``marker`` is echoed only on success."""
        result = await session.execute(f"{sudo('mysql')} -e {quote(sql)} 2>&1 && echo {marker}", timeout=15)
        return result.output

    async def fetch_databases(self, session: ServerSession, include_system: bool = False) -> list[DatabaseInfo]:
        query = quote(_MYSQL_DATABASES_SQL)
        result = await session.execute(
            f"{sudo('mysql')} -e {query} 2>/dev/null"
            f" || {sudo('mysql')} --defaults-file={DEBIAN_MAINTENANCE_CNF} -e {query} 2>/dev/null",
            timeout=15,
        )
        databases = parse_mysql_databases(result.output)
        if include_system:
            return databases
        return [db for db in databases if db.name not in MYSQL_SYSTEM_DATABASES]

    async def create_database(
        self,
        session: ServerSession,
        name: str,
        username: str | None = None,
        password: str | None = None,
    ) -> bool:
        if self._reject(name):
            return False
        output = await self._sql(session, _create_sql(name), marker="CREATED")
        if "CREATED" not in output and "exists" not in output:
            logger.warning("mysql: create %s failed: %s", name, output.strip())
            return False

        if username and password:
            if not is_valid_identifier(username):
                return False
            grant = (
                f"CREATE USER IF NOT EXISTS {sql_string(username)}@'localhost' IDENTIFIED BY {sql_string(password)}; "
                f"GRANT ALL PRIVILEGES ON `{name}`.* TO {sql_string(username)}@'localhost'; FLUSH PRIVILEGES;"
            )
            if "GRANTED" not in await self._sql(session, grant, marker="GRANTED"):
                logger.warning("mysql: grant on %s to %s failed", name, username)
                return False
        logger.info("mysql: created database %s", name)
        return True

    async def delete_database(self, session: ServerSession, name: str) -> bool:
        if self._reject(name) or name in MYSQL_SYSTEM_DATABASES:
            return False
        return "DROPPED" in await self._sql(session, f"DROP DATABASE `{name}`;", marker="DROPPED")

    async def backup_database(self, session: ServerSession, name: str) -> str | None:
        if self._reject(name):
            return None
        path = backup_path(name, "sql")
        result = await session.execute(
            f"{sudo('mysqldump')} {quote(name)} > {quote(path)} && echo SUCCESS", timeout=BACKUP_TIMEOUT
        )
        return path if "SUCCESS" in result.output else None

    async def fetch_users(self, session: ServerSession) -> list[DatabaseUser]:
        result = await session.execute(
            f"{sudo('mysql')} -e {quote('SELECT User, Host FROM mysql.user;')} 2>/dev/null", timeout=15
        )
        return parse_mysql_users(result.output)

    async def change_root_password(self, session: ServerSession, password: str) -> bool:
        if not password:
            return False
        sql = f"ALTER USER 'root'@'localhost' IDENTIFIED BY {sql_string(password)}; FLUSH PRIVILEGES;"
        if "CHANGED" not in await self._sql(session, sql, marker="CHANGED"):
            logger.warning("mysql: root password change failed")
            return False
        logger.info("mysql: root password changed on %s", session.label)
        return True

    async def get_server_status(self, session: ServerSession) -> MySQLStatusInfo | None:
        result = await session.execute(f"{sudo('mysqladmin')} status 2>/dev/null", timeout=10)
        return parse_mysql_status(result.output, await self.get_version(session) or "")


_MYSQL_DATABASES_SQL = (
    "SELECT s.schema_name AS 'Database', "
    "ROUND(COALESCE(SUM(t.data_length + t.index_length), 0) / 1024 / 1024, 2) AS 'Size (MB)', "
    "COUNT(t.table_name) AS 'Tables' "
    "FROM information_schema.schemata s "
    "LEFT JOIN information_schema.tables t ON t.table_schema = s.schema_name "
    "GROUP BY s.schema_name;"
)


def _create_sql(name: str) -> str:
    return f"CREATE DATABASE `{name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;"


class PostgreSQLService(DatabaseService):
    engine = "postgresql"
    detector = PostgreSQLDetector()

    def __init__(self):
        self.versions = PostgreSQLVersionResolver()

    async def get_version(self, session: ServerSession) -> str | None:
        return await self.versions.get_version(session)

    def _as_postgres(self, command: str) -> str:
        return f"{sudo('-u postgres')} {command}"

    async def _psql(self, session: ServerSession, sql: str) -> str:
        result = await session.execute(
            self._as_postgres(f"psql -t -A -c {quote(sql)} 2>/dev/null"), timeout=15
        )
        return result.output

    async def fetch_databases(self, session: ServerSession) -> list[DatabaseInfo]:
        output = await self._psql(
            session,
            "SELECT datname, pg_size_pretty(pg_database_size(datname)) "
            "FROM pg_database WHERE datistemplate = false;",
        )
        return parse_postgres_databases(output)

    async def create_database(self, session: ServerSession, name: str) -> bool:
        if self._reject(name):
            return False
        result = await session.execute(
            self._as_postgres(f"createdb {quote(name)} 2>&1 && echo CREATED"), timeout=15
        )
        return "CREATED" in result.output or "already exists" in result.output

    async def delete_database(self, session: ServerSession, name: str) -> bool:
        if self._reject(name) or name in ("postgres", "template0", "template1"):
            return False
        await self._psql(
            session,
            f"SELECT pg_terminate_backend(pid) FROM pg_stat_activity WHERE datname = {sql_string(name)};",
        )
        result = await session.execute(
            self._as_postgres(f"dropdb {quote(name)} 2>&1 && echo DROPPED"), timeout=15
        )
        return "DROPPED" in result.output

    async def backup_database(self, session: ServerSession, name: str) -> str | None:
        if self._reject(name):
            return None
        path = backup_path(name, "sql")
        result = await session.execute(
            self._as_postgres(f"pg_dump {quote(name)} > {quote(path)} && echo SUCCESS"), timeout=BACKUP_TIMEOUT
        )
        return path if "SUCCESS" in result.output else None

    async def fetch_users(self, session: ServerSession) -> list[DatabaseUser]:
        return parse_postgres_users(await self._psql(session, "SELECT usename, usesuper, usecreatedb FROM pg_user;"))

    async def get_connection_count(self, session: ServerSession) -> int | None:
        text = (await self._psql(session, "SELECT count(*) FROM pg_stat_activity;")).strip()
        return int(text) if text.isdigit() else None


class RedisService(DatabaseService):
    engine = "redis"
    detector = RedisDetector()

    def __init__(self):
        self.versions = RedisVersionResolver()

    async def get_version(self, session: ServerSession) -> str | None:
        return await self.versions.get_version(session)

    async def fetch_databases(self, session: ServerSession) -> list[DatabaseInfo]:
        result = await session.execute("redis-cli INFO keyspace 2>/dev/null", timeout=10)
        return parse_redis_keyspace(result.output)

    async def create_database(self, session: ServerSession, name: str) -> bool:
        # Numbered databases exist implicitly
        return _redis_index(name) is not None

    async def delete_database(self, session: ServerSession, name: str) -> bool:
        """Flush a numbered database (``db3`` or ``3``)."""
        index = _redis_index(name)
        if index is None:
            return False
        result = await session.execute(f"redis-cli -n {index} FLUSHDB 2>&1", timeout=15)
        return "OK" in result.output

    async def backup_database(self, session: ServerSession, name: str) -> str | None:
        result = await session.execute("redis-cli BGSAVE 2>&1", timeout=15)
        if "started" not in result.output.lower() and "scheduled" not in result.output.lower():
            return None
        location = await session.execute(
            "redis-cli CONFIG GET dir 2>/dev/null | tail -n 1; redis-cli CONFIG GET dbfilename 2>/dev/null | tail -n 1",
            timeout=10,
        )
        lines = location.lines
        return f"{lines[0]}/{lines[1]}" if len(lines) >= 2 else "/var/lib/redis/dump.rdb"

    async def fetch_users(self, session: ServerSession) -> list[DatabaseUser]:
        result = await session.execute("redis-cli ACL LIST 2>/dev/null", timeout=10)
        return parse_redis_acl(result.output)

    async def get_info(self, session: ServerSession) -> dict[str, str]:
        result = await session.execute("redis-cli INFO 2>/dev/null", timeout=10)
        return parse_redis_info(result.output) if result.ok else {}


def _redis_index(name: str) -> int | None:
    raw = name.strip().removeprefix("db")
    return int(raw) if raw.isdigit() and int(raw) < 256 else None


_MONGO_LIST_JS = "JSON.stringify(db.adminCommand({listDatabases: 1}))"
_MONGO_USERS_JS = (
    "db.getSiblingDB('admin').getUsers().users.forEach("
    "u => print(u.user + '\\t' + u.roles.map(r => r.role).join(',')))"
)


class MongoService(DatabaseService):
    engine = "mongodb"
    detector = MongoDetector()

    def __init__(self):
        self.versions = MongoVersionResolver()

    async def get_version(self, session: ServerSession) -> str | None:
        return await self.versions.get_version(session)

    async def _eval(self, session: ServerSession, script: str, database: str = "admin") -> str:
        result = await session.execute(
            f"mongosh {quote(database)} --quiet --eval {quote(script)} 2>/dev/null", timeout=15
        )
        return result.output

    async def fetch_databases(self, session: ServerSession) -> list[DatabaseInfo]:
        return parse_mongo_databases(await self._eval(session, _MONGO_LIST_JS))

    async def create_database(self, session: ServerSession, name: str) -> bool:
        if self._reject(name):
            return False
        output = await self._eval(session, "JSON.stringify(db.createCollection('init'))", database=name)
        return '"ok":1' in output.replace(" ", "") or "already exists" in output

    async def delete_database(self, session: ServerSession, name: str) -> bool:
        if self._reject(name) or name in ("admin", "local", "config"):
            return False
        output = await self._eval(session, "JSON.stringify(db.dropDatabase())", database=name)
        return '"ok":1' in output.replace(" ", "")

    async def backup_database(self, session: ServerSession, name: str) -> str | None:
        if self._reject(name):
            return None
        path = backup_path(name, "gz")
        result = await session.execute(
            f"mongodump --db {quote(name)} --archive={quote(path)} --gzip 2>&1 && echo SUCCESS",
            timeout=BACKUP_TIMEOUT,
        )
        return path if "SUCCESS" in result.output else None

    async def fetch_users(self, session: ServerSession) -> list[DatabaseUser]:
        return parse_mongo_users(await self._eval(session, _MONGO_USERS_JS))
