"""
Config value extraction — directive tables and per-syntax parsers.

Each application has a short table of directives worth surfacing
(key, display name, description). The parsers pull the first active
occurrence of each key out of the raw file in that software's syntax
and return ConfigValues in table order. Keys that are absent or only
present in comments are skipped.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence

import yaml

from serverdeck.core.models.state import ConfigValue

logger = logging.getLogger(__name__)

Directive = tuple[str, str, str]

NGINX_DIRECTIVES: tuple[Directive, ...] = (
    ("worker_processes", "Worker Processes", "Number of worker processes (auto or number)"),
    ("worker_connections", "Worker Connections", "Max connections per worker"),
    ("keepalive_timeout", "Keepalive Timeout", "Timeout for keep-alive connections"),
    ("client_max_body_size", "Max Body Size", "Maximum allowed size of the client request body"),
    ("server_tokens", "Server Tokens", "Show or hide the nginx version"),
    ("gzip", "Gzip Compression", "Enable or disable gzip compression"),
)

APACHE_DIRECTIVES: tuple[Directive, ...] = (
    ("Timeout", "Timeout", "Request timeout in seconds"),
    ("KeepAlive", "Keep Alive", "Enable persistent connections"),
    ("MaxKeepAliveRequests", "Max Keep Alive Requests", "Max requests per connection"),
    ("KeepAliveTimeout", "Keep Alive Timeout", "Timeout between requests"),
    ("ServerTokens", "Server Tokens", "Information revealed about the server"),
    ("ServerSignature", "Server Signature", "Footer on server-generated pages"),
)

PHP_DIRECTIVES: tuple[Directive, ...] = (
    ("memory_limit", "Memory Limit", "Maximum amount of memory a script may consume"),
    ("max_execution_time", "Max Execution Time", "Maximum time a script can run (seconds)"),
    ("max_input_time", "Max Input Time", "Maximum time parsing request data (seconds)"),
    ("post_max_size", "Post Max Size", "Maximum size of POST data"),
    ("upload_max_filesize", "Upload Max Filesize", "Maximum size of uploaded files"),
    ("max_file_uploads", "Max File Uploads", "Maximum number of simultaneous uploads"),
    ("display_errors", "Display Errors", "Display PHP errors"),
    ("error_reporting", "Error Reporting", "Error reporting level"),
    ("date.timezone", "Timezone", "Default timezone for date functions"),
)

MYSQL_DIRECTIVES: tuple[Directive, ...] = (
    ("max_connections", "Max Connections", "Maximum number of concurrent connections"),
    ("max_allowed_packet", "Max Allowed Packet", "Maximum packet size"),
    ("innodb_buffer_pool_size", "InnoDB Buffer Pool", "Size of the buffer pool"),
    ("query_cache_size", "Query Cache Size", "Size of query cache"),
    ("key_buffer_size", "Key Buffer Size", "Size of the key buffer"),
    ("thread_cache_size", "Thread Cache Size", "Number of threads to cache"),
    ("slow_query_log", "Slow Query Log", "Enable slow query logging"),
)

POSTGRES_DIRECTIVES: tuple[Directive, ...] = (
    ("max_connections", "Max Connections", "Maximum number of concurrent connections"),
    ("shared_buffers", "Shared Buffers", "Amount of memory for shared buffers"),
    ("effective_cache_size", "Effective Cache Size", "Estimate of available memory"),
    ("work_mem", "Work Memory", "Memory for internal sort operations"),
    ("maintenance_work_mem", "Maintenance Work Mem", "Memory for maintenance operations"),
    ("checkpoint_completion_target", "Checkpoint Completion", "Target for checkpoint completion"),
    ("wal_buffers", "WAL Buffers", "Amount of memory for WAL data"),
)

REDIS_DIRECTIVES: tuple[Directive, ...] = (
    ("maxmemory", "Max Memory", "Maximum amount of memory Redis can use"),
    ("maxmemory-policy", "Memory Policy", "How Redis handles memory limits"),
    ("timeout", "Timeout", "Client connection timeout (0 = no timeout)"),
    ("tcp-keepalive", "TCP Keep Alive", "TCP keepalive interval"),
    ("databases", "Databases", "Number of databases"),
    ("save", "RDB Save", "RDB persistence configuration"),
)

MONGO_DIRECTIVES: tuple[Directive, ...] = (
    ("net.port", "Port", "TCP port mongod listens on"),
    ("net.bindIp", "Bind IP", "Addresses mongod binds to"),
    ("storage.dbPath", "Data Directory", "Where data files are stored"),
    ("storage.journal.enabled", "Journal", "Write-ahead journaling"),
    ("systemLog.path", "Log Path", "Log file location"),
    ("security.authorization", "Authorization", "Role-based access control"),
)


def _values(content: str, directives: Sequence[Directive], pattern: Callable[[str], str], flags: int = 0) -> list[ConfigValue]:
    values = []
    for key, name, description in directives:
        match = re.search(pattern(re.escape(key)), content, re.MULTILINE | flags)
        if match:
            value = match.group(1).strip()
            if value:
                values.append(ConfigValue(key=key, value=value, display_name=name, description=description))
    return values


def parse_nginx_directives(content: str, directives: Sequence[Directive] = NGINX_DIRECTIVES) -> list[ConfigValue]:
    """``key value;`` statements, ignoring commented lines."""
    return _values(content, directives, lambda k: rf"^[ \t]*{k}[ \t]+([^;#\n]+);")


def parse_apache_directives(content: str, directives: Sequence[Directive] = APACHE_DIRECTIVES) -> list[ConfigValue]:
    """``Key Value`` lines; Apache directive names are case-insensitive."""
    return _values(content, directives, lambda k: rf"^[ \t]*{k}[ \t]+([^#\n]+)$", re.IGNORECASE)


def parse_ini_directives(content: str, directives: Sequence[Directive]) -> list[ConfigValue]:
    """``key = value`` lines as in php.ini and my.cnf."""
    return _values(content, directives, lambda k: rf"^[ \t]*{k}[ \t]*=[ \t]*([^;#\n]+)$")


def parse_postgres_directives(content: str, directives: Sequence[Directive] = POSTGRES_DIRECTIVES) -> list[ConfigValue]:
    """``key = value`` or ``key = 'value'``, trailing comments dropped."""
    return _values(content, directives, lambda k: rf"^[ \t]*{k}[ \t]*=[ \t]*'?([^'#\n]+?)'?[ \t]*(?:#.*)?$")


def parse_redis_directives(content: str, directives: Sequence[Directive] = REDIS_DIRECTIVES) -> list[ConfigValue]:
    """``key value`` lines (no separator)."""
    return _values(content, directives, lambda k: rf"^{k}[ \t]+([^\n]+)$")


def parse_mongo_directives(content: str, directives: Sequence[Directive] = MONGO_DIRECTIVES) -> list[ConfigValue]:
    """Dotted keys looked up in the YAML document of ``mongod.conf``."""
    try:
        document = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.debug("mongod.conf is not valid YAML: %s", e)
        return []
    if not isinstance(document, dict):
        return []

    values = []
    for key, name, description in directives:
        node: object = document
        for part in key.split("."):
            node = node.get(part) if isinstance(node, dict) else None
        if node is None or isinstance(node, (dict, list)):
            continue
        text = str(node).lower() if isinstance(node, bool) else str(node)
        values.append(ConfigValue(key=key, value=text, display_name=name, description=description, section=key.split(".")[0]))
    return values


_PARSERS: dict[str, Callable[[str], list[ConfigValue]]] = {
    "nginx": parse_nginx_directives,
    "apache": parse_apache_directives,
    "php": lambda content: parse_ini_directives(content, PHP_DIRECTIVES),
    "mysql": lambda content: parse_ini_directives(content, MYSQL_DIRECTIVES),
    "postgresql": parse_postgres_directives,
    "redis": parse_redis_directives,
    "mongodb": parse_mongo_directives,
}


def parse_config_values(application_id: str, content: str) -> list[ConfigValue]:
    """ConfigValues for one application's config file; unknown apps yield none."""
    parser = _PARSERS.get(application_id.lower())
    return parser(content) if parser else []
