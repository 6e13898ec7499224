"""Detection — installation probes, path resolvers and version resolvers."""

from serverdeck.core.services.detection.base import (
    OSFamily,
    SoftwareDetector,
    detect_os_family,
    first_match,
    is_service_active,
    parse_os_release,
    service_exists,
)
from serverdeck.core.services.detection.apache import parse_apache_version
from serverdeck.core.services.detection.databases import (
    parse_mongo_version,
    parse_mysql_version,
    parse_postgres_version,
    parse_redis_version,
)
from serverdeck.core.services.detection.nginx import parse_nginx_version
from serverdeck.core.services.detection.php import parse_php_active_version
from serverdeck.core.services.detection.runtimes import parse_node_version, parse_python_version

__all__ = [
    "OSFamily",
    "SoftwareDetector",
    "detect_os_family",
    "first_match",
    "is_service_active",
    "parse_apache_version",
    "parse_mongo_version",
    "parse_mysql_version",
    "parse_nginx_version",
    "parse_node_version",
    "parse_os_release",
    "parse_php_active_version",
    "parse_postgres_version",
    "parse_python_version",
    "parse_redis_version",
    "service_exists",
]
