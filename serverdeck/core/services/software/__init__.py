"""
Software services — one service per supported software family.

``SoftwareServices`` constructs one of each and is what the providers,
the aggregator and the lifecycle manager receive.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from serverdeck.core.services.software.apache import ApacheService
from serverdeck.core.services.software.base import (
    ControllableService,
    ServerModuleService,
    systemctl,
)
from serverdeck.core.services.software.databases import (
    DatabaseService,
    MongoService,
    MySQLService,
    PostgreSQLService,
    RedisService,
)
from serverdeck.core.services.software.nginx import NginxService
from serverdeck.core.services.software.php import PHPFPMManager, PHPService
from serverdeck.core.services.software.runtimes import NodeService, PythonService, RuntimeService
from serverdeck.core.services.software.web import WebServerService


@dataclass
class SoftwareServices:
    """The service set, keyed by application id through ``for_application``."""

    nginx: NginxService = field(default_factory=NginxService)
    apache: ApacheService = field(default_factory=ApacheService)
    mysql: MySQLService = field(default_factory=MySQLService)
    postgresql: PostgreSQLService = field(default_factory=PostgreSQLService)
    redis: RedisService = field(default_factory=RedisService)
    mongodb: MongoService = field(default_factory=MongoService)
    php: PHPService = field(default_factory=PHPService)
    node: NodeService = field(default_factory=NodeService)
    python: PythonService = field(default_factory=PythonService)

    def for_application(self, application_id: str) -> ServerModuleService | None:
        return self._by_id().get(application_id.lower())

    def web_server(self, application_id: str) -> WebServerService | None:
        service = self.for_application(application_id)
        return service if isinstance(service, WebServerService) else None

    def database(self, application_id: str) -> DatabaseService | None:
        service = self.for_application(application_id)
        return service if isinstance(service, DatabaseService) else None

    def runtime(self, application_id: str) -> RuntimeService | PHPService | None:
        service = self.for_application(application_id)
        return service if isinstance(service, (RuntimeService, PHPService)) else None

    def _by_id(self) -> dict[str, ServerModuleService]:
        return {
            "nginx": self.nginx,
            "apache": self.apache,
            "php": self.php,
            "mysql": self.mysql,
            "postgresql": self.postgresql,
            "redis": self.redis,
            "mongodb": self.mongodb,
            "node": self.node,
            "python": self.python,
        }


__all__ = [
    "ApacheService",
    "ControllableService",
    "DatabaseService",
    "MongoService",
    "MySQLService",
    "NginxService",
    "NodeService",
    "PHPFPMManager",
    "PHPService",
    "PostgreSQLService",
    "PythonService",
    "RedisService",
    "RuntimeService",
    "ServerModuleService",
    "SoftwareServices",
    "WebServerService",
    "systemctl",
]
