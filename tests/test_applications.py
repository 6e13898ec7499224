"""
Tests for the application registry and definitions.
"""

import pytest
from pydantic import ValidationError

from serverdeck.core.models.application import (
    ApplicationCategory,
    ApplicationDefinition,
    Capability,
    SectionProviderType,
    ServiceConfiguration,
)
from serverdeck.core.services.applications import (
    BUILTIN_APPLICATIONS,
    ApplicationRegistry,
    section,
    service_section,
)


def _definition(app_id: str, name: str = "Thing", sections=()):
    return ApplicationDefinition(
        id=app_id,
        name=name,
        category=ApplicationCategory.TOOL,
        sections=sections,
        service_config=ServiceConfiguration(service_name=app_id.lower()),
    )


class TestLookup:
    def test_builtin_catalog(self, app_registry):
        assert len(app_registry) == len(BUILTIN_APPLICATIONS)
        assert "nginx" in app_registry
        assert "NGINX" in app_registry
        assert 42 not in app_registry

    def test_case_insensitive(self, app_registry):
        assert app_registry.application("MySQL").id == "mysql"

    def test_unknown_is_none(self, app_registry):
        assert app_registry.application("lighttpd") is None

    def test_sorted_by_name(self, app_registry):
        names = [a.name for a in app_registry.all_applications()]
        assert names == sorted(names)

    def test_category_and_capability_filters(self, app_registry):
        assert {a.id for a in app_registry.applications(ApplicationCategory.WEB_SERVER)} == {"nginx", "apache"}
        assert {a.id for a in app_registry.with_capability(Capability.HAS_FPM)} == {"php"}


class TestSoftwareResolution:
    @pytest.mark.parametrize("name, expected", [
        ("nginx", "nginx"),
        ("httpd", "apache"),
        ("apache2", "apache"),
        ("MariaDB", "mysql"),
        ("postgres", "postgresql"),
        ("nodejs", "node"),
        ("mongod", "mongodb"),
        ("redis-server", "redis"),
        ("php-fpm", "php"),
    ])
    def test_aliases(self, app_registry, name, expected):
        assert app_registry.application_for_software(name).id == expected

    def test_unresolvable(self, app_registry):
        assert app_registry.application_for_software("") is None
        assert app_registry.application_for_software("varnish") is None


class TestRegistryConstruction:
    def test_duplicate_keeps_last(self, caplog):
        first = _definition("tool", name="First")
        second = _definition("tool", name="Second")
        registry = ApplicationRegistry([first, second])
        assert len(registry) == 1
        assert registry.application("tool").name == "Second"
        assert "Overwriting existing application: tool" in caplog.text

    def test_id_is_lowercased_and_slug_defaulted(self):
        definition = _definition("MyTool")
        assert definition.id == "mytool"
        assert definition.slug == "mytool"

    def test_definitions_are_frozen(self):
        definition = _definition("tool")
        with pytest.raises(ValidationError):
            definition.name = "Other"


class TestSections:
    def test_default_flag_wins(self):
        definition = _definition("tool", sections=(
            section(SectionProviderType.LOGS, 0),
            service_section(5),
        ))
        assert definition.default_section.provider_type == SectionProviderType.SERVICE

    def test_default_falls_back_to_first_in_order(self):
        definition = _definition("tool", sections=(
            section(SectionProviderType.LOGS, 3),
            section(SectionProviderType.STATUS, 1),
        ))
        assert definition.default_section.id == "status"

    def test_no_sections(self):
        assert _definition("tool").default_section is None

    def test_section_lookup(self, app_registry):
        php = app_registry.application("php")
        assert php.section("FPM_PROFILE").provider_type == SectionProviderType.FPM_PROFILE
        assert php.section("sites") is None

    def test_every_builtin_has_a_default_section(self):
        for definition in BUILTIN_APPLICATIONS:
            assert definition.default_section is not None
            assert [s.order for s in definition.sorted_sections] == sorted(s.order for s in definition.sections)

    def test_section_labels(self):
        logs = section(SectionProviderType.LOGS, 2)
        assert logs.id == "logs"
        assert logs.name == SectionProviderType.LOGS.default_name
        assert not logs.is_default
