"""Tests for the test suite registry."""

import pytest

from imagetest.exceptions import ConfigurationError
from imagetest.suites import BUILTIN_SUITES, default_registry, register_builtin_suites
from imagetest.suites.registry import SuiteRegistry


def _noop(workflow) -> None:
    pass


@pytest.fixture
def registry() -> SuiteRegistry:
    """Return a registry with three suites."""
    registry = SuiteRegistry()
    registry.register("imageboot", _noop, "Boot tests")
    registry.register("network", _noop)
    registry.register("networkperf", _noop)
    return registry


class TestSuiteRegistry:
    """Tests for SuiteRegistry."""

    def test_register(self, registry: SuiteRegistry) -> None:
        """Test registered suites can be looked up."""
        assert len(registry) == 3
        assert "network" in registry
        suite = registry.get("imageboot")
        assert suite.setup is _noop
        assert suite.description == "Boot tests"

    def test_duplicate(self, registry: SuiteRegistry) -> None:
        """Test a name can only be registered once."""
        with pytest.raises(ValueError, match="already registered"):
            registry.register("network", _noop)

    def test_unknown(self, registry: SuiteRegistry) -> None:
        """Test unknown names list the available suites."""
        with pytest.raises(ConfigurationError) as exc_info:
            registry.get("shapes")
        assert "imageboot, network, networkperf" in exc_info.value.suggestion

    def test_iter_all(self, registry: SuiteRegistry) -> None:
        """Test empty filters select every suite in registration order."""
        assert [s.name for s in registry.iter_suites()] == ["imageboot", "network", "networkperf"]

    def test_filter_is_search(self, registry: SuiteRegistry) -> None:
        """Test the filter matches anywhere in the name."""
        assert [s.name for s in registry.iter_suites(filter="work")] == ["network", "networkperf"]
        assert [s.name for s in registry.iter_suites(filter="^network$")] == ["network"]

    def test_exclude(self, registry: SuiteRegistry) -> None:
        """Test excluded suites are skipped."""
        names = [s.name for s in registry.iter_suites(filter="network", exclude="perf")]
        assert names == ["network"]

    def test_invalid_regex(self, registry: SuiteRegistry) -> None:
        """Test invalid filters raise re.error."""
        import re

        with pytest.raises(re.error):
            list(registry.iter_suites(filter="("))


class TestBuiltinSuites:
    """Tests for built-in suite registration."""

    def test_default_registry(self) -> None:
        """Test importing the package registers every built-in suite."""
        names = [s.name for s in default_registry.iter_suites()]
        for name, _, _ in BUILTIN_SUITES:
            assert name in names

    def test_register_into_new_registry(self) -> None:
        """Test built-ins can be registered elsewhere, and only once."""
        registry = SuiteRegistry()
        register_builtin_suites(registry)
        register_builtin_suites(registry)
        assert [s.name for s in registry.iter_suites()] == [
            "imageboot",
            "network",
            "suspendresume",
            "lssd",
            "disk",
            "vmspec",
        ]
