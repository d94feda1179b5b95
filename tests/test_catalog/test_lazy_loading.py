"""Tests for lazy loading semantics of catalog extensions."""

import sys

import pytest

from lazycatalog.catalog import LazyDirectoryCatalog
from lazycatalog.exceptions import ActivationError


@pytest.fixture
def scenario_catalog(scenario_root, cache_dir, extractor) -> LazyDirectoryCatalog:
    return LazyDirectoryCatalog(scenario_root, "*.ext", cache_dir=cache_dir, extractor=extractor)


class TestScenario:
    """A.ext declares Alpha 1.0, B.ext declares Beta 2.0."""

    def test_parts_describe_both_modules(self, scenario_catalog, scenario_root):
        parts = {record.exported_name: record for record in scenario_catalog.parts}

        assert set(parts) == {"Alpha", "Beta"}
        assert parts["Alpha"].metadata == {"Name": "Alpha", "Version": "1.0"}
        assert parts["Beta"].metadata == {"Name": "Beta", "Version": "2.0"}
        assert parts["Alpha"].source_module_path == str((scenario_root / "A.ext").resolve())

    def test_nothing_loaded_after_refresh(self, scenario_catalog, scenario_root, is_loaded):
        assert not is_loaded(scenario_root / "A.ext")
        assert not is_loaded(scenario_root / "B.ext")

    def test_metadata_access_never_loads(self, scenario_catalog, scenario_root, is_loaded):
        for extension in scenario_catalog.extensions:
            assert extension.metadata["Name"] == extension.exported_name

        assert not is_loaded(scenario_root / "A.ext")
        assert not is_loaded(scenario_root / "B.ext")

    def test_value_loads_only_owning_module(self, scenario_catalog, scenario_root, is_loaded):
        alpha = scenario_catalog.get("Alpha")

        assert alpha.value.initialize() == "Alpha initialized"

        assert is_loaded(scenario_root / "A.ext")
        assert not is_loaded(scenario_root / "B.ext")
        assert not scenario_catalog.get("Beta").is_value_created

    def test_query_helpers(self, scenario_catalog):
        assert scenario_catalog.get("Missing") is None
        assert [e.exported_name for e in scenario_catalog.find(Version="2.0")] == ["Beta"]
        assert [e.exported_name for e in scenario_catalog.find("Alpha", Name="Alpha")] == ["Alpha"]
        assert scenario_catalog.find("Alpha", Version="2.0") == []
        assert scenario_catalog.find(Unknown="x") == []
        assert len(scenario_catalog.find()) == 2
        assert [e.exported_name for e in scenario_catalog] == scenario_catalog.names()
        assert "parts=2" in repr(scenario_catalog)


class TestSingleLoad:
    """Two extensions from one module share a single host import."""

    def test_module_loaded_once_for_two_handles(
        self, plugin_root, write_module, cache_dir, extractor, load_tracking_source, host_loads
    ):
        module_path = write_module(plugin_root, "tracked.py", load_tracking_source)
        catalog = LazyDirectoryCatalog(plugin_root, "*.py", cache_dir=cache_dir, extractor=extractor)

        # The isolated extractor imported it in its own process only
        assert host_loads(module_path) == 0
        assert catalog.names() == ["First", "Second"]

        first = catalog.get("First").value
        second = catalog.get("Second").value

        assert host_loads(module_path) == 1
        assert type(first).__module__ == type(second).__module__
        assert type(first).__module__ in sys.modules

    def test_handles_survive_refresh(
        self, plugin_root, write_module, cache_dir, extractor, load_tracking_source, host_loads
    ):
        module_path = write_module(plugin_root, "tracked.py", load_tracking_source)
        catalog = LazyDirectoryCatalog(plugin_root, "*.py", cache_dir=cache_dir, extractor=extractor)
        old_handle = catalog.get("First")
        instance = old_handle.value

        catalog.refresh()

        # Existing handles keep their instance; new handles start unloaded
        assert old_handle.value is instance
        assert not catalog.get("First").is_value_created
        catalog.get("First").value
        assert host_loads(module_path) == 1


class TestActivationFailure:
    def test_failure_surfaces_at_access(self, plugin_root, write_module, cache_dir, extractor):
        # Extraction succeeds, but construction fails in the host
        write_module(
            plugin_root,
            "fragile.py",
            """
            from lazycatalog import export


            @export("Fragile")
            class Fragile:
                def __init__(self):
                    raise RuntimeError("needs host config")


            @export("Sturdy")
            class Sturdy:
                pass
            """,
        )
        catalog = LazyDirectoryCatalog(plugin_root, "*.py", cache_dir=cache_dir, extractor=extractor)

        with pytest.raises(ActivationError, match="needs host config"):
            catalog.get("Fragile").value

        assert type(catalog.get("Sturdy").value).__name__ == "Sturdy"
