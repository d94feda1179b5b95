"""Tests for the export decorator and declaration enumeration."""

import sys

import pytest

from lazycatalog.declarations import EXPORTS_ATTRIBUTE, export, iter_declarations
from lazycatalog.loading import import_from_path

DECLARING_SOURCE = '''
from collections import OrderedDict  # re-exported names must be ignored

from lazycatalog import export


@export("Alpha", Name="Alpha", Version="1.0")
class AlphaPlugin:
    pass


@export("Beta", Name="Beta")
@export("BetaAlias", Name="Beta")
class BetaPlugin:
    pass


class Outer:
    @export("Inner", Level=2)
    class Inner:
        pass


def _make():
    @export("Made")
    class Made:
        pass

    return Made


Made = _make()
AlsoAlpha = AlphaPlugin


@export("factory", Kind="function")
def create_plugin():
    return {"created": True}


class NotExported:
    pass
'''


@pytest.fixture
def declaring_module(tmp_path, write_module):
    module_path = write_module(tmp_path, "declaring.py", DECLARING_SOURCE)
    module = import_from_path(module_path, "lazycatalog_test_declaring")
    yield module
    sys.modules.pop("lazycatalog_test_declaring", None)


class TestExportDecorator:
    """Test the export decorator."""

    def test_declaration_attached(self):
        @export("Alpha", Name="Alpha", Version="1.0")
        class AlphaPlugin:
            pass

        assert getattr(AlphaPlugin, EXPORTS_ATTRIBUTE) == (
            ("Alpha", {"Name": "Alpha", "Version": "1.0"}),
        )

    def test_decorator_returns_object_unchanged(self):
        def factory():
            return 42

        assert export("Answer")(factory) is factory
        assert factory() == 42

    def test_stacked_exports_keep_source_order(self):
        @export("First")
        @export("Second")
        class Plugin:
            pass

        names = [name for name, _ in getattr(Plugin, EXPORTS_ATTRIBUTE)]
        assert names == ["First", "Second"]

    def test_subclass_does_not_inherit_declarations(self):
        @export("Base")
        class Base:
            pass

        @export("Child")
        class Child(Base):
            pass

        assert [n for n, _ in getattr(Child, EXPORTS_ATTRIBUTE)] == ["Child"]
        assert [n for n, _ in getattr(Base, EXPORTS_ATTRIBUTE)] == ["Base"]

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            export("")

    def test_non_primitive_attribute_rejected(self):
        with pytest.raises(TypeError, match="Metadata attribute 'Tags'"):
            export("Alpha", Tags=["a", "b"])

    def test_non_callable_rejected(self):
        with pytest.raises(TypeError, match="Only classes and callables"):
            export("Alpha")(42)


class TestIterDeclarations:
    """Test enumerating declarations in an imported module."""

    def test_finds_all_declarations(self, declaring_module):
        found = iter_declarations(declaring_module)
        by_name = {name: (attributes, path) for name, attributes, path in found}

        assert set(by_name) == {"Alpha", "Beta", "BetaAlias", "Inner", "Made", "factory"}
        assert by_name["Alpha"] == ({"Name": "Alpha", "Version": "1.0"}, "AlphaPlugin")
        assert by_name["Inner"] == ({"Level": 2}, "Outer.Inner")
        assert by_name["factory"] == ({"Kind": "function"}, "create_plugin")

    def test_factory_built_class_uses_module_level_name(self, declaring_module):
        found = iter_declarations(declaring_module)

        assert ("Made", {}, "Made") in found

    def test_alias_does_not_duplicate(self, declaring_module):
        names = [name for name, _, _ in iter_declarations(declaring_module)]

        assert names.count("Alpha") == 1

    def test_definition_order(self, declaring_module):
        names = [name for name, _, _ in iter_declarations(declaring_module)]

        assert names.index("Alpha") < names.index("Beta") < names.index("BetaAlias")
