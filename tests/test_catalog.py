"""Tests for the step catalog and plugin loading."""

from typing import TYPE_CHECKING

import pydantic
import pytest

from maintain_engine import (
    Catalog,
    Executable,
    RunnerSettings,
    StepFilter,
    StepMetadata,
    StepPlugin,
)
from maintain_engine.errors import CatalogError, PluginError, PluginWarning
from tests.examples.steps import DiskSpaceCheck, FailingCheck, PassingCheck, example

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockType


class OtherPassingCheck(Executable):
    metadata = StepMetadata(label='passing_check')

    def run(self) -> None:
        pass


def test_register_and_find() -> None:
    """Kinds are found by label or tags in registration order."""
    catalog = Catalog()
    catalog.register(DiskSpaceCheck)
    catalog.register(PassingCheck)
    catalog.register(FailingCheck)

    assert catalog.find_steps(StepFilter(label='passing_check')) == [PassingCheck]
    assert catalog.find_steps(StepFilter(tags=frozenset({'default'}))) == [
        DiskSpaceCheck, PassingCheck,
    ]
    assert catalog.find_steps(StepFilter(tags=frozenset({'pre_upgrade'}))) == [
        PassingCheck, FailingCheck,
    ]
    assert catalog.find_steps(StepFilter(tags=frozenset())) == []


def test_register_same_kind_twice() -> None:
    """Registering a kind again is not shadowing."""
    catalog = Catalog()
    catalog.register(PassingCheck)
    catalog.register(PassingCheck)

    assert catalog.steps == {'passing_check': PassingCheck}


def test_register_not_a_kind() -> None:
    """Only executable kinds can be registered."""
    with pytest.raises(CatalogError, match=r'is not an executable kind'):
        Catalog().register(PassingCheck())  # type: ignore[arg-type]


def test_shadowing_strict() -> None:
    """Shadowing a label is an error in strict mode."""
    catalog = Catalog()
    catalog.register(PassingCheck)

    with pytest.raises(PluginError, match=r'is shadowing an existing$'):
        catalog.register(OtherPassingCheck)

    assert catalog.steps['passing_check'] is PassingCheck


def test_shadowing_relaxed() -> None:
    """Shadowing a label replaces the kind with a warning in relaxed mode."""
    catalog = Catalog(strict_mode=False)
    catalog.register(PassingCheck)

    with pytest.warns(PluginWarning, match=r'is shadowing an existing$'):
        catalog.register(OtherPassingCheck)

    assert catalog.steps['passing_check'] is OtherPassingCheck


def test_feature_shadowing() -> None:
    """Feature names are unique as well."""
    catalog = Catalog()
    catalog.register_feature('services', ['httpd'])

    with pytest.raises(PluginError, match=r"Feature 'services' is shadowing"):
        catalog.register_feature('services', ['postgresql'])

    assert catalog.find_feature('services') == ['httpd']
    assert catalog.find_feature('unknown') is None


def test_frozen_catalog(catalog: Catalog) -> None:
    """A frozen catalog is read-only."""
    assert catalog.frozen

    with pytest.raises(CatalogError, match=r'frozen'):
        catalog.register(OtherPassingCheck)
    with pytest.raises(CatalogError, match=r'frozen'):
        catalog.register_feature('packages', [])
    with pytest.raises(CatalogError, match=r'frozen'):
        catalog.load_plugins()


def test_add_plugin() -> None:
    """Plugins register their steps and features."""
    catalog = Catalog()
    catalog.add_plugin(example)

    assert list(catalog.steps) == [
        'passing_check', 'disk_space', 'failing_check', 'warning_check', 'service_check',
    ]
    assert catalog.find_feature('services') == ['httpd', 'postgresql']


def test_load_plugins(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Plugins are discovered through entry points."""
    patch_entrypoints(example)

    catalog = Catalog()
    catalog.load_plugins()

    assert catalog.steps['disk_space'] is DiskSpaceCheck
    assert catalog.find_feature('services') == ['httpd', 'postgresql']


def test_load_no_plugins(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """No entry points leave the catalog empty."""
    patch_entrypoints()

    catalog = Catalog()
    catalog.load_plugins()

    assert catalog.steps == {}


@pytest.mark.parametrize('plugin, raises, except_message', (
    pytest.param(
        example, ImportError('no module'),
        r"Failed to load entrypoint 'tests'",
        id='load failure',
    ),
    pytest.param(
        object(), None,
        r"entrypoint 'tests' object is not a plugin",
        id='not a plugin',
    ),
))
def test_load_plugins_strict(patch_entrypoints: 'Callable[..., MockType]',
                             plugin: object, raises: Exception | None,
                             except_message: str) -> None:
    """Loading issues are errors in strict mode."""
    patch_entrypoints(plugin, raises=raises)

    with pytest.raises(PluginError, match=except_message) as error:
        Catalog().load_plugins()

    assert error.value.entrypoint is not None


def test_load_plugins_relaxed(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Loading issues are warnings in relaxed mode."""
    patch_entrypoints(object())

    catalog = Catalog(strict_mode=False)
    with pytest.warns(PluginWarning, match=r'is not a plugin'):
        catalog.load_plugins()

    assert catalog.steps == {}


@pytest.mark.parametrize('data', (
    pytest.param({}, id='no selection'),
    pytest.param({'label': 'disk_space', 'tags': ['default']}, id='both selections'),
    pytest.param({'label': 'disk-space'}, id='invalid label'),
))
def test_invalid_step_filter(data: dict[str, object]) -> None:
    """Filters select by exactly one valid criterion."""
    with pytest.raises(pydantic.ValidationError):
        StepFilter.model_validate(data)


@pytest.mark.parametrize('strict', (True, False))
def test_from_settings(strict: bool) -> None:
    """Plugin loading mode follows the settings."""
    catalog = Catalog.from_settings(RunnerSettings(strict_plugins=strict))

    assert catalog.strict_mode is strict
    assert not catalog.frozen


def test_invalid_plugin() -> None:
    """Plugins only carry executable kinds."""
    with pytest.raises(pydantic.ValidationError):
        StepPlugin(name='broken', steps=[object])
