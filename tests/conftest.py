"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from typing import TYPE_CHECKING

import pytest

from maintain_engine import Catalog, RunnerSettings
from tests.examples import steps
from tests.examples.reporter import LogReporter

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

if TYPE_CHECKING:
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from maintain_engine import StepPlugin


@pytest.fixture(autouse=True)
def installed_packages() -> 'Iterator[set[str]]':
    """Provide a clean simulated host for every test.

    The example `InstallPackage` step records packages in a module-level
    set; it is emptied before and after each test.
    """
    steps.installed_packages.clear()
    yield steps.installed_packages
    steps.installed_packages.clear()


@pytest.fixture
def reporter() -> LogReporter:
    """Provide a recording reporter without planned answers."""
    return LogReporter()


@pytest.fixture
def settings() -> RunnerSettings:
    """Provide settings isolated from the process environment."""
    return RunnerSettings()


@pytest.fixture
def catalog() -> Catalog:
    """Provide a frozen catalog populated with the example plugin."""
    instance = Catalog()
    instance.add_plugin(steps.example)
    instance.freeze()

    return instance


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of plugins in the `maintain_engine.plugins` group.

    The returned factory allows configuring:
    - successfully loadable plugins,
    - or an exception raised during plugin loading,
    - or an empty entry point list.
    """
    def patch(*plugins: 'StepPlugin | object', raises: Exception | None = None) -> 'MockType':
        """Patch `entry_points` with a controlled plugin configuration.

        Args:
            plugins: Objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.

        Returns:
            A mock patch object replacing `importlib.metadata.entry_points`
            for the duration of the test.
        """
        entrypoints = []
        for plugin in plugins:
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'maintain_engine.plugins'
            ep.name = 'tests'
            ep.value = 'tests.examples.steps:example'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch
