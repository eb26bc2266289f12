"""Catalog of available steps and features.

The catalog is process-scoped registry state. It is populated once at
startup, either directly or by loading plugins exposed via Python entry
points, then frozen and passed by reference to scenarios and steps,
which only read from it during a run.

In relaxed mode individual plugin failures do
not interrupt loading and are reported as warnings.
"""

import logging
from typing import TYPE_CHECKING, Any, Self
from warnings import warn

from pydantic import Field, ValidationError, model_validator

from maintain_engine.errors import CatalogError, PluginError, PluginWarning
from maintain_engine.executable import Executable
from maintain_engine.models import SchemaModel
from maintain_engine.names import Label, Tag  # noqa: TC001

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint

if TYPE_CHECKING:
    from maintain_engine.settings import RunnerSettings

logger = logging.getLogger(__name__)

#: Entry point group plugins are discovered in.
PLUGINS_GROUP = 'maintain_engine.plugins'


class StepFilter(SchemaModel):
    """Catalog query selecting steps by exact label or by tags."""

    label: Label | None = Field(
        default=None,
        title='Step label',
        description='Select the single kind with this label.',
    )

    tags: frozenset[Tag] | None = Field(
        default=None,
        title='Tags',
        description='Select every kind carrying all of these tags.',
    )

    @model_validator(mode='after')
    def check_selection_mode(self) -> Self:
        """Check that exactly one selection mode is used.

        Returns:
            Self.

        Raises:
            ValueError: If both or neither of `label` and `tags` are set.
        """
        if (self.label is None) == (self.tags is None):
            raise ValueError('exactly one of label and tags must be specified')

        return self

    def matches(self, kind: type[Executable]) -> bool:
        """Tell whether a kind is selected by this filter."""
        if self.label is not None:
            return kind.metadata.label == self.label

        return bool(self.tags) and self.tags <= kind.metadata.tags


class StepPlugin(SchemaModel):
    """Declarative container of steps and features provided by a plugin."""

    name: Label = Field(
        title='Plugin name',
        description='Used for identification and diagnostics.',
    )

    steps: list[type[Executable]] = Field(
        default_factory=list,
        title='Steps',
        description='Executable kinds registered into the catalog.',
    )

    features: dict[str, Any] = Field(
        default_factory=dict,
        title='Features',
        description='Feature objects by name, resolved by steps through `for_feature`.',
    )


class Catalog:
    """Registry of executable kinds and features.

    Attributes:
        strict_mode: If True, any plugin loading issue raises an error.
            If False, issues are emitted as warnings and loading continues.
    """

    def __init__(self, *, strict_mode: bool = True) -> None:
        self.strict_mode = strict_mode

        self.steps: dict[str, type[Executable]] = {}
        self.features: dict[str, Any] = {}

        self._frozen = False

    @classmethod
    def from_settings(cls, settings: 'RunnerSettings') -> Self:
        """Create a catalog using the plugin loading mode of the settings."""
        return cls(strict_mode=settings.strict_plugins)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Make the catalog read-only for the rest of the process."""
        self._frozen = True
        logger.debug('Catalog frozen with %d steps and %d features',
                     len(self.steps), len(self.features))

    def register(self, kind: type[Executable],
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Register an executable kind under its label.

        Args:
            kind: Executable kind.
            entrypoint: Entry point the kind was loaded from, if applicable.
                Used for diagnostics.

        Raises:
            CatalogError: If the catalog is frozen or the kind is not
                an executable kind.
            PluginError: If the label shadows an existing kind on strict mode.
        """
        self._ensure_mutable()

        if not (isinstance(kind, type) and issubclass(kind, Executable)):
            raise CatalogError(f'{kind!r} is not an executable kind')

        label = kind.metadata.label or ''
        if label in self.steps and self.steps[label] is not kind and (error := self.emit_plugin_issue(
            f'Step {label!r} from {self._module_name(kind, entrypoint)!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

        self.steps[label] = kind

    def register_feature(self, name: str, feature: Any,  # noqa: ANN401
                         entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a feature object under a name.

        Raises:
            CatalogError: If the catalog is frozen.
            PluginError: If the name shadows an existing feature on strict mode.
        """
        self._ensure_mutable()

        if name in self.features and (error := self.emit_plugin_issue(
            f'Feature {name!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

        self.features[name] = feature

    def find_steps(self, step_filter: StepFilter) -> list[type[Executable]]:
        """Return kinds selected by a filter, in registration order."""
        return [
            kind
            for kind in self.steps.values()
            if step_filter.matches(kind)
        ]

    def find_feature(self, name: str) -> Any:  # noqa: ANN401
        """Return a feature by name or `None`."""
        return self.features.get(name)

    def emit_plugin_issue(self, message: str,
                          entrypoint: 'EntryPoint | None' = None) -> Exception | None:
        """Emit a plugin warning or return the exception.

        Args:
            message: Warning message to emit.
            entrypoint: Entry point associated with the issue, if applicable.

        Returns:
            PluginError on strict mode, otherwise `None`
                with producing a PluginWarning.
        """
        if self.strict_mode:
            return PluginError(message, entrypoint=entrypoint)

        warn(message, category=PluginWarning, stacklevel=3)

        return None

    def add_plugin(self, plugin: StepPlugin,
                   entrypoint: 'EntryPoint | None' = None) -> None:
        """Register everything a plugin provides."""
        for kind in plugin.steps:
            self.register(kind, entrypoint)

        for name, feature in plugin.features.items():
            self.register_feature(name, feature, entrypoint)

        logger.debug('Plugin %r registered %d steps', plugin.name, len(plugin.steps))

    def _load_plugin(self, entrypoint: 'EntryPoint') -> None:
        """Load and register a single plugin entry point.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        try:
            plugin = entrypoint.load()

        except ValidationError as base:
            if error := self.emit_plugin_issue(
                f'Failed to validate entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return None

        except Exception as base:
            if error := self.emit_plugin_issue(
                f'Failed to load entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return None

        if not isinstance(plugin, StepPlugin):
            if error := self.emit_plugin_issue(
                f'Loaded from entrypoint {entrypoint.name!r} object is not a plugin',
                entrypoint,
            ):
                raise error
            return None

        self.add_plugin(plugin, entrypoint)

    def load_plugins(self) -> None:
        """Load plugins via entry points and register their steps.

        Discovers plugins from the `maintain_engine.plugins` entry point group.

        Raises:
            CatalogError: If the catalog is frozen.
            PluginError: If any loading issues occur on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        self._ensure_mutable()

        for entrypoint in entry_points().select(group=PLUGINS_GROUP):
            self._load_plugin(entrypoint)

    @staticmethod
    def _module_name(kind: type[Executable],
                     entrypoint: 'EntryPoint | None' = None) -> str:
        return f'{entrypoint.value if entrypoint else kind.__module__}'

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise CatalogError('The catalog is frozen and can not be modified')
