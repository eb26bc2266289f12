"""Scenarios: ordered compositions of executable steps.

A scenario groups steps run in order, declares how failures are
tolerated, and aggregates the outcome of its steps. Concrete scenarios
override `compose` to add their steps. Two variants are built in:

- `FilteredScenario` selects its steps from the catalog once, by label
  or by tags;
- `PreparationScenario` collects the prerequisites of another scenario
  and keeps only those still necessary when it is first asked for steps.
"""

from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import Field, ValidationError

from maintain_engine.catalog import StepFilter
from maintain_engine.errors import CatalogError, ConfigurationError
from maintain_engine.executable import ensure_instance, fresh_instance
from maintain_engine.models import DescribedMixin, SchemaModel
from maintain_engine.names import Tag, dashize  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

if TYPE_CHECKING:
    from maintain_engine.catalog import Catalog
    from maintain_engine.checkpoint import CheckpointRecord
    from maintain_engine.executable import Executable, StepRef


class RunStrategy(StrEnum):
    """Failure tolerance of a scenario."""

    #: Stop the scenario at the first unresolved failure.
    FAIL_FAST = 'fail_fast'
    #: Run every step, then stop the scenarios queued after this one.
    FAIL_SLOW = 'fail_slow'


class ScenarioState(StrEnum):
    """Run state of a scenario."""

    NOT_STARTED = 'not_started'
    RUNNING = 'running'
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class ScenarioMetadata(DescribedMixin, SchemaModel):
    """Declarative metadata of a scenario kind."""

    tags: frozenset[Tag] = Field(
        default_factory=frozenset,
        title='Tags',
        description='Classifiers of the scenario.',
    )

    run_strategy: RunStrategy = Field(
        default=RunStrategy.FAIL_FAST,
        title='Run strategy',
        description='How a failing step affects the rest of the run.',
    )

    manual_detection: bool = Field(
        default=False,
        title='Manual detection',
        description='The scenario is only run when requested explicitly.',
    )

    preparation_steps: tuple[Any, ...] = Field(
        default=(),
        title='Preparation steps',
        description='Step references required before this scenario runs.',
    )


def restore_steps(steps: 'Iterable[Executable]', pending: list['CheckpointRecord']) -> int:
    """Restore stored outcomes into the steps matching pending records.

    Each record is used for at most one step and is removed from
    `pending`, so equal steps restore from their own records in order.

    Args:
        steps: Steps to restore.
        pending: Records not used yet; consumed in place.

    Returns:
        Number of steps that received a stored outcome.
    """
    restored = 0

    for step in steps:
        record = next((item for item in pending if step.matches_checkpoint(item)), None)
        if record is None:
            continue

        pending.remove(record)
        step.restore_from_checkpoint(record)
        if record.executed:
            restored += 1

    return restored


class Scenario:
    """Ordered composition of executables."""

    metadata: ClassVar[ScenarioMetadata] = ScenarioMetadata()

    def __init__(self, *, catalog: 'Catalog | None' = None) -> None:
        """Compose a scenario.

        Args:
            catalog: Catalog injected into steps created from kinds.
        """
        self.catalog = catalog
        self.state = ScenarioState.NOT_STARTED

        self._steps: list[Executable] = []

        self.compose()

    def __repr__(self) -> str:
        return f'{self.description}<{type(self).__name__}>'

    def compose(self) -> None:
        """Override to add the steps of the scenario."""

    @property
    def steps(self) -> tuple['Executable', ...]:
        return tuple(self._steps)

    @property
    def description(self) -> str:
        metadata = type(self).metadata
        return metadata.description or metadata.title or type(self).__name__

    @property
    def run_strategy(self) -> RunStrategy:
        return type(self).metadata.run_strategy

    def add_steps(self, steps: 'Iterable[StepRef]') -> None:
        """Append steps given as instances or kinds."""
        for step in steps:
            self._steps.append(ensure_instance(step, catalog=self.catalog))

    def add_step(self, step: 'StepRef') -> None:
        self.add_steps([step])

    def preparation_steps(self) -> list['Executable']:
        """Prerequisites of the scenario and of all its steps.

        Returns:
            Steps in first-seen order, each equal step only once.
        """
        results = [
            fresh_instance(ref, catalog=self.catalog)
            for ref in type(self).metadata.preparation_steps
        ]

        for step in self.steps:
            results.extend(step.preparation_steps())

        return list(dict.fromkeys(results))

    def before_scenarios(self) -> list['Scenario']:
        """Scenarios to run before this one."""
        preparation = PreparationScenario(self)
        if not preparation.steps:
            return []

        return [preparation]

    @property
    def executed_steps(self) -> list['Executable']:
        return [step for step in self.steps if step.executed]

    def steps_with_error(self, *, whitelisted: bool | None = None,
                         resolved: bool | None = None) -> list['Executable']:
        """Executed steps that failed.

        Args:
            whitelisted: Keep only whitelisted (True) or only not
                whitelisted (False) steps; no filtering when omitted.
            resolved: Same filter for steps resolved by a next step.
        """
        return self._filter_steps(
            [step for step in self.executed_steps if step.failed],
            whitelisted=whitelisted,
            resolved=resolved,
        )

    def steps_with_warning(self, *, whitelisted: bool | None = None,
                           resolved: bool | None = None) -> list['Executable']:
        """Executed steps that ended with a warning. Filters as `steps_with_error`."""
        return self._filter_steps(
            [step for step in self.executed_steps if step.warning],
            whitelisted=whitelisted,
            resolved=resolved,
        )

    @staticmethod
    def _filter_steps(steps: list['Executable'], *,
                      whitelisted: bool | None = None,
                      resolved: bool | None = None) -> list['Executable']:
        if whitelisted is not None:
            steps = [step for step in steps if step.execution.whitelisted == whitelisted]

        if resolved is not None:
            steps = [step for step in steps if step.execution.resolved == resolved]

        return steps

    def passed(self) -> bool:
        return not (
            self.steps_with_error(whitelisted=False)
            or self.steps_with_warning(whitelisted=False)
        )

    def failed(self) -> bool:
        return not self.passed()

    def to_checkpoint(self) -> list['CheckpointRecord']:
        """Checkpoint records of all steps, in step order."""
        return [step.to_checkpoint() for step in self.steps]

    def restore_from_checkpoint(self, records: 'Iterable[CheckpointRecord]') -> int:
        """Restore stored outcomes into matching steps.

        Returns:
            Number of steps that received a stored outcome.
        """
        return restore_steps(self.steps, list(records))


class FilteredScenario(Scenario):
    """Scenario running the catalog steps selected by a filter."""

    metadata = ScenarioMetadata(
        manual_detection=True,
        run_strategy=RunStrategy.FAIL_SLOW,
    )

    def __init__(self, step_filter: 'StepFilter | Mapping[str, Any]',
                 catalog: 'Catalog') -> None:
        """Select steps from the catalog.

        Args:
            step_filter: Filter, or its mapping form (`label` or `tags`).
            catalog: Catalog to query.

        Raises:
            ConfigurationError: If the filter is invalid.
            CatalogError: If no catalog is given.
        """
        if catalog is None:
            raise CatalogError('Filtered scenarios require a catalog')

        if not isinstance(step_filter, StepFilter):
            try:
                step_filter = StepFilter.model_validate(step_filter)
            except ValidationError as base:
                raise ConfigurationError(f'Invalid step filter: {base.errors()[0]["msg"]}') from base

        self.step_filter = step_filter

        super().__init__(catalog=catalog)

        self.add_steps(catalog.find_steps(step_filter))

    @property
    def filter_label(self) -> str | None:
        return self.step_filter.label

    @property
    def filter_tags(self) -> frozenset[str] | None:
        return self.step_filter.tags

    @property
    def description(self) -> str:
        if self.filter_label:
            return f'check with label [{dashize(self.filter_label)}]'

        return 'checks with tags ' + ' '.join(
            f'[{dashize(tag)}]'
            for tag in sorted(self.filter_tags or ())
        )


class PreparationScenario(Scenario):
    """Prerequisites of another scenario that are still necessary."""

    metadata = ScenarioMetadata(
        description='preparation steps required to run the next scenarios',
        manual_detection=True,
        run_strategy=RunStrategy.FAIL_SLOW,
    )

    def __init__(self, main_scenario: Scenario) -> None:
        self.main_scenario = main_scenario
        self._prepared = False

        super().__init__(catalog=main_scenario.catalog)

    @property
    def steps(self) -> tuple['Executable', ...]:
        # necessity is evaluated on first access, not at construction
        if not self._prepared:
            self._prepared = True
            self._steps[:0] = [
                step
                for step in self.main_scenario.preparation_steps()
                if step.necessary()
            ]

        return tuple(self._steps)
