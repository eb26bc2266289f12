"""Executable steps.

An executable is one maintenance step: a check or a remediation. Kinds
subclass `Executable`, declare their metadata and parameters, and
implement `run`. Instances are configured from a raw option map; the
options are validated by the compiled parameters model of the kind and
each parameter is bound to exactly one instance attribute.

Two executables are equal when they are of the same kind and were
configured with equal options, so prerequisites pulled in by several
steps can be deduplicated.
"""

import logging
from functools import cached_property
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import Field, ValidationError

from maintain_engine.checkpoint import CheckpointRecord, comparable_values
from maintain_engine.errors import (
    AlreadyExecutedError,
    CheckpointMismatchError,
    ErrorContext,
    IntegrityError,
    InvalidOptions,
    StepDefinitionError,
)
from maintain_engine.execution import Status, StepOutcome, StoredExecution
from maintain_engine.models import DescribedMixin, SchemaModel
from maintain_engine.names import Label, Tag, dashize, underscore
from maintain_engine.params import Params, ParamsModel
from maintain_engine.values import freeze, normalize

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from maintain_engine.catalog import Catalog
    from maintain_engine.execution import Execution

#: A step reference is either a configured instance or a kind that can
#: be constructed with default options.
type StepRef = Executable | type[Executable]

#: Attributes assigned in `Executable.__init__`, unavailable as parameter names.
INSTANCE_ATTRIBUTES = frozenset({'options', 'catalog', 'next_steps'})


class StepMetadata(DescribedMixin, SchemaModel):
    """Declarative metadata of an executable kind."""

    label: Label | None = Field(
        default=None,
        title='Step label',
        description='Label of the kind; derived from the class name when omitted.',
    )

    tags: frozenset[Tag] = Field(
        default_factory=frozenset,
        title='Tags',
        description='Classifiers used by catalog queries.',
    )

    for_feature: str | None = Field(
        default=None,
        title='Associated feature',
        description='Name of the feature this step operates on.',
    )

    preparation_steps: tuple[Any, ...] = Field(
        default=(),
        title='Preparation steps',
        description=(
            'Step references that must run (when still necessary) '
            'before the scenario containing this step.'
        ),
    )


def ensure_instance(ref: 'StepRef', *, catalog: 'Catalog | None' = None) -> 'Executable':
    """Turn a step reference into an executable instance.

    Args:
        ref: A configured executable or an executable kind.
        catalog: Catalog injected into instances created from kinds.

    Returns:
        The instance itself, or a new instance with default options.

    Raises:
        StepDefinitionError: If the reference is neither.
    """
    if isinstance(ref, Executable):
        return ref

    if isinstance(ref, type) and issubclass(ref, Executable):
        return ref(catalog=catalog)

    raise StepDefinitionError(f'{ref!r} is not an executable step reference')


def fresh_instance(ref: 'StepRef', *, catalog: 'Catalog | None' = None) -> 'Executable':
    """Build a never executed instance from a step reference.

    Declared prerequisites are shared by every instance of a kind, so
    configured instances are used as templates: the result is equal to
    the reference but has its own execution state.

    Args:
        ref: A configured executable or an executable kind.
        catalog: Catalog injected into the new instance.

    Returns:
        A new instance.
    """
    if isinstance(ref, Executable):
        return type(ref)(ref.options, catalog=catalog or ref.catalog)

    return ensure_instance(ref, catalog=catalog)


class Executable:
    """Base class of all executable kinds."""

    metadata: ClassVar[StepMetadata] = StepMetadata()
    params: ClassVar[Params] = Params()

    #: Compiled validator of the raw options.
    params_model: ClassVar[type[ParamsModel]]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Derive the label and compile the parameters model of a kind.

        Raises:
            StepDefinitionError: If parameter names are not unique or
                shadow executable attributes.
        """
        super().__init_subclass__(**kwargs)

        if 'metadata' not in cls.__dict__ or cls.metadata.label is None:
            cls.metadata = cls.metadata.model_copy(update={
                'label': underscore(cls.__name__),
            })

        try:
            cls.params_model = cls.params.build_model(cls.__name__, exclude={
                *dir(Executable),
                *INSTANCE_ATTRIBUTES,
            })
        except ValueError as base:
            raise StepDefinitionError(
                f'Invalid parameters of {cls.__name__}: {base}',
            ) from base

    def __init__(self, options: 'Mapping[str, Any] | None' = None, /, *,
                 catalog: 'Catalog | None' = None, **kwargs: Any) -> None:
        """Configure a step.

        Args:
            options: Raw option map.
            catalog: Catalog used to resolve features and step references.
            **kwargs: Additional options, merged over `options`.

        Raises:
            InvalidOptions: If an option is unknown or its value is invalid.
        """
        self.options: dict[str, Any] = {
            str(key): value
            for key, value in {**(options or {}), **kwargs}.items()
        }
        self.catalog = catalog
        self.next_steps: list[StepRef] = []

        self._param_values: dict[str, Any] = {}
        self._execution: Execution | None = None

        self.setup_params()
        self.after_initialize()

    def __repr__(self) -> str:
        return f'<{type(self).__name__} [{dashize(self.label)}] {self.options!r}>'

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Executable):
            return NotImplemented

        return type(self) is type(other) and self.options == other.options

    def __hash__(self) -> int:
        return hash((type(self), freeze(self.options)))

    def after_initialize(self) -> None:
        """Hook run after parameters are bound."""

    def setup_params(self) -> None:
        """Validate the raw options and bind every declared parameter."""
        try:
            values = type(self).params_model.model_validate(self.options)
        except ValidationError as base:
            raise InvalidOptions.from_pydantic_error(
                base,
                options=self.options,
                label=self.label,
            ) from base

        for name in type(self).params.names():
            self.bind_param(name, getattr(values, name))

    def bind_param(self, name: str, value: Any) -> None:  # noqa: ANN401
        """Bind a parameter value to its instance attribute.

        Raises:
            IntegrityError: If the parameter is already bound.
        """
        if name in self._param_values or name in vars(self):
            raise IntegrityError(
                f'Parameter {name!r} is already bound',
                context=ErrorContext(label=self.label),
            )

        self._param_values[name] = value
        setattr(self, name, value)

    @property
    def param_values(self) -> dict[str, Any]:
        """Bound parameter values by name."""
        return dict(self._param_values)

    @property
    def label(self) -> str:
        return type(self).metadata.label or underscore(type(self).__name__)

    @property
    def description(self) -> str:
        metadata = type(self).metadata
        return metadata.description or metadata.title or dashize(self.label)

    @property
    def tags(self) -> frozenset[str]:
        return type(self).metadata.tags

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f'maintain_engine.steps.{self.label}')

    @cached_property
    def associated_feature(self) -> Any:  # noqa: ANN401
        """Feature bound through `metadata.for_feature`, if any."""
        if name := type(self).metadata.for_feature:
            return self.feature(name)

        return None

    def feature(self, name: str) -> Any:  # noqa: ANN401
        """Look up a feature in the injected catalog."""
        if self.catalog is None:
            return None

        return self.catalog.find_feature(name)

    def preparation_steps(self) -> list['Executable']:
        """Fresh instances of the prerequisites declared by this kind."""
        return [
            fresh_instance(ref, catalog=self.catalog)
            for ref in type(self).metadata.preparation_steps
        ]

    def necessary(self) -> bool:
        """Tell whether the step still has to run.

        Override to skip a step whose goal is already met, for example
        installing a package that is already installed. Must be free of
        side effects.
        """
        return True

    def run(self) -> StepOutcome | None:
        """Perform the step.

        Returns:
            `None` on success, or the outcome of `fail` or `warn`.
        """
        raise NotImplementedError

    def fail(self, message: str) -> StepOutcome:
        """Build a failure outcome; return it from `run` to stop the step."""
        return StepOutcome(status=Status.FAIL, message=message)

    def warn(self, message: str) -> StepOutcome:
        """Build a warning outcome; return it from `run` to stop the step."""
        return StepOutcome(status=Status.WARNING, message=message)

    def set_fail(self, message: str) -> None:
        """Mark the current execution failed and keep running."""
        self.execution.record(self.fail(message))

    def set_warn(self, message: str) -> None:
        """Mark the current execution as warning and keep running."""
        self.execution.record(self.warn(message))

    def say(self, message: str) -> None:
        """Report progress of the current run."""
        self.execution.update(message)

    def print(self, message: str) -> None:
        """Output a message to the operator without a line break."""
        self.execution.print(message)

    def puts(self, message: str) -> None:
        """Output a message to the operator."""
        self.execution.puts(message)

    def ask(self, message: str) -> str:
        """Ask the operator a question, for example to confirm a remediation."""
        return self.execution.ask(message)

    @property
    def assumeyes(self) -> bool:
        return self.execution.assumeyes

    @property
    def executed(self) -> bool:
        return self._execution is not None

    @property
    def execution(self) -> 'Execution':
        if self._execution is None:
            raise IntegrityError(
                'Trying to get execution information before the run started',
                context=ErrorContext(label=self.label),
            )

        return self._execution

    @property
    def success(self) -> bool:
        return self.execution.success

    @property
    def failed(self) -> bool:
        return self.execution.failed

    @property
    def warning(self) -> bool:
        return self.execution.warning

    @property
    def whitelisted(self) -> bool:
        return self.execution.whitelisted

    @property
    def output(self) -> tuple[str, ...]:
        return self.execution.output

    def execute_once(self, execution: 'Execution') -> StepOutcome | None:
        """Attach a fresh execution and run the step.

        Args:
            execution: Execution created by the runner for this step.

        Returns:
            The outcome returned by `run`.

        Raises:
            AlreadyExecutedError: If the step already has an execution.
            IntegrityError: If the execution belongs to another step or
                `run` returns something else than an outcome.
        """
        if self._execution is not None:
            raise AlreadyExecutedError(
                'The step was already executed',
                context=ErrorContext(label=self.label),
            )

        if execution.step is not self:
            raise IntegrityError(
                'The execution belongs to another step',
                context=ErrorContext(label=self.label),
            )

        self._execution = execution
        self.next_steps = []

        outcome = self.run()
        if outcome is not None and not isinstance(outcome, StepOutcome):
            raise IntegrityError(
                f'Step returned {outcome!r} instead of an outcome',
                context=ErrorContext(label=self.label),
            )

        return outcome

    def to_checkpoint(self) -> CheckpointRecord:
        """Serialize the step identity and, if it ran, its outcome."""
        data: dict[str, Any] = {
            'label': self.label,
            'param_values': normalize(self._param_values),
        }

        if self._execution is not None and self._execution.frozen:
            data['status'] = self._execution.status
            data['output'] = list(self._execution.output)

        return CheckpointRecord.model_validate(data)

    def matches_checkpoint(self, record: CheckpointRecord) -> bool:
        """Tell whether the record describes this step."""
        return (
            record.label == self.label
            and comparable_values(record.param_values)
            == comparable_values(normalize(self._param_values))
        )

    def restore_from_checkpoint(self, record: CheckpointRecord) -> None:
        """Restore the outcome stored in a checkpoint record.

        A record of a step that never ran only has its identity checked;
        the step stays runnable. Otherwise the step receives a finished
        execution and can never be run again.

        Raises:
            CheckpointMismatchError: If the record describes another step.
            AlreadyExecutedError: If the step already has an execution.
        """
        if not self.matches_checkpoint(record):
            raise CheckpointMismatchError(
                'The step is not matching the checkpoint record',
                context=ErrorContext(
                    label=self.label,
                    element=record.model_dump(mode='json', exclude_none=True),
                ),
            )

        if self._execution is not None:
            raise AlreadyExecutedError(
                "Can't restore a step that was already executed",
                context=ErrorContext(label=self.label),
            )

        if record.status is None:
            return

        self._execution = StoredExecution(
            self,
            status=record.status,
            output=record.output or (),
        )


Executable.params_model = Executable.params.build_model('Executable')
