"""Execution state of a single step run.

An `Execution` is the mutable record of one run of one executable:
its status, accumulated output and the marks the runner puts on it
(whitelisting and resolution by a next step). It is mutated only while
the step runs and frozen as soon as the run finishes.

A `StoredExecution` is the same record reconstructed from a checkpoint;
it is frozen from the start.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import Field

from maintain_engine.errors import IntegrityError
from maintain_engine.models import SchemaModel

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from maintain_engine.executable import Executable
    from maintain_engine.reporter import Reporter


class Status(StrEnum):
    """Status of an execution."""

    PENDING = 'pending'
    RUNNING = 'running'
    SUCCESS = 'success'
    FAIL = 'fail'
    WARNING = 'warning'


#: Statuses a finished execution may end with.
FINAL_STATUSES = frozenset({Status.SUCCESS, Status.FAIL, Status.WARNING})


class StepOutcome(SchemaModel):
    """Problem reported by a step run.

    Returned from `Executable.run` (usually through `Executable.fail` or
    `Executable.warn`) to end the run early. The runner records the
    status and message on the current execution.
    """

    status: Status = Field(
        title='Outcome status',
        description='Either `fail` or `warning`.',
    )

    message: str = Field(
        title='Outcome message',
        description='Human-readable reason appended to the execution output.',
    )


class Execution:
    """Result state of one run of one executable."""

    def __init__(self, step: 'Executable', reporter: 'Reporter | None' = None, *,
                 whitelisted: bool = False) -> None:
        """Initialize a pending execution.

        Args:
            step: Executable being run.
            reporter: Reporter notified about output updates.
            whitelisted: Whether failures of this execution are acknowledged.
        """
        self.step = step
        self.reporter = reporter
        self.whitelisted = whitelisted

        self._status = Status.PENDING
        self._output: list[str] = []
        self._frozen = False

        self.resolved_by: Execution | None = None
        #: Labels of next steps offered after this execution and declined.
        self.declined_steps: tuple[str, ...] = ()
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.name!r} {self.status}>'

    @property
    def name(self) -> str:
        """Human-readable name of the executed step."""
        return self.step.description

    @property
    def status(self) -> Status:
        return self._status

    @status.setter
    def status(self, value: Status) -> None:
        self._ensure_mutable()
        self._status = Status(value)

    @property
    def output(self) -> tuple[str, ...]:
        """Messages accumulated during the run, in order."""
        return tuple(self._output)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def success(self) -> bool:
        return self._status == Status.SUCCESS

    @property
    def failed(self) -> bool:
        return self._status == Status.FAIL

    @property
    def warning(self) -> bool:
        return self._status == Status.WARNING

    @property
    def resolved(self) -> bool:
        """Whether a chosen next step succeeded after this execution."""
        return self.resolved_by is not None

    def start(self) -> None:
        """Move the execution to the running state."""
        self.status = Status.RUNNING
        self.started_at = datetime.now(UTC)

    def append(self, message: str) -> None:
        """Append a message to the output without notifying the reporter."""
        self._ensure_mutable()
        self._output.append(message)

    def update(self, message: str) -> None:
        """Append a progress message and notify the reporter about it."""
        self.append(message)
        if self.reporter:
            self.reporter.on_execution_update(self, message)

    @property
    def assumeyes(self) -> bool:
        """Whether the operator answers confirmations positively in advance."""
        return bool(self.reporter and self.reporter.assumeyes)

    def print(self, message: str) -> None:
        if self.reporter:
            self.reporter.print(message)

    def puts(self, message: str) -> None:
        if self.reporter:
            self.reporter.puts(message)

    def ask(self, message: str) -> str:
        """Ask the operator through the reporter; no reporter answers `''`."""
        if self.reporter:
            return self.reporter.ask(message)

        return ''

    def record(self, outcome: StepOutcome) -> None:
        """Apply a step outcome: set its status and append its message."""
        self.status = outcome.status
        self.append(outcome.message)

    def finish(self) -> None:
        """Finalize the execution.

        A running execution nobody marked otherwise becomes a success.
        The execution is frozen afterwards.
        """
        if self._status in (Status.PENDING, Status.RUNNING):
            self._status = Status.SUCCESS
        self.finished_at = datetime.now(UTC)
        self._frozen = True

    def whitelist(self) -> None:
        """Acknowledge the failure without changing the raw status."""
        self.whitelisted = True

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise IntegrityError(f'Execution of {self.name!r} is already finished')


class StoredExecution(Execution):
    """Finished execution built from stored data.

    Used for steps restored from a checkpoint record and for chosen next
    steps whose goal was already met.
    """

    def __init__(self, step: 'Executable', *, status: Status,
                 output: 'Iterable[str]' = (), whitelisted: bool = False) -> None:
        """Initialize a finished execution from stored data.

        Args:
            step: Executable the record belongs to.
            status: Stored final status.
            output: Stored output messages.
            whitelisted: Whether failures of this execution are acknowledged.
        """
        super().__init__(step, whitelisted=whitelisted)

        self._status = Status(status)
        self._output = list(output)
        self._frozen = True
