"""Reporter contract.

A reporter is the presentation side of a run. The runner calls it
synchronously for every lifecycle event and asks it for operator
decisions; every call returns before the runner proceeds.

The base class is silent and non-interactive: lifecycle callbacks do
nothing, questions get an empty answer and offered next steps are
declined unless the reporter runs in `assumeyes` mode.
"""

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

if TYPE_CHECKING:
    from maintain_engine.executable import Executable
    from maintain_engine.execution import Execution
    from maintain_engine.scenario import Scenario


class Decision(StrEnum):
    """Answers to offered next steps other than choosing a step."""

    #: Decline the offered steps; the run strategy decides what follows.
    NO = 'no'
    #: Stop the whole run.
    QUIT = 'quit'


class Reporter:
    """Base reporter."""

    def __init__(self, *, assumeyes: bool = False) -> None:
        self.assumeyes = assumeyes

    def before_scenario_starts(self, scenario: 'Scenario') -> None:
        """Called before the first step of a scenario runs."""

    def after_scenario_finishes(self, scenario: 'Scenario') -> None:
        """Called after the last step of a scenario ran."""

    def before_execution_starts(self, execution: 'Execution') -> None:
        """Called before a step runs."""

    def on_execution_update(self, execution: 'Execution', message: str) -> None:
        """Called when a running step reports progress."""

    def after_execution_finishes(self, execution: 'Execution') -> None:
        """Called after a step finished, with the final status set."""

    def on_next_steps(self, steps: 'Sequence[Executable]') -> 'Executable | Decision':
        """Let the operator pick a recovery step.

        Args:
            steps: Steps offered by a failed or warning step.

        Returns:
            One of `steps`, or a `Decision`.
        """
        if self.assumeyes and steps:
            return steps[0]

        return Decision.NO

    def print(self, message: str) -> None:
        """Output a message without a line break."""

    def puts(self, message: str) -> None:
        """Output a message followed by a line break."""

    def ask(self, message: str) -> str:
        """Ask the operator a question and return the answer."""
        return ''
