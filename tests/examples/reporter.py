"""Recording reporter for tests.

Every callback is logged as a list of the callback name followed by the
descriptions of its arguments, so tests can assert the exact sequence of
events. Next-steps answers are taken from `planned_next_steps_answers`:
`y` picks the first step, `n` (or nothing planned) declines, `q` quits
and a number picks a step by its 1-based position.
"""

from typing import TYPE_CHECKING, Any

from maintain_engine import Decision, Executable, Execution, Reporter, Scenario

if TYPE_CHECKING:
    from collections.abc import Sequence


class LogReporter(Reporter):

    def __init__(self, *, assumeyes: bool = False) -> None:
        super().__init__(assumeyes=assumeyes)

        self.log: list[list[Any]] = []
        self.output = ''
        self.input: list[str] = []
        self.planned_next_steps_answers: list[str] = []

    def log_method(self, method: str, *args: Any) -> None:
        self.log.append([method, *self.stringified_args(*args)])

    def before_scenario_starts(self, scenario: Scenario) -> None:
        self.log_method('before_scenario_starts', scenario)

    def after_scenario_finishes(self, scenario: Scenario) -> None:
        self.log_method('after_scenario_finishes', scenario)

    def before_execution_starts(self, execution: Execution) -> None:
        self.log_method('before_execution_starts', execution)

    def on_execution_update(self, execution: Execution, message: str) -> None:
        self.log_method('on_execution_update', execution, message)

    def after_execution_finishes(self, execution: Execution) -> None:
        self.log_method('after_execution_finishes', execution)

    def print(self, message: str) -> None:
        self.log_method('print', message)
        self.output += message

    def puts(self, message: str) -> None:
        self.log_method('puts', message)
        self.output += f'{message}\n'

    def ask(self, message: str) -> str:
        self.log_method('ask', message)
        self.output += f'{message}\n'
        return self.input.pop(0) if self.input else ''

    def on_next_steps(self, steps: 'Sequence[Executable]') -> Executable | Decision:
        self.log_method('on_next_steps', *steps)

        answer = 'y' if self.assumeyes else (
            self.planned_next_steps_answers.pop(0)
            if self.planned_next_steps_answers
            else None
        )

        match answer:
            case 'y':
                return steps[0]
            case 'n' | None:
                return Decision.NO
            case 'q':
                return Decision.QUIT
            case str() if answer.isdigit():
                return steps[int(answer) - 1]

        raise ValueError(f'Unexpected next answer {answer!r}')

    @staticmethod
    def stringified_args(*args: Any) -> list[Any]:
        return [
            arg.description if isinstance(arg, (Scenario, Executable))
            else arg.name if isinstance(arg, Execution)
            else arg
            for arg in args
        ]
