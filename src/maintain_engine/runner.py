"""Scenario runner.

The runner drives queued scenarios to completion one step at a time.
For every step it creates a fresh execution, runs the step through
`Executable.execute_once` and records the returned outcome. Steps that
fail or warn may offer next steps; the reporter picks one (or declines)
and the chosen step runs immediately, before the remaining steps of
the scenario.

Failure tolerance:
- in a `fail_fast` scenario an unresolved, not whitelisted failure
  stops the remaining steps;
- in a `fail_slow` scenario all steps run;
- in both, unresolved failures stop the scenarios queued afterwards.

A chosen next step that succeeds resolves the step that offered it.
The raw status of the resolved step is kept, but it no longer stops the
scenario or the run.
"""

import logging
from typing import TYPE_CHECKING

from maintain_engine.errors import EngineError, IntegrityError, ReporterError, StepRuntimeError
from maintain_engine.executable import ensure_instance
from maintain_engine.execution import Execution, Status, StoredExecution
from maintain_engine.names import dashize
from maintain_engine.reporter import Decision
from maintain_engine.scenario import RunStrategy, ScenarioState, restore_steps
from maintain_engine.settings import RunnerSettings

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from maintain_engine.checkpoint import CheckpointRecord
    from maintain_engine.executable import Executable
    from maintain_engine.execution import StepOutcome
    from maintain_engine.reporter import Reporter
    from maintain_engine.scenario import Scenario

#: Answers accepted as confirmation.
CONFIRMATIONS = frozenset({'y', 'yes'})


class Runner:
    """Executes scenarios and handles operator decisions."""

    def __init__(self, reporter: 'Reporter', scenarios: 'Iterable[Scenario]', *,
                 settings: RunnerSettings | None = None,
                 logger: logging.Logger | None = None) -> None:
        """Initialize a runner.

        Args:
            reporter: Reporter receiving lifecycle events and decisions.
            scenarios: Scenarios to run, in order.
            settings: Runner settings; resolved from the environment
                when omitted.
            logger: Logger used for run events.
        """
        self.reporter = reporter
        self.scenarios = list(scenarios)
        self.settings = settings or RunnerSettings()
        self.logger = logger or logging.getLogger(__name__)

        if self.settings.assumeyes:
            self.reporter.assumeyes = True

        #: Every execution created by the run, in order.
        self.executions: list[Execution] = []
        self.last_scenario: Scenario | None = None

        self._quit = False
        self._exit_code = 0

    @property
    def quit(self) -> bool:
        """Whether the runner stopped running further steps."""
        return self._quit

    @property
    def exit_code(self) -> int:
        """Process exit code describing the run."""
        if self._quit:
            return self._exit_code

        for scenario in self.scenarios:
            if self.unresolved_problems(scenario):
                return 1

        return 0

    def ask_to_quit(self, exit_code: int = 1) -> None:
        """Stop running further steps and scenarios."""
        self._quit = True
        self._exit_code = exit_code

    def run(self) -> int:
        """Run all queued scenarios.

        Returns:
            The exit code of the run.

        Raises:
            StepRuntimeError: If a step fails with an unexpected exception.
        """
        for index, scenario in enumerate(self.scenarios):
            if self._quit:
                self.abort_scenario(scenario)
                continue

            self.run_scenario(scenario, last=index == len(self.scenarios) - 1)

        return self.exit_code

    def abort_scenario(self, scenario: 'Scenario') -> None:
        """Mark a scenario that will not run as aborted."""
        scenario.state = ScenarioState.ABORTED
        self.logger.warning('Scenario %r aborted', scenario.description)

    def run_scenario(self, scenario: 'Scenario', *, last: bool = True) -> None:
        """Run a scenario preceded by the scenarios it requires.

        Args:
            scenario: Scenario to run.
            last: Whether no other scenario follows this one.

        Raises:
            IntegrityError: If the runner is already in quit state.
            StepRuntimeError: If a step fails with an unexpected exception.
        """
        if self._quit:
            raise IntegrityError('The runner is already in quit state')

        for before in scenario.before_scenarios():
            self.run_scenario(before, last=False)
            if self._quit:
                self.abort_scenario(scenario)
                return

        if not scenario.steps:
            scenario.state = ScenarioState.COMPLETED
            return

        self.last_scenario = scenario
        scenario.state = ScenarioState.RUNNING

        self.logger.info('Scenario %r started', scenario.description)
        self.reporter.before_scenario_starts(scenario)

        try:
            completed = self.run_steps(scenario, scenario.steps)

        except Exception:
            scenario.state = ScenarioState.ABORTED
            self.ask_to_quit()
            raise

        scenario.state = ScenarioState.COMPLETED if completed else ScenarioState.ABORTED

        self.reporter.after_scenario_finishes(scenario)
        self.logger.info('Scenario %r %s', scenario.description, scenario.state)

        self.post_scenario_decisions(scenario, last=last)

    def run_steps(self, scenario: 'Scenario', steps: 'Iterable[Executable]') -> bool:
        """Run steps in order until done or asked to quit.

        Returns:
            True if every step was attempted.
        """
        for step in steps:
            if self._quit:
                self.logger.warning('Remaining steps of %r skipped', scenario.description)
                return False

            execution = self.run_step(step, scenario=scenario)
            if execution is not None and not execution.success:
                self.post_step_decisions(scenario, execution)

        return True

    def run_step(self, step: 'Executable', *,
                 scenario: 'Scenario | None' = None) -> Execution | None:
        """Run a single step in a fresh execution.

        Steps already executed (restored from a checkpoint) and steps no
        longer necessary are skipped.

        Args:
            step: Step to run.
            scenario: Scenario the step belongs to, for error reporting.

        Returns:
            The finished execution, or `None` for a skipped step.

        Raises:
            StepRuntimeError: If the step fails with an unexpected exception.
        """
        if step.executed:
            self.logger.info('Step [%s] already executed, skipping', dashize(step.label))
            return None

        if not step.necessary():
            self.logger.info('Step [%s] is not necessary, skipping', dashize(step.label))
            return None

        execution = Execution(
            step,
            self.reporter,
            whitelisted=step.label in self.settings.whitelist,
        )
        self.executions.append(execution)

        self.reporter.before_execution_starts(execution)
        execution.start()

        try:
            outcome = self.run_callable(step, execution, scenario=scenario)

        except EngineError as error:
            execution.status = Status.FAIL
            execution.append(error.message)
            execution.finish()
            self.logger.exception('Step [%s] aborted', dashize(step.label))
            self.reporter.after_execution_finishes(execution)
            raise

        if outcome is not None:
            execution.record(outcome)
        execution.finish()

        if not execution.success:
            self.logger.warning('Step [%s] finished with status %s',
                                dashize(step.label), execution.status)

        self.reporter.after_execution_finishes(execution)

        return execution

    def run_callable(self, step: 'Executable', execution: Execution, *,
                     scenario: 'Scenario | None' = None) -> 'StepOutcome | None':
        """Execute a step with unified error handling.

        Args:
            step: Step to run.
            execution: Fresh execution of the step.
            scenario: Scenario the step belongs to, for error reporting.

        Returns:
            The outcome returned by the step.

        Raises:
            EngineError: Propagated as-is.
            StepRuntimeError: Wrapped unexpected exception with step context.
        """
        try:
            return step.execute_once(execution)

        except EngineError:
            raise

        except Exception as base:
            raise StepRuntimeError.from_step(
                step.label,
                message=f'{base!r}',
                scenario=scenario.description if scenario else None,
                options=step.options,
            ) from base

    def post_step_decisions(self, scenario: 'Scenario', execution: Execution) -> None:
        """Offer next steps and apply the run strategy to a problem step."""
        decision = self.ask_about_offered_steps(execution)
        if decision is Decision.QUIT:
            self.logger.warning('Run stopped by the operator')
            self.ask_to_quit()
            return

        if (
            execution.failed
            and not execution.whitelisted
            and not execution.resolved
            and scenario.run_strategy == RunStrategy.FAIL_FAST
        ):
            self.logger.warning('Step [%s] failed, stopping %r',
                                dashize(execution.step.label), scenario.description)
            self.ask_to_quit()

    def ask_about_offered_steps(self, execution: Execution) -> 'Executable | Decision | None':
        """Run the next-steps protocol for a finished execution.

        The chosen step runs immediately and its own next steps are
        processed before returning. When it succeeds (or gets resolved
        itself, or turns out not to be necessary) the original execution
        is marked resolved. Declined offers are recorded on the execution.

        Returns:
            The reporter decision, or `None` when nothing was offered.

        Raises:
            ReporterError: If the reporter answers with something else
                than an offered step or a `Decision`.
        """
        step = execution.step
        if not step.next_steps:
            return None

        offered = [
            ensure_instance(ref, catalog=step.catalog)
            for ref in step.next_steps
        ]

        decision = self.reporter.on_next_steps(offered)
        if decision is Decision.NO:
            execution.declined_steps = tuple(item.label for item in offered)
            self.logger.warning('Next steps for [%s] declined', dashize(step.label))

        if isinstance(decision, Decision):
            return decision

        if not any(decision is item for item in offered):
            raise ReporterError(f'Unexpected next steps answer {decision!r}')

        chosen = self.run_step(decision)
        if chosen is None:
            chosen = self.skipped_choice(decision)

        elif not chosen.success and self.ask_about_offered_steps(chosen) is Decision.QUIT:
            return Decision.QUIT

        if chosen.success or chosen.resolved:
            execution.resolved_by = chosen

        return decision

    def skipped_choice(self, step: 'Executable') -> Execution:
        """Execution standing for a chosen next step the runner skipped.

        A step that already ran keeps its own execution. A step that is
        not necessary has its goal met, so it counts as a success and
        resolves the step that offered it. That stand-in execution is not
        added to `executions`.
        """
        if step.executed:
            return step.execution

        self.logger.info('Chosen step [%s] is not necessary, goal already met',
                         dashize(step.label))
        self.reporter.puts(
            f'Step [{dashize(step.label)}] is not necessary, its goal is already met',
        )

        return StoredExecution(step, status=Status.SUCCESS, output=('not necessary',))

    def post_scenario_decisions(self, scenario: 'Scenario', *, last: bool = True) -> None:
        """Decide whether the scenarios queued after this one may run."""
        if self._quit:
            return

        if scenario.steps_with_error(whitelisted=False, resolved=False):
            self.logger.warning('Scenario %r failed, the next scenarios will not run',
                                scenario.description)
            self.ask_to_quit()
            return

        if last or self.reporter.assumeyes:
            return

        if scenario.steps_with_warning(whitelisted=False, resolved=False):
            answer = self.reporter.ask(
                f'There were warnings in "{scenario.description}". Continue? (y/n)',
            )
            if answer.strip().lower() not in CONFIRMATIONS:
                self.logger.warning('Run stopped after warnings in %r', scenario.description)
                self.ask_to_quit()

    @staticmethod
    def unresolved_problems(scenario: 'Scenario') -> list['Executable']:
        """Failed or warning steps that are neither whitelisted nor resolved."""
        return [
            *scenario.steps_with_error(whitelisted=False, resolved=False),
            *scenario.steps_with_warning(whitelisted=False, resolved=False),
        ]

    def checkpoint(self) -> list['CheckpointRecord']:
        """Checkpoint records of every queued scenario's steps."""
        return [
            record
            for scenario in self.scenarios
            for record in scenario.to_checkpoint()
        ]

    def restore(self, records: 'Iterable[CheckpointRecord]') -> int:
        """Restore stored outcomes into the queued scenarios.

        Restored executions of whitelisted steps are whitelisted again.

        Returns:
            Number of steps that received a stored outcome.
        """
        pending = list(records)
        restored = 0

        for scenario in self.scenarios:
            restored += restore_steps(scenario.steps, pending)
            for step in scenario.executed_steps:
                if step.label in self.settings.whitelist:
                    step.execution.whitelist()

        self.logger.info('Restored %d steps from checkpoint', restored)

        return restored
