"""Execution core of a maintenance-automation tool.

The `maintain_engine` package runs ordered sets of diagnostic and
remediation steps against a host:

- executables declare typed parameters and report success, failure or
  warnings of their run;
- scenarios compose executables, resolve and deduplicate preparation
  steps and aggregate outcomes;
- the runner drives scenarios under a failure-tolerance policy and lets
  an operator pick recovery steps through a reporter;
- checkpoint records let an interrupted run be resumed.
"""

from .catalog import Catalog, StepFilter, StepPlugin
from .checkpoint import CheckpointRecord, dump_checkpoint, load_checkpoint
from .executable import Executable, StepMetadata, ensure_instance, fresh_instance
from .execution import Execution, Status, StepOutcome, StoredExecution
from .params import Param, Params
from .reporter import Decision, Reporter
from .runner import Runner
from .scenario import (
    FilteredScenario,
    PreparationScenario,
    RunStrategy,
    Scenario,
    ScenarioMetadata,
    ScenarioState,
)
from .settings import RunnerSettings

__all__ = (
    'Catalog',
    'CheckpointRecord',
    'Decision',
    'Executable',
    'Execution',
    'FilteredScenario',
    'Param',
    'Params',
    'PreparationScenario',
    'Reporter',
    'RunStrategy',
    'Runner',
    'RunnerSettings',
    'Scenario',
    'ScenarioMetadata',
    'ScenarioState',
    'Status',
    'StepFilter',
    'StepMetadata',
    'StepOutcome',
    'StepPlugin',
    'StoredExecution',
    'dump_checkpoint',
    'ensure_instance',
    'fresh_instance',
    'load_checkpoint',
)
