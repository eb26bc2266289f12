"""Example executable kinds and scenarios.

The kinds simulate host checks and remediations without touching the
host: installed packages live in the module-level `installed_packages`
set, which tests reset through a fixture.
"""

from datetime import date, timedelta
from typing import ClassVar

from maintain_engine import (
    Executable,
    Param,
    Params,
    RunStrategy,
    Scenario,
    ScenarioMetadata,
    StepMetadata,
    StepPlugin,
)

#: Packages considered installed on the simulated host.
installed_packages: set[str] = set()


def positive(value: int) -> int:
    """Reject non-positive numbers."""
    if value <= 0:
        raise ValueError('must be positive')

    return value


class InstallPackage(Executable):
    metadata = StepMetadata(
        label='install_package',
        description='install packages',
    )
    params = Params(
        packages=Param(
            base=list[str],
            title='Packages to install',
            required=True,
        ),
    )

    packages: list[str]

    def necessary(self) -> bool:
        return not set(self.packages) <= installed_packages

    def run(self) -> None:
        installed_packages.update(self.packages)
        self.say(f'installed {", ".join(self.packages)}')


class PassingCheck(Executable):
    metadata = StepMetadata(
        description='passing check',
        tags=frozenset({'default', 'pre_upgrade'}),
    )

    def run(self) -> None:
        self.say('everything is fine')


class DiskSpaceCheck(Executable):
    metadata = StepMetadata(
        label='disk_space',
        description='check free disk space',
        tags=frozenset({'default'}),
    )
    params = Params(
        path=Param(
            base=str,
            aliases=['mount'],
            default='/var',
        ),
        required_gb=Param(
            base=int,
            default=10,
            converter=positive,
        ),
        available_gb=Param(
            base=int,
            default=100,
        ),
    )

    path: str
    required_gb: int
    available_gb: int

    def run(self) -> object:
        if self.available_gb < self.required_gb:
            return self.fail(
                f'{self.path} has {self.available_gb}GB free, {self.required_gb}GB required',
            )

        self.say(f'{self.path} has enough space')
        return None


class FixProcedure(Executable):
    metadata = StepMetadata(description='fix the problem')

    def run(self) -> None:
        self.say('fixed')


class BrokenFixProcedure(Executable):
    metadata = StepMetadata(description='broken fix')

    def run(self) -> object:
        return self.fail('fix did not help')


class FailingCheck(Executable):
    metadata = StepMetadata(
        description='failing check',
        tags=frozenset({'pre_upgrade'}),
    )

    #: Next steps offered after the failure.
    offers: ClassVar[tuple[type[Executable], ...]] = ()

    def run(self) -> object:
        self.next_steps.extend(type(self).offers)
        return self.fail('check failed')


class FixableCheck(FailingCheck):
    metadata = StepMetadata(label='fixable_check', description='fixable check')
    offers = (BrokenFixProcedure, FixProcedure)


class WarningCheck(Executable):
    metadata = StepMetadata(description='warning check')

    def run(self) -> object:
        return self.warn('check warned')


class PartialCheck(Executable):
    metadata = StepMetadata(description='partial check')

    def run(self) -> None:
        self.set_warn('first half incomplete')
        self.say('second half done')


class CrashingCheck(Executable):
    metadata = StepMetadata(description='crashing check')

    def run(self) -> None:
        raise RuntimeError('unexpected crash')


class StaleLocksCleanup(Executable):
    metadata = StepMetadata(description='remove stale locks')

    def run(self) -> object:
        self.print('stale locks found: 2. ')
        if not self.assumeyes and self.ask('Remove stale locks? (y/n)') != 'y':
            return self.warn('locks kept')

        self.puts('locks removed')
        return None


class MaintenanceWindowCheck(Executable):
    metadata = StepMetadata(description='check maintenance window')
    params = Params(
        since=Param(
            base=date,
            required=True,
        ),
        duration=Param(
            base=timedelta,
            default=timedelta(hours=1),
        ),
        token=Param(
            base=bytes,
            default=b'window',
        ),
    )

    since: date
    duration: timedelta
    token: bytes

    def run(self) -> None:
        self.say(f'window opens {self.since.isoformat()}')


class PackageCheck(Executable):
    metadata = StepMetadata(
        description='check with lsof',
        preparation_steps=(InstallPackage(packages=['lsof']),),
    )

    def run(self) -> None:
        self.say('lsof output checked')


class ServiceCheck(Executable):
    metadata = StepMetadata(
        description='check services',
        for_feature='services',
        preparation_steps=(
            InstallPackage(packages=['lsof']),
            InstallPackage(packages=['procps']),
        ),
    )

    def run(self) -> object:
        if self.associated_feature is None:
            return self.warn('services feature not available')

        self.say(f'services: {", ".join(self.associated_feature)}')
        return None


class PreUpgradeScenario(Scenario):
    metadata = ScenarioMetadata(
        description='pre-upgrade checks',
        tags=frozenset({'pre_upgrade'}),
        run_strategy=RunStrategy.FAIL_SLOW,
    )

    def compose(self) -> None:
        self.add_steps([PackageCheck, ServiceCheck])
        self.add_step(DiskSpaceCheck(path='/var/lib/pgsql'))


def make_scenario(*steps: 'Executable | type[Executable]',
                  run_strategy: RunStrategy = RunStrategy.FAIL_FAST,
                  description: str = 'test scenario') -> Scenario:
    """Build a scenario running the given steps."""
    class AdHocScenario(Scenario):
        metadata = ScenarioMetadata(
            description=description,
            run_strategy=run_strategy,
        )

        def compose(self) -> None:
            self.add_steps(steps)

    return AdHocScenario()


example = StepPlugin(
    name='example',
    steps=[PassingCheck, DiskSpaceCheck, FailingCheck, WarningCheck, ServiceCheck],
    features={'services': ['httpd', 'postgresql']},
)
