"""Runtime settings of the engine.

Settings are taken from keyword arguments or from environment variables
prefixed with `MAINTAIN_`, for example `MAINTAIN_ASSUMEYES=1` or
`MAINTAIN_WHITELIST='["disk_space"]'` (complex values are JSON).
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from maintain_engine.models import SettingsModel
from maintain_engine.names import Label  # noqa: TC001


class RunnerSettings(SettingsModel):
    """Settings of a runner and of the catalog it is fed from."""

    model_config = SettingsConfigDict(
        env_prefix='MAINTAIN_',
    )

    assumeyes: bool = Field(
        default=False,
        title='Assume yes',
        description=(
            'Answer confirmation questions positively without asking. '
            'Passed on to the reporter, which then picks the first '
            'offered next step.'
        ),
    )

    whitelist: frozenset[Label] = Field(
        default_factory=frozenset,
        title='Whitelisted steps',
        description=(
            'Labels of steps whose failures and warnings are acknowledged '
            'and excluded from the default pass/fail aggregation.'
        ),
    )

    strict_plugins: bool = Field(
        default=True,
        title='Strict plugin loading',
        description='Raise on plugin loading issues instead of warning about them.',
    )
