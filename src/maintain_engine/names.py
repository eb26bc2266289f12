"""Name primitive types and validation rules.

Step labels, parameter names and tags share a single identifier rule:
they start with a letter and contain ASCII letters, digits or
underscores. Reporters render underscores as dashes, so `disk_space`
is shown to the operator as `disk-space`.
"""

from re import sub
from typing import Annotated

from pydantic import Field

#: Base pattern for all identifiers.
_NAME_PATTERN = r'[a-zA-Z][\w]*'


Label = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Step label',
        description=(
            'Unique name of an executable kind. '
            'Used for catalog lookups, whitelisting and to match '
            'checkpoint records with steps.'
        ),
        examples=[
            'disk_space',
            'services_running',
        ],
    ),
]

Tag = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Tag',
        description='Free-form classifier used to select steps from the catalog.',
        examples=[
            'pre_upgrade',
            'default',
        ],
    ),
]


def underscore(name: str) -> str:
    """Convert a CamelCase class name into a snake_case label.

    Args:
        name: Class name.

    Returns:
        Lower-case name with underscores between words.
    """
    name = sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    name = sub(r'([a-z\d])([A-Z])', r'\1_\2', name)

    return name.lower()


def dashize(name: str) -> str:
    """Render an identifier the way operators see it."""
    return name.replace('_', '-')
