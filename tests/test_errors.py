"""Tests for error formatting."""

from os import linesep

import pytest

from maintain_engine.errors import (
    EngineError,
    ErrorContext,
    ErrorFormatter,
    IntegrityError,
    InvalidOptions,
    StepRuntimeError,
)
from tests.examples.steps import DiskSpaceCheck


def test_format_without_context() -> None:
    """Messages without context are kept as is."""
    assert str(EngineError('Something went wrong')) == 'Something went wrong'


def test_format_location() -> None:
    """Location lines render the scenario, the step and the position."""
    error = IntegrityError('Broken', context=ErrorContext(
        label='disk_space',
        scenario='pre-upgrade checks',
        line_num=2,
        column_num=4,
    ))

    assert str(error) == linesep.join((
        'Broken',
        '    in scenario "pre-upgrade checks"',
        '    on step [disk-space]',
        '    at line 3, column 5',
    ))


def test_runtime_error_snippet() -> None:
    """Runtime errors show the step options with unsafe values replaced."""
    error = StepRuntimeError.from_step(
        'disk_space',
        message="RuntimeError('boom')",
        scenario='pre-upgrade checks',
        options={'path': '/srv', 'callback': object()},
    )

    text = str(error)

    assert text.startswith(f'Runtime error{linesep}    RuntimeError(\'boom\'){linesep}')
    assert '    on step [disk-space]' in text
    assert '        path: /srv' in text
    assert '<runtime object>' in text
    assert error.message.endswith("RuntimeError('boom')")


def test_invalid_options_snippet() -> None:
    """Options errors show only the offending option."""
    with pytest.raises(InvalidOptions) as error:
        DiskSpaceCheck(path='/srv', required_gb='many')

    text = str(error.value)

    assert 'required_gb: many' in text
    assert 'path: /srv' not in text


@pytest.mark.parametrize('value, expected', (
    pytest.param(None, None, id='none'),
    pytest.param(42, 42, id='scalar'),
    pytest.param({1: 'a'}, {'1': 'a'}, id='mapping keys'),
    pytest.param(('a', {'b': object()}), ['a', {'b': '<runtime object>'}], id='nested'),
))
def test_filter_unsafe(value: object, expected: object) -> None:
    """Unsafe values are replaced before rendering."""
    assert ErrorFormatter._filter_unsafe(value) == expected  # noqa: SLF001
