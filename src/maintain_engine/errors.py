"""Core exception hierarchy.

This module defines the error and warning types used across the engine
to report configuration problems, integrity faults caused by the calling
code, unexpected failures inside step bodies, unreadable checkpoints and
plugin loading issues in a structured way.

Step failures and warnings are not exceptions: a step returns them as
`StepOutcome` values and they become execution data.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump
from yaml.error import MarkedYAMLError

from maintain_engine.names import dashize
from maintain_engine.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails, ValidationError

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Label of the step involved in the error.
    label: str | None
    #: Description of the scenario involved in the error.
    scenario: str | None

    #: Line number in checkpoint text.
    line_num: int | None
    #: Column number in checkpoint text.
    column_num: int | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Data associated with the error (options, records).
    element: Any


class ErrorFormatter:
    """Utility class for formatting engine errors.

    Produces human-readable error messages with optional location and
    a YAML snippet of the data that caused the problem.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message.rstrip()

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format location information.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string with the scenario, the step and
            the checkpoint line and column when available.
        """
        indent = cls._ensure_indent(indent)
        message = ''

        if scenario := context.get('scenario'):
            message += f'{indent}in scenario "{scenario}"{linesep}'

        if label := context.get('label'):
            message += f'{indent}on step [{dashize(label)}]{linesep}'

        if (line_num := context.get('line_num')) is not None:
            message += f'{indent}at line {line_num + 1}'
            if (column_num := context.get('column_num')) is not None:
                message += f', column {column_num + 1}'
            message += linesep

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing data or exception.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        if (error := context.get('error')) and isinstance(error, MarkedYAMLError):
            snippet = error.problem_mark.get_snippet(indent=0) if error.problem_mark else None
            return cls._make_indent(snippet or '', indent)

        if element := context.get('element'):
            snippet = f'{indent}{SNIPPET_ELLIPSIS}'
            snippet += cls._make_yaml(element, indent)
            return snippet + linesep

        return ''

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Non-scalar and non-container objects are replaced with
        a placeholder.

        Args:
            value: Arbitrary value to sanitize.

        Returns:
            A YAML-safe representation of the value.
        """
        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {
                str(key): cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                cls._filter_unsafe(item)
                for item in value
            ]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a sanitized value to a YAML-formatted string."""
        data = dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string.

        Empty or whitespace-only lines are omitted.
        """
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation input."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


def locate_pydantic_context(value: Any,  # noqa: ANN401
                            error: 'ErrorDetails') -> tuple[str, Any] | None:
    """Locate the most specific failing element in validated data.

    Walks the Pydantic error location path and extracts the minimal
    substructure responsible for the failure, to be rendered as a
    focused snippet.

    Args:
        value: Root data structure being validated.
        error: Pydantic error details including location path.

    Returns:
        A tuple of (error message, extracted element) if a relevant
        context can be located, otherwise None.
    """
    container = last_item = value
    last_key: int | str | None = None

    for key in error['loc']:
        if isinstance(last_item, (list, tuple)):
            if isinstance(key, int) and 0 <= key < len(last_item):
                container = last_item
                last_item = last_item[key]
                last_key = key
        elif isinstance(last_item, dict):
            if key in last_item:
                container = last_item
                last_item = last_item[key]
                last_key = key
        else:
            return None

    if not isinstance(last_key, (int, str)):
        return None

    if error.get('type') == 'extra_forbidden':
        message = f'unknown option {last_key!r}'
    else:
        message = next((
            line.strip()
            for line in (error.get('msg') or '').splitlines()
            if line.strip()
        ), None)

    if not message:
        return None

    if isinstance(container, (list, tuple)):
        return message, [last_item]

    return message, {last_key: last_item}


class PluginWarning(UserWarning):
    """Warning emitted for non-fatal plugin-related issues.

    Used when a plugin cannot be loaded or registered but the catalog is
    populated in relaxed mode.
    """


class EngineError(Exception, ErrorFormatter):
    """Base exception for all engine errors.

    All custom exceptions raised by the library inherit from this class
    to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional location and data.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String represenatation."""
        return self.format(self.message, self.context)


class PluginError(EngineError):
    """Error raised for fatal plugin-related failures.

    Raised when a plugin entry point is invalid, misconfigured, or fails
    to load in strict mode.
    """

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a plugin error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional plugin entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class CatalogError(EngineError):
    """Error raised on misuse of the step catalog (e.g. registering into a frozen one)."""


class StepDefinitionError(EngineError):
    """Error raised when an executable or scenario class is declared incorrectly."""


class ConfigurationError(EngineError):
    """Error raised when a step can not be configured from given options.

    Fatal for the construction attempt only: the caller building the
    scenario receives it immediately.
    """


class InvalidOptions(ConfigurationError):
    """Error raised for unknown option names or values failing validation."""

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            options: dict[str, Any],
                            label: str | None = None) -> 'Self':
        """Create an options error from a Pydantic validation failure.

        Args:
            error: ValidationError raised by the parameters model.
            options: Raw options the step was constructed with.
            label: Label of the step being configured.

        Returns:
            InvalidOptions pointing at the first offending option.
        """
        error_context = ErrorContext(
            label=label,
            error=error,
            element=options,
        )

        for item in error.errors(include_url=False, include_input=False):
            if context := locate_pydantic_context(options, item):
                message, value = context
                return cls(f'Invalid options: {message}', context=ErrorContext({
                    **error_context,
                    'element': value,
                }))

            if item.get('type') == 'missing':
                name = '.'.join(str(key) for key in item['loc'])
                return cls(f'Invalid options: missing option {name!r}', context=error_context)

        return cls('Invalid options', context=error_context)


class IntegrityError(EngineError):
    """Error raised for programming faults in the calling code.

    Integrity errors are never recovered from or retried: binding
    a parameter twice, reading execution data before a run, restoring
    a checkpoint into a wrong step and similar defects.
    """


class AlreadyExecutedError(IntegrityError):
    """Error raised when an executable is run or restored a second time."""


class CheckpointMismatchError(IntegrityError):
    """Error raised when a checkpoint record does not describe the target step."""


class ReporterError(IntegrityError):
    """Error raised when a reporter answers outside its contract."""


class StepRuntimeError(EngineError):
    """Error raised when a step body fails with an unexpected exception.

    Such exceptions are not part of the fail/warn vocabulary of steps:
    the scenario is aborted and the error is propagated as fatal.
    """

    @classmethod
    def from_step(cls, label: str, *,
                  message: str | None = None,
                  scenario: str | None = None,
                  options: dict[str, Any] | None = None) -> 'Self':
        """Create a runtime error for a failing step.

        Args:
            label: Label of the failing step.
            message: An optional custom message.
            scenario: Description of the scenario being run.
            options: Options the step was constructed with.

        Returns:
            StepRuntimeError describing the failure.
        """
        error_context = ErrorContext(
            label=label,
            scenario=scenario,
            element=options,
        )

        error_message = 'Runtime error'
        if message:
            error_message += f'{linesep}{' ' * FORMAT_INDENT}{message}'

        return cls(error_message, context=error_context)


class CheckpointError(EngineError):
    """Error raised when checkpoint text can not be read."""

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError) -> 'Self':
        """Create a checkpoint error from a YAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.

        Returns:
            CheckpointError with the problem location.
        """
        error_context = ErrorContext(error=error)
        if error.problem_mark:
            error_context['line_num'] = error.problem_mark.line
            error_context['column_num'] = error.problem_mark.column

        message = 'Invalid checkpoint YAML'
        if error.problem:
            message += f'{linesep}{' ' * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None) -> 'Self':  # noqa: ANN401
        """Create a checkpoint error from a record validation failure.

        Args:
            error: ValidationError raised by Pydantic.
            data: Checkpoint data being validated.

        Returns:
            CheckpointError pointing at the offending part of the data.
        """
        error_context = ErrorContext(error=error, element=data)

        if not data or not isinstance(data, (dict, list)):
            return cls('Invalid checkpoint structure', context=error_context)

        for item in error.errors(include_url=False, include_input=False):
            if context := locate_pydantic_context(data, item):
                message, value = context
                return cls(f'Invalid checkpoint record: {message}', context=ErrorContext({
                    **error_context,
                    'element': value,
                }))

        return cls('Invalid checkpoint record', context=error_context)
