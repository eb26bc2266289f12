"""Checkpoint records of step outcomes.

A checkpoint record stores the identity of a step (its label and bound
parameter values) and, when the step already ran, its final status and
output. Records let an interrupted run be resumed in a new process: the
same scenario is composed again and every step matching a record gets
its stored outcome back instead of running again.

The engine does not choose a storage medium. This module only defines
the record shape and its YAML text encoding.
"""

from typing import Any, Self

from pydantic import Field, TypeAdapter, ValidationError, model_validator
from yaml import YAMLError, safe_dump, safe_load
from yaml.error import MarkedYAMLError

from maintain_engine.errors import CheckpointError
from maintain_engine.execution import FINAL_STATUSES, Status
from maintain_engine.models import SchemaModel
from maintain_engine.names import Label  # noqa: TC001
from maintain_engine.values import Value  # noqa: TC001


class CheckpointRecord(SchemaModel):
    """Persisted state of a single step."""

    label: Label = Field(
        title='Step label',
        description='Identifies the executable kind.',
    )

    param_values: dict[str, Value] = Field(
        default_factory=dict,
        title='Parameter values',
        description='Bound parameter values, exactly as bound at construction.',
    )

    status: Status | None = Field(
        default=None,
        title='Final status',
        description='Present only if the step ran before checkpointing.',
    )

    output: list[str] | None = Field(
        default=None,
        title='Output messages',
        description='Accumulated output; present under the same condition as `status`.',
    )

    @model_validator(mode='after')
    def check_outcome(self) -> Self:
        """Check that the outcome fields are consistent.

        Returns:
            Self.

        Raises:
            ValueError: If only one of `status` and `output` is present,
                or the status is not a final one.
        """
        if (self.status is None) != (self.output is None):
            raise ValueError('status and output must be both present or both absent')

        if self.status is not None and self.status not in FINAL_STATUSES:
            raise ValueError(f'status {self.status.value!r} is not a final status')

        return self

    @property
    def executed(self) -> bool:
        """Whether the step ran before checkpointing."""
        return self.status is not None


_records_adapter = TypeAdapter(list[CheckpointRecord])
_values_adapter: TypeAdapter[Any] = TypeAdapter(Any)


def comparable_values(values: Any) -> Any:  # noqa: ANN401
    """Reduce parameter values to the form they take in checkpoint text.

    Dates, durations and bytes are written as JSON strings and read back
    as strings, so bound values and restored records are compared in
    that form.

    Args:
        values: Bound or restored parameter values.

    Returns:
        JSON-compatible equivalent of the values.
    """
    return _values_adapter.dump_python(values, mode='json')


def dump_checkpoint(records: list[CheckpointRecord]) -> str:
    """Render checkpoint records as YAML text.

    Args:
        records: Records in step order.

    Returns:
        YAML document with one mapping per record.
    """
    return safe_dump(
        [
            record.model_dump(mode='json', exclude_none=True)
            for record in records
        ],
        sort_keys=False,
        allow_unicode=True,
    )


def load_checkpoint(text: str) -> list[CheckpointRecord]:
    """Parse checkpoint records from YAML text.

    Args:
        text: YAML produced by `dump_checkpoint`.

    Returns:
        Validated records in stored order. Empty text yields no records.

    Raises:
        CheckpointError: If the text is not valid YAML or the records
            do not match the record schema.
    """
    try:
        data: Any = safe_load(text)

    except MarkedYAMLError as base:
        raise CheckpointError.from_yaml_error(base) from base

    except YAMLError as base:
        raise CheckpointError(f'Invalid checkpoint YAML: {base}') from base

    if data is None:
        return []

    try:
        return _records_adapter.validate_python(data)

    except ValidationError as base:
        raise CheckpointError.from_pydantic_error(base, data=data) from base
