"""Core value types for bound parameters and checkpoints.

Parameter values are arbitrary Python objects while a step runs, but
they must be reduced to plain data when a step is checkpointed and
compared with restored records. This module defines that plain-data
type system and the helpers converting to it.
"""

from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import PurePath
from typing import Any

#: Scalars are atomic values that can be written to a checkpoint as is.
type Scalar = date | datetime | timedelta | str | bytes | int | float | bool

#: A value is plain data: scalars and nested containers of scalars.
type Value = Scalar | Sequence[Value] | Mapping[str, Value] | None

#: Any Python object received from options or returned by converters
#: prior to normalization into a strict `Value`.
type RuntimeValue = Any

MAPPINGS = (dict,)
SCALARS = (date, datetime, timedelta, str, bytes, int, float, bool)
SEQUENCES = (list, tuple, set, frozenset)


def _normalize_key(value: RuntimeValue) -> str:
    """Validate and normalize a mapping key.

    Args:
        value: Candidate mapping key.

    Returns:
        The validated key as a string.

    Raises:
        TypeError: If the provided key is not a string.
    """
    if not isinstance(value, str):
        raise TypeError(f'Can not use {value!r} as mapping key')

    return value


def normalize(value: RuntimeValue) -> Value:
    """Recursively normalize a runtime value into a plain `Value`.

    Enumerations are replaced by their values and paths by their string
    form, so that converted parameters survive a checkpoint round trip.

    Args:
        value: Runtime value to normalize.

    Returns:
        A fully normalized value.

    Raises:
        TypeError: If the value type is unsupported.
    """
    if value is None:
        return None

    if isinstance(value, Enum):
        return normalize(value.value)

    if isinstance(value, PurePath):
        return str(value)

    if isinstance(value, SCALARS):
        return value

    if isinstance(value, MAPPINGS):
        return {
           _normalize_key(key): normalize(item)
           for key, item in value.items()
        }

    if isinstance(value, SEQUENCES):
        return [
            normalize(item)
            for item in value
        ]

    raise TypeError(f'{value!r} has unsupported type')


def freeze(value: RuntimeValue) -> RuntimeValue:
    """Convert nested containers into a hashable equivalent.

    Mappings become sorted tuples of pairs and sequences become tuples.
    Equal containers always produce equal (and equally hashed) results.

    Args:
        value: Arbitrary value.

    Returns:
        A hashable representation of the value.
    """
    if isinstance(value, Mapping):
        return tuple(sorted(
            ((key, freeze(item)) for key, item in value.items()),
            key=lambda pair: repr(pair[0]),
        ))

    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return tuple(freeze(item) for item in value)

    return value
