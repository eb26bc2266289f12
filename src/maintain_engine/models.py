"""Base Pydantic models for engine declarations.

This module defines the foundational model classes used by step and
scenario metadata, parameter declarations, checkpoint records and
runtime settings. It enforces immutability and strict schema validation
so that declarations are deterministic and explicit.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all engine declarations.

    Design principles enforced by this model:
        - Immutability: declarations cannot be modified after creation.
          A step kind or a checkpoint record means the same thing for
          the whole lifetime of the process.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in declarations.

    All declarative models must inherit from this class.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined in this model do not affect execution semantics
    and are used by reporters and logs only.
    """

    title: str | None = Field(
        default=None,
        title='Title',
        description='Short human-readable title of the element.',
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Detailed human-readable description of the element.',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Settings are resolved from keyword arguments or from the process
    environment.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
        - Tolerant schema handling: unknown environment variables are
          ignored, so unrelated variables never break configuration.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
