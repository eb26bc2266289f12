"""Declarative parameter schemas for executable kinds.

An executable kind declares the options it accepts as a `Params`
schema. The schema is compiled once per kind into an immutable Pydantic
model that validates and converts the raw option map a step is
constructed with. Unknown option names and values failing validation
are rejected before any parameter is bound.
"""

from collections.abc import Callable
from typing import Annotated, Any, Self

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    RootModel,
    create_model,
    model_validator,
)

from maintain_engine.models import DescribedMixin, SchemaModel
from maintain_engine.names import Label  # noqa: TC001
from maintain_engine.values import RuntimeValue

#: Converter applied to a value after type validation. It may raise
#: `ValueError` to reject the value.
type Converter = Callable[[RuntimeValue], RuntimeValue]


class Param(DescribedMixin, SchemaModel):
    """Declarative parameter definition.

    Describes a single option accepted by an executable kind: its type,
    default, alternative names and an optional conversion rule.
    """

    base: Any = Field(
        default=Any,
        title='Base type',
        description=(
            'Python type of the bound value. Raw option values are '
            'validated (and coerced where Pydantic allows) against it.'
        ),
    )

    aliases: list[Label] = Field(
        default_factory=list,
        title='Parameter aliases',
        description='Alternative option names accepted for this parameter.',
    )

    default: RuntimeValue = Field(
        default=None,
        title='Default value',
        description='Value bound when the option is not provided.',
    )

    required: bool = Field(
        default=False,
        title='Required flag',
        description='Indicates whether the option must be explicitly provided.',
    )

    converter: Converter | None = Field(
        default=None,
        title='Value converter',
        description='Callable converting the validated value into the bound value.',
    )

    @model_validator(mode='after')
    def check_default_required(self) -> Self:
        """Check combination of `required` and `default`.

        Returns:
            Self.

        Raises:
            ValueError: If specified both a `default` value and a `required` constraint.
        """
        if not self.required or self.default is None:
            return self

        raise ValueError('specified both a default value and a required constraint')

    def build(self, *, field_name: str | None = None) -> Any:  # noqa: ANN401
        """Build an annotated field type for this parameter.

        Args:
            field_name: Canonical parameter name used to extend aliases.

        Returns:
            An `Annotated` type representing the configured parameter.
        """
        aliases = None
        if self.aliases:
            aliases = (
                AliasChoices(field_name, *self.aliases)
                if field_name
                else AliasChoices(*self.aliases)
            )

        field_type = self.base
        if not self.required and self.base is not Any:
            field_type = self.base | None

        metadata: list[Any] = [
            Field(
                default=... if self.required else self.default,
                validation_alias=aliases,
                title=self.title,
                description=self.description,
            ),
        ]
        if self.converter:
            metadata.append(AfterValidator(self.converter))

        return Annotated[field_type, *metadata]


class ParamsModel(BaseModel):
    """Base for compiled parameter models.

    Bound values are immutable and unknown options are forbidden.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class Params(RootModel[dict[Label, Param]]):
    """Declarative schema composed of named parameters."""

    root: dict[Label, Param] = Field(
        default_factory=dict,
        title='Parameters',
        description='Mapping of parameter names to their declarative definitions.',
    )

    def names(self) -> list[str]:
        """Return declared parameter names in declaration order."""
        return list(self.root)

    def build(self, exclude: set[str] | None = None) -> dict[str, Any]:
        """Compile the schema into Pydantic-compatible field definitions.

        Args:
            exclude: Names forbidden for parameters, for example
                attributes of the executable base class.

        Returns:
            A mapping of parameter names to annotated types.

        Raises:
            ValueError: If parameter names or aliases are not unique or
                clash with excluded names.
        """
        exclude = set(exclude or ())

        schema = {}
        for name, param in self.root.items():
            if param.aliases and exclude.intersection(param.aliases):
                raise ValueError(f'aliases for parameter `{name}` is not unique in schema')
            if name in exclude:
                raise ValueError(f'parameter `{name}` is not unique in schema')

            exclude.add(name)
            exclude.update(param.aliases)

            schema[name] = param.build(field_name=name)

        return schema

    def build_model(self, name: str, exclude: set[str] | None = None) -> type[ParamsModel]:
        """Build the parameters model of an executable kind.

        Args:
            name: Name of the executable kind.
            exclude: Names forbidden for parameters.

        Returns:
            Dynamically created subclass of `ParamsModel`.

        Raises:
            ValueError: If parameter names or aliases are not unique.
        """
        return create_model(f'{name}Params', __base__=ParamsModel, **self.build(exclude))
