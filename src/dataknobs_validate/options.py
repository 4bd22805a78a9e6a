"""Option models for validation calls and for each built-in constraint kind.

Constraint specs arrive in several shapes (``True``, a list, a pattern, a
mapping). Each constraint kind owns a pydantic model that normalizes all
of its accepted shapes into one canonical options object before a
validator looks at it.

Models accept both snake_case field names and the camelCase keys used in
constraint documents (``allowEmpty``, ``onlyInteger``, ``tooShort`` ...).
Keys a model does not know are kept as extras.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from dataknobs_validate.exceptions import ConfigurationError, InvalidConstraintError

Number = Union[int, float]

M = TypeVar("M", bound=BaseModel)

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="allow",
)


class ValidateOptions(BaseModel):
    """Options for a synchronous validation call.

    Extra keys are allowed and reach every validator as part of the
    global options.
    """

    model_config = _MODEL_CONFIG

    format: str = "grouped"
    prettify: Optional[Callable[[Any], str]] = None
    full_messages: bool = True
    stop_at_first_error: bool = False


class AsyncValidateOptions(ValidateOptions):
    """Options for an asynchronous validation call."""

    wrap_errors: Optional[Callable[..., Any]] = None
    clean_attributes: bool = True


def _explicit_values(model: BaseModel, all_fields: bool = False) -> Dict[str, Any]:
    fields = type(model).model_fields
    names = fields.keys() if all_fields else model.model_fields_set
    data = {name: getattr(model, name) for name in names if name in fields}
    data.update(model.model_extra or {})
    return data


def merge_options(base: M, *layers: BaseModel | Mapping[str, Any] | None) -> M:
    """Layer option sources over base, later layers winning.

    Only values a layer sets explicitly override what lies beneath it.

    Raises:
        ConfigurationError: If a layer holds an invalid option value
    """
    model_cls = type(base)
    data = _explicit_values(base, all_fields=True)
    try:
        for layer in layers:
            if not layer:
                continue
            if not isinstance(layer, BaseModel):
                layer = model_cls.model_validate(dict(layer))
            data.update(_explicit_values(layer))
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid {model_cls.__name__}: {e}",
            context={"errors": e.errors(include_url=False)},
        ) from e


class ConstraintOptions(BaseModel):
    """Options shared by every constraint kind."""

    model_config = _MODEL_CONFIG

    message: Any = None

    @classmethod
    def normalize(cls, spec: Any) -> ConstraintOptions:
        """Turn any accepted spec shape into an instance of this model."""
        if isinstance(spec, cls):
            return spec
        if spec is True:
            return cls()
        if isinstance(spec, Mapping):
            return cls.model_validate(dict(spec))
        return cls.from_shorthand(spec)

    @classmethod
    def from_shorthand(cls, spec: Any) -> ConstraintOptions:
        raise ValueError(f"{cls.__name__} does not accept a {type(spec).__name__} spec")


class PresenceOptions(ConstraintOptions):
    allow_empty: bool = False


class EmailOptions(ConstraintOptions):
    pass


class DateTimeOptions(ConstraintOptions):
    date_only: bool = False
    earliest: Any = None
    latest: Any = None
    not_valid: Any = None
    too_early: Any = None
    too_late: Any = None


class EqualityOptions(ConstraintOptions):
    """Compare against another attribute, looked up by (dotted) name."""

    attribute: Optional[str] = None
    comparator: Optional[Callable[[Any, Any], bool]] = None
    prettify: Optional[Callable[[Any], str]] = None

    @classmethod
    def from_shorthand(cls, spec: Any) -> EqualityOptions:
        if isinstance(spec, str):
            return cls(attribute=spec)
        return super().from_shorthand(spec)


class MembershipOptions(ConstraintOptions):
    """Shared by inclusion and exclusion.

    ``within`` is either a list of values or a mapping whose keys are the
    values and whose values are labels used in messages.
    """

    within: Union[Dict[Any, Any], List[Any]] = Field(default_factory=list)

    @classmethod
    def from_shorthand(cls, spec: Any) -> MembershipOptions:
        if isinstance(spec, (list, tuple, set, frozenset)):
            return cls(within=list(spec))
        return super().from_shorthand(spec)


_JS_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
    "g": 0,
    "y": 0,
}


class FormatOptions(ConstraintOptions):
    """A pattern the whole value must match.

    ``pattern`` is a compiled ``re.Pattern`` or a string compiled with
    ``flags`` (letters such as ``"i"`` or ``"im"``) at evaluation time.
    """

    pattern: Any = None
    flags: str = ""

    @classmethod
    def from_shorthand(cls, spec: Any) -> FormatOptions:
        if isinstance(spec, (str, re.Pattern)):
            return cls(pattern=spec)
        return super().from_shorthand(spec)

    def compile(self) -> re.Pattern:
        """Compile the pattern with the configured flags.

        Raises:
            InvalidConstraintError: If the pattern is missing or invalid
        """
        if self.pattern is None:
            raise InvalidConstraintError("The format constraint requires a pattern")

        flags = 0
        for letter in self.flags:
            if letter not in _JS_FLAGS:
                raise InvalidConstraintError(
                    f"Unsupported pattern flag '{letter}'",
                    context={"flags": self.flags},
                )
            flags |= _JS_FLAGS[letter]

        if isinstance(self.pattern, re.Pattern):
            if not flags:
                return self.pattern
            return re.compile(self.pattern.pattern, self.pattern.flags | flags)

        try:
            return re.compile(str(self.pattern), flags)
        except re.error as e:
            raise InvalidConstraintError(
                f"Invalid pattern {self.pattern!r}: {e}",
                context={"pattern": self.pattern},
            ) from e


class LengthOptions(ConstraintOptions):
    is_: Optional[int] = Field(default=None, alias="is")
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    tokenizer: Optional[Callable[[Any], Any]] = None
    wrong_length: Any = None
    too_short: Any = None
    too_long: Any = None
    not_valid: Any = None


class NumericalityOptions(ConstraintOptions):
    strict: bool = False
    no_strings: bool = False
    only_integer: bool = False
    greater_than: Optional[Number] = None
    greater_than_or_equal_to: Optional[Number] = None
    equal_to: Optional[Number] = None
    less_than_or_equal_to: Optional[Number] = None
    less_than: Optional[Number] = None
    divisible_by: Optional[Number] = None
    odd: bool = False
    even: bool = False
    prettify: Optional[Callable[[Any], str]] = None
    not_valid: Any = None
    not_integer: Any = None
    not_greater_than: Any = None
    not_greater_than_or_equal_to: Any = None
    not_equal_to: Any = None
    not_less_than_or_equal_to: Any = None
    not_less_than: Any = None
    not_divisible_by: Any = None
    not_odd: Any = None
    not_even: Any = None

    @field_validator("divisible_by")
    @classmethod
    def validate_divisor(cls, v: Optional[Number]) -> Optional[Number]:
        if v == 0:
            raise ValueError("divisible_by must not be zero")
        return v


class UrlOptions(ConstraintOptions):
    """``schemes`` is a list of scheme names or a compiled pattern."""

    schemes: Any = None
    allow_local: bool = False
    allow_data_url: bool = False


class TypeOptions(ConstraintOptions):
    """``type`` is a type name (``"string"``, ``"integer"`` ...) or a predicate."""

    type: Any = None

    @classmethod
    def from_shorthand(cls, spec: Any) -> TypeOptions:
        if isinstance(spec, str):
            return cls(type=spec)
        return super().from_shorthand(spec)


__all__ = [
    "AsyncValidateOptions",
    "ConstraintOptions",
    "DateTimeOptions",
    "EmailOptions",
    "EqualityOptions",
    "FormatOptions",
    "LengthOptions",
    "MembershipOptions",
    "NumericalityOptions",
    "PresenceOptions",
    "TypeOptions",
    "UrlOptions",
    "ValidateOptions",
    "merge_options",
]
