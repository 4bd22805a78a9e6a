"""Validator implementations for every built-in constraint kind.

A validator is called as ``validator(value, spec, attribute, attributes,
global_options)`` and returns None when the value passes, otherwise a
message (or a list of messages, or a callable producing a message).

Each call reports at most one message: when several sub-rules of one
constraint are violated (e.g. both ``greater_than`` and ``odd``) the first
one in the documented check order wins.

Example:
    ```python
    from dataknobs_validate.validators import LengthValidator

    LengthValidator()("ab", {"minimum": 3}, "tag", {"tag": "ab"}, None)
    # 'is too short (minimum is 3 characters)'
    ```
"""

from __future__ import annotations

import math
import operator
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict

from dateutil import parser as dateutil_parser
from email_validator import EmailNotValidError, validate_email
from pydantic import ValidationError

from dataknobs_validate.exceptions import InvalidConstraintError
from dataknobs_validate.formatting import format, prettify
from dataknobs_validate.options import (
    ConstraintOptions,
    DateTimeOptions,
    EmailOptions,
    EqualityOptions,
    FormatOptions,
    LengthOptions,
    MembershipOptions,
    NumericalityOptions,
    PresenceOptions,
    TypeOptions,
    UrlOptions,
    merge_options,
)
from dataknobs_validate.utils import (
    contains,
    extend,
    get_deep_object_value,
    is_array,
    is_boolean,
    is_date,
    is_defined,
    is_empty,
    is_hash,
    is_integer,
    is_number,
    is_string,
)


class Validator(ABC):
    """Base class for everything a ``ValidatorRegistry`` holds.

    Attributes:
        validates_absent: Run even when the attribute value is None. Only
            presence-style validators want this.
        defaults: Options merged beneath every spec this validator receives
    """

    validates_absent: bool = False

    def __init__(self, defaults: Mapping[str, Any] | None = None):
        self.defaults: Dict[str, Any] = dict(defaults or {})

    @abstractmethod
    def __call__(
        self,
        value: Any,
        spec: Any,
        attribute: str,
        attributes: Any,
        global_options: Any,
    ) -> Any:
        """Validate value; return None or the violation message(s)."""


class FunctionValidator(Validator):
    """Adapts a plain callable into a ``Validator``.

    The callable receives the raw spec. When both the spec and the
    defaults are mappings they are shallow-merged first.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        validates_absent: bool = False,
        defaults: Mapping[str, Any] | None = None,
    ):
        super().__init__(defaults)
        self.func = func
        self.validates_absent = validates_absent

    def __call__(self, value, spec, attribute, attributes, global_options):
        if self.defaults and isinstance(spec, Mapping):
            spec = extend({}, self.defaults, spec)
        return self.func(value, spec, attribute, attributes, global_options)

    def __repr__(self) -> str:
        return f"FunctionValidator({getattr(self.func, '__name__', self.func)!r})"


class ConstraintValidator(Validator):
    """A validator whose spec is normalized into an options model first."""

    options_model: type[ConstraintOptions] = ConstraintOptions
    name: str = "constraint"

    def normalize(self, spec: Any) -> ConstraintOptions:
        """Normalize spec (and this validator's defaults) into options.

        Raises:
            InvalidConstraintError: If spec has a shape this kind rejects
        """
        try:
            options = self.options_model.normalize(spec)
            if self.defaults:
                options = merge_options(self.options_model.normalize(self.defaults), options)
        except (ValidationError, ValueError, TypeError) as e:
            raise InvalidConstraintError(
                f"Invalid {self.name} constraint: {e}",
                context={"validator": self.name, "spec": spec},
            ) from e
        return options

    def __call__(self, value, spec, attribute, attributes, global_options):
        options = self.normalize(spec)
        return self.check(value, options, attribute, attributes, global_options)

    @abstractmethod
    def check(
        self,
        value: Any,
        options: Any,
        attribute: str,
        attributes: Any,
        global_options: Any,
    ) -> Any:
        """Validate value against normalized options."""

    @staticmethod
    def _prettifier(options: Any, global_options: Any) -> Callable[[Any], str]:
        return (
            getattr(options, "prettify", None)
            or getattr(global_options, "prettify", None)
            or prettify
        )


class PresenceValidator(ConstraintValidator):
    """Value must be defined, and non-blank unless ``allow_empty``."""

    options_model = PresenceOptions
    name = "presence"
    validates_absent = True
    message = "can't be blank"

    def check(self, value, options, attribute, attributes, global_options):
        blank = not is_defined(value) if options.allow_empty else is_empty(value)
        if blank:
            return options.message or self.message
        return None


class LengthValidator(ConstraintValidator):
    """Compare the (tokenized) length of a value to ``is``/``minimum``/``maximum``."""

    options_model = LengthOptions
    name = "length"
    not_valid = "has an incorrect length"
    wrong_length = "is the wrong length (should be %{count} characters)"
    too_short = "is too short (minimum is %{count} characters)"
    too_long = "is too long (maximum is %{count} characters)"

    def check(self, value, options, attribute, attributes, global_options):
        tokens = options.tokenizer(value) if options.tokenizer else value
        try:
            length = len(tokens)
        except TypeError:
            return options.message or options.not_valid or self.not_valid

        if options.is_ is not None and length != options.is_:
            template, count = options.wrong_length or self.wrong_length, options.is_
        elif options.minimum is not None and length < options.minimum:
            template, count = options.too_short or self.too_short, options.minimum
        elif options.maximum is not None and length > options.maximum:
            template, count = options.too_long or self.too_long, options.maximum
        else:
            return None
        return options.message or format(template, {"count": count})


_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INTEGER = re.compile(r"^[+-]?\d+$")
_HEX = re.compile(r"^0[xX][0-9a-fA-F]+$")


def to_number(text: str) -> float | int:
    """Read a numeric-looking string the lenient way; NaN when it is not one."""
    text = text.strip()
    if _INTEGER.match(text):
        return int(text)
    if _NUMBER.match(text):
        return float(text)
    if _HEX.match(text):
        return int(text, 16)
    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    return math.nan


class NumericalityValidator(ConstraintValidator):
    """Numeric type, integer, range, divisibility and parity checks.

    Numeric-looking strings are read as numbers for the comparison unless
    ``no_strings`` is set; ``strict`` additionally rejects loosely formatted
    strings such as ``"01"`` or ``" 5"``. The attribute value itself is
    never modified.
    """

    options_model = NumericalityOptions
    name = "numericality"
    not_valid = "is not a number"
    not_valid_strict = "must be a valid number"
    not_integer = "must be an integer"
    not_comparable = "must be %{type} %{count}"
    not_odd = "must be odd"
    not_even = "must be even"

    checks: tuple[tuple[str, Callable[[Any, Any], bool]], ...] = (
        ("greater_than", operator.gt),
        ("greater_than_or_equal_to", operator.ge),
        ("equal_to", operator.eq),
        ("less_than_or_equal_to", operator.le),
        ("less_than", operator.lt),
        ("divisible_by", lambda value, count: value % count == 0),
    )

    def check(self, value, options, attribute, attributes, global_options):
        prettifier = self._prettifier(options, global_options)

        if is_string(value) and options.strict:
            pattern = r"^-?(0|[1-9]\d*)" + ("" if options.only_integer else r"(\.\d+)?") + "$"
            if not re.fullmatch(pattern, value):
                return options.message or options.not_valid or self.not_valid_strict

        if not options.no_strings and is_string(value) and not is_empty(value):
            value = to_number(value)

        if not is_number(value):
            return options.message or options.not_valid or self.not_valid

        if options.only_integer and not is_integer(value):
            return options.message or options.not_integer or self.not_integer

        for check_name, compare in self.checks:
            count = getattr(options, check_name)
            if is_number(count) and not compare(value, count):
                template = getattr(options, f"not_{check_name}") or self.not_comparable
                return options.message or format(
                    template, {"count": count, "type": prettifier(check_name)}
                )

        if options.odd and value % 2 != 1:
            return options.message or options.not_odd or self.not_odd
        if options.even and value % 2 != 0:
            return options.message or options.not_even or self.not_even
        return None


class DateTimeValidator(ConstraintValidator):
    """Value must parse as a date-time, optionally within ``earliest``/``latest``.

    ``parse`` and ``format_date`` can be swapped per instance to plug in a
    different date library.
    """

    options_model = DateTimeOptions
    name = "datetime"
    not_valid = "must be a valid date"
    too_early = "must be no earlier than %{date}"
    too_late = "must be no later than %{date}"

    def __init__(
        self,
        defaults: Mapping[str, Any] | None = None,
        parse: Callable[[Any, Any], datetime | None] | None = None,
        format_date: Callable[[datetime, Any], str] | None = None,
    ):
        super().__init__(defaults)
        if parse is not None:
            self.parse = parse
        if format_date is not None:
            self.format_date = format_date

    def parse(self, value: Any, options: Any) -> datetime | None:
        """Parse value into a naive UTC datetime, or None when it is not a date."""
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            return datetime.combine(value, time())
        elif is_number(value):
            try:
                return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
            except (OverflowError, OSError, ValueError):
                return None
        elif is_string(value) and not is_empty(value):
            try:
                parsed = dateutil_parser.parse(value)
            except (ValueError, OverflowError):
                return None
        else:
            return None

        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    def format_date(self, value: datetime, options: Any) -> str:
        """Render a parsed date for messages."""
        if options.date_only:
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")

    def _bound(self, bound: Any, options: Any, key: str) -> datetime | None:
        if bound is None:
            return None
        parsed = self.parse(bound, options)
        if parsed is None:
            raise InvalidConstraintError(
                f"Could not parse {key} bound {bound!r}",
                context={"validator": self.name, key: bound},
            )
        return parsed

    def check(self, value, options, attribute, attributes, global_options):
        parsed = self.parse(value, options)
        if parsed is None or (options.date_only and parsed.time() != time()):
            template = options.not_valid or options.message or self.not_valid
            return format(template, {"value": value})

        earliest = self._bound(options.earliest, options, "earliest")
        latest = self._bound(options.latest, options, "latest")

        if earliest is not None and parsed < earliest:
            template = options.too_early or options.message or self.too_early
            return format(
                template,
                {"value": self.format_date(parsed, options), "date": self.format_date(earliest, options)},
            )
        if latest is not None and parsed > latest:
            template = options.too_late or options.message or self.too_late
            return format(
                template,
                {"value": self.format_date(parsed, options), "date": self.format_date(latest, options)},
            )
        return None


class DateValidator(DateTimeValidator):
    """``datetime`` restricted to whole days."""

    name = "date"

    def check(self, value, options, attribute, attributes, global_options):
        options = options.model_copy(update={"date_only": True})
        return super().check(value, options, attribute, attributes, global_options)


class FormatValidator(ConstraintValidator):
    """The whole string value must match a pattern."""

    options_model = FormatOptions
    name = "format"
    message = "is invalid"

    def check(self, value, options, attribute, attributes, global_options):
        pattern = options.compile()
        message = options.message or self.message
        if not is_string(value):
            return message
        if pattern.fullmatch(value) is None:
            return message
        return None


class InclusionValidator(ConstraintValidator):
    """Value must be one of ``within``."""

    options_model = MembershipOptions
    name = "inclusion"
    message = "^%{value} is not included in the list"

    def check(self, value, options, attribute, attributes, global_options):
        if contains(options.within, value):
            return None
        return format(options.message or self.message, {"value": value})


class ExclusionValidator(ConstraintValidator):
    """Value must not be one of ``within``.

    When ``within`` is a mapping, the label of the restricted value is
    used in the message.
    """

    options_model = MembershipOptions
    name = "exclusion"
    message = "^%{value} is restricted"

    def check(self, value, options, attribute, attributes, global_options):
        if not contains(options.within, value):
            return None
        label = options.within[value] if is_hash(options.within) else value
        return format(options.message or self.message, {"value": label})


class EqualityValidator(ConstraintValidator):
    """Value must equal another attribute's value."""

    options_model = EqualityOptions
    name = "equality"
    message = "is not equal to %{attribute}"

    @staticmethod
    def strict_equals(first: Any, second: Any) -> bool:
        """Equal values of the same kind; numbers compare across int/float."""
        if is_number(first) and is_number(second):
            return first == second
        return type(first) is type(second) and first == second

    def check(self, value, options, attribute, attributes, global_options):
        if is_empty(options.attribute) or not is_string(options.attribute):
            raise InvalidConstraintError(
                "The attribute must be a non empty string",
                context={"validator": self.name, "attribute": attribute},
            )
        other = get_deep_object_value(attributes, options.attribute)
        comparator = options.comparator or self.strict_equals
        if comparator(value, other):
            return None
        prettifier = self._prettifier(options, global_options)
        return format(options.message or self.message, {"attribute": prettifier(options.attribute)})


class EmailValidator(ConstraintValidator):
    """Value must be a syntactically valid email address (no DNS lookups)."""

    options_model = EmailOptions
    name = "email"
    message = "is not a valid email"

    def check(self, value, options, attribute, attributes, global_options):
        message = options.message or self.message
        if not is_string(value):
            return message
        try:
            validate_email(value, check_deliverability=False, test_environment=True)
        except EmailNotValidError:
            return message
        return None


class UrlValidator(ConstraintValidator):
    """Value must be an absolute URL with an accepted scheme.

    Private and loopback IPv4 hosts, and hosts without a top-level domain
    (``localhost``), are rejected unless ``allow_local`` is set.
    """

    options_model = UrlOptions
    name = "url"
    message = "is not a valid url"
    default_schemes = ("http", "https")

    def _schemes(self, schemes: Any) -> str:
        if schemes is None:
            schemes = self.default_schemes
        if isinstance(schemes, re.Pattern):
            return schemes.pattern
        if is_string(schemes):
            schemes = [schemes]
        return "|".join(re.escape(scheme) for scheme in schemes)

    def pattern(self, options: Any) -> re.Pattern:
        """Build the URL pattern for the given options."""
        regex = "^(?:(?:" + self._schemes(options.schemes) + ")://)(?:\\S+(?::\\S*)?@)?(?:"
        tld = "(?:\\.(?:[a-z\\u00a1-\\uffff]{2,}))"

        if options.allow_local:
            tld += "?"
        else:
            regex += (
                "(?!(?:10|127)(?:\\.\\d{1,3}){3})"
                "(?!(?:169\\.254|192\\.168)(?:\\.\\d{1,3}){2})"
                "(?!172\\.(?:1[6-9]|2\\d|3[0-1])(?:\\.\\d{1,3}){2})"
            )

        regex += (
            "(?:[1-9]\\d?|1\\d\\d|2[01]\\d|22[0-3])"
            "(?:\\.(?:1?\\d{1,2}|2[0-4]\\d|25[0-5])){2}"
            "(?:\\.(?:[1-9]\\d?|1\\d\\d|2[0-4]\\d|25[0-4]))"
            "|"
            "(?:(?:[a-z\\u00a1-\\uffff0-9]-*)*[a-z\\u00a1-\\uffff0-9]+)"
            "(?:\\.(?:[a-z\\u00a1-\\uffff0-9]-*)*[a-z\\u00a1-\\uffff0-9]+)*"
            + tld
            + ")"
            "(?::\\d{2,5})?"
            "(?:[/?#]\\S*)?"
            "$"
        )

        if options.allow_data_url:
            media_type = "\\w+\\/[-+.\\w]+(?:;[\\w=]+)*"
            url_chars = "[A-Za-z0-9-_.!~\\*'();\\/?:@&=+$,%]*"
            data_url = "data:(?:" + media_type + ")?(?:;base64)?," + url_chars
            regex = "(?:" + regex + ")|(?:^" + data_url + "$)"

        return re.compile(regex, re.IGNORECASE)

    def check(self, value, options, attribute, attributes, global_options):
        message = options.message or self.message
        if not is_string(value):
            return message
        if self.pattern(options).fullmatch(value) is None:
            return message
        return None


class TypeValidator(ConstraintValidator):
    """Value must be of a named type, or satisfy a predicate."""

    options_model = TypeOptions
    name = "type"
    message = "must be of type %{type}"

    types: Dict[str, Callable[[Any], bool]] = {
        "object": is_hash,
        "array": is_array,
        "integer": is_integer,
        "number": is_number,
        "string": is_string,
        "date": is_date,
        "boolean": is_boolean,
    }

    def check(self, value, options, attribute, attributes, global_options):
        expected = options.type
        if callable(expected):
            matches = expected(value)
            type_name = getattr(expected, "__name__", "custom")
        elif expected in self.types:
            matches = self.types[expected](value)
            type_name = expected
        else:
            raise InvalidConstraintError(
                f"Could not find validator for type {expected}",
                context={"validator": self.name, "type": expected},
            )
        if matches:
            return None
        return format(options.message or self.message, {"type": type_name})


def builtin_validators() -> Dict[str, Validator]:
    """Fresh instances of every built-in validator keyed by constraint name."""
    return {
        "presence": PresenceValidator(),
        "length": LengthValidator(),
        "numericality": NumericalityValidator(),
        "datetime": DateTimeValidator(),
        "date": DateValidator(),
        "format": FormatValidator(),
        "inclusion": InclusionValidator(),
        "exclusion": ExclusionValidator(),
        "equality": EqualityValidator(),
        "email": EmailValidator(),
        "url": UrlValidator(),
        "type": TypeValidator(),
    }


__all__ = [
    "ConstraintValidator",
    "DateTimeValidator",
    "DateValidator",
    "EmailValidator",
    "EqualityValidator",
    "ExclusionValidator",
    "FormatValidator",
    "FunctionValidator",
    "InclusionValidator",
    "LengthValidator",
    "NumericalityValidator",
    "PresenceValidator",
    "TypeValidator",
    "UrlValidator",
    "Validator",
    "builtin_validators",
    "to_number",
]
