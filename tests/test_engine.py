"""Tests for the synchronous and single-value validation paths."""

import copy
import inspect
import logging
import math

import pytest

from dataknobs_validate import (
    AsyncValidatorError,
    ConfigurationError,
    ErrorDetail,
    InvalidConstraintError,
    UnknownFormatterError,
    UnknownValidatorError,
    ValidateOptions,
    ValidationEngine,
    ValidatorExecutionError,
    get_default_engine,
    register_formatter,
    register_validator,
    single,
    validate,
)


class TestValidate:
    """Test the synchronous path."""

    def test_success_returns_none(self, engine, signup_constraints):
        attributes = {
            "username": "nicklas",
            "email": "nicklas@company.org",
            "password": "correct horse",
            "confirm_password": "correct horse",
            "age": 30,
        }
        assert engine.validate(attributes, signup_constraints) is None

    def test_grouped_errors(self, engine, signup_constraints):
        """Test the default result groups full messages by attribute."""
        attributes = {
            "username": "ab",
            "email": "not-an-email",
            "password": "short",
            "confirm_password": "different",
            "age": 16.5,
        }
        assert engine.validate(attributes, signup_constraints) == {
            "username": ["Username is too short (minimum is 3 characters)"],
            "email": ["Email is not a valid email"],
            "password": ["Password is too short (minimum is 8 characters)"],
            "confirm_password": ["Confirm password is not equal to password"],
            "age": ["Age must be an integer"],
        }

    def test_attribute_order_follows_constraints(self, engine):
        constraints = {"b": {"presence": True}, "a": {"presence": True}}
        assert list(engine.validate({}, constraints)) == ["b", "a"]

    def test_constraint_order_within_attribute(self, engine):
        """Test messages follow constraint declaration order."""
        constraints = {"code": {"length": {"is": 4}, "format": r"\d+"}}
        assert engine.validate({"code": "ab"}, constraints) == {
            "code": ["Code is the wrong length (should be 4 characters)", "Code is invalid"],
        }

    def test_missing_values_skip_validators(self, engine):
        """Test only presence-style validators see absent values."""
        constraints = {
            "name": {"length": {"minimum": 3}, "email": True, "numericality": True},
            "nickname": {"presence": True},
        }
        assert engine.validate({}, constraints) == {"nickname": ["Nickname can't be blank"]}

    def test_empty_string_not_skipped(self, engine):
        assert engine.validate({"name": ""}, {"name": {"length": {"minimum": 1}}}) == {
            "name": ["Name is too short (minimum is 1 characters)"],
        }

    def test_disabled_constraints(self, engine):
        """Test None and False specs and constraint sets are ignored."""
        constraints = {
            "name": {"presence": False, "length": None},
            "email": None,
        }
        assert engine.validate({"name": "", "email": ""}, constraints) is None

    def test_nested_attributes(self, engine):
        constraints = {
            "address.zip_code": {"presence": True},
            "address.city": {"presence": True},
        }
        attributes = {"address": {"city": "Stockholm"}}
        assert engine.validate(attributes, constraints) == {
            "address.zip_code": ["Address zip code can't be blank"],
        }

    def test_escaped_dot_in_attribute_name(self, engine):
        constraints = {"foo\\.bar": {"presence": True}}
        assert engine.validate({"foo.bar": "baz"}, constraints) is None
        assert engine.validate({"foo": {"bar": "baz"}}, constraints) == {
            "foo\\.bar": ["Foo bar can't be blank"],
        }

    def test_no_constraints(self, engine):
        assert engine.validate({"a": 1}, None) is None
        assert engine.validate({"a": 1}, {}) is None

    def test_attributes_not_mutated(self, engine, signup_constraints):
        """Test validation is side-effect free and repeatable."""
        attributes = {"username": "ab", "age": "17", "address": {"zip": None}}
        snapshot = copy.deepcopy(attributes)

        first = engine.validate(attributes, signup_constraints)
        second = engine.validate(attributes, signup_constraints)

        assert first == second
        assert attributes == snapshot

    def test_non_mapping_attributes(self, engine):
        assert engine.validate(None, {"name": {"presence": True}}) == {
            "name": ["Name can't be blank"],
        }


class TestMessages:
    """Test message post-processing."""

    def test_full_messages_disabled(self, engine):
        result = engine.validate({}, {"name": {"presence": True}}, full_messages=False)
        assert result == {"name": ["can't be blank"]}

    def test_caret_suppresses_prefix(self, engine):
        constraints = {"name": {"presence": {"message": "^Please tell us your name"}}}
        assert engine.validate({}, constraints) == {"name": ["Please tell us your name"]}

    def test_escaped_caret(self, engine):
        constraints = {"name": {"format": {"pattern": "[a-z]+", "message": "\\^ is not allowed"}}}
        assert engine.validate({"name": "a^b"}, constraints) == {"name": ["Name ^ is not allowed"]}

    def test_value_interpolation(self, engine):
        """Test ``%{value}`` is filled with the prettified value."""
        constraints = {"size": {"inclusion": {"within": ["small"], "message": "^%{value} is not a size"}}}
        assert engine.validate({"size": "extraLarge"}, constraints) == {
            "size": ["extraLarge is not a size"],
        }
        constraints = {"size": {"format": {"pattern": "[a-z]+", "message": "%{value} is odd"}}}
        assert engine.validate({"size": "extraLarge"}, constraints) == {
            "size": ["Size extra large is odd"],
        }

    def test_inclusion_default_message(self, engine):
        assert engine.validate({"size": "huge"}, {"size": {"inclusion": ["small", "medium"]}}) == {
            "size": ["huge is not included in the list"],
        }

    def test_message_callable(self, engine):
        """Test message callables get the evaluation context."""
        seen = {}

        def message(value, attribute, validator_options, attributes, global_options):
            seen.update(value=value, attribute=attribute, options=validator_options)
            return f"^{attribute} must not be {value!r}"

        constraints = {"name": {"presence": {"message": message}}}
        assert engine.validate({"name": ""}, constraints) == {"name": ["name must not be ''"]}
        assert seen["attribute"] == "name"
        assert seen["options"] == {"message": message}

    def test_custom_prettify(self, engine):
        result = engine.validate({}, {"first_name": {"presence": True}}, prettify=lambda s: s.upper())
        assert result == {"first_name": ["FIRST_NAME can't be blank"]}

    def test_prettify_receives_only_text_without_value_placeholder(self, engine):
        """Test values are not prettified unless a message asks for them."""
        seen = []

        def spy(text):
            seen.append(text)
            return text.replace("_", " ")

        constraints = {"count": {"numericality": {"greaterThan": 10}}, "tags": {"presence": True}}
        result = engine.validate({"count": 3, "tags": None}, constraints, prettify=spy)

        assert result == {"count": ["Count must be greater than 10"], "tags": ["Tags can't be blank"]}
        assert all(isinstance(text, str) for text in seen)

    def test_custom_prettify_fills_value(self, engine):
        constraints = {"size": {"exclusion": {"within": [7], "message": "^%{value} is reserved"}}}
        result = engine.validate({"size": 7}, constraints, prettify=lambda v: f"<{v}>")
        assert result == {"size": ["<7> is reserved"]}

    def test_infinite_value(self, engine):
        constraints = {"x": {"numericality": {"lessThan": 10}}}
        assert engine.validate({"x": math.inf}, constraints) == {"x": ["X must be less than 10"]}
        constraints = {"x": {"numericality": {"lessThan": 10, "notLessThan": "^%{value} is too big"}}}
        assert engine.validate({"x": math.inf}, constraints) == {"x": ["inf is too big"]}

    def test_equality_uses_prettify(self, engine):
        constraints = {"confirm": {"equality": "account.passwordHash"}}
        attributes = {"account": {"passwordHash": "x"}, "confirm": "y"}
        assert engine.validate(attributes, constraints) == {
            "confirm": ["Confirm is not equal to account password hash"],
        }


class TestFormats:
    """Test the format option."""

    def test_flat(self, engine):
        constraints = {"a": {"presence": True}, "b": {"presence": True}}
        assert engine.validate({}, constraints, format="flat") == [
            "A can't be blank",
            "B can't be blank",
        ]

    def test_detailed(self, engine):
        result = engine.validate({"age": 3}, {"age": {"numericality": {"even": True}}}, format="detailed")

        assert len(result) == 1
        detail = result[0]
        assert isinstance(detail, ErrorDetail)
        assert detail.attribute == "age"
        assert detail.value == 3
        assert detail.validator == "numericality"
        assert detail.options == {"even": True}
        assert detail.attributes == {"age": 3}
        assert detail.error == "Age must be even"

    def test_constraint(self, engine):
        constraints = {"name": {"presence": True, "length": {"minimum": 2}}}
        assert engine.validate({"name": ""}, constraints, format="constraint") == {
            "name": ["presence", "length"],
        }

    def test_unknown_format_raises_even_without_errors(self, engine):
        with pytest.raises(UnknownFormatterError):
            engine.validate({"a": "x"}, {"a": {"presence": True}}, format="xml")

    def test_custom_formatter(self, engine):
        engine.register_formatter("count", lambda errors: len(errors))
        constraints = {"a": {"presence": True}, "b": {"presence": True}}
        assert engine.validate({}, constraints, format="count") == 2
        assert engine.validate({"a": 1, "b": 1}, constraints, format="count") is None

    def test_engine_default_options(self):
        engine = ValidationEngine(options={"format": "flat", "full_messages": False})
        assert engine.validate({}, {"a": {"presence": True}}) == ["can't be blank"]
        assert engine.validate({}, {"a": {"presence": True}}, format="grouped") == {
            "a": ["can't be blank"],
        }

    def test_options_object(self, engine):
        options = ValidateOptions(format="flat")
        assert engine.validate({}, {"a": {"presence": True}}, options) == ["A can't be blank"]


class TestStopAtFirstError:
    """Test limiting each attribute to one message."""

    def test_one_message_per_attribute(self, engine):
        constraints = {
            "name": {"presence": True, "length": {"minimum": 3}},
            "code": {"length": {"is": 2}, "format": r"\d+"},
        }
        result = engine.validate({"name": "", "code": "abc"}, constraints, stop_at_first_error=True)
        assert result == {
            "name": ["Name can't be blank"],
            "code": ["Code is the wrong length (should be 2 characters)"],
        }

    def test_later_validators_not_called(self, engine):
        calls = []

        def spy(value, spec, attribute, attributes, global_options):
            calls.append(attribute)

        engine.register_validator("spy", spy)
        constraints = {"name": {"presence": True, "spy": True}}
        engine.validate({"name": ""}, constraints, stop_at_first_error=True)

        assert calls == []


class TestCustomValidators:
    """Test registering custom validators on an engine."""

    def test_register_and_use(self, engine):
        def even(value, spec, attribute, attributes, global_options):
            if value % 2:
                return spec.get("message", "must be even") if isinstance(spec, dict) else "must be even"
            return None

        engine.register_validator("even", even)
        assert engine.validate({"n": 3}, {"n": {"even": True}}) == {"n": ["N must be even"]}
        assert engine.validate({"n": 4}, {"n": {"even": True}}) is None

    def test_multiple_messages(self, engine):
        """Test a validator may return several messages."""
        engine.register_validator("many", lambda *args: ["is wrong", "", "is very wrong"])
        assert engine.validate({"x": 1}, {"x": {"many": True}}) == {
            "x": ["X is wrong", "X is very wrong"],
        }

    def test_global_options_reach_validators(self, engine):
        seen = []

        def spy(value, spec, attribute, attributes, global_options):
            seen.append(global_options.locale)

        engine.register_validator("spy", spy)
        engine.validate({"x": 1}, {"x": {"spy": True}}, locale="sv")
        assert seen == ["sv"]

    def test_validates_absent(self, engine):
        engine.register_validator("required", lambda value, *args: "is required" if value is None else None,
                                  validates_absent=True)
        assert engine.validate({}, {"x": {"required": True}}) == {"x": ["X is required"]}

    def test_replacing_builtin(self, engine):
        engine.register_validator("presence", lambda *args: "^replaced", validates_absent=True)
        assert engine.validate({}, {"x": {"presence": True}}) == {"x": ["replaced"]}

    def test_validator_defaults(self, engine):
        engine.validators.lookup("presence").defaults.update({"message": "is required"})
        assert engine.validate({}, {"x": {"presence": True}}) == {"x": ["X is required"]}

    def test_engines_isolated(self):
        first = ValidationEngine()
        second = ValidationEngine()
        first.register_validator("custom", lambda *args: "bad")

        assert first.validate({"x": 1}, {"x": {"custom": True}}) == {"x": ["X bad"]}
        with pytest.raises(UnknownValidatorError):
            second.validate({"x": 1}, {"x": {"custom": True}})


class TestCallableConstraints:
    """Test constraint sets and specs computed per call."""

    def test_constraint_set_callable(self, engine):
        def password_rules(value, attributes, attribute, options, constraints):
            if attributes.get("require_password"):
                return {"presence": True}
            return None

        constraints = {"password": password_rules}
        assert engine.validate({"require_password": False}, constraints) is None
        assert engine.validate({"require_password": True}, constraints) == {
            "password": ["Password can't be blank"],
        }

    def test_spec_callable(self, engine):
        def minimum_for_role(value, attributes, attribute, options, constraints):
            return {"minimum": 12 if attributes["role"] == "admin" else 6}

        constraints = {"password": {"length": minimum_for_role}}
        assert engine.validate({"role": "user", "password": "1234567"}, constraints) is None
        assert engine.validate({"role": "admin", "password": "1234567"}, constraints) == {
            "password": ["Password is too short (minimum is 12 characters)"],
        }


class TestFaults:
    """Test faults raise instead of producing results."""

    def test_unknown_validator(self, engine):
        with pytest.raises(UnknownValidatorError) as exc_info:
            engine.validate({"name": "x"}, {"name": {"presence": True, "nonsense": True}})

        assert "Unknown validator nonsense" in str(exc_info.value)

    def test_unknown_validator_on_missing_value(self, engine):
        """Test unknown names fault even when the value would be skipped."""
        with pytest.raises(UnknownValidatorError):
            engine.validate({}, {"name": {"nonsense": True}})

    def test_constraints_not_mapping(self, engine):
        with pytest.raises(InvalidConstraintError):
            engine.validate({}, ["presence"])

    def test_constraint_set_not_mapping(self, engine):
        with pytest.raises(InvalidConstraintError):
            engine.validate({"name": "x"}, {"name": "presence"})

    def test_malformed_spec(self, engine):
        with pytest.raises(InvalidConstraintError):
            engine.validate({"name": "x"}, {"name": {"length": {"minimum": "three"}}})

    def test_validator_exception_wrapped(self, engine, caplog):
        def broken(value, spec, attribute, attributes, global_options):
            raise RuntimeError("database unreachable")

        engine.register_validator("broken", broken)
        with caplog.at_level(logging.ERROR, logger="dataknobs_validate.engine"):
            with pytest.raises(ValidatorExecutionError) as exc_info:
                engine.validate({"name": "x"}, {"name": {"broken": True}})

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.context == {"attribute": "name", "validator": "broken"}
        assert "database unreachable" in caplog.text

    def test_collected_awaitables_closed_on_fault(self, engine):
        """Test awaitables returned before a fault are closed rather than leaked."""
        returned = []

        async def lookup():
            return None

        def remote(value, spec, attribute, attributes, global_options):
            returned.append(lookup())
            return returned[-1]

        engine.register_validator("remote", remote)
        with pytest.raises(UnknownValidatorError):
            engine.validate({"a": 1, "b": 2}, {"a": {"remote": True}, "b": {"nonsense": True}})

        assert len(returned) == 1
        assert inspect.getcoroutinestate(returned[0]) == inspect.CORO_CLOSED

    def test_async_validator_on_sync_path(self, engine):
        async def remote(value, spec, attribute, attributes, global_options):
            return None

        engine.register_validator("remote", remote)
        with pytest.raises(AsyncValidatorError):
            engine.validate({"name": "x"}, {"name": {"remote": True}})

    def test_invalid_option_value(self, engine):
        with pytest.raises(ConfigurationError) as exc_info:
            engine.validate({}, {}, full_messages="perhaps")
        assert "Invalid ValidateOptions" in str(exc_info.value)


class TestSingle:
    """Test validating one bare value."""

    def test_passes(self, engine):
        assert engine.single("hello", {"length": {"minimum": 3}}) is None

    def test_flat_messages_without_prefix(self, engine):
        assert engine.single("hi", {"length": {"minimum": 3}, "format": r"\d+"}) == [
            "is too short (minimum is 3 characters)",
            "is invalid",
        ]

    def test_absent_value(self, engine):
        assert engine.single(None, {"presence": True}) == ["can't be blank"]
        assert engine.single(None, {"email": True}) is None

    def test_format_cannot_be_overridden(self, engine):
        assert engine.single("", {"presence": True}, format="grouped", full_messages=True) == [
            "can't be blank",
        ]

    def test_unknown_validator(self, engine):
        with pytest.raises(UnknownValidatorError):
            engine.single("x", {"nonsense": True})


class TestDefaultEngine:
    """Test the module-level functions."""

    def test_validate(self, default_engine):
        assert validate({"email": "nope"}, {"email": {"email": True}}) == {
            "email": ["Email is not a valid email"],
        }

    def test_single(self, default_engine):
        assert single(7, {"numericality": {"even": True}}) == ["must be even"]

    def test_register_validator(self, default_engine):
        register_validator("shout", lambda value, *args: None if value.isupper() else "must be upper case")
        assert "shout" in default_engine.validators
        assert validate({"x": "quiet"}, {"x": {"shout": True}}) == {"x": ["X must be upper case"]}

    def test_register_formatter(self, default_engine):
        register_formatter("first", lambda errors: errors[0].error if errors else None)
        assert validate({}, {"x": {"presence": True}}, format="first") == "X can't be blank"

    def test_get_default_engine(self, default_engine):
        assert get_default_engine() is default_engine


class TestReferenceCases:
    """Test the canonical examples for each common constraint."""

    @pytest.mark.parametrize(
        "attributes, constraints, expected",
        [
            ({"name": None}, {"name": {"presence": True}}, {"name": ["Name can't be blank"]}),
            ({"name": ""}, {"name": {"presence": {"allowEmpty": True}}}, None),
            ({"tag": "ab"}, {"tag": {"length": {"minimum": 3}}}, {"tag": ["Tag is too short (minimum is 3 characters)"]}),
            ({"tag": "abc"}, {"tag": {"length": {"minimum": 3}}}, None),
            (
                {"age": "17"},
                {"age": {"numericality": {"onlyInteger": True, "greaterThanOrEqualTo": 18}}},
                {"age": ["Age must be greater than or equal to 18"]},
            ),
            ({"age": 18}, {"age": {"numericality": {"onlyInteger": True, "greaterThanOrEqualTo": 18}}}, None),
            ({"password": "x", "confirmation": "x"}, {"confirmation": {"equality": "password"}}, None),
            (
                {"password": "x", "confirmation": "y"},
                {"confirmation": {"equality": "password"}},
                {"confirmation": ["Confirmation is not equal to password"]},
            ),
        ],
    )
    def test_reference_case(self, engine, attributes, constraints, expected):
        assert engine.validate(attributes, constraints) == expected

    def test_unconstrained_attributes_ignored(self, engine):
        """Test attributes without constraints never produce messages."""
        attributes = {"name": "", "email": "nope", "age": "old"}
        assert engine.validate(attributes, {"name": {}}) is None
