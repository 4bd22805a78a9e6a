"""Validation engine: runs constraint sets against attributes.

Example:
    ```python
    from dataknobs_validate import validate

    constraints = {
        "username": {"presence": True, "length": {"minimum": 3}},
        "password": {"presence": True},
        "confirm": {"equality": "password"},
    }
    validate({"username": "ab", "password": "x", "confirm": "y"}, constraints)
    # {'username': ['Username is too short (minimum is 3 characters)'],
    #  'confirm': ['Confirm is not equal to password']}
    ```

The synchronous path evaluates every constraint in declaration order. The
asynchronous path calls every validator up front, runs all returned
awaitables concurrently, and joins them once before formatting.

Validation failures come back as the formatted result; faults (unknown
constraint names, malformed specs, validators that raise) are raised.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable, Iterator

from dataknobs_validate.exceptions import (
    AsyncValidatorError,
    InvalidConstraintError,
    ValidateError,
    ValidatorExecutionError,
)
from dataknobs_validate.formatting import format, prettify, stringify_value
from dataknobs_validate.options import AsyncValidateOptions, ValidateOptions, merge_options
from dataknobs_validate.registry import FormatterRegistry, ValidatorRegistry
from dataknobs_validate.result import ErrorDetail
from dataknobs_validate.utils import (
    capitalize,
    clean_attributes,
    get_deep_object_value,
    is_array,
    is_empty,
    is_hash,
    is_promise,
    result,
)
from dataknobs_validate.validators import Validator

logger = logging.getLogger(__name__)

OptionsLike = ValidateOptions | Mapping[str, Any] | None


class ValidationEngine:
    """Owns a validator registry, a formatter registry and default options.

    Args:
        validators: Validator registry (a fresh one with the built-ins if omitted)
        formatters: Formatter registry (a fresh one with the built-ins if omitted)
        options: Defaults for ``validate``
        async_options: Defaults for ``validate_async``
        single_options: Defaults for ``single``
    """

    def __init__(
        self,
        validators: ValidatorRegistry | None = None,
        formatters: FormatterRegistry | None = None,
        options: OptionsLike = None,
        async_options: OptionsLike = None,
        single_options: OptionsLike = None,
    ):
        self.validators = validators if validators is not None else ValidatorRegistry()
        self.formatters = formatters if formatters is not None else FormatterRegistry()
        self.options = merge_options(ValidateOptions(), options)
        self.async_options = merge_options(AsyncValidateOptions(), async_options)
        self.single_options = merge_options(ValidateOptions(), single_options)
        logger.debug(
            f"Created validation engine with {self.validators.count()} validators "
            f"and {self.formatters.count()} formatters"
        )

    # Extension points

    def register_validator(
        self,
        name: str,
        validator: Validator | Callable[..., Any],
        validates_absent: bool | None = None,
    ) -> Validator:
        """Add or replace the validator behind a constraint name."""
        return self.validators.register_validator(name, validator, validates_absent)

    def register_formatter(self, name: str, formatter: Callable[[list], Any]) -> None:
        """Add or replace a result formatter usable as the ``format`` option."""
        self.formatters.register_formatter(name, formatter)

    # Entry points

    def validate(
        self,
        attributes: Any,
        constraints: Mapping[str, Any] | None,
        options: OptionsLike = None,
        **overrides: Any,
    ) -> Any:
        """Validate attributes synchronously.

        Args:
            attributes: Mapping of attribute name to value
            constraints: Mapping of attribute name to constraint set
            options: ``ValidateOptions`` or a mapping of option values
            **overrides: Individual option values (``format="flat"`` ...)

        Returns:
            None when every constraint passes, otherwise the formatted errors

        Raises:
            ConfigurationError: For unknown constraints, malformed specs, or
                validators that return awaitables
            ValidatorExecutionError: If a validator raises
        """
        opts = merge_options(self.options, options, overrides)
        details: list[ErrorDetail] = []
        try:
            for detail in self._run_validations(attributes, constraints, opts):
                details.append(detail)
        except BaseException:
            for detail in details:
                if is_promise(detail.error):
                    _discard(detail.error)
            raise

        pending = [detail for detail in details if is_promise(detail.error)]
        if pending:
            for detail in pending:
                _discard(detail.error)
            raise AsyncValidatorError(
                "Use validate_async if you want support for awaitable validators",
                context={"validators": [f"{d.attribute}.{d.validator}" for d in pending]},
            )

        return self.process_validation_results(details, opts)

    async def validate_async(
        self,
        attributes: Any,
        constraints: Mapping[str, Any] | None,
        options: OptionsLike = None,
        **overrides: Any,
    ) -> Any:
        """Validate attributes, awaiting any validator that returns an awaitable.

        Every validator is started before any is awaited, so slow checks
        (e.g. a remote uniqueness lookup) overlap. A validation failure
        resolves normally with the formatted errors; only faults raise.
        When one evaluation faults, the others still run to completion
        before the fault is raised.

        Args:
            attributes: Mapping of attribute name to value
            constraints: Mapping of attribute name to constraint set
            options: ``AsyncValidateOptions`` or a mapping of option values
            **overrides: Individual option values

        Returns:
            None when every constraint passes, otherwise the formatted errors
        """
        opts = merge_options(self.async_options, options, overrides)
        if opts.clean_attributes:
            attributes = clean_attributes(attributes, constraints)

        details: list[ErrorDetail] = []
        pending: list[ErrorDetail] = []
        try:
            for detail in self._run_validations(attributes, constraints, opts, defer_faults=True):
                if is_promise(detail.error):
                    detail.error = asyncio.ensure_future(detail.error)
                    pending.append(detail)
                details.append(detail)
        except BaseException:
            for detail in pending:
                detail.error.cancel()
            await asyncio.gather(*(detail.error for detail in pending), return_exceptions=True)
            raise

        logger.debug(f"Awaiting {len(pending)} of {len(details)} evaluations")
        await self._wait_for_results(pending)

        errors = self._collect_errors(details, opts)
        if opts.wrap_errors is not None:
            errors = opts.wrap_errors(errors, opts, attributes, constraints)
        return self._format_errors(errors, opts)

    def single(
        self,
        value: Any,
        constraints: Mapping[str, Any],
        options: OptionsLike = None,
        **overrides: Any,
    ) -> list[Any] | None:
        """Validate one bare value against one constraint set.

        Returns:
            None when the value passes, otherwise a flat list of messages
            without attribute-name prefixes
        """
        opts = merge_options(
            self.single_options,
            options,
            overrides,
            {"format": "flat", "full_messages": False},
        )
        return self.validate({"single": value}, {"single": constraints}, opts)

    # Pipeline

    def _run_validations(
        self,
        attributes: Any,
        constraints: Mapping[str, Any] | None,
        options: ValidateOptions,
        defer_faults: bool = False,
    ) -> Iterator[ErrorDetail]:
        """Evaluate every declared constraint, yielding one record per evaluation.

        With ``defer_faults`` a validator that raises does not stop the run:
        its record carries a failed future, so evaluations still to come are
        launched and the fault surfaces when the futures are joined.
        Configuration faults are always raised immediately.
        """
        if not constraints:
            return
        if not is_hash(constraints):
            raise InvalidConstraintError(
                f"Constraints must be a mapping, got {type(constraints).__name__}"
            )

        for attribute, constraint_set in constraints.items():
            value = get_deep_object_value(attributes, attribute)
            constraint_set = result(constraint_set, value, attributes, attribute, options, constraints)
            if constraint_set is None or constraint_set is False:
                continue
            if not is_hash(constraint_set):
                raise InvalidConstraintError(
                    f"Constraint set for '{attribute}' must be a mapping, "
                    f"got {type(constraint_set).__name__}",
                    context={"attribute": attribute},
                )

            for name, spec in constraint_set.items():
                validator = self.validators.lookup(name)
                spec = result(spec, value, attributes, attribute, options, constraints)
                if spec is None or spec is False:
                    continue

                try:
                    error = self._evaluate(validator, name, value, spec, attribute, attributes, options)
                except ValidatorExecutionError as e:
                    if not defer_faults:
                        raise
                    error = asyncio.get_running_loop().create_future()
                    error.set_exception(e)
                yield ErrorDetail(
                    attribute=attribute,
                    value=value,
                    validator=name,
                    options=spec,
                    attributes=attributes,
                    global_options=options,
                    error=error,
                )
                if options.stop_at_first_error and not is_promise(error) and not is_empty(error):
                    break

    def _evaluate(
        self,
        validator: Validator,
        name: str,
        value: Any,
        spec: Any,
        attribute: str,
        attributes: Any,
        options: ValidateOptions,
    ) -> Any:
        if value is None and not validator.validates_absent:
            return None
        try:
            return validator(value, spec, attribute, attributes, options)
        except ValidateError:
            raise
        except Exception as e:
            logger.error(f"Validator '{name}' failed on attribute '{attribute}': {e}")
            raise ValidatorExecutionError(
                f"Validator '{name}' raised {type(e).__name__} for attribute '{attribute}'",
                context={"attribute": attribute, "validator": name},
            ) from e

    async def _wait_for_results(self, pending: list[ErrorDetail]) -> None:
        """Join every outstanding evaluation, then surface the first fault."""
        if not pending:
            return

        outcomes = await asyncio.gather(
            *(detail.error for detail in pending), return_exceptions=True
        )

        fault: tuple[ErrorDetail, BaseException] | None = None
        for detail, outcome in zip(pending, outcomes):
            if isinstance(outcome, BaseException):
                detail.error = None
                if fault is None:
                    fault = (detail, outcome)
            else:
                detail.error = outcome

        if fault is None:
            return

        detail, exc = fault
        if isinstance(exc, ValidateError) or not isinstance(exc, Exception):
            raise exc
        logger.error(f"Validator '{detail.validator}' failed on attribute '{detail.attribute}': {exc}")
        raise ValidatorExecutionError(
            f"Validator '{detail.validator}' raised {type(exc).__name__} "
            f"for attribute '{detail.attribute}'",
            context={"attribute": detail.attribute, "validator": detail.validator},
        ) from exc

    def process_validation_results(
        self, details: list[ErrorDetail], options: ValidateOptions
    ) -> Any:
        """Turn raw evaluation records into the caller-facing result."""
        return self._format_errors(self._collect_errors(details, options), options)

    def _collect_errors(
        self, details: list[ErrorDetail], options: ValidateOptions
    ) -> list[ErrorDetail]:
        """Drop passes and split multi-message results into one record each."""
        errors: list[ErrorDetail] = []
        for detail in details:
            if is_empty(detail.error):
                continue
            if is_array(detail.error):
                errors.extend(
                    detail.with_error(message) for message in detail.error if not is_empty(message)
                )
            else:
                errors.append(detail)

        if options.stop_at_first_error:
            seen: set[str] = set()
            first_only = []
            for error in errors:
                if error.attribute not in seen:
                    seen.add(error.attribute)
                    first_only.append(error)
            errors = first_only
        return errors

    def _convert_error_messages(
        self, errors: list[ErrorDetail], options: ValidateOptions
    ) -> list[ErrorDetail]:
        """Resolve message callables, add attribute prefixes, fill ``%{value}``."""
        prettifier = options.prettify or prettify
        converted = []
        for error in errors:
            message = result(
                error.error,
                error.value,
                error.attribute,
                error.options,
                error.attributes,
                error.global_options,
            )
            if not isinstance(message, str):
                converted.append(error.with_error(message))
                continue

            if message.startswith("^"):
                message = message[1:]
            elif options.full_messages:
                message = f"{capitalize(prettifier(error.attribute))} {message}"
            message = message.replace("\\^", "^")
            if "%{value}" in message:
                message = format(message, {"value": stringify_value(error.value, prettifier)})
            converted.append(error.with_error(message))
        return converted

    def _format_errors(self, errors: list[ErrorDetail], options: ValidateOptions) -> Any:
        formatter = self.formatters.lookup(options.format)
        if not errors:
            return None
        formatted = formatter(self._convert_error_messages(errors, options))
        if is_empty(formatted):
            return None
        return formatted


def _discard(awaitable: Any) -> None:
    if inspect.iscoroutine(awaitable):
        awaitable.close()
    elif isinstance(awaitable, asyncio.Future):
        awaitable.cancel()


_default_engine: ValidationEngine | None = None
_default_lock = threading.Lock()


def get_default_engine() -> ValidationEngine:
    """The engine used by the module-level functions, created on first use."""
    global _default_engine
    with _default_lock:
        if _default_engine is None:
            _default_engine = ValidationEngine()
        return _default_engine


def set_default_engine(engine: ValidationEngine | None) -> None:
    """Replace the default engine; None resets it to a fresh one on next use."""
    global _default_engine
    with _default_lock:
        _default_engine = engine


def validate(
    attributes: Any,
    constraints: Mapping[str, Any] | None,
    options: OptionsLike = None,
    **overrides: Any,
) -> Any:
    """``ValidationEngine.validate`` on the default engine."""
    return get_default_engine().validate(attributes, constraints, options, **overrides)


async def validate_async(
    attributes: Any,
    constraints: Mapping[str, Any] | None,
    options: OptionsLike = None,
    **overrides: Any,
) -> Any:
    """``ValidationEngine.validate_async`` on the default engine."""
    return await get_default_engine().validate_async(attributes, constraints, options, **overrides)


def single(
    value: Any,
    constraints: Mapping[str, Any],
    options: OptionsLike = None,
    **overrides: Any,
) -> list[Any] | None:
    """``ValidationEngine.single`` on the default engine."""
    return get_default_engine().single(value, constraints, options, **overrides)


def register_validator(
    name: str,
    validator: Validator | Callable[..., Any],
    validates_absent: bool | None = None,
) -> Validator:
    """Register a validator on the default engine."""
    return get_default_engine().register_validator(name, validator, validates_absent)


def register_formatter(name: str, formatter: Callable[[list], Any]) -> None:
    """Register a formatter on the default engine."""
    get_default_engine().register_formatter(name, formatter)


__all__ = [
    "ValidationEngine",
    "get_default_engine",
    "register_formatter",
    "register_validator",
    "set_default_engine",
    "single",
    "validate",
    "validate_async",
]
