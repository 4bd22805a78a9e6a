"""Exception hierarchy for dataknobs_validate.

Validation *failures* (an attribute violating a constraint) are never
raised; they are reported in the value returned by ``validate``. The
exceptions in this module represent *faults*: the engine was misconfigured
or a validator blew up while running.

Every exception supports an optional context dictionary carrying
structured information about the fault.

Example:
    ```python
    from dataknobs_validate.exceptions import ConfigurationError, ValidateError

    try:
        validate(attributes, {"name": {"nonsense": True}})
    except ConfigurationError as e:
        logger.error(f"Bad constraints: {e}")
        logger.error(f"Context: {e.context}")
    ```
"""

from typing import Any, Dict


class ValidateError(Exception):
    """Base exception for all dataknobs_validate faults.

    Attributes:
        context: Dictionary containing contextual information about the error
        details: Alias for context

    Args:
        message: Human-readable error message
        context: Optional dictionary with error context (attribute, validator, etc.)
        details: Alternative to context (both are supported)

    Example:
        ```python
        error = ValidateError(
            "Validator failed",
            context={"attribute": "email", "validator": "uniqueness"}
        )
        str(error)
        # 'Validator failed'
        error.context
        # {'attribute': 'email', 'validator': 'uniqueness'}
        ```
    """

    def __init__(
        self,
        message: str,
        context: Dict[str, Any] | None = None,
        details: Dict[str, Any] | None = None,
    ):
        """Initialize the exception with optional context.

        Args:
            message: Error message
            context: Optional context dictionary
            details: Optional details dictionary (takes precedence over context)
        """
        super().__init__(message)
        self.context = details or context or {}
        self.details = self.context


class ConfigurationError(ValidateError):
    """Raised when constraints, options or the engine are misconfigured.

    Configuration faults are detected before (or while) validators run and
    always abort the whole validation call; no partial result is produced.
    """

    pass


class UnknownValidatorError(ConfigurationError):
    """Raised when a constraint names a validator that is not registered.

    Example:
        ```python
        raise UnknownValidatorError(
            "Unknown validator nonsense",
            context={"validator": "nonsense", "attribute": "name"}
        )
        ```
    """

    pass


class UnknownFormatterError(ConfigurationError):
    """Raised when the ``format`` option names a formatter that does not exist."""

    pass


class InvalidConstraintError(ConfigurationError):
    """Raised when a constraint spec is malformed.

    Common scenarios include:
    - A spec of the wrong shape for its constraint kind
    - An equality constraint without an attribute name
    - A format constraint without a pattern
    """

    pass


class AsyncValidatorError(ConfigurationError):
    """Raised when the synchronous path meets a validator returning an awaitable."""

    pass


class NotFoundError(ValidateError):
    """Raised when a requested registry item is not found."""

    pass


class OperationError(ValidateError):
    """Raised when a registry operation fails (e.g. duplicate registration)."""

    pass


class ValidatorExecutionError(ValidateError):
    """Raised when a validator raises an unexpected exception while running.

    The original exception is chained as ``__cause__``.

    Example:
        ```python
        try:
            await validate_async(attrs, constraints)
        except ValidatorExecutionError as e:
            print(e.context["attribute"], e.context["validator"], e.__cause__)
        ```
    """

    pass


__all__ = [
    "ValidateError",
    "ConfigurationError",
    "UnknownValidatorError",
    "UnknownFormatterError",
    "InvalidConstraintError",
    "AsyncValidatorError",
    "NotFoundError",
    "OperationError",
    "ValidatorExecutionError",
]
