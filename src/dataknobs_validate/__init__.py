"""Declarative validation of attribute mappings against constraint sets.

This package provides:

- **Engine**: Synchronous, asynchronous and single-value validation
- **Validators**: presence, length, numericality, datetime, date, format,
  inclusion, exclusion, equality, email, url and type
- **Formatters**: grouped, flat, detailed and constraint result shapes
- **Registries**: Per-engine registries for custom validators and formatters
- **Factory**: Engines built from configuration mappings or YAML files

Example:
    ```python
    from dataknobs_validate import single, validate

    validate({"email": "nope"}, {"email": {"presence": True, "email": True}})
    # {'email': ['Email is not a valid email']}

    single(7, {"numericality": {"even": True}})
    # ['must be even']
    ```
"""

from dataknobs_validate.engine import (
    ValidationEngine,
    get_default_engine,
    register_formatter,
    register_validator,
    set_default_engine,
    single,
    validate,
    validate_async,
)
from dataknobs_validate.exceptions import (
    AsyncValidatorError,
    ConfigurationError,
    InvalidConstraintError,
    NotFoundError,
    OperationError,
    UnknownFormatterError,
    UnknownValidatorError,
    ValidateError,
    ValidatorExecutionError,
)
from dataknobs_validate.factory import EngineFactory, engine_factory, load_engine
from dataknobs_validate.formatting import format, prettify
from dataknobs_validate.options import AsyncValidateOptions, ValidateOptions
from dataknobs_validate.registry import FormatterRegistry, ValidatorRegistry
from dataknobs_validate.result import ErrorDetail
from dataknobs_validate.utils import clean_attributes, get_deep_object_value
from dataknobs_validate.validators import ConstraintValidator, FunctionValidator, Validator

__version__ = "1.0.0"

__all__ = [
    # Version
    "__version__",
    # Engine
    "ValidationEngine",
    "get_default_engine",
    "set_default_engine",
    "validate",
    "validate_async",
    "single",
    "register_validator",
    "register_formatter",
    # Options
    "ValidateOptions",
    "AsyncValidateOptions",
    # Results
    "ErrorDetail",
    # Extension
    "Validator",
    "ConstraintValidator",
    "FunctionValidator",
    "ValidatorRegistry",
    "FormatterRegistry",
    # Factory
    "EngineFactory",
    "engine_factory",
    "load_engine",
    # Helpers
    "format",
    "prettify",
    "clean_attributes",
    "get_deep_object_value",
    # Exceptions
    "ValidateError",
    "ConfigurationError",
    "UnknownValidatorError",
    "UnknownFormatterError",
    "InvalidConstraintError",
    "AsyncValidatorError",
    "ValidatorExecutionError",
    "NotFoundError",
    "OperationError",
]
