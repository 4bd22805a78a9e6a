"""Registries of named validators and result formatters.

A registry is an explicit object owned by a ``ValidationEngine``; there is
no hidden module-level singleton. Each engine can be handed its own
registries, or build fresh ones pre-populated with the built-ins.

Example:
    ```python
    from dataknobs_validate.registry import ValidatorRegistry

    registry = ValidatorRegistry()
    registry.register_validator("even", lambda value, spec, *args: None if value % 2 == 0 else "is odd")
    registry.lookup("even")
    ```
"""

import logging
import threading
from typing import Any, Callable, Dict, Generic, List, TypeVar

from dataknobs_validate.exceptions import (
    NotFoundError,
    OperationError,
    UnknownFormatterError,
    UnknownValidatorError,
)
from dataknobs_validate.formatting import builtin_formatters
from dataknobs_validate.validators import FunctionValidator, Validator, builtin_validators

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Registry(Generic[T]):
    """Thread-safe registry for managing named items.

    Registration is expected to happen during setup; lookups taken while
    validating still go through the lock so a late registration can never
    be observed half-applied.

    Args:
        name: Name for this registry instance

    Example:
        ```python
        registry = Registry[str]("my_registry")
        registry.register("key1", "value1")
        registry.get("key1")
        # 'value1'
        ```
    """

    def __init__(self, name: str):
        self._name = name
        self._items: Dict[str, T] = {}
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        """Get registry name."""
        return self._name

    def register(
        self,
        key: str,
        item: T,
        allow_overwrite: bool = False,
    ) -> None:
        """Register an item by key.

        Args:
            key: Unique identifier for the item
            item: Item to register
            allow_overwrite: Whether to allow overwriting existing items

        Raises:
            OperationError: If item already exists and allow_overwrite is False
        """
        with self._lock:
            if not allow_overwrite and key in self._items:
                raise OperationError(
                    f"Item '{key}' already registered in {self._name}",
                    context={"key": key, "registry": self._name},
                )

            self._items[key] = item

    def get(self, key: str) -> T:
        """Get an item by key.

        Raises:
            NotFoundError: If item not found
        """
        with self._lock:
            if key not in self._items:
                raise NotFoundError(
                    f"Item not found: {key}",
                    context={"key": key, "registry": self._name, "available_keys": list(self._items.keys())},
                )
            return self._items[key]

    def has(self, key: str) -> bool:
        """Check if item exists."""
        with self._lock:
            return key in self._items

    def list_keys(self) -> List[str]:
        """List all registered keys in registration order."""
        with self._lock:
            return list(self._items.keys())

    def count(self) -> int:
        """Get count of registered items."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        """Get number of registered items using len()."""
        return self.count()

    def __contains__(self, key: str) -> bool:
        """Check if item exists using 'in' operator."""
        return self.has(key)

    def __iter__(self):
        """Iterate over registered keys."""
        return iter(self.list_keys())


class ValidatorRegistry(Registry[Validator]):
    """Registry mapping constraint names to validators.

    Plain callables are wrapped in a ``FunctionValidator`` so that every
    registered item exposes the same interface, including the
    ``validates_absent`` flag.

    Args:
        name: Registry name
        include_builtins: Pre-register presence, length, numericality, ...
    """

    def __init__(self, name: str = "validators", include_builtins: bool = True):
        super().__init__(name)
        self._builtin_names: set[str] = set()
        if include_builtins:
            for key, validator in builtin_validators().items():
                self.register(key, validator)
                self._builtin_names.add(key)

    def register_validator(
        self,
        name: str,
        validator: Validator | Callable[..., Any],
        validates_absent: bool | None = None,
    ) -> Validator:
        """Add or replace the validator for a constraint name.

        Args:
            name: Constraint name used in constraint sets
            validator: A ``Validator`` instance or a callable taking
                ``(value, spec, attribute, attributes, global_options)``
            validates_absent: Also run for ``None`` values. Defaults to the
                validator's own setting (False for plain callables).

        Returns:
            The registered validator
        """
        if not isinstance(validator, Validator):
            if not callable(validator):
                raise OperationError(
                    f"Validator '{name}' must be callable, got {type(validator).__name__}",
                    context={"key": name, "registry": self._name},
                )
            validator = FunctionValidator(validator, validates_absent=bool(validates_absent))
        elif validates_absent is not None:
            validator.validates_absent = validates_absent

        with self._lock:
            if name in self._builtin_names:
                logger.warning(f"Replacing built-in validator '{name}'")
                self._builtin_names.discard(name)
            elif self.has(name):
                logger.debug(f"Replacing validator '{name}'")
            else:
                logger.debug(f"Registering validator '{name}'")
            self.register(name, validator, allow_overwrite=True)
        return validator

    def lookup(self, name: str) -> Validator:
        """Get the validator for a constraint name.

        Raises:
            UnknownValidatorError: If no validator is registered under ``name``
        """
        try:
            return self.get(name)
        except NotFoundError as e:
            raise UnknownValidatorError(
                f"Unknown validator {name}",
                context={"validator": name, "available_keys": e.context["available_keys"]},
            ) from e


class FormatterRegistry(Registry[Callable[[list], Any]]):
    """Registry mapping ``format`` option values to result formatters.

    A formatter receives the list of ``ErrorDetail`` records of one
    validation call and returns whatever the caller should see.
    """

    def __init__(self, name: str = "formatters", include_builtins: bool = True):
        super().__init__(name)
        if include_builtins:
            for key, formatter in builtin_formatters().items():
                self.register(key, formatter)

    def register_formatter(self, name: str, formatter: Callable[[list], Any]) -> None:
        """Add or replace a formatter."""
        if not callable(formatter):
            raise OperationError(
                f"Formatter '{name}' must be callable, got {type(formatter).__name__}",
                context={"key": name, "registry": self._name},
            )
        logger.debug(f"Registering formatter '{name}'")
        self.register(name, formatter, allow_overwrite=True)

    def lookup(self, name: str) -> Callable[[list], Any]:
        """Get the formatter registered under ``name``.

        Raises:
            UnknownFormatterError: If no formatter is registered under ``name``
        """
        try:
            return self.get(name)
        except NotFoundError as e:
            raise UnknownFormatterError(
                f"Unknown format {name}",
                context={"format": name, "available_keys": e.context["available_keys"]},
            ) from e


__all__ = [
    "Registry",
    "ValidatorRegistry",
    "FormatterRegistry",
]
