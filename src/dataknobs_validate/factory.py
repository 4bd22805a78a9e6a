"""Build validation engines from configuration.

Configuration is a plain mapping (or a YAML file holding one) so engines can
be declared next to the rest of an application's settings:

```yaml
validation:
  options:
    format: flat
  async_options:
    wrap_errors: myapp.errors:ValidationFailed
  validators:
    username_free: myapp.checks:username_free
    slug:
      function: myapp.checks:slug
      validates_absent: false
  formatters:
    json: myapp.formatters:as_json
  validator_defaults:
    length:
      tooShort: "needs at least %{count} characters"
```

Functions are referenced as ``"module.path:function_name"`` strings or
passed in directly as callables.
"""

import importlib
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict

import yaml
from pydantic.alias_generators import to_camel

from dataknobs_validate.engine import ValidationEngine
from dataknobs_validate.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_CALLABLE_OPTIONS = ("prettify", "wrap_errors")


def resolve_function(func_ref: str) -> Callable[..., Any]:
    """Resolve a function reference string to a callable.

    Supports two formats:
    - "module.path:function_name" (preferred, explicit)
    - "module.path.function_name" (accepted, last segment is function)

    Raises:
        ConfigurationError: If the reference is malformed, the module cannot
            be imported, or the attribute is missing or not callable

    Example:
        ```python
        func = resolve_function("myapp.checks:username_free")
        ```
    """
    if not func_ref or not func_ref.strip():
        raise ConfigurationError(
            "Empty function reference. Expected format: 'module.path:function_name'"
        )

    func_ref = func_ref.strip()
    if ":" in func_ref:
        module_path, _, func_name = func_ref.partition(":")
    elif "." in func_ref:
        module_path, _, func_name = func_ref.rpartition(".")
    else:
        module_path, func_name = "", func_ref

    if not module_path or not func_name:
        raise ConfigurationError(
            f"Invalid function reference: '{func_ref}'. "
            f"Expected format: 'module.path:function_name'",
            context={"reference": func_ref},
        )

    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import module '{module_path}' for function reference '{func_ref}': {e}",
            context={"reference": func_ref},
        ) from e

    func = getattr(module, func_name, None)
    if func is None:
        raise ConfigurationError(
            f"Function '{func_name}' not found in module '{module_path}'",
            context={"reference": func_ref},
        )
    if not callable(func):
        raise ConfigurationError(
            f"'{func_ref}' resolved to {type(func).__name__}, which is not callable",
            context={"reference": func_ref},
        )

    logger.debug(f"Resolved function reference '{func_ref}'")
    return func


def _as_callable(ref: Any) -> Callable[..., Any]:
    if isinstance(ref, str):
        return resolve_function(ref)
    if callable(ref):
        return ref
    raise ConfigurationError(
        f"Expected a callable or a function reference, got {type(ref).__name__}"
    )


def _resolve_options(options: Mapping[str, Any] | None) -> Dict[str, Any] | None:
    if options is None:
        return None
    if not isinstance(options, Mapping):
        raise ConfigurationError(
            f"Options must be a mapping, got {type(options).__name__}"
        )
    resolved = dict(options)
    for key in _CALLABLE_OPTIONS:
        for name in (key, to_camel(key)):
            if isinstance(resolved.get(name), str):
                resolved[name] = resolve_function(resolved[name])
    return resolved


class EngineFactory:
    """Factory for creating ``ValidationEngine`` instances from configuration.

    Example:
        ```python
        factory = EngineFactory()
        engine = factory.create(
            options={"format": "flat"},
            validators={"username_free": "myapp.checks:username_free"},
        )
        ```
    """

    def create(self, **config: Any) -> ValidationEngine:
        """Create a validation engine.

        Args:
            **config: Any of ``options``, ``async_options``, ``single_options``,
                ``validators``, ``formatters`` and ``validator_defaults``

        Returns:
            A configured engine with its own registries

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        unknown = set(config) - {
            "options",
            "async_options",
            "single_options",
            "validators",
            "formatters",
            "validator_defaults",
        }
        if unknown:
            raise ConfigurationError(
                f"Unknown engine configuration keys: {', '.join(sorted(unknown))}",
                context={"keys": sorted(unknown)},
            )

        engine = ValidationEngine(
            options=_resolve_options(config.get("options")),
            async_options=_resolve_options(config.get("async_options")),
            single_options=_resolve_options(config.get("single_options")),
        )

        for name, entry in (config.get("validators") or {}).items():
            if isinstance(entry, Mapping):
                if "function" not in entry:
                    raise ConfigurationError(
                        f"Validator '{name}' configuration requires a 'function'",
                        context={"validator": name},
                    )
                validator = engine.register_validator(
                    name,
                    _as_callable(entry["function"]),
                    validates_absent=bool(entry.get("validates_absent", False)),
                )
                if entry.get("defaults"):
                    validator.defaults.update(entry["defaults"])
            else:
                engine.register_validator(name, _as_callable(entry))

        for name, entry in (config.get("formatters") or {}).items():
            engine.register_formatter(name, _as_callable(entry))

        for name, defaults in (config.get("validator_defaults") or {}).items():
            if not isinstance(defaults, Mapping):
                raise ConfigurationError(
                    f"Defaults for validator '{name}' must be a mapping",
                    context={"validator": name},
                )
            engine.validators.lookup(name).defaults.update(defaults)

        logger.info(
            f"Created validation engine: {engine.validators.count()} validators, "
            f"{engine.formatters.count()} formatters"
        )
        return engine


engine_factory = EngineFactory()


def load_engine(path: str | Path) -> ValidationEngine:
    """Create an engine from a YAML file.

    The file holds the ``EngineFactory.create`` keys either at the top level
    or under a ``validation`` key.

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot load validation config from {path}: {e}",
            context={"path": str(path)},
        ) from e

    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Validation config in {path} must be a mapping",
            context={"path": str(path)},
        )
    if "validation" in data:
        data = data["validation"] or {}

    logger.debug(f"Loading validation engine from {path}")
    return engine_factory.create(**data)


__all__ = ["EngineFactory", "engine_factory", "load_engine", "resolve_function"]
