"""Error records produced by a validation run."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass
class ErrorDetail:
    """One constraint evaluated against one attribute.

    While a validation call is running ``error`` holds whatever the
    validator returned: None, a message, a list of messages, a message
    callable or (on the async path) an awaitable. After processing, each
    ``ErrorDetail`` handed to a formatter carries exactly one final message
    string.
    """

    attribute: str
    value: Any
    validator: str
    options: Any = None
    attributes: Any = None
    global_options: Any = None
    error: Any = None

    def with_error(self, error: Any) -> ErrorDetail:
        """Copy this record with a different error."""
        return replace(self, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the user-facing parts of the record."""
        return {
            "attribute": self.attribute,
            "value": self.value,
            "validator": self.validator,
            "error": self.error,
        }
