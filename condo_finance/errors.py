"""Domain error taxonomy for payment operations and financial reports.

Every error carries a stable machine-readable ``code`` so that an outer HTTP
or CLI adapter can map it without inspecting message text.
"""

from typing import Any, Dict, Sequence


class FinanceError(Exception):
    """Base error for the payment and financial core."""

    code = "finance_error"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Standardized error payload."""
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(FinanceError):
    """Malformed or missing fields; raised before any store mutation."""

    code = "validation_error"

    def __init__(self, message: str, fields: Sequence[str] = ()):
        self.fields = list(fields)
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["error"]["fields"] = self.fields
        return payload


class NotFoundError(FinanceError):
    """Referenced payment, condominium or unit does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidTransitionError(FinanceError):
    """Transition attempted from a terminal or incompatible state."""

    code = "invalid_transition"

    def __init__(self, message: str, current: Any = None, target: Any = None):
        self.current = current
        self.target = target
        super().__init__(message)


class ConcurrentModificationError(FinanceError):
    """Conditional update lost a race; the caller may retry with a fresh read."""

    code = "concurrent_modification"


class StoreError(FinanceError):
    """Underlying persistence failure (timeout, constraint violation, etc.)."""

    code = "store_error"


__all__ = [
    "FinanceError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "ConcurrentModificationError",
    "StoreError",
]
