"""Error taxonomy shared by the calculation layer and the store layer.

Two families, so callers can tell "your input is invalid" apart from
"the system could not complete the operation":

    MedcloseError
    +-- InputError (ValueError)
    |   +-- MalformedInputError        unparseable date / instant
    |   +-- ValidationFailureError     rule violated by well-formed input
    |       +-- MissingRoleRateError   role act priced without a rate
    +-- StoreError                     carries operation + key
        +-- NotFoundError (LookupError)
        +-- ConflictError              uniqueness violation, re-read to resolve
        +-- StoreUnavailableError      transport / database failure

Every class has a machine-readable ``code`` and a ``user_message`` suitable
for display.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class MedcloseError(Exception):
    code = "MEDCLOSE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        return self.message


class InputError(MedcloseError, ValueError):
    code = "INVALID_INPUT"


class MalformedInputError(InputError):
    code = "MALFORMED_INPUT"

    def __init__(self, message: str, value: Any = None) -> None:
        super().__init__(message)
        self.value = value


class ValidationFailureError(InputError):
    code = "VALIDATION_FAILURE"


class MissingRoleRateError(ValidationFailureError):
    code = "MISSING_ROLE_RATE"

    def __init__(self, role: str, act_name: str | None = None) -> None:
        label = "principal" if role == "principal" else "ayudante"
        message = f"Falta definir el valor para el rol {label}"
        if act_name:
            message = f"{message} ({act_name})"
        super().__init__(message)
        self.role = role
        self.act_name = act_name


class StoreError(MedcloseError):
    code = "STORE_ERROR"

    def __init__(self, message: str, *, operation: str, key: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.key = dict(key or {})

    def __str__(self) -> str:
        if not self.key:
            return f"{self.message} [{self.operation}]"
        key_text = ", ".join(f"{name}={value!r}" for name, value in self.key.items())
        return f"{self.message} [{self.operation}: {key_text}]"

    @property
    def user_message(self) -> str:
        return f"No se pudo completar la operación: {self.message}"


class NotFoundError(StoreError, LookupError):
    code = "NOT_FOUND"


class ConflictError(StoreError):
    code = "CONFLICT"


class StoreUnavailableError(StoreError):
    code = "STORE_UNAVAILABLE"
