from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from medclose.domain.errors import (
    ConflictError,
    MissingRoleRateError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ValidationFailureError,
)
from medclose.infrastructure.db.errors import store_errors


def test_store_error_carries_operation_and_key() -> None:
    error = NotFoundError("Cierre no encontrado", operation="get_closure", key={"closure_id": 7})
    assert error.code == "NOT_FOUND"
    assert isinstance(error, LookupError)
    assert str(error) == "Cierre no encontrado [get_closure: closure_id=7]"
    assert error.user_message.startswith("No se pudo completar la operación")


def test_input_errors_keep_message_for_display() -> None:
    error = MissingRoleRateError("principal", "Cirugía")
    assert error.user_message == "Falta definir el valor para el rol principal (Cirugía)"
    assert error.code == "MISSING_ROLE_RATE"


def test_store_errors_maps_integrity_error_to_conflict() -> None:
    with pytest.raises(ConflictError) as exc_info:
        with store_errors("ensure_closure", hospital_id=1):
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
    assert exc_info.value.operation == "ensure_closure"
    assert exc_info.value.key == {"hospital_id": 1}


def test_store_errors_maps_other_failures_to_unavailable() -> None:
    with pytest.raises(StoreUnavailableError) as exc_info:
        with store_errors("list_closings"):
            raise OperationalError("SELECT", {}, Exception("database is locked"))
    assert isinstance(exc_info.value, StoreError)


def test_store_errors_lets_domain_errors_through() -> None:
    with pytest.raises(ValidationFailureError):
        with store_errors("adjust_period"):
            raise ValidationFailureError("La fecha de inicio no puede ser posterior a la fecha de fin")
