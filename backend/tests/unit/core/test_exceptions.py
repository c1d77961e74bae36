import pytest

from cdc_admin.core.exceptions import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    DependencyError,
    DuplicateError,
    HierarchyMismatchError,
    InternalError,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
    error_response,
    status_code_for,
)


@pytest.mark.parametrize("error,status", [
    (ValidationError("bad", field="name"), 400),
    (HierarchyMismatchError("Batch does not belong to the selected course"), 400),
    (ResourceNotFoundError("Batch", "b1"), 404),
    (DuplicateError("Email already registered", field="email"), 409),
    (CapacityError("Batch is full"), 409),
    (ConflictError("PC already booked"), 409),
    (DependencyError("Cannot delete", dependents=2), 409),
    (AuthorizationError(), 403),
    (InternalError(), 500),
    (StorageError("disk full"), 500),
])
def test_status_codes(error, status):
    assert status_code_for(error) == status


def test_error_response_keeps_message_verbatim():
    body = error_response(ConflictError("PC PC17 is already booked", pc="PC17"))
    assert body["success"] is False
    assert body["message"] == "PC PC17 is already booked"
    assert body["code"] == "CONFLICT"
    assert body["details"]["pc"] == "PC17"


def test_validation_error_names_the_field():
    assert ValidationError("Deadline must be after the assigned date", field="deadline_date").details == {
        "field": "deadline_date"
    }
