"""
Custom Exceptions for CDC Admin
===============================

Every domain operation reports failure through one of these kinds. The API
layer maps ``code`` to an HTTP status (see ``ERROR_STATUS_CODES``) and returns
``message`` verbatim to the caller.

Usage:
    from cdc_admin.core.exceptions import ResourceNotFoundError, ConflictError

    if not batch:
        raise ResourceNotFoundError("Batch", batch_id)

    if clash:
        raise ConflictError(f"PC {pc.pc_number} is already booked for {slot} on {day}")
"""

from typing import Optional, Any, Dict


class CDCAdminError(Exception):
    """Base exception for all CDC Admin errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(CDCAdminError):
    """Malformed payload, missing field, out-of-range value or inverted dates"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION", details=details)


class HierarchyMismatchError(CDCAdminError):
    """Department, course and batch references disagree"""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="HIERARCHY_MISMATCH", details=details)


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(CDCAdminError):
    """Referenced entity does not exist"""

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


# ============================================
# State Errors (409-type)
# ============================================

class DuplicateError(CDCAdminError):
    """Unique key already taken"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="DUPLICATE", details=details)


class CapacityError(CDCAdminError):
    """Batch is full or a PC is not available for booking"""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="CAPACITY", details=details)


class ConflictError(CDCAdminError):
    """Slot taken, active project exists, or entity not in a state that allows the operation"""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="CONFLICT", details=details)


class DependencyError(CDCAdminError):
    """Delete refused because dependents still exist"""

    def __init__(self, message: str, dependents: Optional[int] = None):
        details = {"dependents": dependents} if dependents is not None else {}
        super().__init__(message, code="DEPENDENCY", details=details)


# ============================================
# Authorization Errors (403-type)
# ============================================

class AuthorizationError(CDCAdminError):
    """Principal lacks the required role or ownership"""

    def __init__(self, message: str = "Not authorized to perform this action"):
        super().__init__(message, code="UNAUTHORIZED")


# ============================================
# Internal Errors (500-type)
# ============================================

class InternalError(CDCAdminError):
    """Store or downstream failure"""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, code="INTERNAL")


class StorageError(InternalError):
    """Submission file storage failed"""

    def __init__(self, message: str):
        super().__init__(message)
        self.details["component"] = "storage"


ERROR_STATUS_CODES: Dict[str, int] = {
    "VALIDATION": 400,
    "HIERARCHY_MISMATCH": 400,
    "NOT_FOUND": 404,
    "DUPLICATE": 409,
    "CAPACITY": 409,
    "CONFLICT": 409,
    "DEPENDENCY": 409,
    "UNAUTHORIZED": 403,
    "INTERNAL": 500,
}


def status_code_for(error: CDCAdminError) -> int:
    """HTTP status for an error kind"""
    return ERROR_STATUS_CODES.get(error.code, 500)


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: CDCAdminError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "message": error.message,
        "code": error.code,
        "details": error.details,
    }
