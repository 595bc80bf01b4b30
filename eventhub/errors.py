"""
eventhub/errors.py
Centralized error handling for the rounds & judging API

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Invalid input / malformed request
- 401: Authentication missing or expired
- 403: Access forbidden (role / ownership / not assigned)
- 404: Resource does not exist
- 409: Conflict. Hard conflicts always block the operation; advisory
       conflicts carry details.can_proceed and may be overridden by the caller
- 500: Unexpected failure (data store), never caused by user input

Services raise these exceptions; the HTTP layer renders them through the
handlers installed by ``register_exception_handlers``.
"""
import logging
import uuid
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_INTERVAL = "INVALID_INTERVAL"
    OUTSIDE_EVENT_WINDOW = "OUTSIDE_EVENT_WINDOW"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    INVALID_ROLE = "INVALID_ROLE"
    INVALID_ENTRY = "INVALID_ENTRY"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"
    OWNERSHIP_VIOLATION = "OWNERSHIP_VIOLATION"
    NOT_ASSIGNED = "NOT_ASSIGNED"

    NOT_FOUND = "NOT_FOUND"

    DUPLICATE = "DUPLICATE"
    CROSS_EVENT_ROUND = "CROSS_EVENT_ROUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ROUND_CONFLICT = "ROUND_CONFLICT"
    JUDGE_QUOTA_REACHED = "JUDGE_QUOTA_REACHED"
    SCHEDULING_CONFLICT = "SCHEDULING_CONFLICT"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base API exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


# =============================================================================
# 400 Validation
# =============================================================================

class ValidationError(APIError):
    """400 Bad Request - missing or malformed input, caller-fixable"""
    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Bad Request",
            message=message,
            code=code,
            details=details
        )


class NotEligibleError(ValidationError):
    """User cannot be assigned as an event judge."""
    def __init__(self, user_id: int):
        super().__init__(
            "User must have a judge role to be assigned",
            code=ErrorCode.NOT_ELIGIBLE,
            details={"user_id": user_id}
        )


class InvalidRoleError(ValidationError):
    """Assignment role does not match the user's platform role."""
    def __init__(self, message: str = "Can only assign users with judge role as judges", details: Optional[Dict] = None):
        super().__init__(message, code=ErrorCode.INVALID_ROLE, details=details)


class InvalidEntryError(ValidationError):
    """A score entry is malformed."""
    def __init__(self, message: str, index: Optional[int] = None):
        details = {"entry_index": index} if index is not None else None
        super().__init__(message, code=ErrorCode.INVALID_ENTRY, details=details)


class RegistrationClosedError(ValidationError):
    """Self-registration is only open while a round is upcoming."""
    def __init__(self, round_id: int, round_status: str):
        super().__init__(
            "Registration is closed for this round",
            code=ErrorCode.REGISTRATION_CLOSED,
            details={"round_id": round_id, "status": round_status}
        )


# =============================================================================
# 401 / 403 Authentication and authorization
# =============================================================================

class UnauthorizedError(APIError):
    """401 Unauthorized - Authentication required"""
    def __init__(self, message: str = "Authentication required", code: str = ErrorCode.AUTH_REQUIRED):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message=message,
            code=code
        )


class ForbiddenError(APIError):
    """403 Forbidden - Access denied"""
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=code,
            details=details
        )


class NotAssignedError(ForbiddenError):
    """Judge holds no assignment on the round."""
    def __init__(self, round_id: int, judge_id: int):
        super().__init__(
            "Judge is not assigned to this round",
            code=ErrorCode.NOT_ASSIGNED,
            details={"round_id": round_id, "judge_id": judge_id}
        )


# =============================================================================
# 404
# =============================================================================

class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code
        )


# =============================================================================
# 409 Conflicts
# =============================================================================

class ConflictError(APIError):
    """
    409 Conflict.

    ``advisory`` conflicts may be overridden by the caller re-submitting
    with an explicit override; hard conflicts always block.
    """
    advisory: bool = False

    def __init__(self, message: str, code: str, details: Optional[Dict] = None):
        details = dict(details or {})
        details["can_proceed"] = self.advisory
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Conflict",
            message=message,
            code=code,
            details=details
        )


class DuplicateError(ConflictError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.DUPLICATE, details)


class CrossEventRoundError(ConflictError):
    def __init__(self, round_id: int, expected_event_id: int, actual_event_id: int):
        super().__init__(
            "Next round must belong to the same event",
            ErrorCode.CROSS_EVENT_ROUND,
            {
                "next_round_id": round_id,
                "event_id": expected_event_id,
                "next_round_event_id": actual_event_id,
            }
        )


class CapacityExceededError(ConflictError):
    def __init__(self, round_id: int, max_participants: int):
        super().__init__(
            "Round has reached maximum participant capacity",
            ErrorCode.CAPACITY_EXCEEDED,
            {"round_id": round_id, "max_participants": max_participants}
        )


class RoundConflictError(ConflictError):
    """The round's interval overlaps another round of the same event."""
    def __init__(self, conflicts: List[Dict[str, Any]]):
        super().__init__(
            "Time conflict with existing rounds",
            ErrorCode.ROUND_CONFLICT,
            {"conflicts": conflicts}
        )


class AdvisoryConflictError(ConflictError):
    advisory = True


class JudgeQuotaReachedError(AdvisoryConflictError):
    def __init__(self, round_id: int, judges_required: int):
        super().__init__(
            "Round has reached required number of judges",
            ErrorCode.JUDGE_QUOTA_REACHED,
            {"round_id": round_id, "judges_required": judges_required}
        )


class SchedulingConflictError(AdvisoryConflictError):
    def __init__(self, user_id: int, conflicts: List[Dict[str, Any]]):
        super().__init__(
            "User has scheduling conflicts",
            ErrorCode.SCHEDULING_CONFLICT,
            {"user_id": user_id, "conflicts": conflicts}
        )


# =============================================================================
# 500
# =============================================================================

class UnexpectedError(APIError):
    """500 - data store or other unexpected failure; original message preserved."""
    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.log_id = str(uuid.uuid4())[:8]
        details = {"log_id": self.log_id}
        if original is not None:
            details["cause"] = f"{type(original).__name__}: {original}"
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="Internal Error",
            message=message,
            code=ErrorCode.INTERNAL_ERROR,
            details=details
        )


# =============================================================================
# FastAPI wiring
# =============================================================================

async def api_error_handler(request: Request, exc: APIError):
    if exc.status_code >= 500:
        logger.error(f"API error on {request.url.path}: {exc.code} - {exc.message} {exc.details}")
    else:
        logger.warning(f"API error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type")
        })

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request validation failed",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": {"errors": error_details}
        }
    )


async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
