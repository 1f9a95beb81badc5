"""
Global Error Handling for MNEE Gatekeeper
Typed exceptions with structured responses

Features:
- Custom exception classes carrying a machine-readable reason code
- Automatic error logging
- Structured JSON error responses
- Retry logic for external APIs
- Error tracking and aggregation
"""

import asyncio
import logging
import traceback
from datetime import datetime
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, TypeVar
from functools import wraps
from enum import Enum

from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELDS = "MISSING_FIELDS"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Business logic errors
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    CHANNEL_NOT_FOUND = "CHANNEL_NOT_FOUND"
    CHANNEL_EXISTS = "CHANNEL_EXISTS"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"

    # Chain verification failures
    TX_NOT_FOUND = "TX_NOT_FOUND"
    TX_FAILED = "TX_FAILED"
    NO_MATCHING_TRANSFER = "NO_MATCHING_TRANSFER"
    INSUFFICIENT_AMOUNT = "INSUFFICIENT_AMOUNT"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class GatekeeperError(Exception):
    """Base exception for the gatekeeper"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": self.message,
            "code": self.code.value,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class ValidationError(GatekeeperError):
    """Malformed input"""
    def __init__(self, message: str, details: Dict = None, code: ErrorCode = ErrorCode.VALIDATION_ERROR):
        super().__init__(message, code, 400, details)


class MissingFieldsError(ValidationError):
    """One or more required fields are empty"""
    def __init__(self, fields: list):
        super().__init__(
            "Missing required fields",
            {"fields": fields},
            ErrorCode.MISSING_FIELDS
        )


class UnauthorizedError(GatekeeperError):
    """Authentication required"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, ErrorCode.UNAUTHORIZED, 401)


class AuthorizationError(GatekeeperError):
    """Caller is not allowed to act on the resource"""
    def __init__(self, message: str = "Access denied"):
        super().__init__(message, ErrorCode.FORBIDDEN, 403)


class NotFoundError(GatekeeperError):
    """Resource not found"""
    def __init__(self, resource: str, identifier: str = None, code: ErrorCode = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        details = {"resource": resource}
        if identifier:
            details["id"] = identifier
        super().__init__(message, code, 404, details)


class ChainVerificationError(GatekeeperError):
    """On-chain transfer could not be verified"""

    MESSAGES = {
        ErrorCode.TX_NOT_FOUND: "Transaction not found. It may still be pending.",
        ErrorCode.TX_FAILED: "Transaction failed on chain",
        ErrorCode.NO_MATCHING_TRANSFER: "No valid token transfer found to channel wallet",
        ErrorCode.INSUFFICIENT_AMOUNT: "Insufficient payment amount",
    }

    def __init__(self, reason: ErrorCode, tx_hash: str = None, details: Dict = None):
        details = dict(details or {})
        if tx_hash:
            details["tx_hash"] = tx_hash
        super().__init__(self.MESSAGES.get(reason, "Verification failed"), reason, 400, details)
        self.reason = reason


class ConflictError(GatekeeperError):
    """Duplicate of an existing unique record"""
    def __init__(self, message: str = "Resource already exists", code: ErrorCode = ErrorCode.CONFLICT, details: Dict = None):
        # Replaying a processed payment is a business failure, not a transport conflict
        status = 400 if code == ErrorCode.ALREADY_PROCESSED else 409
        super().__init__(message, code, status, details)


class DatabaseError(GatekeeperError):
    """Database operation failed"""
    def __init__(self, message: str, original_error: Exception = None, details: Dict = None):
        details = dict(details or {})
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(message, ErrorCode.DATABASE_ERROR, 500, details)


class ExternalServiceError(GatekeeperError):
    """Messaging platform or chain RPC unreachable / erroring"""
    def __init__(self, service: str, message: str = None, status_code: int = None):
        details = {"service": service}
        if status_code:
            details["service_status_code"] = status_code
        super().__init__(
            message or f"External service '{service}' failed",
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            502,
            details
        )


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """
    In-process tally of failures served by the API, keyed by reason code
    (INSUFFICIENT_AMOUNT, ALREADY_PROCESSED, ...) so /api/health shows
    why payments are being rejected.
    """

    def __init__(self, max_recent: int = 100):
        self.recent: Deque[Dict[str, Any]] = deque(maxlen=max_recent)
        self.by_code: Dict[str, int] = {}
        self.total = 0

    def track(self, error: Exception, request_path: str = None):
        if isinstance(error, GatekeeperError):
            code = error.code.value
            server_side = error.status_code >= 500
        else:
            code = type(error).__name__
            server_side = True

        self.total += 1
        self.by_code[code] = self.by_code.get(code, 0) + 1
        self.recent.append({
            "code": code,
            "message": str(error)[:200],
            "path": request_path,
            "at": datetime.now().isoformat(),
        })

        # 4xx are the caller's problem; only our own failures are logged
        if server_side:
            logger.error(f"{code} on {request_path}: {str(error)[:200]}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_code": dict(self.by_code),
            "recent": list(self.recent)[-10:],
        }

    def clear(self):
        self.recent.clear()
        self.by_code.clear()
        self.total = 0


error_tracker = ErrorTracker()


# ============================================
# RETRY LOGIC
# ============================================

T = TypeVar('T')


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Retry an async call on the given exceptions, sleeping `delay` seconds
    (multiplied by `backoff` each time) between attempts. The last
    exception is re-raised once attempts run out.

    Usage:
        remove = retry(max_attempts=2, exceptions=(ExternalServiceError,))(gateway.remove_member)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.error(f"{name} failed after {attempt} attempts: {e}")
                        raise
                    logger.warning(f"{name} attempt {attempt}/{max_attempts} failed, retrying in {wait}s: {e}")
                    await asyncio.sleep(wait)
                    wait *= backoff

        return wrapper
    return decorator


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

async def gatekeeper_exception_handler(request: Request, exc: GatekeeperError) -> JSONResponse:
    """Handle GatekeeperError exceptions"""
    error_tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions"""
    error_tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "code": ErrorCode.BAD_REQUEST.value if exc.status_code < 500 else ErrorCode.INTERNAL_ERROR.value,
            "timestamp": datetime.now().isoformat()
        }
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the same shape as domain validation errors"""
    error = ValidationError("Invalid request body", {"errors": jsonable_errors(exc)})
    return await gatekeeper_exception_handler(request, error)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    error_tracker.track(exc, str(request.url.path))

    logger.error(f"Unhandled exception: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "code": ErrorCode.INTERNAL_ERROR.value,
            "timestamp": datetime.now().isoformat()
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
        for e in exc.errors()
    ]


def register_exception_handlers(app):
    """Register all exception handlers with FastAPI app"""
    app.add_exception_handler(GatekeeperError, gatekeeper_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
