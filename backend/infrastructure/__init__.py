"""
MNEE Gatekeeper Infrastructure Module
Configuration, errors, persistence and chain access
"""

from .errors import (
    GatekeeperError,
    ValidationError,
    MissingFieldsError,
    UnauthorizedError,
    AuthorizationError,
    NotFoundError,
    ChainVerificationError,
    ConflictError,
    DatabaseError,
    ExternalServiceError,
    ErrorCode,
    ErrorTracker,
    error_tracker,
    retry,
    register_exception_handlers,
)

from .config import (
    GatekeeperConfig,
    Environment,
    config,
    get_config,
    reload_config,
)

from .supabase_rest import SupabaseREST, QueryResult

__all__ = [
    # Errors
    "GatekeeperError",
    "ValidationError",
    "MissingFieldsError",
    "UnauthorizedError",
    "AuthorizationError",
    "NotFoundError",
    "ChainVerificationError",
    "ConflictError",
    "DatabaseError",
    "ExternalServiceError",
    "ErrorCode",
    "ErrorTracker",
    "error_tracker",
    "retry",
    "register_exception_handlers",

    # Config
    "GatekeeperConfig",
    "Environment",
    "config",
    "get_config",
    "reload_config",

    # Persistence
    "SupabaseREST",
    "QueryResult",
]
