"""
Custom exceptions for the extraction pipeline with structured error context.

This module provides the exception hierarchy used by the checkpoint store,
the dedup loader, the run coordinator and the per-unit processor. Each
exception includes context information for debugging and monitoring.

Exception Hierarchy:
    PipelineException (base)
    ├── ExtractionError
    │   └── UnitProcessingError
    ├── LoadError
    │   ├── DatabaseError
    │   │   └── TransientStoreError
    │   └── RecordConflictError
    ├── CheckpointError
    ├── FatalConfigurationError
    ├── RunInProgressError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)


class PipelineException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (owner, unit, table, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(PipelineException):
    """
    Mixin for errors where the caller should retry.

    Use this for transient errors like:
    - Database connection drops
    - Lock timeouts
    - Store temporarily unreachable
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        super().__init__(message, context, original_exception)
        self.max_retries = max_retries
        self.retry_delay = retry_delay


class NonRetryableError(PipelineException):
    """
    Mixin for errors that retrying will not fix.

    Use this for permanent errors like:
    - Missing owner id or malformed work-unit source
    - Invalid input data format
    - A run already in progress for the same owner
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(PipelineException):
    """Base exception for feature extraction failures."""
    pass


class UnitProcessingError(ExtractionError):
    """
    Raised when the extractor or its writes fail for a single work unit.

    The coordinator logs it, marks the unit done with a FAILED outcome and
    moves on to the next unit.

    Context should include:
        - owner_id: Owner of the run
        - unit_id: Work unit that failed
        - phase: "extract" or "write"
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(PipelineException):
    """Base exception for storage write failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (SELECT, INSERT, UPSERT, DELETE)
        - table_name: Name of the table
    """
    pass


class RecordConflictError(LoadError):
    """
    Natural-key uniqueness violation detected at storage time.

    Two writers can both pass the existence check for the same natural key;
    the loser of that race lands here. Always a benign duplicate.

    Context should include:
        - table_name: Target table
        - natural_key: The colliding key values
    """
    pass


class TransientStoreError(RetryableError, DatabaseError):
    """Checkpoint store or target database temporarily unreachable."""
    pass


# ============================================================================
# Checkpoint / Run Errors
# ============================================================================

class CheckpointError(PipelineException):
    """
    Exception raised when checkpoint management fails.

    Context should include:
        - owner_id: Owner of the checkpoint
        - operation: Operation that failed (load, save, clear)
    """
    pass


class FatalConfigurationError(NonRetryableError):
    """Run cannot start: missing owner id, bad interval or malformed source."""
    pass


class RunInProgressError(NonRetryableError):
    """Another run for the same owner already holds the single-flight guard."""
    pass


# ============================================================================
# SQLAlchemy classification
# ============================================================================

def wrap_database_error(
    exc: Exception,
    message: str,
    context: Optional[Dict[str, Any]] = None
) -> PipelineException:
    """
    Map a SQLAlchemy/DBAPI exception onto the pipeline taxonomy.

    IntegrityError -> RecordConflictError, connectivity problems ->
    TransientStoreError, anything else -> DatabaseError.
    """
    if isinstance(exc, PipelineException):
        return exc
    if isinstance(exc, IntegrityError):
        return RecordConflictError(message, context=context, original_exception=exc)
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError)):
        return TransientStoreError(message, context=context, original_exception=exc)
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransientStoreError(message, context=context, original_exception=exc)
    if isinstance(exc, OSError):
        return TransientStoreError(message, context=context, original_exception=exc)
    return DatabaseError(message, context=context, original_exception=exc)
