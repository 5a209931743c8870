"""Error taxonomy and standardized error handling for FrameWarp.

Every failure surfaced by the engine is a FrameWarpError subclass carrying the
attempted operation and the offending parameter or dimension in ``context``,
so a host can render a user-facing message without the engine knowing how.
"""

from __future__ import annotations

import logging
import traceback
from contextlib import contextmanager
from enum import Enum
from typing import Any


class ErrorLevel(Enum):
    """Error severity levels for consistent logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class FrameWarpError(Exception):
    """Base exception class for all FrameWarp errors."""

    def __init__(
        self, message: str, cause: Exception | None = None, context: dict | None = None
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.cause:
            return f"{base_msg} (caused by: {self.cause})"
        return base_msg


class DecodeError(FrameWarpError):
    """Raised when input bytes are not a supported or consistent image container."""

    pass


class EncodeError(FrameWarpError):
    """Raised when the output format cannot represent the transformed pixels."""

    pass


class InvalidArgumentError(FrameWarpError, ValueError):
    """Raised when a transform parameter is outside its valid domain."""

    pass


class ResourceLimitExceeded(FrameWarpError):
    """Raised when decoded frames would exceed the configured memory budget."""

    pass


class OperationCancelled(FrameWarpError):
    """Raised when a cooperative cancellation request is observed."""

    pass


class BusyError(FrameWarpError):
    """Raised by the service layer when a transform job is already running."""

    pass


def handle_error(
    error: Exception,
    operation: str,
    error_type: type[FrameWarpError] = DecodeError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
    reraise: bool = True,
) -> FrameWarpError | None:
    """Standardized error handling with consistent logging and error transformation.

    Args:
        error: Original exception that occurred
        operation: Description of operation that failed
        error_type: Type of FrameWarpError to raise
        level: Logging level for the error
        context: Additional context information
        logger: Logger to use (defaults to module logger)
        reraise: Whether to reraise the transformed exception

    Returns:
        The transformed error if reraise=False, otherwise None

    Raises:
        FrameWarpError: Transformed error if reraise=True
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    message = f"Failed to {operation}: {error}"

    error_context_data = dict(context or {})
    error_context_data.update(
        {
            "operation": operation,
            "original_error_type": type(error).__name__,
            "original_error_message": str(error),
        }
    )

    transformed_error = error_type(message, cause=error, context=error_context_data)

    log_message = f"🚨 {operation.capitalize()} failed: {error}"
    context_str = ", ".join(f"{k}={v}" for k, v in error_context_data.items())
    if context_str:
        log_message += f" (context: {context_str})"

    log_func = getattr(logger, level.value)
    log_func(log_message)

    if level in [ErrorLevel.ERROR, ErrorLevel.CRITICAL]:
        logger.debug(f"Traceback for {operation}: {traceback.format_exc()}")

    if reraise:
        raise transformed_error from error
    return transformed_error


@contextmanager
def error_context(
    operation: str,
    error_type: type[FrameWarpError] = DecodeError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
) -> Any:
    """Context manager for standardized error handling.

    Usage:
        with error_context("decode image", DecodeError, context={"bytes": 3}):
            risky_operation()

    FrameWarp errors raised inside the block pass through unchanged; anything
    else is wrapped into ``error_type``.
    """
    try:
        yield
    except FrameWarpError:
        raise
    except Exception as e:
        handle_error(e, operation, error_type, level, context, logger, reraise=True)


def log_warning_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log a warning with standardized context formatting."""
    if logger is None:
        logger = logging.getLogger(__name__)

    warning_msg = f"⚠️  {message}"
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        warning_msg += f" (context: {context_str})"

    logger.warning(warning_msg)


def log_info_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log an info message with standardized context formatting."""
    if logger is None:
        logger = logging.getLogger(__name__)

    info_msg = f"ℹ️  {message}"
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        info_msg += f" (context: {context_str})"

    logger.info(info_msg)
