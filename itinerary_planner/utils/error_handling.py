"""
Error handling utilities for the itinerary planner.

This module provides the exception taxonomy shared by the engine and its
collaborators, plus a tenacity-backed retry decorator for transient
infrastructure failures.
"""

import functools
from collections.abc import Callable
from typing import Any, TypeVar, cast

from loguru import logger
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Type variables for function decorator typing
F = TypeVar("F", bound=Callable[..., Any])


class PlannerError(Exception):
    """Base exception class for all itinerary planner errors."""

    def __init__(self, message: str, original_error: Exception | None = None):
        """
        Initialize a PlannerError.

        Args:
            message: Error message
            original_error: The original exception that caused this error (optional)
        """
        self.original_error = original_error
        if original_error:
            message = f"{message} - Original error: {original_error!s}"
        super().__init__(message)


class ValidationError(PlannerError):
    """Error raised when a trip request or a decision is malformed."""

    pass


class ConfigurationError(PlannerError):
    """Error raised when model credentials or workflow settings are invalid."""

    pass


class NotFoundError(PlannerError):
    """Error raised when a thread has no pending checkpoint."""

    pass


class ProviderError(PlannerError):
    """Error raised when the AI completion provider fails."""

    def __init__(
        self, message: str, provider: str, original_error: Exception | None = None
    ):
        """
        Initialize a ProviderError.

        Args:
            message: Error message
            provider: Name of the completion provider
            original_error: The original exception that caused this error (optional)
        """
        self.provider = provider
        super().__init__(f"Error in {provider} provider: {message}", original_error)


class NodeExecutionError(PlannerError):
    """Error raised when a pipeline node fails."""

    def __init__(
        self, message: str, node_id: str, original_error: Exception | None = None
    ):
        """
        Initialize a NodeExecutionError.

        Args:
            message: Error message
            node_id: Identifier of the node that failed
            original_error: The original exception that caused this error (optional)
        """
        self.node_id = node_id
        super().__init__(f"Error executing node '{node_id}': {message}", original_error)


class PersistenceError(PlannerError):
    """Error raised by a checkpoint store when a write cannot be completed."""

    pass


class PersistenceWarning(UserWarning):
    """A checkpoint write failed; the run continues without durable resumability."""

    pass


def with_retry(
    max_attempts: int = 3,
    min_wait_seconds: float = 0.5,
    max_wait_seconds: float = 5.0,
    retry_exceptions: tuple = (PersistenceError,),
) -> Callable[[F], F]:
    """
    Decorator to retry a function with exponential backoff when specific
    exceptions occur.

    Args:
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries
        retry_exceptions: Tuple of exception types to retry on

    Returns:
        Decorated function
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            @retry(
                retry=retry_if_exception_type(retry_exceptions),
                stop=stop_after_attempt(max_attempts),
                wait=wait_exponential(
                    multiplier=1, min=min_wait_seconds, max=max_wait_seconds
                ),
                reraise=True,
            )
            def retry_func() -> Any:
                return func(*args, **kwargs)

            try:
                return retry_func()
            except RetryError as e:
                func_name = func.__name__
                logger.error(f"All retry attempts failed for {func_name}")
                raise PlannerError(
                    f"Function {func_name} failed after {max_attempts} attempts"
                ) from e

        return cast(F, wrapper)

    return decorator
