"""
Utility modules for the itinerary planner.
"""

from itinerary_planner.utils.error_handling import (
    ConfigurationError,
    NodeExecutionError,
    NotFoundError,
    PersistenceError,
    PersistenceWarning,
    ProviderError,
    PlannerError,
    ValidationError,
    with_retry,
)
from itinerary_planner.utils.helpers import (
    extract_json_object,
    generate_id,
    generate_thread_id,
    utc_now,
)

__all__ = [
    "ConfigurationError",
    "NodeExecutionError",
    "NotFoundError",
    "PersistenceError",
    "PersistenceWarning",
    "ProviderError",
    "PlannerError",
    "ValidationError",
    "extract_json_object",
    "generate_id",
    "generate_thread_id",
    "utc_now",
    "with_retry",
]
