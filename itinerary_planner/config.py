"""
Configuration management for the itinerary planner.

This module handles loading and managing configuration for the planning
engine, including environment variables, model credentials, checkpoint
storage settings, and the per-call workflow settings passed to
``ExecutionEngine.start`` and ``ExecutionEngine.resume``.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from itinerary_planner.utils.error_handling import ConfigurationError

# Load environment variables from .env file
load_dotenv()

# Graph steps of one budget attempt: generate, correct, cluster, critic
STEPS_PER_BUDGET_ATTEMPT = 4


class LogLevel(str, Enum):
    """Log levels supported by the system."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CheckpointBackend(str, Enum):
    """Storage technologies available for suspended runs."""

    MEMORY = "memory"
    FILE = "file"
    DYNAMODB = "dynamodb"


class AgentModelConfig(BaseModel):
    """Configuration for the itinerary generation model."""

    name: str = Field(default="gemini-2.5-flash", description="Model name to use")
    temperature: float = Field(default=0.7, description="Model temperature")
    max_tokens: int | None = Field(default=None, description="Max tokens to generate")

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, value: float) -> float:
        """Validate temperature is within reasonable bounds."""
        if not (0.0 <= value <= 1.0):
            raise ValueError(f"Temperature must be between 0.0 and 1.0, got {value}")
        return value

    @classmethod
    def from_env(cls, prefix: str = "") -> "AgentModelConfig":
        """Create an AgentModelConfig from environment variables."""
        prefix = f"{prefix}_" if prefix else ""
        return cls(
            name=os.getenv(f"{prefix}MODEL", "gemini-2.5-flash"),
            temperature=float(os.getenv(f"{prefix}TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv(f"{prefix}MAX_TOKENS", "0")) or None,
        )


class HITLConfig(BaseModel):
    """Human-in-the-loop switches."""

    enable_itinerary_review: bool = Field(
        default=False, description="Pause for a human review before finalizing"
    )
    enable_budget_decision: bool = Field(
        default=True,
        description="Pause for a decision when regeneration cannot fix an overage",
    )


class BudgetConfig(BaseModel):
    """Settings of the budget critic loop."""

    overage_threshold: float = Field(
        default=0.1, description="Tolerated fraction above budget"
    )
    max_retries: int = Field(default=3, description="Maximum budget regenerations")

    @field_validator("overage_threshold")
    @classmethod
    def validate_threshold(cls, value: float) -> float:
        if value < 0:
            raise ValueError(f"Overage threshold must not be negative, got {value}")
        return value

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"Max retries must not be negative, got {value}")
        return value


class WorkflowConfig(BaseModel):
    """Per-call configuration of one start or resume invocation."""

    model: AgentModelConfig = Field(default_factory=AgentModelConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    hitl: HITLConfig = Field(default_factory=HITLConfig)
    recursion_limit: int = Field(
        default=100, description="Upper bound on node executions per invocation"
    )
    max_cluster_distance_m: float = Field(
        default=1000.0, description="Link distance for geographic clustering (meters)"
    )

    @field_validator("recursion_limit")
    @classmethod
    def validate_recursion_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Recursion limit must be positive")
        return value

    @property
    def required_recursion_limit(self) -> int:
        """Graph steps needed for every budget attempt plus review and finalize."""
        attempts = self.budget.max_retries + 1
        return STEPS_PER_BUDGET_ATTEMPT * attempts + 3

    @model_validator(mode="after")
    def fit_recursion_limit(self) -> "WorkflowConfig":
        # An explicit limit is honoured as given
        if "recursion_limit" not in self.model_fields_set:
            self.recursion_limit = max(
                self.recursion_limit, self.required_recursion_limit
            )
        return self

    @classmethod
    def coerce(
        cls, config: "WorkflowConfig | dict[str, Any] | None"
    ) -> "WorkflowConfig":
        """
        Build a WorkflowConfig from a model, a plain dict, or nothing.

        Raises:
            ConfigurationError: If the supplied values are invalid
        """
        if config is None:
            return cls()
        if isinstance(config, cls):
            return config
        try:
            return cls.model_validate(config)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid workflow configuration: {e}") from e


class CheckpointConfig(BaseModel):
    """Configuration for checkpoint persistence."""

    backend: CheckpointBackend = Field(default=CheckpointBackend.MEMORY)
    directory: str = Field(
        default=os.path.expanduser("~/.itinerary_planner/checkpoints"),
        description="Directory used by the file backend",
    )
    ttl_hours: float = Field(default=24, description="Lifetime of a pending checkpoint")
    table_name: str = Field(default="itinerary-planner")
    region: str = Field(default="ap-northeast-1")
    endpoint_url: str | None = Field(default=None)

    @field_validator("ttl_hours")
    @classmethod
    def validate_ttl(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Checkpoint TTL must be positive")
        return value

    @classmethod
    def from_env(cls) -> "CheckpointConfig":
        """Create a CheckpointConfig from environment variables."""
        return cls(
            backend=CheckpointBackend(os.getenv("CHECKPOINT_BACKEND", "memory")),
            directory=os.path.expanduser(
                os.getenv("CHECKPOINT_DIR", "~/.itinerary_planner/checkpoints")
            ),
            ttl_hours=float(os.getenv("CHECKPOINT_TTL_HOURS", "24")),
            table_name=os.getenv("DYNAMODB_TABLE_NAME", "itinerary-planner"),
            region=os.getenv("AWS_REGION", "ap-northeast-1"),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT"),
        )


class APIConfig(BaseModel):
    """Credentials for external services."""

    gemini_api_key: str = Field(default="", description="Gemini API key")

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Create an APIConfig from environment variables."""
        return cls(gemini_api_key=os.getenv("GEMINI_API_KEY", ""))

    def validate_keys(self, raise_error: bool = False) -> bool:
        """
        Validate that required API keys are present.

        Args:
            raise_error: If True, raise ConfigurationError instead of returning False

        Returns:
            True if all required keys are present, False otherwise
        """
        if self.gemini_api_key:
            return True

        error_msg = "Missing required API keys: GEMINI_API_KEY"
        logger.error(error_msg)
        if raise_error:
            raise ConfigurationError(error_msg)
        return False


class SystemConfig(BaseModel):
    """System-wide configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    environment: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )
    default_currency: str = Field(default="CNY", description="Default currency")

    @classmethod
    def from_env(cls) -> "SystemConfig":
        """Create a SystemConfig from environment variables."""
        return cls(
            log_level=LogLevel(os.getenv("LOG_LEVEL", "INFO")),
            environment=os.getenv("ENVIRONMENT", "development"),
            default_currency=os.getenv("DEFAULT_CURRENCY", "CNY"),
        )


@dataclass
class PlannerConfig:
    """Process-level configuration used to assemble an engine."""

    api: APIConfig = field(default_factory=APIConfig.from_env)
    system: SystemConfig = field(default_factory=SystemConfig.from_env)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig.from_env)
    model: AgentModelConfig = field(
        default_factory=lambda: AgentModelConfig.from_env("ITINERARY")
    )

    def validate(self, raise_error: bool = False) -> bool:
        """
        Validate the entire configuration.

        Args:
            raise_error: If True, raise ConfigurationError instead of returning False

        Returns:
            True if configuration is valid, False otherwise
        """
        try:
            self.api.validate_keys(raise_error=True)
            if (
                self.checkpoint.backend == CheckpointBackend.DYNAMODB
                and not self.checkpoint.table_name
            ):
                raise ValueError("DynamoDB checkpoint backend requires a table name")
            return True
        except Exception as e:
            if not isinstance(e, ConfigurationError):
                logger.error(f"Configuration validation failed: {e!s}")
            if raise_error:
                raise ConfigurationError(
                    f"Configuration validation failed: {e!s}"
                ) from e
            return False

    def workflow_defaults(self) -> WorkflowConfig:
        """Per-call config seeded with the process-level model settings."""
        return WorkflowConfig(model=self.model)


def initialize_config(
    custom_config_path: str | None = None,
    validate: bool = True,
    raise_on_error: bool = False,
) -> PlannerConfig:
    """
    Load and validate a fresh configuration.

    Args:
        custom_config_path: Path to a custom .env file to load
        validate: Whether to validate the configuration
        raise_on_error: Whether to raise an exception on validation failure

    Returns:
        A newly constructed configuration object

    Raises:
        ConfigurationError: If validation fails and raise_on_error is True
        FileNotFoundError: If custom_config_path is provided but does not exist
    """
    if custom_config_path:
        if not os.path.exists(custom_config_path):
            error_msg = f"Custom configuration file not found: {custom_config_path}"
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        logger.info(f"Loading custom configuration from {custom_config_path}")
        load_dotenv(custom_config_path, override=True)

    config = PlannerConfig()

    if validate and not config.validate(raise_error=raise_on_error):
        logger.warning(
            "Configuration validation failed. Generation calls will be rejected "
            "until GEMINI_API_KEY is set."
        )

    return config
