"""
Logging framework for the itinerary planner.

This module configures logging for the planning engine, providing a
consistent logging interface across all modules.
"""

import json
import os
import sys
from typing import Any

from loguru import logger

from itinerary_planner.config import LogLevel


def get_logger(name: str):
    """
    Get a logger instance for the specified module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance with the module name attached
    """
    return logger.bind(name=name)


def setup_logging(
    log_level: LogLevel | str = LogLevel.INFO, log_file: str | None = None
):
    """
    Set up the logging configuration for the application.

    Args:
        log_level: The logging level to use (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs to
    """
    # Convert string to enum if necessary
    if isinstance(log_level, str):
        log_level = LogLevel(log_level.upper())

    # Remove default logger
    logger.remove()

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=log_level.value,
        colorize=True,
    )

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        logger.add(
            log_file,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                "{name}:{function}:{line} - {message}"
            ),
            level=log_level.value,
            rotation="10 MB",
            compression="zip",
        )

    logger.info(f"Logging initialized with level {log_level.value}")


class AgentLogger:
    """
    Logger specialized for agent operations, providing context-aware logging
    with agent-specific information.
    """

    def __init__(self, agent_name: str, thread_id: str | None = None):
        self.agent_name = agent_name
        self.logger = logger.bind(agent_name=agent_name, thread_id=thread_id)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def log_llm_input(self, model: str, prompt: str, temperature: float):
        """
        Log input to a language model.

        Args:
            model: Name of the model
            prompt: Rendered prompt
            temperature: Temperature setting
        """
        self.debug(
            f"LLM Request: {model} - Temperature: {temperature}",
            model=model,
            temperature=temperature,
            prompt_chars=len(prompt),
        )

    def log_llm_output(self, model: str, response: Any):
        """
        Log output from a language model.

        Args:
            model: Name of the model
            response: Model response
        """
        self.debug(
            f"LLM Response: {model}",
            model=model,
            response=self._safe_json(response),
        )

    def _safe_json(self, obj: Any) -> str | None:
        """
        Safely convert an object to JSON, handling conversion errors.

        Args:
            obj: Object to convert to JSON

        Returns:
            JSON string or None if conversion fails
        """
        if obj is None:
            return None

        try:
            return json.dumps(obj, default=str, ensure_ascii=False)
        except Exception as e:
            self.warning(f"Failed to serialize object to JSON: {e!s}")
            return str(obj)
