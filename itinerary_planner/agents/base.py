"""
Base agent class for the itinerary planner.

This module implements the foundation that model-backed agents inherit
from: the agent configuration, lazy construction of the google-genai
client, and conversion of chat-style messages to Gemini contents.
"""

import os
from dataclasses import dataclass
from typing import Any

from google import genai
from google.genai import types

from itinerary_planner.utils.error_handling import ConfigurationError


@dataclass
class AgentConfig:
    """Configuration for an agent."""

    name: str
    instructions: str
    model: str = "gemini-2.5-flash"
    temperature: float = 0.7
    max_tokens: int | None = None


class BaseAgent:
    """
    Base class for model-backed agents.

    The google-genai client is created on first use so that an agent can be
    constructed, and its configuration checked, without credentials.
    """

    def __init__(self, config: AgentConfig, api_key: str | None = None):
        """
        Initialize a base agent.

        Args:
            config: Configuration for the agent
            api_key: Gemini API key; falls back to GEMINI_API_KEY / GOOGLE_API_KEY
        """
        self.config = config
        self.api_key = (
            api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        )
        self._client: genai.Client | None = None

    @property
    def name(self) -> str:
        """Get the name of the agent."""
        return self.config.name

    @property
    def instructions(self) -> str:
        """Get the instructions for the agent."""
        return self.config.instructions

    @property
    def client(self) -> genai.Client:
        """The google-genai client, created on first access."""
        if self._client is None:
            self._validate_config()
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _validate_config(self) -> bool:
        """Validate the agent configuration."""
        if not self.config.name:
            raise ConfigurationError("Agent name cannot be empty")
        if not self.config.instructions:
            raise ConfigurationError("Agent instructions cannot be empty")
        if not self.api_key:
            raise ConfigurationError(
                f"Agent '{self.config.name}' has no Gemini API key; set GEMINI_API_KEY"
            )
        return True

    def _convert_messages_for_gemini(
        self, messages: list[dict[str, Any]]
    ) -> tuple[list[types.Content], str | None]:
        """
        Convert chat-style messages to Gemini format.

        Extracts system messages into a system_instruction string,
        and maps remaining messages to types.Content objects.

        Args:
            messages: List of message dictionaries with 'role' and 'content'

        Returns:
            Tuple of (contents list, system_instruction string or None)
        """
        system_parts = []
        contents = []

        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")

            if role == "system":
                system_parts.append(content)
            else:
                # Map "assistant" role to "model" for Gemini
                gemini_role = "model" if role == "assistant" else "user"
                contents.append(
                    types.Content(
                        role=gemini_role,
                        parts=[types.Part.from_text(text=content)],
                    )
                )

        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return contents, system_instruction

    def _prepare_messages(self, prompt: str) -> list[dict[str, Any]]:
        """Wrap a prompt with the agent's system instructions."""
        return [
            {"role": "system", "content": self.instructions},
            {"role": "user", "content": prompt},
        ]
