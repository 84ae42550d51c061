"""
Itinerary generation agent.

Defines the completion-provider interface the engine's generation step
depends on, and the Gemini-backed implementation of it.
"""

from typing import Any, Protocol, runtime_checkable

from google.genai import types

from itinerary_planner.agents.base import AgentConfig, BaseAgent
from itinerary_planner.config import AgentModelConfig
from itinerary_planner.prompts.itinerary import ITINERARY_SYSTEM_PROMPT
from itinerary_planner.utils.error_handling import ConfigurationError, ProviderError
from itinerary_planner.utils.helpers import extract_json_object
from itinerary_planner.utils.logging import AgentLogger


@runtime_checkable
class ItineraryProvider(Protocol):
    """AI completion provider producing a structured itinerary draft."""

    name: str

    def check_configuration(self) -> None:
        """Raise ConfigurationError if the provider cannot be called."""
        ...

    async def generate(
        self, prompt: str, model_config: AgentModelConfig
    ) -> dict[str, Any]:
        """Return the itinerary draft for a prompt, or raise ProviderError."""
        ...


class ItineraryGeneratorAgent(BaseAgent):
    """Generates itinerary drafts with Gemini."""

    provider_name = "gemini"

    def __init__(self, api_key: str | None = None, config: AgentConfig | None = None):
        if config is None:
            config = AgentConfig(
                name="Itinerary Generator",
                instructions=ITINERARY_SYSTEM_PROMPT,
            )
        super().__init__(config, api_key=api_key)
        self.agent_logger = AgentLogger(self.name)

    def check_configuration(self) -> None:
        """
        Verify that the agent can reach the model.

        Raises:
            ConfigurationError: If credentials or instructions are missing
        """
        self._validate_config()

    async def generate(
        self, prompt: str, model_config: AgentModelConfig
    ) -> dict[str, Any]:
        """
        Generate an itinerary draft.

        Args:
            prompt: Rendered user prompt
            model_config: Model name and sampling settings for this call

        Returns:
            The parsed JSON itinerary

        Raises:
            ProviderError: If the call fails or the output is not a JSON object
        """
        try:
            client = self.client
        except ConfigurationError as e:
            raise ProviderError(str(e), self.provider_name) from e

        contents, system_instruction = self._convert_messages_for_gemini(
            self._prepare_messages(prompt)
        )
        config = types.GenerateContentConfig(
            temperature=model_config.temperature,
            max_output_tokens=model_config.max_tokens,
            system_instruction=system_instruction,
            response_mime_type="application/json",
        )

        self.agent_logger.log_llm_input(
            model_config.name, prompt, model_config.temperature
        )
        try:
            response = await client.aio.models.generate_content(
                model=model_config.name,
                contents=contents,
                config=config,
            )
        except Exception as e:
            raise ProviderError(
                "Itinerary generation request failed", self.provider_name, e
            ) from e

        text = response.text or ""
        self.agent_logger.log_llm_output(model_config.name, text)

        try:
            return extract_json_object(text)
        except ValueError as e:
            raise ProviderError(
                "Model returned an unparseable itinerary", self.provider_name, e
            ) from e
