"""
Agent modules for the itinerary planner.

This package contains the Gemini-backed agent that drafts itineraries and
the provider protocol the workflow depends on.
"""

from itinerary_planner.agents.base import AgentConfig, BaseAgent
from itinerary_planner.agents.itinerary_generator import (
    ItineraryGeneratorAgent,
    ItineraryProvider,
)

__all__ = [
    "AgentConfig",
    "BaseAgent",
    "ItineraryGeneratorAgent",
    "ItineraryProvider",
]
