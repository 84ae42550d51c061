"""
Itinerary planning engine powered by Google Gemini and LangGraph.

This package drafts day-by-day trip itineraries with an AI provider,
corrects and clusters their places, keeps them within budget through a
critic loop, and pauses for human decisions with resumable checkpoints.
"""

__version__ = "0.2.0"
