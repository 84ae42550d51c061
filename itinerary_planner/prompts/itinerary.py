"""
Prompts for itinerary generation.

The generation step renders one user message per attempt. Budget retries
append a cost-reduction block and review rounds append the reviewer's
feedback as hard constraints.
"""

from typing import TYPE_CHECKING

from itinerary_planner.data.models import TripRequest

if TYPE_CHECKING:
    from itinerary_planner.orchestration.states.run_state import CostReductionHint

ITINERARY_SYSTEM_PROMPT = """You are an experienced travel planner.
Produce a realistic day-by-day itinerary for the trip described by the user.

Respond with a single JSON object and nothing else, using this shape:
{
  "days": [
    {
      "day": 1,
      "date": "YYYY-MM-DD or null",
      "activities": [
        {"time": "09:00", "name": "...", "type": "attraction",
         "location": {"name": "...", "address": "...", "lat": 0.0, "lng": 0.0},
         "duration": "2h", "description": "...", "ticket_price": 0}
      ],
      "meals": [
        {"time": "12:00", "restaurant": "...", "cuisine": "...",
         "location": {"name": "...", "address": "...", "lat": 0.0, "lng": 0.0},
         "avg_price": 0, "recommended_dishes": ["..."]}
      ]
    }
  ],
  "accommodation": [
    {"name": "...", "type": "hotel", "check_in": "...", "check_out": "...",
     "price_per_night": 0, "total_price": 0,
     "location": {"name": "...", "address": "...", "lat": 0.0, "lng": 0.0}}
  ],
  "transportation": {
    "to_destination": {"method": "...", "details": "...", "cost": 0},
    "from_destination": {"method": "...", "details": "...", "cost": 0},
    "local": {"methods": ["..."], "estimated_cost": 0}
  },
  "estimated_cost": {"accommodation": 0, "transportation": 0, "food": 0,
                     "attractions": 0, "other": 0, "total": 0},
  "summary": "..."
}

Rules:
- Produce exactly the requested number of days.
- Prices are per person for tickets and meals, totals for hotels and transport.
- Use real places with accurate coordinates where you know them.
"""


def render_generation_prompt(
    request: TripRequest,
    currency: str = "CNY",
    hint: "CostReductionHint | None" = None,
    retry_count: int = 0,
    feedback: list[str] | None = None,
) -> str:
    """
    Render the user message for one generation attempt.

    Args:
        request: The trip request
        currency: Currency all prices are expressed in
        hint: Cost-reduction hint from the budget critic, if retrying
        retry_count: Number of budget retries so far
        feedback: Reviewer feedback accumulated across review rounds

    Returns:
        Prompt text
    """
    lines = [f"Destination: {request.destination}"]
    if request.origin:
        lines.append(f"Departing from: {request.origin}")
    if request.start_date and request.end_date:
        lines.append(
            f"Dates: {request.start_date.isoformat()} to {request.end_date.isoformat()}"
        )
    lines.append(f"Number of days: {request.trip_days}")
    lines.append(f"Total budget: {request.budget:.0f} {currency}")
    lines.append(
        f"Travelers: {request.party_size} "
        f"({request.adult_count} adults, {request.child_count} children)"
    )
    if request.preferences:
        lines.append(f"Interests: {', '.join(request.preferences)}")
    if request.hotel_preferences:
        lines.append(f"Hotel preferences: {', '.join(request.hotel_preferences)}")
    if request.additional_notes:
        lines.append(f"Notes: {request.additional_notes}")

    if hint is not None:
        lines.extend(
            [
                "",
                f"Budget feedback (retry {retry_count}):",
                f"- The previous plan was over budget by "
                f"{hint.target_reduction:.0f} {currency}.",
                f"- Suggested change: {hint.suggestion}",
                f"- The total cost must not exceed {hint.max_total:.0f} {currency}.",
            ]
        )

    if feedback:
        lines.extend(["", "Reviewer requests (must all be honoured):"])
        lines.extend(f"- {item}" for item in feedback)

    return "\n".join(lines)
