"""
Cost model for itineraries.

Computes an itemised cost breakdown. Each category is summed from the
itinerary's own line items when it has any, and otherwise falls back to
the estimate the generator attached to the itinerary.
"""

from itinerary_planner.data.models import CostBreakdown, Itinerary


def compute_cost_breakdown(itinerary: Itinerary, travelers: int = 1) -> CostBreakdown:
    """
    Compute the cost of an itinerary per category.

    Args:
        itinerary: The itinerary to price
        travelers: Party size; ticket and meal prices are per person

    Returns:
        Breakdown whose total is the sum of the categories
    """
    estimate = itinerary.estimated_cost
    travelers = max(travelers, 1)

    hotels = [
        hotel.total_price or hotel.price_per_night for hotel in itinerary.accommodation
    ]
    accommodation = sum(hotels) if any(hotels) else estimate.accommodation

    transport = itinerary.transportation
    legs = (
        transport.to_destination.cost
        + transport.from_destination.cost
        + transport.local.estimated_cost
    )
    transportation = legs if legs else estimate.transportation

    meal_prices = [meal.avg_price for day in itinerary.days for meal in day.meals]
    food = sum(meal_prices) * travelers if any(meal_prices) else estimate.food

    tickets = [
        activity.ticket_price for day in itinerary.days for activity in day.activities
    ]
    attractions = sum(tickets) * travelers if any(tickets) else estimate.attractions

    other = estimate.other
    total = accommodation + transportation + food + attractions + other

    return CostBreakdown(
        accommodation=round(accommodation, 2),
        transportation=round(transportation, 2),
        food=round(food, 2),
        attractions=round(attractions, 2),
        other=round(other, 2),
        total=round(total, 2),
    )
