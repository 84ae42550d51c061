"""
Budget critic rules.

Pure functions behind the budget critic loop: pricing an itinerary against
the trip budget, building the cost-reduction hint for the next generation
attempt, and assembling the options offered when retries run out.
"""

from typing import Any

from itinerary_planner.config import BudgetConfig
from itinerary_planner.data.models import CostBreakdown, Itinerary, TripRequest
from itinerary_planner.orchestration.states.run_state import (
    BudgetResult,
    CostReductionHint,
    HintAction,
)
from itinerary_planner.services.cost_model import compute_cost_breakdown

# Category -> (hint action, suggestion, share of the category that can be saved)
REDUCTION_STRATEGIES: dict[str, tuple[HintAction, str, float]] = {
    "accommodation": (
        HintAction.DOWNGRADE_HOTEL,
        "Choose more economical accommodation; this typically saves 20-30%",
        0.3,
    ),
    "food": (
        HintAction.ADJUST_MEALS,
        "Pick more affordable restaurants for some meals",
        0.3,
    ),
    "transportation": (
        HintAction.CHEAPER_TRANSPORT,
        "Use public transport instead of taxis where possible",
        0.4,
    ),
    "attractions": (
        HintAction.REDUCE_ATTRACTIONS,
        "Replace some paid attractions with free ones",
        0.4,
    ),
}


def evaluate_budget(
    itinerary: Itinerary, request: TripRequest, config: BudgetConfig
) -> BudgetResult:
    """
    Price an itinerary against the trip budget.

    Args:
        itinerary: The clustered itinerary
        request: The trip request holding budget and party size
        config: Threshold settings

    Returns:
        BudgetResult; accepted when the overage ratio is within the threshold
    """
    breakdown = compute_cost_breakdown(itinerary, request.party_size)
    overage_ratio = (breakdown.total - request.budget) / request.budget
    return BudgetResult(
        total_cost=breakdown.total,
        budget=request.budget,
        overage_ratio=round(overage_ratio, 4),
        accepted=overage_ratio <= config.overage_threshold,
        breakdown=breakdown,
    )


def _ranked_categories(breakdown: CostBreakdown) -> list[str]:
    return sorted(
        REDUCTION_STRATEGIES,
        key=lambda category: getattr(breakdown, category),
        reverse=True,
    )


def build_cost_hint(result: BudgetResult, attempt: int) -> CostReductionHint:
    """
    Build the feedback for the next generation attempt.

    The first retry targets the costliest category; later retries rotate
    through the categories by cost rank.

    Args:
        result: The rejected budget evaluation
        attempt: Zero-based index of the retry being prepared

    Returns:
        Hint naming the action, the reduction needed and the total ceiling
    """
    ranked = _ranked_categories(result.breakdown)
    category = ranked[attempt % len(ranked)]
    action, suggestion, _ = REDUCTION_STRATEGIES[category]
    return CostReductionHint(
        action=action,
        target_reduction=result.overage_amount,
        max_total=result.budget,
        suggestion=suggestion,
    )


def build_selected_hint(result: BudgetResult, action: HintAction) -> CostReductionHint:
    """Hint for the scope reduction a human picked from a budget decision."""
    suggestion = next(
        text for act, text, _ in REDUCTION_STRATEGIES.values() if act == action
    )
    return CostReductionHint(
        action=action,
        target_reduction=result.overage_amount,
        max_total=result.budget,
        suggestion=suggestion,
    )


def build_adjustment_options(result: BudgetResult) -> list[dict[str, Any]]:
    """
    Concrete scope reductions a human can pick from.

    Each saving is a fixed share of its category, capped at the overage,
    and the list is sorted by saving, largest first. ``decision`` is the
    resume decision that selects the option.
    """
    overage = result.overage_amount
    options = []
    for category, (action, suggestion, share) in REDUCTION_STRATEGIES.items():
        cost = getattr(result.breakdown, category)
        if cost <= 0:
            continue
        options.append(
            {
                "action": action.value,
                "category": category,
                "estimated_savings": round(min(cost * share, overage), 2),
                "description": suggestion,
                "decision": {
                    "type": "adjust",
                    "payload": {"selected_action": action.value},
                },
            }
        )
    options.sort(key=lambda option: option["estimated_savings"], reverse=True)
    return options


def build_budget_decision_options(result: BudgetResult) -> dict[str, Any]:
    """Options of a budget_decision interrupt."""
    return {
        "accept_over_budget": {
            "overage_amount": result.overage_amount,
            "overage_ratio": result.overage_ratio,
        },
        "reduce_scope": {"adjustments": build_adjustment_options(result)},
        "cancel": {},
    }


def describe_overage(result: BudgetResult, currency: str = "CNY") -> str:
    """Human-readable summary of an over-budget evaluation."""
    return (
        f"Estimated cost {result.total_cost:.0f} {currency} exceeds the budget of "
        f"{result.budget:.0f} {currency} by {result.overage_amount:.0f} {currency} "
        f"({result.overage_ratio:.0%})."
    )
