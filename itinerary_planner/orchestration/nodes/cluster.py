"""
Geographic clustering node for the planning workflow.

Reorders each day's activities so nearby places are visited together.
"""

from itinerary_planner.orchestration.core.node_registry import NodeId
from itinerary_planner.orchestration.nodes.base_node import (
    Advance,
    Step,
    StepContext,
    StepOutcome,
)
from itinerary_planner.orchestration.states.run_state import RunState
from itinerary_planner.services.geo_clustering import (
    analyze_clustering_quality,
    cluster_itinerary,
)
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)


class ClusterStep(Step):
    """Group each day's places by proximity."""

    node_id = NodeId.CLUSTER_BY_GEOGRAPHY

    async def run(self, state: RunState, context: StepContext) -> StepOutcome:
        corrected = self._require(state, "corrected_itinerary")
        distance = context.config.max_cluster_distance_m
        clustered = cluster_itinerary(corrected, distance)

        report = analyze_clustering_quality(clustered, distance)
        logger.debug(
            f"[{state.thread_id}] {report['average_clusters_per_day']:.1f} clusters "
            f"per day, average radius {report['average_cluster_radius_m']:.0f}m"
        )
        for recommendation in report["recommendations"]:
            logger.info(f"[{state.thread_id}] {recommendation}")

        return Advance({"clustered_itinerary": clustered})
