"""
Geographic clustering of itinerary days.

Groups each day's activities and meals into clusters of nearby places
with a greedy single-link pass over haversine distances, then orders the
day cluster by cluster so the traveller finishes one area before moving
on. Clusters are labelled with the geohash of their centre.
"""

import math
from dataclasses import dataclass, field

import pygeohash as gh

from itinerary_planner.data.models import Activity, DayPlan, Itinerary, Location, Meal
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

EARTH_RADIUS_M = 6371e3
GEOHASH_PRECISION = 6


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points.

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _time_key(value: str) -> int:
    """Minutes since midnight; unparseable times sort last."""
    try:
        hours, minutes = value.strip().split(":")[:2]
        return int(hours) * 60 + int(minutes)
    except (ValueError, AttributeError):
        return 24 * 60


@dataclass
class ClusterItem:
    """An activity or meal with a usable location."""

    item: Activity | Meal
    location: Location

    @property
    def time(self) -> str:
        return self.item.time


@dataclass
class Cluster:
    """A group of places within walking distance of each other."""

    items: list[ClusterItem] = field(default_factory=list)
    center_lat: float = 0.0
    center_lng: float = 0.0
    radius_m: float = 0.0
    geohash: str = ""

    def finalize(self) -> None:
        """Compute the centre, radius and geohash label."""
        count = len(self.items)
        self.center_lat = sum(i.location.lat for i in self.items) / count
        self.center_lng = sum(i.location.lng for i in self.items) / count
        self.radius_m = max(
            haversine_distance(
                self.center_lat, self.center_lng, i.location.lat, i.location.lng
            )
            for i in self.items
        )
        self.geohash = gh.encode(
            self.center_lat, self.center_lng, precision=GEOHASH_PRECISION
        )
        self.items.sort(key=lambda i: _time_key(i.time))


def cluster_day(day: DayPlan, max_distance_m: float = 1000.0) -> list[Cluster]:
    """
    Cluster the located activities and meals of one day.

    Items are visited in time order; each unassigned item seeds a cluster
    that absorbs every later unassigned item within ``max_distance_m`` of
    any of its members.

    Args:
        day: The day to cluster
        max_distance_m: Maximum link distance in meters

    Returns:
        Clusters ordered by their earliest time
    """
    items = [
        ClusterItem(item=entry, location=entry.location)
        for entry in [*day.activities, *day.meals]
        if entry.location.has_coordinates
    ]
    items.sort(key=lambda i: _time_key(i.time))

    clusters: list[Cluster] = []
    assigned: set[int] = set()
    for index, seed in enumerate(items):
        if index in assigned:
            continue
        cluster = Cluster(items=[seed])
        assigned.add(index)
        for other_index, other in enumerate(items):
            if other_index in assigned:
                continue
            nearest = min(
                haversine_distance(
                    member.location.lat,
                    member.location.lng,
                    other.location.lat,
                    other.location.lng,
                )
                for member in cluster.items
            )
            if nearest <= max_distance_m:
                cluster.items.append(other)
                assigned.add(other_index)
        cluster.finalize()
        clusters.append(cluster)

    return clusters


def optimize_day(day: DayPlan, max_distance_m: float = 1000.0) -> DayPlan:
    """
    Reorder one day cluster by cluster.

    Activities and meals without coordinates keep their relative order
    and are placed after the clustered ones.
    """
    if len(day.activities) <= 1 or not any(
        a.location.has_coordinates for a in day.activities
    ):
        return day

    clusters = cluster_day(day, max_distance_m)
    ordered = [member.item for cluster in clusters for member in cluster.items]

    activities = [item for item in ordered if isinstance(item, Activity)]
    meals = [item for item in ordered if isinstance(item, Meal)]
    activities.extend(a for a in day.activities if not a.location.has_coordinates)
    meals.extend(m for m in day.meals if not m.location.has_coordinates)

    logger.debug(
        f"Day {day.day}: {len(day.activities)} activities in {len(clusters)} clusters"
    )
    return day.model_copy(update={"activities": activities, "meals": meals})


def cluster_itinerary(
    itinerary: Itinerary, max_distance_m: float = 1000.0
) -> Itinerary:
    """
    Regroup every day of an itinerary by spatial proximity.

    Args:
        itinerary: Itinerary to reorder; it is not modified
        max_distance_m: Maximum link distance in meters

    Returns:
        A new itinerary with each day's items reordered
    """
    days = [optimize_day(day, max_distance_m) for day in itinerary.days]
    return itinerary.model_copy(update={"days": days})


def analyze_clustering_quality(
    itinerary: Itinerary, max_distance_m: float = 1000.0
) -> dict:
    """
    Summarize how spread out an itinerary's days are.

    Returns:
        Report with total_days, days_with_clusters, average_clusters_per_day,
        average_cluster_radius_m, areas (distinct geohash cells per day) and
        recommendations
    """
    days_with_clusters = 0
    total_clusters = 0
    total_radius = 0.0
    areas: dict[int, list[str]] = {}

    for day in itinerary.days:
        clusters = cluster_day(day, max_distance_m)
        if not clusters:
            continue
        days_with_clusters += 1
        total_clusters += len(clusters)
        total_radius += sum(c.radius_m for c in clusters)
        areas[day.day] = sorted({c.geohash for c in clusters})

    avg_clusters = total_clusters / days_with_clusters if days_with_clusters else 0.0
    avg_radius = total_radius / total_clusters if total_clusters else 0.0

    recommendations = []
    if avg_radius > 2000:
        recommendations.append(
            "Some sights are spread out; allow extra travel time between them"
        )
    if avg_clusters > 4:
        recommendations.append(
            "Days cover many separate areas; consider fewer sights per day"
        )

    return {
        "total_days": len(itinerary.days),
        "days_with_clusters": days_with_clusters,
        "average_clusters_per_day": avg_clusters,
        "average_cluster_radius_m": avg_radius,
        "areas": areas,
        "recommendations": recommendations,
    }
