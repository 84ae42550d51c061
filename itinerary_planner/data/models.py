"""
Data models for the itinerary planner.

This module defines the trip request accepted by the engine and the
itinerary structure produced by the generation step and refined by the
downstream pipeline nodes.
"""

from datetime import date, timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class ActivityType(str, Enum):
    """Types of itinerary activities."""

    ATTRACTION = "attraction"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    RELAXATION = "relaxation"


class AccommodationType(str, Enum):
    """Types of accommodation."""

    HOTEL = "hotel"
    HOSTEL = "hostel"
    APARTMENT = "apartment"
    RESORT = "resort"


class TripRequest(BaseModel):
    """
    The original planning request.

    Either ``days`` or both ``start_date`` and ``end_date`` must be given.
    The request is immutable once a run has been created from it.
    """

    model_config = {"frozen": True}

    destination: str
    origin: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    days: int | None = Field(default=None, ge=1, le=30)
    budget: float = Field(..., gt=0)
    adult_count: int = Field(default=1, ge=0)
    child_count: int = Field(default=0, ge=0)
    travelers: int | None = Field(default=None, ge=1)
    preferences: list[str] = Field(default_factory=list)
    hotel_preferences: list[str] = Field(default_factory=list)
    additional_notes: str | None = None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Destination must not be empty")
        return value

    @model_validator(mode="after")
    def validate_dates(self) -> "TripRequest":
        if self.start_date and self.end_date:
            if self.end_date < self.start_date:
                raise ValueError("End date must not be before start date")
            span = (self.end_date - self.start_date).days + 1
            if self.days is not None and self.days != span:
                raise ValueError(
                    f"days={self.days} disagrees with the date range ({span} days)"
                )
            if span > 30:
                raise ValueError("Trips longer than 30 days are not supported")
        elif self.days is None:
            raise ValueError("Either days or both start_date and end_date are required")
        elif self.start_date is None and self.end_date is not None:
            raise ValueError("end_date requires start_date")

        if self.travelers is None and self.adult_count + self.child_count < 1:
            raise ValueError("At least one traveler is required")
        return self

    @property
    def trip_days(self) -> int:
        """Number of day-plans the itinerary must contain."""
        if self.start_date and self.end_date:
            return (self.end_date - self.start_date).days + 1
        return self.days or 1

    @property
    def party_size(self) -> int:
        """Number of travelers that per-person prices are multiplied by."""
        return self.travelers or (self.adult_count + self.child_count)

    def date_for_day(self, index: int) -> str | None:
        """ISO date of the zero-based day index, when the trip is dated."""
        if self.start_date is None:
            return None
        return (self.start_date + timedelta(days=index)).isoformat()


class Location(BaseModel):
    """A named place with optional coordinates."""

    name: str = ""
    address: str = ""
    lat: float | None = None
    lng: float | None = None

    @property
    def has_coordinates(self) -> bool:
        """True if the coordinates are present and within valid bounds."""
        return (
            self.lat is not None
            and self.lng is not None
            and -90 <= self.lat <= 90
            and -180 <= self.lng <= 180
        )


class Activity(BaseModel):
    """A timed visit within a day plan."""

    time: str = "09:00"
    name: str
    type: str = ActivityType.ATTRACTION.value
    location: Location = Field(default_factory=Location)
    duration: str = ""
    description: str = ""
    ticket_price: float = 0
    tips: str | None = None


class Meal(BaseModel):
    """A timed meal within a day plan."""

    time: str = "12:00"
    restaurant: str
    cuisine: str = ""
    location: Location = Field(default_factory=Location)
    avg_price: float = 0
    recommended_dishes: list[str] = Field(default_factory=list)


class DayPlan(BaseModel):
    """Activities and meals for one day of the trip."""

    day: int
    date: str | None = None
    activities: list[Activity] = Field(default_factory=list)
    meals: list[Meal] = Field(default_factory=list)


class Accommodation(BaseModel):
    """A hotel stay."""

    name: str
    type: str = AccommodationType.HOTEL.value
    location: Location = Field(default_factory=Location)
    check_in: str = ""
    check_out: str = ""
    price_per_night: float = 0
    total_price: float = 0
    rating: float | None = None
    amenities: list[str] = Field(default_factory=list)


class TransportLeg(BaseModel):
    """Travel to or from the destination."""

    method: str = ""
    details: str = ""
    cost: float = 0


class LocalTransport(BaseModel):
    """Getting around at the destination."""

    methods: list[str] = Field(default_factory=list)
    estimated_cost: float = 0


class Transportation(BaseModel):
    """All transport for the trip."""

    to_destination: TransportLeg = Field(default_factory=TransportLeg)
    from_destination: TransportLeg = Field(default_factory=TransportLeg)
    local: LocalTransport = Field(default_factory=LocalTransport)


class CostBreakdown(BaseModel):
    """Estimated cost per category."""

    accommodation: float = 0
    transportation: float = 0
    food: float = 0
    attractions: float = 0
    other: float = 0
    total: float = 0


class Itinerary(BaseModel):
    """A complete multi-day itinerary."""

    days: list[DayPlan] = Field(default_factory=list)
    accommodation: list[Accommodation] = Field(default_factory=list)
    transportation: Transportation = Field(default_factory=Transportation)
    estimated_cost: CostBreakdown = Field(default_factory=CostBreakdown)
    summary: str = ""

    @property
    def activity_count(self) -> int:
        return sum(len(day.activities) for day in self.days)

    def iter_locations(self):
        """Yield (label, location) for every place that carries coordinates."""
        for day in self.days:
            for activity in day.activities:
                yield activity.name, activity.location
            for meal in day.meals:
                yield meal.restaurant, meal.location
        for hotel in self.accommodation:
            yield hotel.name, hotel.location
