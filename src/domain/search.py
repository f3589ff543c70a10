"""
Search domain types.

A SearchDraft is what we know so far from the conversation; every field may
be missing.  A SearchSpecification is a draft with the required slots
(country, nights, budget) resolved and every optional slot defaulted.  It is
frozen: refinements build a new one with dataclasses.replace().
"""

import math
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Literal

from src.domain.countries import country_by_id, find_country

APPROX_PCT = 0.1
TARGET_CEILING_FACTOR = 1.2
MIN_NIGHTS = 1
MAX_NIGHTS = 30

Slot = Literal["country", "nights", "budget"]
Period = Literal["next_month", "1_2_months", "summer", "autumn"]
Sort = Literal["price_asc", "price_desc"]

REQUIRED_SLOTS: tuple[Slot, ...] = ("country", "nights", "budget")
MEAL_CODES = ("RO", "BB", "HB", "FB", "AI")
PERIODS: tuple[Period, ...] = ("next_month", "1_2_months", "summer", "autumn")


class IncompleteDraftError(ValueError):
    """Raised when a specification is requested from a draft missing required slots."""


def round100(value: float) -> int:
    """Round half up to the nearest hundred."""
    return int(math.floor(value / 100 + 0.5)) * 100


@dataclass(frozen=True)
class Budget:
    """
    Tagged budget value.

    kind="max"     only max is set
    kind="range"   min and max are set, min <= max
    kind="approx"  target is set; min/max are the derived ±10% band
    """

    kind: Literal["max", "range", "approx"]
    max: int
    min: int | None = None
    target: int | None = None

    @classmethod
    def ceiling(cls, value: int) -> "Budget":
        return cls(kind="max", max=int(value))

    @classmethod
    def between(cls, a: int, b: int) -> "Budget":
        return cls(kind="range", min=min(a, b), max=max(a, b))

    @classmethod
    def around(cls, target: int) -> "Budget":
        low = round100(target * (1 - APPROX_PCT))
        high = round100(target * (1 + APPROX_PCT))
        return cls(kind="approx", target=int(target), min=min(low, high), max=max(low, high))

    @classmethod
    def from_target_answer(cls, target: int) -> "Budget":
        """Ceiling derived from a "rough target" answer to a clarification question."""
        return cls(kind="max", max=int(round(target * TARGET_CEILING_FACTOR)), target=int(target))

    @property
    def reference(self) -> int:
        """The number the user actually said: the target for approx, else the max."""
        return self.target if self.kind == "approx" and self.target else self.max


@dataclass
class SearchDraft:
    """Partially specified search; every field is optional."""

    country_id: int | None = None
    country_name: str | None = None
    nights_min: int | None = None
    nights_max: int | None = None
    budget: Budget | None = None
    meal: str | None = None          # one of MEAL_CODES or "ANY"
    period: Period | None = None
    date_from: str | None = None     # YYYY-MM-DD
    date_to: str | None = None
    rating: float | None = None
    adults: int | None = None
    children: int | None = None
    sort: Sort | None = None

    def has_country(self) -> bool:
        return self.country_id is not None or bool(self.country_name and self.country_name.strip())

    def has_nights(self) -> bool:
        return self.nights_min is not None and self.nights_max is not None

    def has_budget(self) -> bool:
        return self.budget is not None and self.budget.max > 0

    def is_empty(self) -> bool:
        return self == SearchDraft()


@dataclass(frozen=True)
class SearchDefaults:
    """Values used for optional slots the user never mentioned."""

    year: int = 2026
    departure_id: int = 1
    date_from: str = ""
    date_to: str = ""
    nights_min: int = 6
    nights_max: int = 10
    adults: int = 2
    children: int = 0
    limit: int = 5
    sort: Sort = "price_asc"

    def window(self) -> tuple[str, str]:
        return (
            self.date_from or f"{self.year}-06-01",
            self.date_to or f"{self.year}-06-20",
        )


@dataclass(frozen=True)
class SearchSpecification:
    """A fully resolved, executable search request."""

    country_id: int
    country_name: str
    nights_min: int
    nights_max: int
    budget_max: int                  # 0 = no ceiling
    date_from: str
    date_to: str
    budget_min: int | None = None
    budget_target: int | None = None
    departure_id: int = 1
    adults: int = 2
    children: int = 0
    meal: str | None = None
    rating: float = 0.0
    period: Period | None = None
    limit: int = 5
    offset: int = 0
    sort: Sort = "price_asc"

    def with_changes(self, **changes) -> "SearchSpecification":
        return replace(self, **changes)

    def params(self) -> dict:
        """Normalized parameter mapping, stable across runs (used for seeding)."""
        return {
            "country_id": self.country_id,
            "departure_id": self.departure_id,
            "date_from": self.date_from,
            "date_to": self.date_to,
            "nights_min": self.nights_min,
            "nights_max": self.nights_max,
            "adults": self.adults,
            "children": self.children,
            "budget_min": self.budget_min or 0,
            "budget_max": self.budget_max,
            "meal": self.meal or "",
            "rating": self.rating,
            "sort": self.sort,
            "period": self.period or "",
        }


@dataclass
class TourResult:
    """One normalized inventory offer."""

    price: int
    hotel_id: int
    currency: str = "RUB"
    date_from: str = ""
    nights: int = 0
    operator: str = ""
    hotel_name: str | None = None
    stars: int | None = None
    rating: float | None = None
    meal: str | None = None
    room: str | None = None
    region: str | None = None
    country: str | None = None
    image_url: str | None = None
    tour_id: str | None = None


@dataclass
class SearchOutcome:
    """Result of executing one specification against a backend."""

    request_id: str
    results: list[TourResult] = field(default_factory=list)
    timed_out: bool = False
    polls: int = 0
    total: int | None = None


def period_window(period: Period, year: int, today: date | None = None) -> tuple[str, str]:
    """Resolve a symbolic period to a concrete [from, to] ISO window."""
    if period == "summer":
        return f"{year}-06-01", f"{year}-08-31"
    if period == "autumn":
        return f"{year}-09-01", f"{year}-11-30"
    start = today or date.today()
    days = 30 if period == "next_month" else 60
    return start.isoformat(), (start + timedelta(days=days)).isoformat()


def missing_slots(draft: SearchDraft) -> list[Slot]:
    """Required slots not yet present, in prompting order."""
    missing: list[Slot] = []
    if not draft.has_country():
        missing.append("country")
    if not draft.has_nights():
        missing.append("nights")
    if not draft.has_budget():
        missing.append("budget")
    return missing


def build_specification(
    draft: SearchDraft,
    defaults: SearchDefaults,
    today: date | None = None,
) -> SearchSpecification:
    """Resolve a complete draft into a specification, filling defaults."""
    missing = missing_slots(draft)
    if missing:
        raise IncompleteDraftError(f"draft is missing {', '.join(missing)}")

    country = country_by_id(draft.country_id) or find_country(draft.country_name)
    if country is None:
        raise IncompleteDraftError(f"unsupported country {draft.country_name!r}")

    if draft.date_from and draft.date_to:
        date_from, date_to = draft.date_from, draft.date_to
        period = None
    elif draft.period:
        date_from, date_to = period_window(draft.period, defaults.year, today)
        period = draft.period
    else:
        date_from, date_to = defaults.window()
        period = None

    budget = draft.budget
    assert budget is not None
    return SearchSpecification(
        country_id=country.id,
        country_name=country.code,
        nights_min=draft.nights_min,
        nights_max=draft.nights_max,
        budget_min=budget.min,
        budget_max=budget.max,
        budget_target=budget.target,
        date_from=date_from,
        date_to=date_to,
        period=period,
        departure_id=defaults.departure_id,
        adults=draft.adults if draft.adults is not None else defaults.adults,
        children=draft.children if draft.children is not None else defaults.children,
        meal=None if draft.meal in (None, "ANY") else draft.meal,
        rating=draft.rating or 0.0,
        limit=defaults.limit,
        offset=0,
        sort=draft.sort or defaults.sort,
    )
