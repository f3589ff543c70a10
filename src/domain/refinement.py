"""
Refinement resolver: follow-up messages after a search has run.

parse_refinement() turns a message into a patch containing only the
fields it unambiguously changes, or None when the message is not a
refinement.  An ambiguous amount ("а за 250к?") is never guessed: the
caller asks whether it is a ceiling or a rough target first, and the
answer decides between X and round(X * 1.2).
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Literal

from src.domain.extractors import (
    DEFAULT_SEARCH_YEAR,
    extract_adults,
    extract_budget,
    extract_country,
    extract_dates,
    extract_meal,
    extract_nights_range,
    extract_period,
    extract_rating,
    has_explicit_approx_marker,
    has_explicit_max_marker,
    normalize_text,
    parse_positive_int,
)
from src.domain.search import (
    Budget,
    Period,
    SearchSpecification,
    Sort,
    period_window,
)


@dataclass
class RefinementPatch:
    country_id: int | None = None
    country_name: str | None = None
    nights_min: int | None = None
    nights_max: int | None = None
    date_from: str | None = None
    date_to: str | None = None
    period: Period | None = None
    meal: str | None = None
    budget: Budget | None = None
    rating: float | None = None
    adults: int | None = None
    sort: Sort | None = None
    country_switch: bool = False

    def is_empty(self) -> bool:
        return self == RefinementPatch()


@dataclass
class BudgetAnswer:
    kind: Literal["none", "max", "target"]
    value: int = 0


@dataclass
class BudgetClarification:
    """Pending "ceiling or target?" question about an ambiguous amount."""

    value: int
    origin: Literal["collecting", "refinement"]
    details: dict = field(default_factory=dict)


def parse_refinement(
    text: str,
    prior: SearchSpecification,
    default_year: int = DEFAULT_SEARCH_YEAR,
) -> RefinementPatch | None:
    """Patch of fields the message changes relative to `prior`, or None."""
    t = normalize_text(text)
    patch = RefinementPatch()

    country = extract_country(text)
    if country and country.id != prior.country_id:
        patch.country_id = country.id
        patch.country_name = country.code
        patch.country_switch = True

    period = extract_period(text)
    if period:
        patch.period = period
    else:
        dates = extract_dates(text, default_year)
        if dates:
            patch.date_from, patch.date_to = dates

    nights = extract_nights_range(text)
    if nights:
        patch.nights_min, patch.nights_max = nights

    budget = extract_budget(text)
    if budget:
        patch.budget = budget
    elif "дешевле" in t:
        patch.sort = "price_asc"
    elif "дороже" in t:
        patch.sort = "price_desc"

    patch.meal = extract_meal(text)
    patch.rating = extract_rating(text)
    patch.adults = extract_adults(text)

    # naming the current country again re-runs the same search
    if patch.is_empty() and country is None:
        return None
    return patch


def apply_refinement(
    prior: SearchSpecification,
    patch: RefinementPatch,
    default_year: int = DEFAULT_SEARCH_YEAR,
    today: date | None = None,
) -> SearchSpecification:
    """New specification with the patch applied; pagination restarts."""
    changes: dict = {"offset": 0}
    if patch.country_id is not None:
        changes["country_id"] = patch.country_id
        changes["country_name"] = patch.country_name
    if patch.nights_min is not None:
        changes["nights_min"] = patch.nights_min
        changes["nights_max"] = patch.nights_max
    if patch.period:
        changes["date_from"], changes["date_to"] = period_window(patch.period, default_year, today)
        changes["period"] = patch.period
    elif patch.date_from and patch.date_to:
        changes["date_from"] = patch.date_from
        changes["date_to"] = patch.date_to
        changes["period"] = None
    if patch.budget is not None:
        changes.update(budget_changes(patch.budget))
    if patch.meal is not None:
        changes["meal"] = None if patch.meal == "ANY" else patch.meal
    if patch.rating is not None:
        changes["rating"] = patch.rating
    if patch.adults is not None:
        changes["adults"] = patch.adults
    if patch.sort is not None:
        changes["sort"] = patch.sort
    return prior.with_changes(**changes)


def budget_changes(budget: Budget | None) -> dict:
    """Specification fields for a budget; None clears the ceiling."""
    if budget is None:
        return {"budget_min": None, "budget_max": 0, "budget_target": None}
    return {"budget_min": budget.min, "budget_max": budget.max, "budget_target": budget.target}


def detect_budget_target_question(text: str) -> int | None:
    """
    Amount whose meaning is ambiguous: "за 250к", "а 200 тысяч?".

    Explicit "около"/"до" markers make the amount unambiguous, so None.
    """
    if has_explicit_approx_marker(text) or has_explicit_max_marker(text):
        return None
    t = normalize_text(text)
    if not re.search(r"(?:^|\s)за\s*\d", t) and "?" not in t:
        return None
    budget = extract_budget(text)
    if budget is None:
        return None
    return budget.reference


def parse_budget_answer(text: str, pending_value: int | None = None) -> BudgetAnswer | None:
    """
    Interpret a budget answer.

    With pending_value (answering the ceiling-or-target question) an answer
    without a target marker is a ceiling; without it, an approximate amount
    counts as a target.  "без лимита" means no ceiling.
    """
    t = normalize_text(text)
    if "без" in t and "лим" in t:
        return BudgetAnswer(kind="none")
    if t.startswith("-"):
        return None

    budget = extract_budget(text)
    value = budget.reference if budget else None
    if value is None:
        value = parse_positive_int(text)
    if value is None and pending_value is not None and re.search(
        r"максимум|потолок|ориентир|около|примерно|в\s+районе|\bдо\b", t
    ):
        value = pending_value
    if value is None:
        return None

    target_marker = bool(re.search(r"ориентир|(?:^|\s)за\s*\d", t)) or has_explicit_approx_marker(text)
    if target_marker:
        return BudgetAnswer(kind="target", value=value)
    if has_explicit_max_marker(text) or re.search(r"потолок", t):
        return BudgetAnswer(kind="max", value=value)
    if pending_value is not None:
        return BudgetAnswer(kind="max", value=value)
    if budget is not None and budget.kind == "approx":
        return BudgetAnswer(kind="target", value=value)
    return BudgetAnswer(kind="max", value=budget.max if budget else value)


def budget_from_answer(answer: BudgetAnswer) -> Budget | None:
    """Ceiling X for "max", round(X * 1.2) for "target", None for no limit."""
    if answer.kind == "none":
        return None
    if answer.kind == "target":
        return Budget.from_target_answer(answer.value)
    return Budget.ceiling(answer.value)
