"""
Slot-filling draft manager.

A conversation collecting a search holds one SearchDraft.  Every message
may carry several slots at once; all of them are merged before the
missing-slot list is recomputed, so we never ask for something the user
already said.  Required slots are prompted in a fixed order:
country → nights → budget.
"""

from dataclasses import dataclass, fields
from typing import Literal

from src.domain.extractors import (
    DEFAULT_SEARCH_YEAR,
    detect_unsupported_country,
    extract_adults,
    extract_budget,
    extract_children,
    extract_country,
    extract_dates,
    extract_meal,
    extract_nights_range,
    extract_period,
    extract_rating,
    normalize_text,
    parse_positive_int,
)
from src.domain.search import (
    MAX_NIGHTS,
    MIN_NIGHTS,
    Budget,
    SearchDraft,
    Slot,
    missing_slots,
)

MIN_BUDGET = 10_000


@dataclass
class DraftProgress:
    draft: SearchDraft
    missing: list[Slot]
    awaiting: Slot | None

    @property
    def complete(self) -> bool:
        return not self.missing


@dataclass
class SlotAnswer:
    """Outcome of parsing an answer to a targeted slot prompt."""

    patch: SearchDraft | None = None
    error: Literal["unparsed", "invalid", "holidays", "unsupported"] | None = None
    unsupported_label: str | None = None


def draft_from_text(text: str, default_year: int = DEFAULT_SEARCH_YEAR) -> SearchDraft:
    """Extract every slot a free-form message carries."""
    draft = SearchDraft()

    country = extract_country(text)
    if country:
        draft.country_id = country.id
        draft.country_name = country.code

    nights = extract_nights_range(text)
    if nights:
        draft.nights_min, draft.nights_max = nights

    budget = extract_budget(text)
    if budget and budget.max >= MIN_BUDGET:
        draft.budget = budget

    draft.meal = extract_meal(text)

    dates = extract_dates(text, default_year)
    if dates:
        draft.date_from, draft.date_to = dates
    else:
        draft.period = extract_period(text)

    draft.rating = extract_rating(text)
    draft.adults = extract_adults(text)
    draft.children = extract_children(text)
    return draft


def merge_draft(draft: SearchDraft, patch: SearchDraft) -> SearchDraft:
    """Return a new draft with every present slot of patch applied."""
    merged = SearchDraft(**{f.name: getattr(draft, f.name) for f in fields(SearchDraft)})
    for f in fields(SearchDraft):
        value = getattr(patch, f.name)
        if value is not None:
            setattr(merged, f.name, value)

    # a concrete month and a symbolic period are alternatives
    if patch.date_from and patch.date_to:
        merged.period = None
    elif patch.period:
        merged.date_from = merged.date_to = None
    return merged


def advance(draft: SearchDraft | None, patch: SearchDraft) -> DraftProgress:
    """Merge newly extracted slots and recompute what is still missing."""
    merged = merge_draft(draft or SearchDraft(), patch)
    missing = missing_slots(merged)
    return DraftProgress(draft=merged, missing=missing, awaiting=missing[0] if missing else None)


def parse_slot_answer(
    slot: Slot,
    text: str,
    default_year: int = DEFAULT_SEARCH_YEAR,
) -> SlotAnswer:
    """
    Parse an answer to the prompt for `slot`.

    Any other slots present in the same message are kept in the patch.
    error="unparsed" means the answer is not that slot's type and the same
    prompt should be repeated; error="invalid" means it parsed but is out
    of range.
    """
    patch = draft_from_text(text, default_year)
    t = normalize_text(text)

    if slot == "country":
        if patch.has_country():
            return SlotAnswer(patch=patch)
        label = detect_unsupported_country(text)
        if label:
            return SlotAnswer(error="unsupported", unsupported_label=label)
        return SlotAnswer(error="unparsed")

    if slot == "nights":
        if patch.has_nights():
            return SlotAnswer(patch=patch)
        if "праздник" in t:
            return SlotAnswer(error="holidays")
        if "выходн" in t:
            patch.nights_min = patch.nights_max = 3
            return SlotAnswer(patch=patch)
        value = parse_positive_int(text)
        if value is None:
            return SlotAnswer(error="unparsed")
        if not MIN_NIGHTS <= value <= MAX_NIGHTS:
            return SlotAnswer(error="invalid")
        patch.nights_min = patch.nights_max = value
        return SlotAnswer(patch=patch)

    # budget
    if patch.has_budget():
        return SlotAnswer(patch=patch)
    budget = extract_budget(text)
    value = budget.max if budget else parse_positive_int(text)
    if value is None:
        return SlotAnswer(error="unparsed")
    if value < MIN_BUDGET:
        return SlotAnswer(error="invalid")
    patch.budget = Budget.around(value)
    return SlotAnswer(patch=patch)
