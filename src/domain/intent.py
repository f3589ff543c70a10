"""
Intent types and the IntentParser port.

The classifier turns one user message into an Intent.  Fast rule-based
paths decide most messages; an optional external IntentParser (an LLM) is
consulted only when no rule fires.  Its output is untrusted: it is a raw
mapping that must pass ParsedIntent validation before anything reads it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from src.domain.extractors import Command, MetaTopic
from src.domain.search import SearchDraft


@dataclass
class Intent:
    """Structured classification of one message — no raw text, only data."""

    kind: Literal[
        "search_tours",
        "meta",
        "smalltalk",
        "unsupported_country",
        "command",
        "unknown",
    ]
    draft: SearchDraft | None = None        # search_tours
    topic: MetaTopic | None = None          # meta
    label: str | None = None                # unsupported_country
    command: Command | None = None          # command
    reason: str | None = None               # unknown
    questions: list[str] = field(default_factory=list)  # unknown, at most 3
    confidence: float | None = None
    source: Literal["rules", "external"] = "rules"


class ClassifierError(Exception):
    """An external intent parser failed (transport, decoding)."""


class IntentParser(ABC):
    """
    Port: external free-text intent parser.

    Implementations may call an LLM (ClaudeIntentParser) or run
    deterministic keyword matching (SimulatorIntentParser).  The returned
    mapping is validated by the classifier, never trusted as-is.
    """

    @abstractmethod
    async def parse_intent(self, text: str) -> dict[str, Any]:
        """Return a raw tagged-union mapping with a "type" key."""
        ...


# ---------------------------------------------------------------------------
# Validation schema for external parser output
# ---------------------------------------------------------------------------

_ISO_DATE = r"^\d{4}-\d{2}-\d{2}$"


class SearchArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    country_name: str | None = None
    budget_max: int | None = Field(default=None, ge=0)
    budget_min: int | None = Field(default=None, ge=0)
    rating: float | None = Field(default=None, ge=0, le=5)
    nights_min: int | None = Field(default=None, ge=1, le=30)
    nights_max: int | None = Field(default=None, ge=1, le=30)
    period: Literal["next_month", "1_2_months", "summer", "autumn"] | None = None
    meal: Literal["RO", "BB", "HB", "FB", "AI", "ANY"] | None = None
    limit: int | None = Field(default=None, ge=1, le=20)
    offset: int | None = Field(default=None, ge=0)
    sort: Literal["price_asc", "price_desc"] | None = None
    departure_id: int | None = Field(default=None, ge=1)
    date_from: str | None = Field(default=None, pattern=_ISO_DATE)
    date_to: str | None = Field(default=None, pattern=_ISO_DATE)
    adults: int | None = Field(default=None, ge=1, le=8)
    children: int | None = Field(default=None, ge=0, le=4)

    @model_validator(mode="after")
    def _ordered(self) -> "SearchArgs":
        if self.nights_min and self.nights_max and self.nights_min > self.nights_max:
            raise ValueError("nights_min must not exceed nights_max")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class SearchToursIntent(BaseModel):
    type: Literal["search_tours"]
    args: SearchArgs
    confidence: float | None = Field(default=None, ge=0, le=1)


class MetaIntent(BaseModel):
    type: Literal["meta"]
    topic: Literal["capabilities", "help", "about", "pricing", "other"]
    confidence: float | None = Field(default=None, ge=0, le=1)


class SmalltalkIntent(BaseModel):
    type: Literal["smalltalk"]
    confidence: float | None = Field(default=None, ge=0, le=1)


class UnknownIntent(BaseModel):
    type: Literal["unknown"]
    reason: str | None = None
    questions: list[str] | None = Field(default=None, min_length=1, max_length=3)
    confidence: float | None = Field(default=None, ge=0, le=1)


ParsedIntent = Annotated[
    Union[SearchToursIntent, MetaIntent, SmalltalkIntent, UnknownIntent],
    Field(discriminator="type"),
]

PARSED_INTENT: TypeAdapter[ParsedIntent] = TypeAdapter(ParsedIntent)
