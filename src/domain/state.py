"""
Per-conversation state and the ConversationStore port.

Modes:
  idle                    no active draft
  collecting              a draft misses a required slot; `awaiting` names it
  awaiting_clarification  an ambiguous amount needs "ceiling or target?"
  editing_filter          waiting for a new value of one filter
  results                 a search ran; refinements and "show more" apply
  awaiting_phone          a tour is pinned, waiting for a phone number
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

from src.domain.favorites import FavoritesStore
from src.domain.refinement import BudgetClarification
from src.domain.search import SearchDraft, SearchSpecification, Slot, TourResult

Mode = Literal[
    "idle",
    "collecting",
    "awaiting_clarification",
    "editing_filter",
    "results",
    "awaiting_phone",
]
FilterName = Literal["budget", "rating", "period", "meal"]


@dataclass
class PinnedSelection:
    """The tour a phone number will be correlated with."""

    request_id: str
    hotel_id: int
    source: str
    tour: TourResult
    search: SearchSpecification | None = None


@dataclass
class ConversationState:
    chat_id: str
    mode: Mode = "idle"
    draft: SearchDraft | None = None
    awaiting: Slot | None = None
    last_search: SearchSpecification | None = None
    last_results: list[TourResult] = field(default_factory=list)
    last_request_id: str | None = None
    last_total: int | None = None
    search_seq: int = 0
    pending_budget: BudgetClarification | None = None
    pending_prompt: Literal["show_favorites"] | None = None
    editing_filter: FilterName | None = None
    pinned: PinnedSelection | None = None
    favorites: FavoritesStore = field(default_factory=FavoritesStore)
    last_seen: float = 0.0

    def begin_search(self) -> int:
        """Start a new search generation; results of older ones become stale."""
        self.search_seq += 1
        return self.search_seq

    def is_stale(self, seq: int) -> bool:
        return seq != self.search_seq

    def reset(self) -> None:
        """Forget the dialogue but keep favorites; in-flight searches become stale."""
        self.mode = "idle"
        self.draft = None
        self.awaiting = None
        self.last_search = None
        self.last_results = []
        self.last_request_id = None
        self.last_total = None
        self.pending_budget = None
        self.pending_prompt = None
        self.editing_filter = None
        self.pinned = None
        self.search_seq += 1

    def start_collecting(self, draft: SearchDraft, awaiting: Slot | None) -> None:
        self.mode = "collecting"
        self.draft = draft
        self.awaiting = awaiting

    def stop_collecting(self) -> None:
        self.draft = None
        self.awaiting = None
        self.mode = "results" if self.last_search else "idle"


class ConversationStore(ABC):
    """
    Port: where conversation states live.

    States are created on first contact and evicted after a period of
    inactivity.  Keys never share state.
    """

    @abstractmethod
    async def get(self, chat_id: str) -> ConversationState:
        """Return the state for chat_id, creating it if needed."""
        ...

    @abstractmethod
    async def discard(self, chat_id: str) -> None:
        ...

    @abstractmethod
    async def evict_idle(self) -> int:
        """Drop states idle longer than the store's TTL. Returns how many."""
        ...


class RecentActions:
    """Remembers action keys for a short window to drop rapid duplicates."""

    def __init__(self, window: float = 45.0, retention: float = 60.0):
        self._window = window
        self._retention = retention
        self._seen: dict[str, float] = {}

    def is_duplicate(self, key: str, now: float) -> bool:
        """True if key was registered within the window; registers it otherwise."""
        self._seen = {k: t for k, t in self._seen.items() if now - t < self._retention}
        last = self._seen.get(key)
        if last is not None and now - last < self._window:
            return True
        self._seen[key] = now
        return False

    def forget(self, key: str) -> None:
        self._seen.pop(key, None)
