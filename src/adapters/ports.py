from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from src.domain.search import SearchSpecification, TourResult


class SearchBackendError(Exception):
    """A search backend could not be reached or answered with an error."""


class SearchSubmitError(SearchBackendError):
    """Submitting a search failed or yielded no request id."""


class SearchPollError(SearchBackendError):
    """Fetching results for a submitted search failed."""


@dataclass
class PollResult:
    """One poll of a submitted search."""

    done: bool
    payload: Any = None


class SearchBackend(ABC):
    """
    Port: how we query tour inventory.

    The conversation depends ONLY on this interface.
    It doesn't know or care whether offers come from the live provider
    or from the deterministic synthetic market.

    Backends are synchronous; SearchExecutor runs them in a worker thread
    and owns the poll-with-timeout loop.
    """

    @abstractmethod
    def submit(self, spec: SearchSpecification) -> str:
        """Start a search and return its opaque request id."""
        ...

    @abstractmethod
    def poll(self, request_id: str) -> PollResult:
        """Fetch the current state of a submitted search."""
        ...

    @abstractmethod
    def normalize(self, payload: Any) -> list[TourResult]:
        """Turn a raw poll payload into TourResult items (positive price and hotel id only)."""
        ...
