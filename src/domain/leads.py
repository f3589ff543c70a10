"""
LeadStore port — append-only record of booking requests.

The conversation hands over a completed Lead and never reads it back;
recent() exists for operators and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class Lead:
    ts: str                      # ISO timestamp, UTC
    chat_id: str
    phone_number: str
    hotel_id: int
    request_id: str
    country_id: int | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    search_params: dict = field(default_factory=dict)


class LeadStore(ABC):

    @abstractmethod
    async def append(self, lead: Lead) -> None:
        ...

    @abstractmethod
    async def recent(self, limit: int = 20) -> list[Lead]:
        """Most recent leads, oldest first."""
        ...
