"""Per-conversation favorites: individually saved tours and saved result collections."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from src.domain.search import TourResult


@dataclass
class ParamsSnapshot:
    """The search a collection was saved from."""

    country: str
    nights: int
    budget_min: int | None = None
    budget_max: int | None = None
    meal: str | None = None


@dataclass
class SavedCollection:
    id: str
    created_at: datetime
    params: ParamsSnapshot
    tours: list[TourResult]


@dataclass
class FavoritesStore:
    tours: list[TourResult] = field(default_factory=list)
    collections: list[SavedCollection] = field(default_factory=list)
    _seq: int = 0

    def save_tour(self, tour: TourResult) -> bool:
        """Add a tour unless one with the same hotel is already saved."""
        if any(t.hotel_id == tour.hotel_id for t in self.tours):
            return False
        self.tours.append(tour)
        return True

    def remove_tour(self, hotel_id: int) -> bool:
        before = len(self.tours)
        self.tours = [t for t in self.tours if t.hotel_id != hotel_id]
        return len(self.tours) != before

    def save_collection(
        self,
        params: ParamsSnapshot,
        tours: list[TourResult],
        max_tours: int = 10,
        created_at: datetime | None = None,
    ) -> SavedCollection:
        self._seq += 1
        collection = SavedCollection(
            id=f"fav-{self._seq}",
            created_at=created_at or datetime.now(timezone.utc),
            params=params,
            tours=list(tours[: max(1, max_tours)]),
        )
        self.collections.append(collection)
        return collection

    def open_collection(self, collection_id: str) -> SavedCollection | None:
        return next((c for c in self.collections if c.id == collection_id), None)

    def delete_collection(self, collection_id: str) -> bool:
        before = len(self.collections)
        self.collections = [c for c in self.collections if c.id != collection_id]
        return len(self.collections) != before

    def clear(self) -> None:
        self.tours = []
        self.collections = []

    def all_tours(self) -> list[TourResult]:
        """Saved tours followed by collection tours, one per hotel."""
        seen: set[int] = set()
        result: list[TourResult] = []
        for tour in self.tours + [t for c in self.collections for t in c.tours]:
            if tour.hotel_id in seen:
                continue
            seen.add(tour.hotel_id)
            result.append(tour)
        return result

    def find(self, hotel_id: int) -> TourResult | None:
        return next((t for t in self.all_tours() if t.hotel_id == hotel_id), None)

    def is_empty(self) -> bool:
        return not self.tours and not self.collections
