"""
SimulatorSearchBackend — deterministic synthetic tour market.

No network.  Every query builds a market of 60–100 offers from a seed
derived from the normalized search parameters (or an explicit seed mixed
with them), so identical input yields identical ordered results and
identical image assignment on every call.
"""

import hashlib
import json
import re
from collections import deque
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from src.domain.search import MEAL_CODES, SearchSpecification, TourResult

from .normalize import normalize_tours
from .ports import PollResult, SearchBackend, SearchPollError, SearchSubmitError


@dataclass(frozen=True)
class _Destination:
    id: int
    name: str
    slug: str
    resorts: tuple[str, ...]
    price_factor: float


_DESTINATIONS = [
    _Destination(47, "Turkey", "turkey", ("Antalya", "Kemer", "Belek", "Alanya", "Side"), 1.0),
    _Destination(54, "Egypt", "egypt", ("Hurghada", "Sharm El Sheikh", "Marsa Alam"), 0.92),
    _Destination(29, "Thailand", "thailand", ("Phuket", "Krabi", "Khao Lak", "Pattaya", "Samui"), 1.08),
    _Destination(63, "UAE", "uae", ("Dubai", "Abu Dhabi", "Ras Al Khaimah"), 1.25),
    _Destination(90, "Maldives", "maldives", ("North Malé Atoll", "South Malé Atoll", "Ari Atoll", "Baa Atoll"), 1.35),
    _Destination(91, "Seychelles", "seychelles", ("Mahé", "Praslin", "La Digue"), 1.32),
]
_BY_ID = {d.id: d for d in _DESTINATIONS}
_BY_NAME = {d.name.lower(): d for d in _DESTINATIONS}

_HOTEL_BRANDS = [
    "Asteria", "Blue Horizon", "Coral Elite", "Royal Palm", "Sunwave", "Marina Crown",
    "Vista Mare", "Grand Azure", "Luna Coast", "Sea Breeze", "Crystal Bay", "Imperial Sands",
]
_OPERATORS = ["TUI", "Coral", "Anex", "Pegas", "Tez Tour", "Biblio Globus", "Fun&Sun"]
_ROOMS = ["Standard", "Superior", "Deluxe", "Family Room", "Junior Suite", "Suite"]
_MEAL_FACTOR = {"AI": 1.2, "FB": 1.12, "HB": 1.07, "BB": 1.03, "RO": 0.98}
_STAR_FACTOR = {5: 1.5, 4: 1.2, 3: 0.95}
_MAX_LIMIT = 20
_MAX_PENDING = 256
_SUBMIT_HISTORY = 100


class _Rng:
    """xorshift32 seeded from the first four bytes of sha256(seed)."""

    def __init__(self, seed: str):
        digest = hashlib.sha256(seed.encode()).digest()
        self._state = int.from_bytes(digest[:4], "little") or 1

    def random(self) -> float:
        s = self._state
        s ^= (s << 13) & 0xFFFFFFFF
        s ^= s >> 17
        s ^= (s << 5) & 0xFFFFFFFF
        self._state = s
        return s / 0xFFFFFFFF

    def randint(self, low: int, high: int) -> int:
        return int(self.random() * (high - low + 1)) + low

    def pick(self, values):
        return values[self.randint(0, len(values) - 1)]


def _hash_int(text: str) -> int:
    return int.from_bytes(hashlib.sha1(text.encode()).digest()[:4], "big")


def _round_price(value: float, step: int) -> int:
    return int(round(value / step)) * step


def _seed_for(spec: SearchSpecification, explicit: str | None) -> str:
    params = spec.params()
    params.pop("sort")
    encoded = json.dumps(params, ensure_ascii=False, separators=(",", ":"))
    if explicit:
        encoded = f"{explicit}|{encoded}"
    return hashlib.sha256(encoded.encode()).hexdigest()


def _destination(spec: SearchSpecification) -> _Destination:
    return _BY_ID.get(spec.country_id) or _BY_NAME.get(spec.country_name.lower()) or _BY_ID[47]


def _parse_date(value: str, fallback: date) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return fallback


class SimulatorSearchBackend(SearchBackend):
    """
    In-memory search backend for tests and demos.

    Test helpers:
        fail_next(n, stage)   — the next n submits (or polls) raise
        delay_polls(n)        — the next n polls report "not done"
        submitted             — the last 100 SearchSpecification passed to submit()
        in_flight             — submitted requests not yet polled to completion
    """

    def __init__(
        self,
        seed: str | None = None,
        assets_dir: str | Path = "public/assets/hotels",
        today: date | None = None,
    ):
        self._seed = seed
        self._assets_dir = Path(assets_dir)
        self._today = today
        self._pending: dict[str, tuple[SearchSpecification, int]] = {}
        self._image_pools: dict[str, list[str]] = {}
        self._fail = {"submit": 0, "poll": 0}
        self._delayed_polls = 0
        self.submitted: deque[SearchSpecification] = deque(maxlen=_SUBMIT_HISTORY)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_next(self, count: int = 1, stage: str = "submit") -> None:
        self._fail[stage] += count

    def delay_polls(self, count: int) -> None:
        self._delayed_polls += count

    @property
    def in_flight(self) -> int:
        return sum(count for _, count in self._pending.values())

    # ------------------------------------------------------------------
    # SearchBackend
    # ------------------------------------------------------------------

    def submit(self, spec: SearchSpecification) -> str:
        if self._fail["submit"] > 0:
            self._fail["submit"] -= 1
            raise SearchSubmitError("simulated submit failure")
        self.submitted.append(spec)
        seed = _seed_for(spec, self._seed)
        request_id = f"mock-{hashlib.sha1(seed.encode()).hexdigest()[:12]}"
        # identical searches share an id; count them so each poll can finish one
        _, count = self._pending.pop(request_id, (spec, 0))
        self._pending[request_id] = (spec, count + 1)
        while len(self._pending) > _MAX_PENDING:
            self._pending.pop(next(iter(self._pending)))
        return request_id

    def poll(self, request_id: str) -> PollResult:
        if self._fail["poll"] > 0:
            self._fail["poll"] -= 1
            raise SearchPollError("simulated poll failure")
        entry = self._pending.get(request_id)
        if entry is None:
            raise SearchPollError(f"unknown request id {request_id}")
        if self._delayed_polls > 0:
            self._delayed_polls -= 1
            return PollResult(done=False, payload={"requestid": request_id, "finished": False})
        spec, count = entry
        if count > 1:
            self._pending[request_id] = (spec, count - 1)
        else:
            del self._pending[request_id]
        return PollResult(done=True, payload=self.search(spec, request_id))

    def normalize(self, payload: Any) -> list[TourResult]:
        return normalize_tours(payload)

    # ------------------------------------------------------------------
    # Market generation
    # ------------------------------------------------------------------

    def search(self, spec: SearchSpecification, request_id: str | None = None) -> dict:
        """Filtered, sorted, paged payload for one specification."""
        seed = _seed_for(spec, self._seed)
        destination = _destination(spec)
        market = self._build_market(spec, seed, destination)

        nights_min, nights_max = sorted((spec.nights_min, spec.nights_max))
        filtered = [
            t for t in market
            if nights_min <= t["nights"] <= nights_max
            and not (spec.budget_min and t["price"] < spec.budget_min)
            and not (spec.budget_max and t["price"] > spec.budget_max)
            and not (spec.rating and (t["rating"] is None or t["rating"] < spec.rating))
            and not (spec.meal and t["meal"] != spec.meal.upper())
        ]
        filtered.sort(key=lambda t: t["price"], reverse=spec.sort == "price_desc")

        limit = min(_MAX_LIMIT, spec.limit) if spec.limit > 0 else 10
        offset = max(0, spec.offset)
        page = filtered[offset: offset + limit]
        self._assign_images(seed, destination.slug, offset, page)

        return {
            "requestid": request_id or f"mock-{hashlib.sha1(seed.encode()).hexdigest()[:12]}",
            "finished": True,
            "total": len(filtered),
            "results": page,
        }

    def _build_market(self, spec: SearchSpecification, seed: str, destination: _Destination) -> list[dict]:
        rng = _Rng(f"{seed}:market")
        size = rng.randint(60, 100)

        today = self._today or date.today()
        start = _parse_date(spec.date_from, today)
        end = _parse_date(spec.date_to, start + timedelta(days=30))
        range_days = max(0, (end - start).days)

        nights_min = max(1, min(30, spec.nights_min))
        nights_max = max(1, min(30, spec.nights_max))
        nights_min, nights_max = sorted((nights_min, nights_max))

        adults = max(1, min(6, spec.adults))
        children = max(0, min(4, spec.children))
        occupancy = 1 + adults * 0.18 + children * 0.09
        departure = 0.9 + (spec.departure_id % 5) * 0.04

        tours = []
        for i in range(size):
            roll = rng.random()
            stars = 3 if roll < 0.3 else 4 if roll < 0.72 else 5

            nights = rng.randint(nights_min, nights_max)
            if i == 4:
                nights = max(nights_min, min(nights_max, 8))

            offset_days = rng.randint(0, range_days) if range_days > 0 else rng.randint(0, 21)
            date_from = (start + timedelta(days=offset_days)).isoformat()

            roll = rng.random()
            if i < len(MEAL_CODES):
                meal = MEAL_CODES[i]
            else:
                meal = "RO" if roll < 0.14 else "BB" if roll < 0.34 else "HB" if roll < 0.62 else "FB" if roll < 0.82 else "AI"

            operator = rng.pick(_OPERATORS)
            room = rng.pick(_ROOMS)
            city = rng.pick(destination.resorts)

            if stars == 5:
                base_rating = 4.25 + rng.random() * 0.75
            elif stars == 4:
                base_rating = 3.75 + rng.random() * 0.9
            else:
                base_rating = 3.0 + rng.random() * 1.15
            rating = round(max(3.0, min(5.0, base_rating)) * 10) / 10

            operator_factor = 1.06 if operator in ("TUI", "Tez Tour") else 0.97 + rng.random() * 0.1
            noise = 0.9 + rng.random() * 0.22
            gross = (
                42_000
                * _STAR_FACTOR[stars]
                * _MEAL_FACTOR[meal]
                * (0.84 + nights * 0.075)
                * occupancy
                * destination.price_factor
                * departure
                * operator_factor
                * noise
            )
            price = _round_price(gross, 10 if rng.random() < 0.2 else 100)

            brand = rng.pick(_HOTEL_BRANDS)
            hotel_name = f"{brand} Resort {city}" if rng.random() < 0.65 else f"{brand} {city}"
            hotel_id = 1000 + i

            tours.append({
                "price": price,
                "currency": "RUB",
                "date_from": date_from,
                "nights": nights,
                "operator": operator,
                "hotel_id": hotel_id,
                "hotel_name": hotel_name,
                "stars": stars,
                "rating": None if rng.random() < 0.06 else rating,
                "meal": meal,
                "room": room,
                "country_name": destination.name,
                "city_name": city,
                "image_url": None,
                "tour_id": f"{seed[:8]}-{hotel_id}",
            })
        return tours

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def _image_pool(self, slug: str) -> list[str]:
        if slug in self._image_pools:
            return self._image_pools[slug]
        pattern = re.compile(rf"^{slug}_(\d{{2}})\.(jpg|jpeg|png)$", re.IGNORECASE)
        directory = self._assets_dir / slug
        files = []
        if directory.is_dir():
            numbered = []
            for path in directory.iterdir():
                m = pattern.match(path.name)
                if m:
                    numbered.append((int(m.group(1)), path.name))
            files = [f"/assets/hotels/{slug}/{name}" for _, name in sorted(numbered)]
        self._image_pools[slug] = files
        return files

    def _assign_images(self, seed: str, slug: str, offset: int, page: list[dict]) -> None:
        """Deterministic image per card; no image repeats within a page when the pool allows."""
        pool = self._image_pool(slug)
        if not pool:
            return
        size = len(pool)
        start = _hash_int(f"{seed}|{slug}|{offset}") % size
        used: set[int] = set()
        for index, tour in enumerate(page):
            spin = _hash_int(f"{seed}|{tour['hotel_id']}|{offset}|{index}") % size
            idx = (start + index + spin) % size
            if size >= len(page):
                tries = 0
                while idx in used and tries < size:
                    idx = (idx + 1) % size
                    tries += 1
                used.add(idx)
            tour["image_url"] = pool[idx]
