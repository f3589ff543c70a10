"""
Field-by-field normalization of provider payloads.

Providers disagree on key names, nesting and types.  Each logical field
has an ordered list of accepted alternate keys; the first present key
wins.  Values are coerced explicitly and items without a positive price
and hotel id are dropped.
"""

import json
import math
import re
from typing import Any

from src.domain.search import TourResult

_REQUEST_ID_KEYS = ["requestid", "requestId", "request_id"]
_CONTAINER_KEYS = ["data", "result", "response"]
_LIST_KEYS = ["results", "tours", "hotels", "items"]
_DONE_KEYS = ["finished", "done", "isFinished", "status"]
_TOTAL_KEYS = ["total", "hotelsfound", "toursfound", "count"]

_FIELDS: dict[str, list[str]] = {
    "price": ["price", "cost", "amount"],
    "currency": ["currency", "curr", "valuta"],
    "date_from": ["date_from", "date", "checkin", "flydate"],
    "nights": ["nights", "night", "duration"],
    "operator": ["operator", "tour_operator", "operator_name", "operatorname"],
    "hotel_id": ["hotel_id", "hotelid", "hotelcode", "hid"],
    "hotel_name": ["hotel_name", "hotelname", "hotel", "name"],
    "stars": ["stars", "star", "hotelstars"],
    "rating": ["rating", "rate", "hotelrating"],
    "meal": ["meal", "meal_name", "mealcode"],
    "room": ["room", "room_name", "placement"],
    "region": ["city_name", "region", "regionname", "resort"],
    "country": ["country_name", "country", "countryname"],
    "image_url": ["image_url", "picturelink", "image", "photo"],
    "tour_id": ["tour_id", "tourid", "id"],
}

_XML_REQUEST_ID = re.compile(r"<requestid>([^<]+)</requestid>", re.IGNORECASE)


def pick_first(data: Any, keys: list[str]) -> Any:
    """Value of the first key present in a mapping, else None."""
    if not isinstance(data, dict):
        return None
    for key in keys:
        if key in data:
            return data[key]
    return None


def as_number(value: Any, default: float | None = 0) -> float | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and math.isfinite(value):
        return value
    if isinstance(value, str) and value.strip():
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            return default
        return number if math.isfinite(number) else default
    return default


def as_text(value: Any, default: str | None = "") -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def parse_body(text: str) -> Any:
    """Decode a response body as JSON, or wrap the raw text."""
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def extract_request_id(text: str) -> str | None:
    """Find a request id in a JSON body (top level or nested) or an XML body."""
    data = parse_body(text)
    direct = pick_first(data, _REQUEST_ID_KEYS)
    if direct:
        return str(direct)
    nested = pick_first(pick_first(data, _CONTAINER_KEYS), _REQUEST_ID_KEYS)
    if nested:
        return str(nested)
    match = _XML_REQUEST_ID.search(text)
    return match.group(1).strip() if match else None


def _status_of(payload: Any) -> Any:
    value = pick_first(payload, _DONE_KEYS)
    if value is None:
        value = pick_first(pick_first(payload, _CONTAINER_KEYS), _DONE_KEYS)
    if isinstance(value, dict):
        value = pick_first(value, ["state", "finished", "done"])
    return value


def is_done(payload: Any) -> bool:
    value = _status_of(payload)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("done", "finished", "ok")
    return False


def extract_items(payload: Any) -> list:
    """The offer list, at the top level or one container deep."""
    candidates = [pick_first(payload, _LIST_KEYS), pick_first(payload, _CONTAINER_KEYS)]
    for candidate in candidates:
        if isinstance(candidate, list):
            return candidate
        nested = pick_first(candidate, _LIST_KEYS)
        if isinstance(nested, list):
            return nested
    return []


def extract_total(payload: Any) -> int | None:
    value = pick_first(payload, _TOTAL_KEYS)
    if value is None:
        value = pick_first(pick_first(payload, _CONTAINER_KEYS), _TOTAL_KEYS)
    number = as_number(value, None)
    return int(number) if number is not None and number >= 0 else None


def _to_tour(item: dict) -> TourResult:
    def get(name: str) -> Any:
        return pick_first(item, _FIELDS[name])

    stars = as_number(get("stars"), None)
    rating = as_number(get("rating"), None)
    tour_id = get("tour_id")
    return TourResult(
        price=int(round(as_number(get("price")) or 0)),
        hotel_id=int(as_number(get("hotel_id")) or 0),
        currency=as_text(get("currency")) or "RUB",
        date_from=as_text(get("date_from")) or "",
        nights=int(as_number(get("nights")) or 0),
        operator=as_text(get("operator")) or "",
        hotel_name=as_text(get("hotel_name"), None) or None,
        stars=int(stars) if stars else None,
        rating=float(rating) if rating else None,
        meal=as_text(get("meal"), None) or None,
        room=as_text(get("room"), None) or None,
        region=as_text(get("region"), None) or None,
        country=as_text(get("country"), None) or None,
        image_url=as_text(get("image_url"), None) or None,
        tour_id=str(tour_id) if tour_id not in (None, "") else None,
    )


def normalize_tours(payload: Any) -> list[TourResult]:
    tours = [_to_tour(item) for item in extract_items(payload) if isinstance(item, dict)]
    return [t for t in tours if t.price > 0 and t.hotel_id > 0]
