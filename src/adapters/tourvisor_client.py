import logging
from typing import Any

import requests

from src.domain.search import SearchSpecification, TourResult

from .normalize import extract_request_id, is_done, normalize_tours, parse_body
from .ports import PollResult, SearchBackend, SearchPollError, SearchSubmitError

log = logging.getLogger(__name__)

BASE_URL = "https://tourvisor.ru/xml/modsearch.php"
RESULT_URL = "https://search3.tourvisor.ru/modresult.php"

_MEAL_IDS = {"RO": 1, "BB": 2, "HB": 3, "FB": 4, "AI": 5}
# paging of requests that timed out is never popped; keep only the newest
_MAX_TRACKED = 256


class TourvisorClient(SearchBackend):
    """Adapter: live Tourvisor-style HTTP search (submit, then poll by request id)."""

    def __init__(
        self,
        login: str = "",
        password: str = "",
        base_url: str = BASE_URL,
        result_url: str = RESULT_URL,
        timeout: float = 10.0,
    ):
        self.session = requests.Session()
        self.session.headers.update({"Cache-Control": "no-cache"})
        self._auth = {"authlogin": login, "authpass": password} if login else {}
        self._base_url = base_url
        self._result_url = result_url
        self._timeout = timeout
        self._paging: dict[str, tuple[int, int]] = {}

    def submit(self, spec: SearchSpecification) -> str:
        params = {
            **self._auth,
            "country": spec.country_id,
            "departure": spec.departure_id,
            "datefrom": spec.date_from,
            "dateto": spec.date_to,
            "nightsfrom": spec.nights_min,
            "nightsto": spec.nights_max,
            "adults": spec.adults,
            "child": spec.children,
            "pricefrom": spec.budget_min or 0,
            "priceto": spec.budget_max or 0,
            "meal": _MEAL_IDS.get((spec.meal or "").upper(), 0),
            "rating": spec.rating or 0,
            "format": "json",
        }
        try:
            resp = self.session.get(self._base_url, params=params, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SearchSubmitError(f"submit failed: {exc}") from exc

        request_id = extract_request_id(resp.text)
        if not request_id:
            raise SearchSubmitError("submit did not return a request id")

        self._paging[request_id] = (spec.offset, spec.limit)
        while len(self._paging) > _MAX_TRACKED:
            self._paging.pop(next(iter(self._paging)))
        log.info("Submitted search req=%s country=%s", request_id, spec.country_id)
        return request_id

    def poll(self, request_id: str) -> PollResult:
        offset, limit = self._paging.get(request_id, (0, 5))
        params = {
            **self._auth,
            "requestid": request_id,
            "type": "result",
            "page": offset // max(1, limit) + 1,
            "onpage": limit,
            "format": "json",
        }
        try:
            resp = self.session.get(self._result_url, params=params, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SearchPollError(f"poll failed for {request_id}: {exc}") from exc

        payload = parse_body(resp.text)
        done = is_done(payload)
        if done:
            self._paging.pop(request_id, None)
        return PollResult(done=done, payload=payload)

    def normalize(self, payload: Any) -> list[TourResult]:
        return normalize_tours(payload)
