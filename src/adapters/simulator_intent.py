"""
SimulatorIntentParser — deterministic keyword-based parser for tests and demos.

No LLM calls, no network.  Recognises the common Russian and English
phrasings of destinations, night counts, "до N" budgets, ratings, meal and
season, and falls back to "unknown" with a stable set of clarifying
questions chosen by hashing the input.
"""

import asyncio
import hashlib
import re
from typing import Any

from src.domain.intent import IntentParser

_COUNTRY_TOKENS = [
    ("турц", "Turkey"), ("turkey", "Turkey"),
    ("егип", "Egypt"), ("egypt", "Egypt"),
    ("оаэ", "UAE"), ("uae", "UAE"), ("emirates", "UAE"),
    ("тайл", "Thailand"), ("thailand", "Thailand"),
    ("мальдив", "Maldives"), ("maldives", "Maldives"),
    ("сейшел", "Seychelles"), ("seychelles", "Seychelles"),
]

UNKNOWN_QUESTION_SETS = [
    [
        "Какую страну рассматриваете?",
        "Какой бюджет на поездку?",
        "На сколько ночей планируете отдых?",
    ],
    [
        "Куда хотите поехать: Турция, Египет, ОАЭ, Таиланд, Мальдивы или Сейшелы?",
        "Какой максимум по бюджету?",
    ],
    [
        "Подскажите страну и желаемый бюджет.",
        "Нужны ли 7–10 ночей или другой диапазон?",
    ],
]

_NIGHTS = re.compile(r"(\d{1,2})\s*(?:ноч(?:ей|и|ь)?|nights?)")
_BUDGET_K = re.compile(r"до\s*(\d{2,3})\s*[кk]")
_BUDGET_RAW = re.compile(r"до\s*(\d{5,7})\b")
_RATING = re.compile(r"([3-5](?:[.,]\d)?)\s*\+")
_ALL_INCLUSIVE = re.compile(r"все\s*включено|всё\s*включено|all\s*inclusive|\bai\b")
_PERIODS = [
    (re.compile(r"ближайш\w*\s*месяц|next\s*month"), "next_month"),
    (re.compile(r"1\s*[–-]\s*2\s*месяц|1\s*2\s*months?"), "1_2_months"),
    (re.compile(r"\bлетом\b|\bsummer\b"), "summer"),
    (re.compile(r"\bосенью\b|\bautumn\b|\bfall\b"), "autumn"),
]


def _hash_int(text: str) -> int:
    return int.from_bytes(hashlib.sha1(text.encode()).digest()[:4], "big")


class SimulatorIntentParser(IntentParser):
    """
    Keyword-based intent parser.

    Test helpers:
        inject_response(raw)  — the next call returns `raw` verbatim
        fail_with(exc)        — the next call raises `exc`
        delay(seconds)        — every call sleeps first (timeout tests)
        calls                 — list of texts passed to parse_intent()
    """

    def __init__(self, seed: str = "0"):
        self._seed = seed
        self._queued: list[Any] = []
        self._delay = 0.0
        self.calls: list[str] = []

    def inject_response(self, raw: Any) -> None:
        self._queued.append(raw)

    def fail_with(self, exc: Exception) -> None:
        self._queued.append(exc)

    def delay(self, seconds: float) -> None:
        self._delay = seconds

    async def parse_intent(self, text: str) -> dict[str, Any]:
        self.calls.append(text)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._queued:
            queued = self._queued.pop(0)
            if isinstance(queued, Exception):
                raise queued
            return queued

        t = text.lower().strip()
        args: dict[str, Any] = {}

        country = next((name for token, name in _COUNTRY_TOKENS if token in t), None)
        if country:
            args["country_name"] = country

        m = _NIGHTS.search(t)
        if m and int(m.group(1)) > 0:
            args["nights_min"] = args["nights_max"] = min(30, int(m.group(1)))

        m = _BUDGET_K.search(t)
        if m:
            args["budget_max"] = int(m.group(1)) * 1000
        else:
            m = _BUDGET_RAW.search(t)
            if m:
                args["budget_max"] = int(m.group(1))

        m = _RATING.search(t)
        if m:
            args["rating"] = max(0.0, min(5.0, float(m.group(1).replace(",", "."))))

        if _ALL_INCLUSIVE.search(t):
            args["meal"] = "AI"

        for pattern, period in _PERIODS:
            if pattern.search(t):
                args["period"] = period
                break

        if args:
            return {"type": "search_tours", "args": args, "confidence": 0.74}

        idx = _hash_int(f"{self._seed}:{t}") % len(UNKNOWN_QUESTION_SETS)
        return {
            "type": "unknown",
            "reason": "not_enough_data",
            "questions": list(UNKNOWN_QUESTION_SETS[idx]),
        }
