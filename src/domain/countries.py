"""
Destination catalogue: the six countries we can search, and the
neighbouring-market countries people often ask about but we cannot serve.
"""

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class Country:
    """A searchable destination."""

    id: int             # inventory provider country id
    code: str           # canonical English name, e.g. "Turkey"
    label: str          # Russian display name
    flag: str
    slug: str           # asset directory name
    patterns: tuple[str, ...]


SUPPORTED_COUNTRIES: list[Country] = [
    Country(47, "Turkey", "Турция", "🇹🇷", "turkey", (r"\bturkey\b", r"турц")),
    Country(54, "Egypt", "Египет", "🇪🇬", "egypt", (r"\begypt\b", r"егип")),
    Country(29, "Thailand", "Таиланд", "🇹🇭", "thailand",
            (r"\bthailand\b", r"таил", r"(?:^|\s)тай(?!п)")),
    Country(63, "UAE", "ОАЭ", "🇦🇪", "uae",
            (r"\buae\b", r"оаэ", r"эмират", r"\bemirates\b", r"дубай")),
    Country(90, "Maldives", "Мальдивы", "🇲🇻", "maldives", (r"\bmaldives\b", r"мальдив")),
    Country(91, "Seychelles", "Сейшелы", "🇸🇨", "seychelles", (r"\bseychelles\b", r"сейшел")),
]

# (display label, pattern)
UNSUPPORTED_COUNTRIES: list[tuple[str, str]] = [
    ("Африка", r"\bафрик|\bafrica\b"),
    ("Италия", r"\bитал|\bitaly\b"),
    ("Франция", r"\bфранц|\bfrance\b"),
    ("Россия", r"\bросси|\brussia\b"),
    ("Вьетнам", r"\bвьет|\bvietnam\b"),
    ("Австралия", r"\bавстрал|\baustralia\b"),
    ("Испания", r"\bиспан|\bspain\b"),
    ("Греция", r"\bгрец|\bgreece\b"),
]

_BY_ID = {c.id: c for c in SUPPORTED_COUNTRIES}
_BY_CODE = {c.code.lower(): c for c in SUPPORTED_COUNTRIES}


def country_by_id(country_id: int | None) -> Country | None:
    if country_id is None:
        return None
    return _BY_ID.get(country_id)


def find_country(name: str | None) -> Country | None:
    """
    Resolve a free-form country name ("Turkey", "турция", "Дубай") to a
    supported destination, or None.
    """
    if not name or not name.strip():
        return None
    lower = name.strip().lower().replace("ё", "е")
    if lower in _BY_CODE:
        return _BY_CODE[lower]
    for country in SUPPORTED_COUNTRIES:
        if country.label.lower() == lower:
            return country
        if any(re.search(p, lower) for p in country.patterns):
            return country
    return None


def supported_labels() -> str:
    return ", ".join(c.label for c in SUPPORTED_COUNTRIES)
