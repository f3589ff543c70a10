"""
Lexical extractors — pure text → value functions.

Each extractor works on its own normalized copy of the input and never
looks at conversation state, so every rule can be called and tested on
its own.  Rules inside one extractor are tried in a fixed priority order.
"""

import calendar
import re
from typing import Literal

from src.domain.countries import SUPPORTED_COUNTRIES, UNSUPPORTED_COUNTRIES, Country
from src.domain.search import MAX_NIGHTS, MIN_NIGHTS, Budget, Period

Command = Literal[
    "show_more",
    "edit_filters",
    "clear_favorites",
    "favorites",
    "new_search",
    "countries",
    "start_search",
]
MetaTopic = Literal["capabilities", "help", "about", "pricing", "other"]

DEFAULT_SEARCH_YEAR = 2026
MIN_MONEY = 1000

_DASHES = re.compile("[\u2010-\u2015]")
_SPACES = re.compile("[\u00a0\u2009\u202f]")


def normalize_text(text: str) -> str:
    """Lowercase, unify ё/е, dash variants and non-breaking spaces, trim."""
    text = (text or "").lower().replace("ё", "е")
    text = _DASHES.sub("-", text)
    text = _SPACES.sub(" ", text)
    return text.strip()


# ---------------------------------------------------------------------------
# Country
# ---------------------------------------------------------------------------


def extract_country(text: str) -> Country | None:
    t = normalize_text(text)
    for country in SUPPORTED_COUNTRIES:
        if any(re.search(p, t) for p in country.patterns):
            return country
    return None


def detect_unsupported_country(text: str) -> str | None:
    """Return the display label of an unsupported destination mentioned in text."""
    t = normalize_text(text)
    for label, pattern in UNSUPPORTED_COUNTRIES:
        if re.search(pattern, t):
            return label
    return None


# ---------------------------------------------------------------------------
# Nights
# ---------------------------------------------------------------------------

_NIGHT_UNIT = r"(?:ноч(?:ей|и|ь)?|дн(?:ей|я)?|дн(?=\s|$)|д(?=\s|$)|сут(?:ок|ки)?|nights?|days?)"
_NIGHTS_RANGE = re.compile(rf"(?:на\s*)?(?<!\d)(\d{{1,2}})\s*-\s*(\d{{1,2}})\s*{_NIGHT_UNIT}")
_NIGHTS_DIRECT = re.compile(rf"(?:на\s*)?(?<!\d)(\d{{1,2}})\s*{_NIGHT_UNIT}")
_NIGHTS_SHORTHAND = re.compile(r"(?:^|\s)(\d{1,2})\s*(?:н|д|дн)(?=\s|$)")
_NIGHT_IDIOMS = [
    ("на выходные", 3),
    ("две недели", 14),
    ("2 недели", 14),
    ("на неделю", 7),
]


def _valid_nights(value: int) -> bool:
    return MIN_NIGHTS <= value <= MAX_NIGHTS


def extract_nights(text: str) -> int | None:
    """Single night count: idioms, "N ночей/дней/суток", shorthand "7д"."""
    t = normalize_text(text)
    for phrase, nights in _NIGHT_IDIOMS:
        if phrase in t:
            return nights

    for pattern in (_NIGHTS_DIRECT, _NIGHTS_SHORTHAND):
        m = pattern.search(t)
        if m and _valid_nights(int(m.group(1))):
            return int(m.group(1))
    return None


def extract_nights_range(text: str) -> tuple[int, int] | None:
    """Night range "7-10 ночей" as (min, max), or a single count as (n, n)."""
    t = normalize_text(text)
    m = _NIGHTS_RANGE.search(t)
    if m:
        low, high = sorted((int(m.group(1)), int(m.group(2))))
        if _valid_nights(low) and _valid_nights(high):
            return low, high
    nights = extract_nights(t)
    if nights is None:
        return None
    return nights, nights


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------

_K = r"(?:тысяч\w*|тыс\.?|т\.?р\.?|кк?(?![а-я])|k\b|т(?![а-я]))"
_K_MARK = re.compile(r"(?:тыс\w*|т\.?р|т|кк?|k)\.?$")
_AMOUNT = rf"([\d\s.,]+{_K}?)"
_CURRENCY = re.compile(r"руб(?:лей|ля|\.)?|р\.|₽")

_RANGE_FROM_TO = re.compile(rf"(?:^|\s)(?:от|с)\s*{_AMOUNT}\s*(?:до|по)\s*{_AMOUNT}")
_RANGE_DASH = re.compile(rf"([\d\s]+{_K}?)\s*-\s*([\d\s]+{_K}?)")
_MAX = re.compile(rf"(?:\bдо|<=|не\s*больше|\bмакс(?:имум)?)\s*([\d\s]+{_K}?)")
_APPROX_LEADING = re.compile(
    rf"(?:около|примерно|прибл(?:изительно)?|порядка|в\s+районе|~|≈)\s*([\d\s]+{_K}?)"
)
_APPROX_TRAILING = re.compile(rf"([\d\s]+{_K}?)\s*(?:примерно|прибл(?:изительно)?|около)\b")
_BARE = re.compile(rf"(?:^|\s)(\d{{2,3}}(?:\s?\d{{3}})?|\d{{5,7}})\s*({_K})?(?=[\s?,.!]|$)")

_YEAR = re.compile(r"\b20\d{2}\b")
_MONTH_STEMS = r"(?:янв|фев|мар|апр|ма[йяе]|июн|июл|авг|сен|окт|ноя|дек)"
_SHORT_YEAR = re.compile(rf"\b({_MONTH_STEMS}\w*[^\d]{{0,4}})(\d{{2}})\b")
_NUMERIC_MONTH = re.compile(r"(?:^|\s)(?:в|на)\s*(0?[1-9]|1[0-2])\s*-?\s*(?:й\s*)?мес(?:яц)?\w*")
_PARTY = re.compile(r"\d+\s*(?:взросл\w*|реб\w*|дет\w*)")
_RATING = re.compile(r"(?<![\d.,])[3-5](?:[.,]\d)?\s*\+")


def parse_money_token(token: str, force_thousands: bool = False) -> int | None:
    """"120к" → 120000, "90 000 ₽" → 90000. Returns None for zero or no digits."""
    raw = _CURRENCY.sub("", normalize_text(token)).strip()
    if not raw:
        return None
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None
    value = int(digits)
    if value <= 0:
        return None
    if force_thousands or _K_MARK.search(raw):
        value *= 1000
    return value


def _mask_non_money(t: str) -> str:
    """Blank out numbers that belong to nights, years, months, party or rating."""
    for pattern in (_NIGHTS_RANGE, _NIGHTS_DIRECT, _NIGHTS_SHORTHAND, _YEAR,
                    _NUMERIC_MONTH, _PARTY, _RATING):
        t = pattern.sub(" ", t)
    return _SHORT_YEAR.sub(lambda m: m.group(1) + " ", t)


def _plausible(value: int | None) -> bool:
    return value is not None and value >= MIN_MONEY


def _range_from(left: str, right: str) -> Budget | None:
    left_k = bool(_K_MARK.search(left))
    right_k = bool(_K_MARK.search(right))
    shared = left_k or right_k
    a = parse_money_token(left, force_thousands=shared and not left_k)
    b = parse_money_token(right, force_thousands=shared and not right_k)
    if _plausible(a) and _plausible(b):
        return Budget.between(a, b)
    return None


def extract_budget(text: str) -> Budget | None:
    """
    Budget expression, in priority order:
      1. "от X до Y" range      2. "X-Y" range
      3. "до X" ceiling         4. "около X" / "X примерно" approximate
      5. a bare amount          → approximate
    Amounts below MIN_MONEY are skipped so dates and counts are not read as money.
    """
    t = _mask_non_money(normalize_text(text))

    for pattern in (_RANGE_FROM_TO, _RANGE_DASH):
        for m in pattern.finditer(t):
            budget = _range_from(m.group(1), m.group(2))
            if budget:
                return budget

    for m in _MAX.finditer(t):
        value = parse_money_token(m.group(1))
        if _plausible(value):
            return Budget.ceiling(value)

    for pattern in (_APPROX_LEADING, _APPROX_TRAILING):
        for m in pattern.finditer(t):
            value = parse_money_token(m.group(1))
            if _plausible(value):
                return Budget.around(value)

    for m in _BARE.finditer(t):
        value = parse_money_token(m.group(1) + (m.group(2) or ""))
        if _plausible(value):
            return Budget.around(value)

    return None


def has_explicit_approx_marker(text: str) -> bool:
    t = normalize_text(text)
    return bool(re.search(r"около|примерно|прибл|в\s+районе|порядка|[~≈]", t))


def has_explicit_max_marker(text: str) -> bool:
    t = normalize_text(text)
    return bool(re.search(r"\bдо\b|\bмакс|не\s*больше|<=", t))


# ---------------------------------------------------------------------------
# Meal, rating, party size
# ---------------------------------------------------------------------------

_MEAL_RULES = [
    ("ANY", r"питани\w*\s+(?:не\s+важн|любое)|любое\s+питани"),
    ("AI", r"все\s*включ|all\s*inclusive|\bai\b"),
    ("RO", r"без\s+питания|\bro\b"),
    ("BB", r"завтрак|\bbb\b"),
    ("HB", r"полупансион|\bhb\b"),
    ("FB", r"полный\s+пансион|\bfb\b"),
]


def extract_meal(text: str) -> str | None:
    t = normalize_text(text)
    for code, pattern in _MEAL_RULES:
        if re.search(pattern, t):
            return code
    return None


_RATING_PLUS = re.compile(r"(?<![\d.,])([3-5](?:[.,]\d)?)\s*\+")
_RATING_WORD = re.compile(r"рейтинг\w*\s*(?:от\s*|не\s+ниже\s*)?([3-5](?:[.,]\d)?)")


def extract_rating(text: str) -> float | None:
    t = normalize_text(text)
    m = _RATING_WORD.search(t) or _RATING_PLUS.search(t)
    if not m:
        return None
    return min(5.0, float(m.group(1).replace(",", ".")))


_ADULT_WORDS = [
    (r"на\s+двоих|вдвоем|для\s+двоих|с\s+(?:женой|мужем|девушкой|парнем)", 2),
    (r"втроем|на\s+троих", 3),
    (r"вчетвером|на\s+четверых", 4),
    (r"на\s+одного|\bсоло\b", 1),
]


def extract_adults(text: str) -> int | None:
    t = normalize_text(text)
    m = re.search(r"(\d)\s*взросл", t)
    if m and 1 <= int(m.group(1)) <= 8:
        return int(m.group(1))
    for pattern, adults in _ADULT_WORDS:
        if re.search(pattern, t):
            return adults
    return None


def extract_children(text: str) -> int | None:
    t = normalize_text(text)
    m = re.search(r"(\d)\s*(?:дет|реб)", t)
    if m:
        return min(4, int(m.group(1)))
    if re.search(r"с\s+детьми|с\s+двумя\s+детьми", t):
        return 2
    if re.search(r"с\s+ребенк", t):
        return 1
    return None


# ---------------------------------------------------------------------------
# Month and period
# ---------------------------------------------------------------------------

_MONTH_PATTERNS: list[tuple[int, str]] = [
    (1, r"\bянвар|\bянв\b"),
    (2, r"\bфеврал|\bфев\b"),
    (3, r"\bмарт|\bмар\b"),
    (4, r"\bапрел|\bапр\b"),
    (5, r"\bма[йяе]\b|\bмайск"),
    (6, r"\bиюн"),
    (7, r"\bиюл"),
    (8, r"\bавгуст|\bавг\b"),
    (9, r"\bсентябр|\bсент?\b"),
    (10, r"\bоктябр|\bокт\b"),
    (11, r"\bноябр|\bноя\b"),
    (12, r"\bдекабр|\bдек\b"),
]


def extract_month(text: str) -> tuple[int, int | None] | None:
    """(month 1-12, explicit year or None) from "в мае", "июль 2026", "в июле 26"."""
    t = normalize_text(text)
    month = None
    for number, pattern in _MONTH_PATTERNS:
        if re.search(pattern, t):
            month = number
            break
    if month is None:
        m = _NUMERIC_MONTH.search(t)
        if m:
            month = int(m.group(1))
    if month is None:
        return None

    year = None
    m = _YEAR.search(t)
    if m:
        year = int(m.group(0))
    else:
        m = _SHORT_YEAR.search(t)
        if m and 20 <= int(m.group(2)) <= 99:
            year = 2000 + int(m.group(2))
    return month, year


def month_range(month: int, year: int) -> tuple[str, str]:
    last_day = calendar.monthrange(year, month)[1]
    return f"{year}-{month:02d}-01", f"{year}-{month:02d}-{last_day:02d}"


def extract_dates(text: str, default_year: int = DEFAULT_SEARCH_YEAR) -> tuple[str, str] | None:
    """Concrete calendar-month window for a named month, or None."""
    found = extract_month(text)
    if found is None:
        return None
    month, year = found
    return month_range(month, year or default_year)


_PERIOD_RULES: list[tuple[Period, str]] = [
    ("summer", r"\bлетом\b|\bлето\b|\bsummer\b"),
    ("autumn", r"\bосенью\b|\bосень\b|\bautumn\b|\bfall\b"),
    ("1_2_months", r"через\s*1\s*-?\s*2\s*месяц|\b1\s*-\s*2\s*месяц|1\s*-?\s*2\s*months?"),
    ("next_month", r"через\s+месяц|в\s+следующем\s+месяце|ближайш\w*\s+месяц|next\s+month"),
]


def extract_period(text: str) -> Period | None:
    t = normalize_text(text)
    for period, pattern in _PERIOD_RULES:
        if re.search(pattern, t):
            return period
    return None


# ---------------------------------------------------------------------------
# Commands, smalltalk, meta, misc
# ---------------------------------------------------------------------------

_COMMAND_RULES: list[tuple[Command, str]] = [
    ("show_more", r"(?:показать\s*)?ещ[еe]|найти\s+ещ[еe]|show\s+more"),
    ("edit_filters", r"(?:изменить\s+)?фильтры"),
    ("clear_favorites", r"очистить\s+избранное"),
    ("favorites", r"(?:покажи\s+)?избранное|мои\s+туры"),
    ("new_search", r"новый\s+поиск"),
    ("countries", r"страны"),
    ("start_search", r"найти\s+тур|поиск"),
]

_SMALLTALK = {
    "спасибо", "спс", "благодарю", "пожалуйста", "ок", "окей", "ага", "понятно",
    "привет", "здравствуйте", "здравствуй", "добрый день", "hello", "hi", "thanks", "ok",
}

_META_RULES: list[tuple[MetaTopic, str]] = [
    ("capabilities", r"что\s+ты\s+умеешь|что\s+умеешь|что\s+ты\s+можешь"),
    ("help", r"^помощь$|^help$|^/help$|как\s+(?:тобой\s+)?пользоваться"),
    ("about", r"кто\s+ты|ты\s+бот"),
    ("pricing", r"сколько\s+стоят?\s+(?:твои\s+|ваши\s+)?услуги|комисси"),
]


def _command_text(text: str) -> str:
    t = normalize_text(text)
    t = re.sub(r"^[^\w/]+", "", t)
    return re.sub(r"[\s.!?]+$", "", t)


def detect_command(text: str) -> Command | None:
    """Exact match against fixed control phrases (button labels included)."""
    t = _command_text(text)
    for command, pattern in _COMMAND_RULES:
        if re.fullmatch(pattern, t):
            return command
    return None


def detect_smalltalk(text: str) -> bool:
    t = _command_text(text)
    if t in _SMALLTALK:
        return True
    raw = normalize_text(text)
    return bool(re.fullmatch(r"\)+|\(+|аха+|ха+", raw))


def is_thanks(text: str) -> bool:
    return bool(re.search(r"спасибо|спс|благодарю|thanks", normalize_text(text)))


def is_greeting(text: str) -> bool:
    return bool(re.match(r"привет|здравств|добрый|hello|hi\b", normalize_text(text)))


def detect_meta(text: str) -> MetaTopic | None:
    t = _command_text(text)
    for topic, pattern in _META_RULES:
        if re.search(pattern, t):
            return topic
    return None


_CANCEL = re.compile(r"(?:^|[\s/])(?:отмена|cancel|стоп|stop|сброс|reset|начать\s+заново|хватит)\b")


def is_cancel_text(text: str) -> bool:
    return bool(_CANCEL.search(normalize_text(text)))


def is_affirmative(text: str) -> bool:
    return _command_text(text) in {"да", "ага", "ок", "окей", "давай", "конечно", "yes", "угу"}


def looks_like_travel_text(text: str) -> bool:
    return bool(re.search(r"тур|отпуск|поехать|хочу|отдых|путешеств", normalize_text(text)))


def parse_positive_int(text: str) -> int | None:
    """Digits-only answer, "150 000" included."""
    cleaned = re.sub(r"\s+", "", normalize_text(text))
    if not cleaned.isdigit():
        return None
    value = int(cleaned)
    return value if value > 0 else None


def normalize_phone(text: str) -> str | None:
    """Return +7XXXXXXXXXX, or None if the text is not a Russian mobile number."""
    raw = (text or "").strip()
    if not raw:
        return None
    cleaned = re.sub(r"[^\d+]", "", raw)
    cleaned = cleaned[:1] + cleaned[1:].replace("+", "")
    if re.fullmatch(r"\+7\d{10}", cleaned):
        return cleaned
    if re.fullmatch(r"[78]\d{10}", cleaned):
        return "+7" + cleaned[1:]
    return None
