"""
User-facing texts, tour cards and button keyboards.

Everything the assistant says lives here so the conversation handler
only decides *what* to say.  Captions are Telegram-HTML.
"""

import html

from src.communication.ports import Button
from src.domain.countries import SUPPORTED_COUNTRIES, find_country, supported_labels
from src.domain.favorites import SavedCollection
from src.domain.search import SearchSpecification, TourResult

EXAMPLE_QUERY = "Турция на 7 ночей до 120к, всё включено"
CAPTION_LIMIT = 900

WELCOME = (
    "Привет. Я AI-ассистент по подбору туров ✨\n"
    "Могу провести вас по шагам или понять запрос в свободной форме.\n\n"
    "Например:\nТурция на 7 ночей до 120 000 ₽, всё включено"
)
HELP = (
    f"Я подбираю туры по 6 странам: {supported_labels()}.\n"
    f"Напишите запрос свободно, например: «{EXAMPLE_QUERY}».\n"
    "Или нажмите «🔎 Найти тур»."
)
UNKNOWN_SLASH = "Команду поняла, но она не поддерживается. Нажмите «🔎 Найти тур» или напишите запрос свободным текстом."
CANCELLED = "Ок, сбросила поиск. Выберите страну или напишите запрос в свободной форме."
ASK_COUNTRY = "Какую страну рассматриваете?"
ASK_NIGHTS = "Супер. На сколько ночей планируете? Напишите число (например 7) или выберите вариант ниже."
ASK_BUDGET = "Какой бюджет максимум на двоих/на поездку? Напишите число (например 120000) или выберите вариант ниже."
INVALID_NIGHTS = "Введите количество ночей числом от 1 до 30."
INVALID_BUDGET = "Введите бюджет числом, например 150000."
HOLIDAYS_HINT = "Под праздники лучше уточнить месяц или даты. Например: «в ноябре» или «на 7 ночей»."
SEARCHING = "Подбираю лучшие варианты…"
REFINING = "Обновляю поиск по вашему уточнению ✨"
NO_MORE = "Больше туров нет, попробуйте изменить параметры."
NO_RESULTS = "По этим параметрам туров не нашлось. Попробуйте увеличить бюджет, изменить даты или питание."
BACKEND_DOWN = (
    "Упс, не удалось получить туры. Похоже, сервис поиска сейчас недоступен.\n"
    "Можно попробовать ещё раз или изменить параметры."
)
NEED_SEARCH_FIRST = "Сначала запустите поиск и я покажу варианты."
PICK_HINT = "Выберите тур и нажмите 💚 — мы уточним наличие и цену. Обычно отвечаем в течение 5–10 минут."
ASK_PHONE = "Отличный выбор ✨ Чтобы быстро проверить наличие и финальную цену — оставьте номер."
PHONE_FORMAT = "Похоже, номер введён неверно. Введите в формате +7XXXXXXXXXX (10 цифр после +7). Пример: +79991234567"
LEAD_SAVED = "Спасибо! Мы уже проверяем наличие 👌\nОбычно отвечаем в течение часа."
ALREADY_CHECKING = "Уже проверяю этот тур ✅"
TOUR_NOT_FOUND = "Не удалось найти тур. Откройте избранное или выполните поиск заново."
SESSION_STALE = "Сессия устарела. Нажмите «Новый поиск»."
EDIT_WHAT = "Что изменить?"
ASK_FILTER_BUDGET = "Введите бюджет числом (например 150000) или напишите «без лимита»."
ASK_RATING = "Какое качество отеля смотрим?"
ASK_PERIOD = "Когда хотите полететь?"
ASK_MEAL = "Какое питание предпочитаете?"
FAVORITES_EMPTY = "Пока пусто. Откройте поиск и добавляйте туры в ⭐."
FAVORITES_CLEARED = "Избранное очищено."
COLLECTION_SAVED = "Подборка сохранена ⭐\nХотите посмотреть избранное?"
COLLECTION_NOT_FOUND = "Не нашла эту подборку."
NO_RESULTS_TO_SAVE = "Сначала выполните поиск, чтобы сохранить подборку."
SMALLTALK_THANKS = "Пожалуйста! 😊 Если хотите — скажите страну/ночи/бюджет или нажмите «Страны»."
SMALLTALK_GREETING = f"Привет! Могу подобрать тур в свободной форме. Например: «{EXAMPLE_QUERY}»."
SMALLTALK_CONTINUE = "Ок 😊 Продолжаем."
PHONE_REMINDER = "Напишите номер сообщением (пример: +79991234567) или нажмите «Отмена»."
LEAD_FAILED = "Не удалось сохранить контакт, попробуйте ещё раз чуть позже."
NEW_SEARCH = "Ок, начнём заново. Выберите страну:"
COUNTRY_LIST = "Доступные страны:"
SHOW_MORE = "Отлично, подберём ещё варианты ✨"
BUDGET_UNCLEAR = "Не поняла сумму."
FAV_ADDED = "Тур добавлен в избранное ⭐"
FAV_ALREADY = "Этот тур уже в избранном ⭐"
FAV_REMOVED = "Тур удалён из избранного."
FAV_GONE = "Тур уже удалён из избранного."
FAV_NOT_IN_RESULTS = "Не нашла этот тур в текущей выдаче."
COLLECTION_DELETED = "Подборка удалена."
COLLECTION_GONE = "Подборка уже удалена."
UNKNOWN_QUESTIONS = [
    "Какую страну рассматриваете?",
    "Какой бюджет на поездку?",
    "На сколько ночей планируете отдых?",
]

_MEAL_LABELS = {
    "AI": "Всё включено",
    "BB": "Завтраки",
    "HB": "Завтрак + ужин",
    "FB": "3-разовое питание",
    "RO": "Без питания",
}
_CURRENCY = {"RUB": "₽", "EUR": "€", "USD": "$"}
_MONTHS = [
    "январь", "февраль", "март", "апрель", "май", "июнь",
    "июль", "август", "сентябрь", "октябрь", "ноябрь", "декабрь",
]
_PERIOD_LABELS = {
    "next_month": "Ближайший месяц",
    "1_2_months": "Через 1–2 месяца",
    "summer": "Летом",
    "autumn": "Осенью",
}


def meal_label(code: str | None) -> str:
    return _MEAL_LABELS.get((code or "").upper(), "Не важно")


def format_price(value: float | int | None) -> str:
    if value is None:
        return "—"
    return f"{round(value):,}".replace(",", " ")


def format_date(iso: str | None) -> str:
    parts = (iso or "").split("-")
    if len(parts) != 3:
        return iso or "—"
    return f"{parts[2]}.{parts[1]}.{parts[0]}"


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: max(1, limit - 1)].strip() + "…"


def tour_caption(tour: TourResult, hotel_limit: int = 70) -> str:
    country = find_country(tour.country)
    place = f"{country.flag} {country.label}" if country else (tour.country or "—")
    lines = [f"<b>{html.escape(_truncate(tour.hotel_name or 'Отель', hotel_limit))}</b>"]
    lines.append(f"📍 {html.escape(place)}, {html.escape(tour.region or '—')}")
    if tour.rating:
        lines.append(f"⭐️ {tour.rating:.1f}")
    lines.append(f"📅 {format_date(tour.date_from)} • {tour.nights} ночей")
    lines.append(f"🍽 {meal_label(tour.meal)} • 🛏 {html.escape(tour.room or 'Стандарт')}")
    lines.append(f"💸 <b>{format_price(tour.price)} {_CURRENCY.get(tour.currency.upper(), tour.currency)}</b>")
    lines.append(f"🧳 {html.escape(tour.operator or 'Туроператор')}")
    caption = "\n".join(lines)
    if len(caption) > CAPTION_LIMIT and hotel_limit > 52:
        return tour_caption(tour, hotel_limit=52)
    return caption[:CAPTION_LIMIT]


def recap(tour: TourResult) -> str:
    return "\n".join([
        "<b>Вы выбрали:</b>",
        html.escape(tour.hotel_name or "Отель"),
        f"{format_date(tour.date_from)} • {tour.nights} ночей",
        meal_label(tour.meal),
        f"<b>{format_price(tour.price)} {_CURRENCY.get(tour.currency.upper(), tour.currency)}</b>",
    ])


def search_summary(spec: SearchSpecification) -> str:
    country = find_country(spec.country_name)
    lines = [f"Поняла: {country.label} {country.flag}" if country else "Поняла запрос"]
    if spec.nights_min == spec.nights_max:
        lines.append(f"🌙 {spec.nights_min} ночей")
    else:
        lines.append(f"🌙 {spec.nights_min}–{spec.nights_max} ночей")
    if spec.budget_target:
        lines.append(f"💸 около {format_price(spec.budget_target)} ₽")
    elif spec.budget_min and spec.budget_max:
        lines.append(f"💸 {format_price(spec.budget_min)}–{format_price(spec.budget_max)} ₽")
    elif spec.budget_max:
        lines.append(f"💸 до {format_price(spec.budget_max)} ₽")
    if spec.meal:
        lines.append(f"🍽 {meal_label(spec.meal)}")
    if spec.period:
        lines.append(f"📅 {_PERIOD_LABELS[spec.period]}")
    elif spec.date_from:
        year, month = spec.date_from[:4], int(spec.date_from[5:7])
        lines.append(f"📅 {_MONTHS[month - 1]} {year}")
    lines.append("")
    lines.append(SEARCHING)
    return "\n".join(lines)


def found_header(total: int | None, shown: int) -> str:
    count = total if total is not None else shown
    return f"Нашла {count} вариантов. Показываю {shown}:"


def unsupported_country(label: str) -> str:
    return f"{label} пока не в каталоге. Пока могу искать только по: {supported_labels()}. Какую выбираете?"


def country_switch(label: str) -> str:
    return f"Меняю направление на {label} и обновляю поиск ✨"


def budget_question(value: int) -> str:
    return (
        f"{format_price(value)} ₽ — это максимум или ориентир около этой суммы? "
        f"Напишите «до {value}» или «около {value}»."
    )


def unknown_reply(questions: list[str]) -> str:
    lines = ["Нужно чуть больше деталей:"]
    lines += [f"• {q}" for q in questions[:3]]
    lines.append(f"\nНапример: «{EXAMPLE_QUERY}».")
    return "\n".join(lines)


def collection_title(collection: SavedCollection) -> str:
    p = collection.params
    parts = [p.country, f"{p.nights} ночей"]
    if p.budget_max:
        parts.append(f"до {format_price(p.budget_max)} ₽")
    return " • ".join(parts)


def favorites_overview(tours: list[TourResult], collections: list[SavedCollection]) -> str:
    lines = [f"⭐ Избранное: туров {len(tours)}, подборок {len(collections)}"]
    for c in collections:
        lines.append(f"— {collection_title(c)} ({len(c.tours)})")
    lines.append("")
    lines.append("Действия:")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Keyboards
# ---------------------------------------------------------------------------

def country_keyboard() -> list[list[Button]]:
    buttons = [Button(f"{c.label} {c.flag}", f"country:{c.id}") for c in SUPPORTED_COUNTRIES]
    return [buttons[:3], buttons[3:]]


def nights_keyboard() -> list[list[Button]]:
    return [[Button(str(n), f"nights:{n}") for n in (7, 10, 14)]]


def budget_keyboard() -> list[list[Button]]:
    return [[Button(f"{v // 1000}k", f"budget:{v}") for v in (100_000, 150_000, 250_000)]]


def slot_keyboard(slot: str) -> list[list[Button]]:
    return {"country": country_keyboard, "nights": nights_keyboard, "budget": budget_keyboard}[slot]()


def tour_keyboard(request_id: str, tour: TourResult, source: str = "results") -> list[list[Button]]:
    return [[
        Button("💚 Хочу этот тур", f"want:{request_id}:{tour.hotel_id}:{source}"),
        Button("⭐ В избранное", f"fav:add:{tour.hotel_id}"),
    ]]


def favorite_tour_keyboard(tour: TourResult) -> list[list[Button]]:
    return [[
        Button("💚 Хочу этот тур", f"want:fav:{tour.hotel_id}:fav"),
        Button("🗑 Удалить", f"fav:remove:{tour.hotel_id}"),
    ]]


def results_keyboard() -> list[list[Button]]:
    return [
        [Button("Показать ещё", "more"), Button("Изменить фильтры", "filters")],
        [Button("⭐ Сохранить подборку", "fav:save"), Button("Новый поиск", "new")],
    ]


def retry_keyboard() -> list[list[Button]]:
    return [[Button("Повторить", "retry"), Button("Изменить фильтры", "filters")]]


def filters_keyboard() -> list[list[Button]]:
    return [
        [Button("💸 Бюджет", "filter:budget"), Button("⭐️ Рейтинг", "filter:rating")],
        [Button("📅 Период", "filter:period"), Button("🍽 Питание", "filter:meal")],
    ]


def rating_keyboard() -> list[list[Button]]:
    return [
        [Button("⭐️⭐️⭐️ и выше", "rating:3.5")],
        [Button("⭐️⭐️⭐️⭐️ и выше", "rating:4.2")],
        [Button("⭐️⭐️⭐️⭐️⭐️", "rating:4.6")],
        [Button("Не важно", "rating:any")],
    ]


def period_keyboard() -> list[list[Button]]:
    return [[Button(label, f"period:{code}")] for code, label in _PERIOD_LABELS.items()]


def meal_keyboard() -> list[list[Button]]:
    return [
        [Button("Всё включено", "meal:AI")],
        [Button("Завтраки", "meal:BB")],
        [Button("Не важно", "meal:ANY")],
    ]


def favorites_keyboard(collections: list[SavedCollection]) -> list[list[Button]]:
    rows = [[Button(f"📂 {collection_title(c)}", f"fav:open:{c.id}"), Button("🗑", f"fav:delete:{c.id}")]
            for c in collections]
    rows.append([Button("Очистить избранное", "fav:clear"), Button("🔎 Найти тур", "start_search")])
    return rows


def yes_no_keyboard() -> list[list[Button]]:
    return [[Button("Да", "prompt:yes"), Button("Нет", "prompt:no")]]


def cancel_keyboard() -> list[list[Button]]:
    return [[Button("Отмена", "cancel")]]


def slot_prompt(slot: str, country_label: str | None = None) -> str:
    if slot == "country":
        return ASK_COUNTRY
    if slot == "nights":
        return f"Поняла: {country_label}.\n{ASK_NIGHTS}" if country_label else ASK_NIGHTS
    return ASK_BUDGET


def filter_prompt(name: str) -> tuple[str, list[list[Button]]]:
    if name == "budget":
        return ASK_FILTER_BUDGET, cancel_keyboard()
    if name == "rating":
        return ASK_RATING, rating_keyboard()
    if name == "period":
        return ASK_PERIOD, period_keyboard()
    return ASK_MEAL, meal_keyboard()
