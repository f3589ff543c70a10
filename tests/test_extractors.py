"""
Lexical extractor tests — pure functions, no fixtures.
"""

import pytest

from src.domain.extractors import (
    detect_command,
    detect_meta,
    detect_smalltalk,
    detect_unsupported_country,
    extract_adults,
    extract_budget,
    extract_children,
    extract_country,
    extract_dates,
    extract_meal,
    extract_month,
    extract_nights,
    extract_nights_range,
    extract_period,
    extract_rating,
    is_cancel_text,
    normalize_phone,
    normalize_text,
    parse_money_token,
)


def test_normalize_text_unifies_yo_and_dashes():
    assert normalize_text("  Всё  ВКЛЮЧЕНО ") == "все  включено"
    assert normalize_text("7–10") == "7-10"


# ---------------------------------------------------------------------------
# Country
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text,code", [
    ("Хочу в Турцию", "Turkey"),
    ("египет", "Egypt"),
    ("на Пхукет в Тай", "Thailand"),
    ("Дубай в мае", "UAE"),
    ("Maldives please", "Maldives"),
])
def test_extract_country(text, code):
    assert extract_country(text).code == code


def test_extract_country_none():
    assert extract_country("хочу на море") is None


def test_unsupported_country_label():
    assert detect_unsupported_country("а в Италию можно?") == "Италия"
    assert detect_unsupported_country("Турция") is None


# ---------------------------------------------------------------------------
# Nights
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text,nights", [
    ("на 7 ночей", 7),
    ("10 дней", 10),
    ("на неделю", 7),
    ("две недели", 14),
    ("7н", 7),
])
def test_extract_nights(text, nights):
    assert extract_nights(text) == nights


def test_extract_nights_rejects_out_of_range():
    assert extract_nights("45 ночей") is None


def test_extract_nights_range():
    assert extract_nights_range("на 7-10 ночей") == (7, 10)
    assert extract_nights_range("10-7 ночей") == (7, 10)
    assert extract_nights_range("на 7 ночей") == (7, 7)
    assert extract_nights_range("без ночей") is None


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------


def test_parse_money_token():
    assert parse_money_token("120к") == 120_000
    assert parse_money_token("90 000 ₽") == 90_000
    assert parse_money_token("0") is None
    assert parse_money_token("руб") is None


def test_budget_ceiling():
    budget = extract_budget("до 120к")
    assert budget.kind == "max"
    assert budget.max == 120_000
    assert budget.min is None


def test_budget_ceiling_ignores_nights():
    budget = extract_budget("Турция на 7 ночей до 120к")
    assert budget.max == 120_000


def test_budget_range_shares_thousands_suffix():
    budget = extract_budget("от 100 до 150к")
    assert budget.kind == "range"
    assert (budget.min, budget.max) == (100_000, 150_000)


def test_budget_approx_band():
    budget = extract_budget("около 150 тысяч")
    assert budget.kind == "approx"
    assert budget.target == 150_000
    assert (budget.min, budget.max) == (135_000, 165_000)


def test_bare_amount_is_approx():
    budget = extract_budget("150000")
    assert budget.kind == "approx"
    assert budget.reference == 150_000


def test_small_numbers_are_not_money():
    assert extract_budget("7") is None
    assert extract_budget("на 10 ночей в 2026") is None


# ---------------------------------------------------------------------------
# Meal, rating, party
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text,code", [
    ("всё включено", "AI"),
    ("all inclusive", "AI"),
    ("только завтраки", "BB"),
    ("полупансион", "HB"),
    ("без питания", "RO"),
    ("питание не важно", "ANY"),
])
def test_extract_meal(text, code):
    assert extract_meal(text) == code


def test_extract_rating():
    assert extract_rating("рейтинг от 4.5") == 4.5
    assert extract_rating("отель 4+") == 4.0
    assert extract_rating("на 7 ночей") is None


def test_extract_party():
    assert extract_adults("2 взрослых") == 2
    assert extract_adults("едем вдвоём") == 2
    assert extract_children("с ребёнком") == 1
    assert extract_children("и 2 детей") == 2


# ---------------------------------------------------------------------------
# Month and period
# ---------------------------------------------------------------------------


def test_extract_month():
    assert extract_month("в июле") == (7, None)
    assert extract_month("июль 2027") == (7, 2027)
    assert extract_month("на 3 месяц") == (3, None)


def test_extract_dates_uses_default_year():
    assert extract_dates("в феврале", 2026) == ("2026-02-01", "2026-02-28")
    assert extract_dates("просто текст", 2026) is None


@pytest.mark.parametrize("text,period", [
    ("летом", "summer"),
    ("осенью", "autumn"),
    ("через месяц", "next_month"),
    ("через 1-2 месяца", "1_2_months"),
])
def test_extract_period(text, period):
    assert extract_period(text) == period


# ---------------------------------------------------------------------------
# Commands, smalltalk, meta
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text,command", [
    ("Показать ещё", "show_more"),
    ("изменить фильтры", "edit_filters"),
    ("Новый поиск", "new_search"),
    ("⭐ Избранное", "favorites"),
    ("очистить избранное", "clear_favorites"),
    ("страны", "countries"),
    ("найти тур", "start_search"),
])
def test_detect_command(text, command):
    assert detect_command(text) == command


def test_command_requires_whole_message():
    assert detect_command("покажи ещё туры в Турцию") is None


def test_smalltalk_and_meta():
    assert detect_smalltalk("Спасибо!")
    assert detect_smalltalk("))")
    assert not detect_smalltalk("спасибо, а есть Египет?")
    assert detect_meta("что ты умеешь?") == "capabilities"
    assert detect_meta("Турция") is None


def test_cancel_text():
    assert is_cancel_text("отмена")
    assert is_cancel_text("давай начать заново")
    assert not is_cancel_text("отменили рейс?")


# ---------------------------------------------------------------------------
# Phone
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text,phone", [
    ("+7 999 123-45-67", "+79991234567"),
    ("89991234567", "+79991234567"),
    ("7 (999) 123 45 67", "+79991234567"),
])
def test_normalize_phone(text, phone):
    assert normalize_phone(text) == phone


@pytest.mark.parametrize("text", ["", "12345", "+1 555 123 4567", "позвоните мне"])
def test_normalize_phone_rejects(text):
    assert normalize_phone(text) is None
