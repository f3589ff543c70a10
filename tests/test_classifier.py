"""
IntentClassifier tests.

Covers: fast-path precedence, rule-based drafts, and degradation of the
external parser (timeout, invalid output, errors) to "unknown".
"""

import pytest

from src.adapters.simulator_intent import SimulatorIntentParser
from src.classifier import IntentClassifier, fast_path
from src.domain.intent import ClassifierError


@pytest.fixture
def parser():
    return SimulatorIntentParser()


@pytest.fixture
def classifier(parser):
    return IntentClassifier(parser=parser, timeout=0.2)


# ---------------------------------------------------------------------------
# Fast paths
# ---------------------------------------------------------------------------


def test_unsupported_country_wins_over_everything():
    intent = fast_path("Италия на 7 ночей до 100к")
    assert intent.kind == "unsupported_country"
    assert intent.label == "Италия"


def test_command_only_without_search_slots():
    assert fast_path("новый поиск").command == "new_search"
    assert fast_path("Турция") is None


def test_meta_and_smalltalk():
    assert fast_path("что ты умеешь?").kind == "meta"
    assert fast_path("спасибо").kind == "smalltalk"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rule_draft_skips_external_parser(classifier, parser):
    intent = await classifier.classify("Хочу в Турцию на 7 ночей до 120к")
    assert intent.kind == "search_tours"
    assert intent.source == "rules"
    assert intent.draft.country_name == "Turkey"
    assert parser.calls == []


@pytest.mark.asyncio
async def test_cheaper_after_search_sets_sort(classifier):
    intent = await classifier.classify("а подешевле есть?", has_prior_search=True)
    assert intent.kind == "search_tours"
    assert intent.draft.sort == "price_asc"


@pytest.mark.asyncio
async def test_no_parser_means_unknown():
    intent = await IntentClassifier(parser=None).classify("что-нибудь интересное")
    assert intent.kind == "unknown"
    assert intent.reason == "no_rule_matched"


# ---------------------------------------------------------------------------
# External parser
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_external_search_intent(classifier, parser):
    parser.inject_response({"type": "search_tours", "args": {"country_name": "Egypt", "budget_max": 90000}})
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.kind == "search_tours"
    assert intent.source == "external"
    assert intent.draft.country_id == 54
    assert intent.draft.budget.max == 90_000


@pytest.mark.asyncio
async def test_external_unknown_keeps_questions(classifier):
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.kind == "unknown"
    assert 1 <= len(intent.questions) <= 3


@pytest.mark.asyncio
async def test_external_unsupported_destination(classifier, parser):
    parser.inject_response({"type": "search_tours", "args": {"country_name": "Narnia"}})
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.kind == "unsupported_country"


@pytest.mark.asyncio
async def test_invalid_output_degrades_to_unknown(classifier, parser):
    parser.inject_response({"type": "search_tours", "args": {"nights_min": 99}})
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.kind == "unknown"
    assert intent.reason == "classifier_invalid"


@pytest.mark.asyncio
async def test_unknown_type_degrades_to_unknown(classifier, parser):
    parser.inject_response({"type": "book_flight"})
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.reason == "classifier_invalid"


@pytest.mark.asyncio
async def test_parser_error_degrades_to_unknown(classifier, parser):
    parser.fail_with(ClassifierError("boom"))
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.kind == "unknown"
    assert intent.reason == "classifier_error"


@pytest.mark.asyncio
async def test_timeout_degrades_to_unknown(classifier, parser):
    parser.delay(1.0)
    intent = await classifier.classify("что-нибудь тёплое")
    assert intent.kind == "unknown"
    assert intent.reason == "classifier_timeout"
