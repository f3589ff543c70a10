"""
IntentClassifier — decides what one message is.

Order of precedence:
  1. unsupported destination mention      → unsupported_country
  2. control command with no search slot  → command
  3. meta question / smalltalk phrase     → meta / smalltalk
  4. any extractable search slot          → search_tours (rules)
  5. external IntentParser, if configured → validated, else unknown

The external parser is bounded by a timeout and its output must pass
the ParsedIntent schema; any failure degrades to unknown and is logged.
"""

import asyncio
import logging

from pydantic import ValidationError

from src.domain.countries import find_country
from src.domain.draft import draft_from_text
from src.domain.extractors import (
    DEFAULT_SEARCH_YEAR,
    detect_command,
    detect_meta,
    detect_smalltalk,
    detect_unsupported_country,
    normalize_text,
)
from src.domain.intent import (
    PARSED_INTENT,
    ClassifierError,
    Intent,
    IntentParser,
    MetaIntent,
    SearchArgs,
    SearchToursIntent,
    SmalltalkIntent,
)
from src.domain.search import Budget, SearchDraft

log = logging.getLogger(__name__)


def fast_path(text: str, default_year: int = DEFAULT_SEARCH_YEAR) -> Intent | None:
    """Rule-based short circuits that override any other interpretation."""
    label = detect_unsupported_country(text)
    if label:
        return Intent(kind="unsupported_country", label=label)

    command = detect_command(text)
    if command and draft_from_text(text, default_year).is_empty():
        return Intent(kind="command", command=command)

    topic = detect_meta(text)
    if topic:
        return Intent(kind="meta", topic=topic)

    if detect_smalltalk(text):
        return Intent(kind="smalltalk")
    return None


def draft_from_args(args: SearchArgs) -> SearchDraft:
    draft = SearchDraft(
        nights_min=args.nights_min or args.nights_max,
        nights_max=args.nights_max or args.nights_min,
        meal=args.meal,
        period=args.period,
        rating=args.rating,
        adults=args.adults,
        children=args.children,
        sort=args.sort,
    )
    if args.date_from and args.date_to:
        draft.date_from, draft.date_to = args.date_from, args.date_to
        draft.period = None
    if args.budget_max:
        if args.budget_min:
            draft.budget = Budget.between(args.budget_min, args.budget_max)
        else:
            draft.budget = Budget.ceiling(args.budget_max)
    return draft


class IntentClassifier:

    def __init__(
        self,
        parser: IntentParser | None = None,
        timeout: float = 3.5,
        default_year: int = DEFAULT_SEARCH_YEAR,
    ):
        self._parser = parser
        self._timeout = timeout
        self._default_year = default_year

    async def classify(self, text: str, has_prior_search: bool = False) -> Intent:
        fast = fast_path(text, self._default_year)
        if fast:
            return fast

        draft = draft_from_text(text, self._default_year)
        if has_prior_search and draft.sort is None:
            t = normalize_text(text)
            if "дешевле" in t:
                draft.sort = "price_asc"
            elif "дороже" in t:
                draft.sort = "price_desc"
        if not draft.is_empty():
            return Intent(kind="search_tours", draft=draft, confidence=1.0)

        if self._parser is None:
            return Intent(kind="unknown", reason="no_rule_matched")
        return await self._classify_external(text)

    async def _classify_external(self, text: str) -> Intent:
        try:
            raw = await asyncio.wait_for(self._parser.parse_intent(text), timeout=self._timeout)
            parsed = PARSED_INTENT.validate_python(raw)
        except asyncio.TimeoutError:
            log.warning("Intent parser timed out after %.1fs", self._timeout)
            return Intent(kind="unknown", reason="classifier_timeout")
        except ValidationError as exc:
            log.warning("Intent parser output rejected: %d validation errors", exc.error_count())
            return Intent(kind="unknown", reason="classifier_invalid")
        except ClassifierError as exc:
            log.warning("Intent parser failed: %s", exc)
            return Intent(kind="unknown", reason="classifier_error")
        except Exception:
            log.exception("Intent parser raised unexpectedly")
            return Intent(kind="unknown", reason="classifier_error")

        if isinstance(parsed, SearchToursIntent):
            return self._search_intent(parsed)
        if isinstance(parsed, MetaIntent):
            return Intent(kind="meta", topic=parsed.topic, confidence=parsed.confidence, source="external")
        if isinstance(parsed, SmalltalkIntent):
            return Intent(kind="smalltalk", confidence=parsed.confidence, source="external")
        return Intent(
            kind="unknown",
            reason=parsed.reason or "not_enough_data",
            questions=list(parsed.questions or [])[:3],
            confidence=parsed.confidence,
            source="external",
        )

    def _search_intent(self, parsed: SearchToursIntent) -> Intent:
        args = parsed.args
        draft = draft_from_args(args)
        if args.country_name:
            country = find_country(args.country_name)
            if country is None:
                log.info("Parser suggested unsupported country %r", args.country_name)
                return Intent(kind="unsupported_country", label=args.country_name, source="external")
            draft.country_id = country.id
            draft.country_name = country.code
        if draft.is_empty():
            return Intent(kind="unknown", reason="empty_search_args", source="external")
        return Intent(kind="search_tours", draft=draft, confidence=parsed.confidence, source="external")
