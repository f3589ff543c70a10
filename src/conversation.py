"""
Conversation handler: the per-chat state machine.

Wires together all ports:
  ChatChannel ← handler → IntentClassifier, SearchExecutor, LeadStore,
                          ConversationStore

Text messages are routed in a fixed order:
  1. slash commands (/start, /help, /cancel)
  2. cancel phrases (global, any mode)
  3. pending yes/no prompt
  4. smalltalk: acknowledge, re-issue the pending prompt, keep state
  5. awaiting_phone → phone validation
  6. awaiting_clarification → "ceiling or target?" answer
  7. editing_filter → new filter value
  8. fast paths: unsupported country, control command, meta
  9. collecting → answer to the slot prompt
 10. prior search → refinement (or ambiguous-budget clarification)
 11. fresh classification → new draft / unknown

Every search captures a sequence number from the conversation; results
that come back after a newer search started (or after a reset) are
discarded without touching state.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Literal

from src import messages
from src.adapters.ports import SearchBackendError
from src.classifier import IntentClassifier, fast_path
from src.communication.ports import Button, ChatChannel, InboundEvent, UserInfo
from src.domain.countries import country_by_id, find_country
from src.domain.draft import MIN_BUDGET, advance, draft_from_text, parse_slot_answer
from src.domain.extractors import (
    detect_smalltalk,
    extract_budget,
    extract_dates,
    extract_meal,
    extract_period,
    extract_rating,
    has_explicit_approx_marker,
    is_affirmative,
    is_cancel_text,
    is_greeting,
    is_thanks,
    looks_like_travel_text,
    normalize_phone,
    normalize_text,
    parse_positive_int,
)
from src.domain.favorites import ParamsSnapshot
from src.domain.intent import Intent
from src.domain.leads import Lead, LeadStore
from src.domain.refinement import (
    BudgetClarification,
    RefinementPatch,
    apply_refinement,
    budget_changes,
    budget_from_answer,
    detect_budget_target_question,
    parse_budget_answer,
    parse_refinement,
)
from src.domain.search import (
    MEAL_CODES,
    PERIODS,
    Budget,
    SearchDefaults,
    SearchDraft,
    SearchSpecification,
    TourResult,
    build_specification,
    period_window,
)
from src.domain.state import ConversationState, ConversationStore, PinnedSelection, RecentActions
from src.search_executor import SearchExecutor

log = logging.getLogger(__name__)


def _token_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def _filter_value_ok(name: str, value: str) -> bool:
    if name == "period":
        return value in PERIODS
    if name == "meal":
        return value.upper() == "ANY" or value.upper() in MEAL_CODES
    if value == "any":
        return True
    try:
        return 0 <= float(value) <= 5
    except ValueError:
        return False


@dataclass
class HandlerConfig:
    channel: ChatChannel
    classifier: IntentClassifier
    executor: SearchExecutor
    leads: LeadStore
    store: ConversationStore
    defaults: SearchDefaults = field(default_factory=SearchDefaults)
    dedupe_window: float = 45.0
    collection_size: int = 10
    clock: Callable[[], float] = time.monotonic
    today: date | None = None


@dataclass
class HandleResult:
    action: Literal[
        "ignored",
        "command",
        "cancelled",
        "prompted",             # asked for the next missing slot
        "reprompted",           # same prompt again after an unusable answer
        "clarification_asked",  # "ceiling or target?"
        "filter_menu",
        "search_executed",
        "search_failed",
        "search_stale",         # results discarded, a newer search superseded it
        "unsupported_country",
        "smalltalk",
        "meta",
        "unknown",
        "booking_started",
        "duplicate_action",
        "phone_invalid",
        "lead_saved",
        "favorites",
    ]
    details: str = ""


class ConversationHandler:
    """
    Handles one inbound event at a time for any number of chats.

    Call handle_event() for each event the channel delivers, or
    handle_text() / handle_button() directly.
    """

    def __init__(self, config: HandlerConfig):
        self._cfg = config
        self._recent = RecentActions(window=config.dedupe_window)

    @property
    def _year(self) -> int:
        return self._cfg.defaults.year

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_event(self, event: InboundEvent) -> HandleResult:
        if event.kind == "button":
            await self._cfg.channel.acknowledge(event)
            return await self.handle_button(event.chat_id, event.token or "", event.user)
        return await self.handle_text(event.chat_id, event.text, event.user)

    async def handle_text(self, chat_id: str, text: str, user: UserInfo | None = None) -> HandleResult:
        state = await self._cfg.store.get(chat_id)
        text = (text or "").strip()
        if not text:
            return HandleResult(action="ignored", details="empty message")

        log.debug("chat=%s mode=%s text=%.60r", chat_id, state.mode, text)

        if text.startswith("/"):
            return await self._slash_command(state, text)

        if is_cancel_text(text):
            return await self._cancel(state)

        if state.pending_prompt:
            state.pending_prompt = None
            if is_affirmative(text):
                return await self._show_favorites(state)

        if detect_smalltalk(text):
            return await self._smalltalk(state, text)

        if state.mode == "awaiting_phone":
            return await self._phone_answer(state, text, user)

        if state.mode == "awaiting_clarification" and state.pending_budget:
            result = await self._clarification_answer(state, text)
            if result:
                return result

        if state.mode == "editing_filter" and state.editing_filter:
            result = await self._filter_answer(state, text)
            if result:
                return result

        fast = fast_path(text, self._year)
        if fast:
            return await self._dispatch_intent(state, fast, text)

        if state.mode == "collecting" and state.awaiting:
            return await self._slot_answer(state, text)

        if state.last_search is not None:
            result = await self._refine(state, text)
            if result:
                return result
        else:
            target = detect_budget_target_question(text)
            if target is not None and looks_like_travel_text(text):
                return await self._ask_draft_clarification(state, text, target)

        intent = await self._cfg.classifier.classify(text, has_prior_search=state.last_search is not None)
        log.info("chat=%s classified → %s (%s)", chat_id, intent.kind, intent.source)
        return await self._dispatch_intent(state, intent, text)

    async def handle_button(self, chat_id: str, token: str, user: UserInfo | None = None) -> HandleResult:
        state = await self._cfg.store.get(chat_id)
        head, _, rest = token.partition(":")
        log.debug("chat=%s button=%s", chat_id, token)

        if head == "want":
            return await self._want(state, rest)
        if head == "fav":
            return await self._favorites_action(state, rest)
        if head in ("country", "nights", "budget"):
            number = _token_int(rest)
            if number is None:
                return self._malformed(state, token)
            if head == "country":
                return await self._country_button(state, number)
            if head == "nights":
                return await self._slot_button(state, SearchDraft(nights_min=number, nights_max=number))
            return await self._slot_button(state, SearchDraft(budget=Budget.ceiling(number)))
        if head == "filter":
            return await self._open_filter(state, rest)
        if head in ("rating", "period", "meal"):
            return await self._filter_button(state, head, rest)
        if head == "prompt":
            state.pending_prompt = None
            if rest == "yes":
                return await self._show_favorites(state)
            await self._send(state, messages.SMALLTALK_CONTINUE)
            return HandleResult(action="command", details="prompt declined")
        if head == "cancel":
            return await self._cancel(state)
        if head == "retry":
            if state.last_search is None:
                await self._send(state, messages.NEED_SEARCH_FIRST)
                return HandleResult(action="command", details="retry without search")
            return await self._run_search(state, state.last_search, announce=messages.REFINING)

        command = {
            "more": "show_more",
            "filters": "edit_filters",
            "new": "new_search",
            "countries": "countries",
            "start_search": "start_search",
        }.get(head)
        if command:
            return await self._run_command(state, command)

        log.warning("chat=%s unknown button token %r", chat_id, token)
        return HandleResult(action="ignored", details=f"unknown token {token}")

    @staticmethod
    def _malformed(state: ConversationState, token: str) -> HandleResult:
        log.warning("chat=%s malformed button token %r", state.chat_id, token)
        return HandleResult(action="ignored", details=f"malformed token {token}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _slash_command(self, state: ConversationState, text: str) -> HandleResult:
        command = text.split()[0].lower().split("@")[0]
        if command == "/start":
            state.reset()
            await self._send(state, messages.WELCOME, messages.country_keyboard())
            return HandleResult(action="command", details="start")
        if command == "/help":
            await self._send(state, messages.HELP, messages.country_keyboard())
            return HandleResult(action="meta", details="help")
        if command == "/cancel":
            return await self._cancel(state)
        await self._send(state, messages.UNKNOWN_SLASH)
        return HandleResult(action="command", details=f"unsupported {command}")

    async def _cancel(self, state: ConversationState) -> HandleResult:
        if state.pinned:
            self._recent.forget(self._pin_key(state.chat_id, state.pinned))
        state.reset()
        log.info("chat=%s reset", state.chat_id)
        await self._send(state, messages.CANCELLED, messages.country_keyboard())
        return HandleResult(action="cancelled")

    async def _run_command(self, state: ConversationState, command: str) -> HandleResult:
        if command == "show_more":
            return await self._show_more(state)
        if command == "edit_filters":
            if state.last_search is None:
                await self._send(state, messages.NEED_SEARCH_FIRST)
                return HandleResult(action="command", details="filters without search")
            await self._send(state, messages.EDIT_WHAT, messages.filters_keyboard())
            return HandleResult(action="filter_menu")
        if command == "favorites":
            return await self._show_favorites(state)
        if command == "clear_favorites":
            state.favorites.clear()
            await self._send(state, messages.FAVORITES_CLEARED)
            return HandleResult(action="favorites", details="cleared")
        if command == "new_search":
            if state.pinned:
                self._recent.forget(self._pin_key(state.chat_id, state.pinned))
            state.reset()
            state.start_collecting(SearchDraft(), "country")
            await self._send(state, messages.NEW_SEARCH, messages.country_keyboard())
            return HandleResult(action="command", details="new_search")
        if command == "countries":
            if state.mode != "collecting" and state.last_search is None:
                state.start_collecting(state.draft or SearchDraft(), "country")
            await self._send(state, messages.COUNTRY_LIST, messages.country_keyboard())
            return HandleResult(action="command", details="countries")
        # start_search
        state.pending_budget = None
        state.editing_filter = None
        state.start_collecting(SearchDraft(), "country")
        await self._send(state, messages.ASK_COUNTRY, messages.country_keyboard())
        return HandleResult(action="command", details="start_search")

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def _dispatch_intent(self, state: ConversationState, intent: Intent, text: str) -> HandleResult:
        if intent.kind == "command":
            return await self._run_command(state, intent.command)
        if intent.kind == "unsupported_country":
            return await self._unsupported(state, intent.label or "Эта страна")
        if intent.kind == "smalltalk":
            return await self._smalltalk(state, text)
        if intent.kind == "meta":
            state.stop_collecting()
            state.pending_budget = None
            await self._send(state, messages.HELP, messages.country_keyboard())
            return HandleResult(action="meta", details=intent.topic or "")
        if intent.kind == "search_tours" and intent.draft is not None:
            if state.last_search is not None and state.mode != "collecting":
                # a fresh request after results starts a new draft
                state.draft = None
            return await self._advance_draft(state, intent.draft)
        return await self._unknown(state, intent, text)

    async def _unsupported(self, state: ConversationState, label: str) -> HandleResult:
        log.info("chat=%s unsupported destination %s", state.chat_id, label)
        state.pending_budget = None
        state.editing_filter = None
        if state.mode in ("awaiting_clarification", "editing_filter"):
            state.mode = "results" if state.last_search else "idle"
        if state.mode == "collecting" or state.last_search is None:
            draft = state.draft or SearchDraft()
            draft.country_id = None
            draft.country_name = None
            state.start_collecting(draft, "country")
        await self._send(state, messages.unsupported_country(label), messages.country_keyboard())
        return HandleResult(action="unsupported_country", details=label)

    async def _smalltalk(self, state: ConversationState, text: str) -> HandleResult:
        if is_thanks(text):
            reply = messages.SMALLTALK_THANKS
        elif is_greeting(text) and state.mode in ("idle", "results"):
            reply = messages.SMALLTALK_GREETING
        else:
            reply = messages.SMALLTALK_CONTINUE
        await self._send(state, reply)
        await self._reissue_prompt(state)
        return HandleResult(action="smalltalk")

    async def _reissue_prompt(self, state: ConversationState) -> None:
        if state.mode == "collecting" and state.awaiting:
            await self._prompt_slot(state)
        elif state.mode == "awaiting_phone":
            await self._send(state, messages.PHONE_REMINDER, messages.cancel_keyboard())
        elif state.mode == "awaiting_clarification" and state.pending_budget:
            await self._send(state, messages.budget_question(state.pending_budget.value))
        elif state.mode == "editing_filter" and state.editing_filter:
            text, keyboard = messages.filter_prompt(state.editing_filter)
            await self._send(state, text, keyboard)

    async def _unknown(self, state: ConversationState, intent: Intent, text: str) -> HandleResult:
        questions = intent.questions or messages.UNKNOWN_QUESTIONS
        keyboard = None
        if looks_like_travel_text(text) and state.mode != "collecting":
            state.start_collecting(state.draft or SearchDraft(), "country")
            keyboard = messages.country_keyboard()
        await self._send(state, messages.unknown_reply(questions), keyboard)
        return HandleResult(action="unknown", details=intent.reason or "")

    # ------------------------------------------------------------------
    # Slot filling
    # ------------------------------------------------------------------

    async def _advance_draft(self, state: ConversationState, patch: SearchDraft) -> HandleResult:
        progress = advance(state.draft, patch)
        if progress.complete:
            spec = build_specification(progress.draft, self._cfg.defaults, self._cfg.today)
            state.stop_collecting()
            log.info("chat=%s draft complete → search", state.chat_id)
            return await self._run_search(state, spec, announce=messages.search_summary(spec))

        previous = state.awaiting
        state.start_collecting(progress.draft, progress.awaiting)
        await self._prompt_slot(state)
        action = "reprompted" if previous == progress.awaiting else "prompted"
        return HandleResult(action=action, details=progress.awaiting or "")

    async def _prompt_slot(self, state: ConversationState) -> None:
        country = None
        if state.draft:
            country = country_by_id(state.draft.country_id) or find_country(state.draft.country_name)
        text = messages.slot_prompt(state.awaiting, country.label if country else None)
        await self._send(state, text, messages.slot_keyboard(state.awaiting))

    async def _slot_answer(self, state: ConversationState, text: str) -> HandleResult:
        slot = state.awaiting
        answer = parse_slot_answer(slot, text, self._year)

        if answer.error == "unsupported":
            return await self._unsupported(state, answer.unsupported_label or "Эта страна")
        if answer.error == "holidays":
            await self._send(state, messages.HOLIDAYS_HINT)
            return HandleResult(action="reprompted", details="holidays")
        if answer.error in ("unparsed", "invalid"):
            extra = draft_from_text(text, self._year)
            if not extra.is_empty():
                return await self._advance_draft(state, extra)
            if answer.error == "invalid":
                hint = messages.INVALID_NIGHTS if slot == "nights" else messages.INVALID_BUDGET
                await self._send(state, hint, messages.slot_keyboard(slot))
            else:
                await self._prompt_slot(state)
            log.info("chat=%s slot=%s answer %s", state.chat_id, slot, answer.error)
            return HandleResult(action="reprompted", details=f"{slot}:{answer.error}")

        return await self._advance_draft(state, answer.patch)

    async def _country_button(self, state: ConversationState, country_id: int) -> HandleResult:
        country = country_by_id(country_id)
        if country is None:
            return HandleResult(action="ignored", details=f"unknown country {country_id}")
        if state.mode != "collecting" and state.last_search is not None:
            patch = RefinementPatch(country_id=country.id, country_name=country.code,
                                    country_switch=country.id != state.last_search.country_id)
            return await self._apply_patch(state, patch)
        return await self._slot_button(state, SearchDraft(country_id=country.id, country_name=country.code))

    async def _slot_button(self, state: ConversationState, patch: SearchDraft) -> HandleResult:
        if state.mode == "collecting" or state.last_search is None:
            return await self._advance_draft(state, patch)
        refinement = RefinementPatch(
            nights_min=patch.nights_min,
            nights_max=patch.nights_max,
            budget=patch.budget,
        )
        return await self._apply_patch(state, refinement)

    # ------------------------------------------------------------------
    # Refinement and budget clarification
    # ------------------------------------------------------------------

    async def _refine(self, state: ConversationState, text: str) -> HandleResult | None:
        target = detect_budget_target_question(text)
        if target is not None:
            state.pending_budget = BudgetClarification(value=target, origin="refinement", details={"text": text})
            state.mode = "awaiting_clarification"
            await self._send(state, messages.budget_question(target))
            log.info("chat=%s ambiguous budget %d, asking", state.chat_id, target)
            return HandleResult(action="clarification_asked", details=str(target))

        patch = parse_refinement(text, state.last_search, self._year)
        if patch is None:
            return None
        return await self._apply_patch(state, patch)

    async def _apply_patch(
        self,
        state: ConversationState,
        patch: RefinementPatch,
        budget_override: dict | None = None,
    ) -> HandleResult:
        spec = apply_refinement(state.last_search, patch, self._year, self._cfg.today)
        if budget_override is not None:
            spec = spec.with_changes(**budget_override)
        if patch.country_switch:
            country = country_by_id(spec.country_id)
            announce = messages.country_switch(country.label if country else spec.country_name)
        else:
            announce = messages.REFINING
        return await self._run_search(state, spec, announce=announce)

    async def _ask_draft_clarification(self, state: ConversationState, text: str, target: int) -> HandleResult:
        patch = draft_from_text(text, self._year)
        patch.budget = None
        progress = advance(state.draft, patch)
        state.draft = progress.draft
        state.awaiting = progress.awaiting
        state.mode = "awaiting_clarification"
        state.pending_budget = BudgetClarification(value=target, origin="collecting")
        await self._send(state, messages.budget_question(target))
        return HandleResult(action="clarification_asked", details=str(target))

    async def _clarification_answer(self, state: ConversationState, text: str) -> HandleResult | None:
        pending = state.pending_budget
        answer = parse_budget_answer(text, pending.value)
        if answer is None:
            if fast_path(text, self._year) or not draft_from_text(text, self._year).is_empty():
                self._drop_clarification(state)
                return None
            await self._send(state, f"{messages.BUDGET_UNCLEAR} {messages.budget_question(pending.value)}")
            return HandleResult(action="reprompted", details="budget clarification")

        self._drop_clarification(state)
        budget = budget_from_answer(answer)
        log.info("chat=%s budget clarified: %s %d", state.chat_id, answer.kind, answer.value)

        if pending.origin == "refinement" and state.last_search is not None:
            patch = parse_refinement(pending.details.get("text", ""), state.last_search, self._year)
            patch = patch or RefinementPatch()
            patch.budget = None
            patch.sort = None
            return await self._apply_patch(state, patch, budget_override=budget_changes(budget))

        return await self._advance_draft(state, SearchDraft(budget=budget))

    def _drop_clarification(self, state: ConversationState) -> None:
        origin = state.pending_budget.origin if state.pending_budget else None
        state.pending_budget = None
        if origin == "collecting" and state.draft is not None:
            state.mode = "collecting"
        else:
            state.mode = "results" if state.last_search else "idle"

    # ------------------------------------------------------------------
    # Filter editing
    # ------------------------------------------------------------------

    async def _open_filter(self, state: ConversationState, name: str) -> HandleResult:
        if state.last_search is None:
            await self._send(state, messages.NEED_SEARCH_FIRST)
            return HandleResult(action="command", details="filter without search")
        state.mode = "editing_filter"
        state.editing_filter = name
        text, keyboard = messages.filter_prompt(name)
        await self._send(state, text, keyboard)
        return HandleResult(action="filter_menu", details=name)

    async def _filter_button(self, state: ConversationState, name: str, value: str) -> HandleResult:
        if not _filter_value_ok(name, value):
            return self._malformed(state, f"{name}:{value}")
        if name == "rating":
            changes = {"rating": 0.0 if value == "any" else float(value)}
        elif name == "period":
            date_from, date_to = period_window(value, self._year, self._cfg.today)
            changes = {"period": value, "date_from": date_from, "date_to": date_to}
        else:
            changes = {"meal": None if value.upper() == "ANY" else value.upper()}

        if state.last_search is None:
            draft = SearchDraft(
                rating=changes.get("rating"),
                period=changes.get("period"),
                meal=value.upper() if name == "meal" else None,
            )
            return await self._advance_draft(state, draft)
        return await self._rerun_with(state, changes)

    async def _filter_answer(self, state: ConversationState, text: str) -> HandleResult | None:
        name = state.editing_filter
        changes = self._parse_filter_value(name, text)
        if changes is None:
            if fast_path(text, self._year) or not draft_from_text(text, self._year).is_empty():
                state.editing_filter = None
                state.mode = "results"
                return None
            prompt, keyboard = messages.filter_prompt(name)
            await self._send(state, prompt, keyboard)
            return HandleResult(action="reprompted", details=f"filter:{name}")
        if changes == "invalid":
            await self._send(state, messages.INVALID_BUDGET, messages.cancel_keyboard())
            return HandleResult(action="reprompted", details="filter:budget invalid")
        return await self._rerun_with(state, changes)

    def _parse_filter_value(self, name: str, text: str) -> dict | str | None:
        t = normalize_text(text)
        if name == "budget":
            if "без" in t and "лим" in t:
                return budget_changes(None)
            budget = extract_budget(text)
            if budget and (budget.kind != "approx" or has_explicit_approx_marker(text)):
                return budget_changes(budget) if budget.max >= MIN_BUDGET else "invalid"
            value = budget.reference if budget else parse_positive_int(text)
            if value is None:
                return None
            return budget_changes(Budget.ceiling(value)) if value >= MIN_BUDGET else "invalid"
        if name == "rating":
            if "не важно" in t or "любой" in t:
                return {"rating": 0.0}
            rating = extract_rating(text)
            if rating is None:
                try:
                    rating = float(t.replace(",", "."))
                except ValueError:
                    return None
            return {"rating": rating} if 0 <= rating <= 5 else None
        if name == "period":
            period = extract_period(text)
            if period:
                date_from, date_to = period_window(period, self._year, self._cfg.today)
                return {"period": period, "date_from": date_from, "date_to": date_to}
            dates = extract_dates(text, self._year)
            if dates:
                return {"period": None, "date_from": dates[0], "date_to": dates[1]}
            return None
        meal = extract_meal(text)
        if meal is None:
            return None
        return {"meal": None if meal == "ANY" else meal}

    async def _rerun_with(self, state: ConversationState, changes: dict) -> HandleResult:
        state.editing_filter = None
        state.mode = "results"
        spec = state.last_search.with_changes(offset=0, **changes)
        return await self._run_search(state, spec, announce=messages.REFINING)

    # ------------------------------------------------------------------
    # Search execution
    # ------------------------------------------------------------------

    async def _show_more(self, state: ConversationState) -> HandleResult:
        prior = state.last_search
        if prior is None:
            await self._send(state, messages.NEED_SEARCH_FIRST)
            return HandleResult(action="command", details="more without search")
        spec = prior.with_changes(offset=prior.offset + prior.limit)
        return await self._run_search(state, spec, announce=messages.SHOW_MORE)

    async def _run_search(
        self,
        state: ConversationState,
        spec: SearchSpecification,
        announce: str | None = None,
    ) -> HandleResult:
        seq = state.begin_search()
        state.mode = "results"
        state.draft = None
        state.awaiting = None
        state.pending_budget = None
        state.editing_filter = None
        state.last_search = spec
        log.info("chat=%s seq=%d searching country=%s offset=%d", state.chat_id, seq, spec.country_name, spec.offset)

        if announce:
            await self._send(state, announce)

        try:
            outcome = await self._cfg.executor.execute_with_retry(spec)
        except SearchBackendError as exc:
            if state.is_stale(seq):
                log.info("chat=%s seq=%d failure of superseded search ignored", state.chat_id, seq)
                return HandleResult(action="search_stale")
            log.error("chat=%s seq=%d search failed after retry: %s", state.chat_id, seq, exc)
            await self._send(state, messages.BACKEND_DOWN, messages.retry_keyboard())
            return HandleResult(action="search_failed", details=str(exc))

        if state.is_stale(seq):
            log.info("chat=%s seq=%d stale results discarded (current=%d)", state.chat_id, seq, state.search_seq)
            return HandleResult(action="search_stale", details=outcome.request_id)

        if not outcome.results:
            if spec.offset > 0:
                state.last_search = spec.with_changes(offset=max(0, spec.offset - spec.limit))
                await self._send(state, messages.NO_MORE, messages.results_keyboard())
            else:
                state.last_results = []
                state.last_request_id = outcome.request_id
                await self._send(state, messages.NO_RESULTS, messages.filters_keyboard())
            return HandleResult(action="search_executed", details="0 results")

        page = outcome.results[: spec.limit]
        state.last_results = page
        state.last_request_id = outcome.request_id
        state.last_total = outcome.total

        if spec.offset == 0:
            await self._send(state, messages.found_header(outcome.total, len(page)))
        for tour in page:
            await self._send_tour(state, tour, messages.tour_keyboard(outcome.request_id, tour))
            if state.is_stale(seq):
                log.info("chat=%s seq=%d cancelled while sending results", state.chat_id, seq)
                return HandleResult(action="search_stale", details=outcome.request_id)
        await self._send(state, messages.PICK_HINT, messages.results_keyboard())
        return HandleResult(action="search_executed", details=f"{len(page)} results req={outcome.request_id}")

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    @staticmethod
    def _pin_key(chat_id: str, pinned: PinnedSelection) -> str:
        return f"{chat_id}:{pinned.request_id}:{pinned.hotel_id}:{pinned.source}"

    async def _want(self, state: ConversationState, rest: str) -> HandleResult:
        request_id, _, tail = rest.partition(":")
        hotel_raw, _, source = tail.partition(":")
        hotel_id = _token_int(hotel_raw)
        if hotel_id is None:
            return self._malformed(state, f"want:{rest}")
        source = source or "results"
        key = f"{state.chat_id}:{request_id}:{hotel_id}:{source}"

        if self._recent.is_duplicate(key, self._cfg.clock()):
            log.info("chat=%s duplicate selection %s", state.chat_id, key)
            await self._send(state, messages.ALREADY_CHECKING)
            return HandleResult(action="duplicate_action", details=key)

        if source == "fav":
            tour = state.favorites.find(hotel_id)
        elif request_id != state.last_request_id:
            self._recent.forget(key)
            await self._send(state, messages.SESSION_STALE)
            return HandleResult(action="ignored", details="selection from an old result set")
        else:
            tour = next((t for t in state.last_results if t.hotel_id == hotel_id), None)

        if tour is None:
            self._recent.forget(key)
            await self._send(state, messages.TOUR_NOT_FOUND)
            return HandleResult(action="ignored", details="tour not found")

        state.pinned = PinnedSelection(
            request_id=request_id,
            hotel_id=hotel_id,
            source=source,
            tour=tour,
            search=state.last_search,
        )
        state.mode = "awaiting_phone"
        log.info("chat=%s pinned hotel=%d req=%s", state.chat_id, hotel_id, request_id)
        await self._send(state, messages.recap(tour))
        await self._send(state, messages.ASK_PHONE, messages.cancel_keyboard())
        return HandleResult(action="booking_started", details=key)

    async def _phone_answer(self, state: ConversationState, text: str, user: UserInfo | None) -> HandleResult:
        phone = normalize_phone(text)
        if phone is None:
            await self._send(state, messages.PHONE_FORMAT, messages.cancel_keyboard())
            return HandleResult(action="phone_invalid")

        pinned = state.pinned
        user = user or UserInfo()
        lead = Lead(
            ts=datetime.now(timezone.utc).isoformat(),
            chat_id=state.chat_id,
            phone_number=phone,
            hotel_id=pinned.hotel_id,
            request_id=pinned.request_id,
            country_id=pinned.search.country_id if pinned.search else None,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            search_params=asdict(pinned.search) if pinned.search else {},
        )
        try:
            await self._cfg.leads.append(lead)
        except Exception:
            log.exception("chat=%s could not store lead", state.chat_id)
            await self._send(state, messages.LEAD_FAILED)
            return HandleResult(action="phone_invalid", details="lead store failed")

        self._recent.forget(self._pin_key(state.chat_id, pinned))
        state.pinned = None
        state.mode = "idle"
        log.info("chat=%s lead saved hotel=%d req=%s", state.chat_id, lead.hotel_id, lead.request_id)
        await self._send(state, messages.LEAD_SAVED, [[Button("🔎 Найти ещё", "more")]])
        return HandleResult(action="lead_saved", details=f"hotel={lead.hotel_id}")

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    async def _favorites_action(self, state: ConversationState, rest: str) -> HandleResult:
        action, _, arg = rest.partition(":")
        favorites = state.favorites
        hotel_id = _token_int(arg)
        if action in ("add", "remove") and hotel_id is None:
            return self._malformed(state, f"fav:{rest}")

        if action == "add":
            tour = next((t for t in state.last_results if t.hotel_id == hotel_id), None)
            if tour is None:
                await self._send(state, messages.FAV_NOT_IN_RESULTS)
                return HandleResult(action="ignored", details="tour not in results")
            added = favorites.save_tour(tour)
            await self._send(state, messages.FAV_ADDED if added else messages.FAV_ALREADY)
            return HandleResult(action="favorites", details="added" if added else "already saved")
        if action == "remove":
            removed = favorites.remove_tour(hotel_id)
            await self._send(state, messages.FAV_REMOVED if removed else messages.FAV_GONE)
            return HandleResult(action="favorites", details="removed")
        if action == "save":
            if state.last_search is None or not state.last_results:
                await self._send(state, messages.NO_RESULTS_TO_SAVE)
                return HandleResult(action="favorites", details="nothing to save")
            spec = state.last_search
            country = country_by_id(spec.country_id)
            collection = favorites.save_collection(
                ParamsSnapshot(
                    country=country.label if country else spec.country_name,
                    nights=spec.nights_min,
                    budget_min=spec.budget_min,
                    budget_max=spec.budget_max or None,
                    meal=spec.meal,
                ),
                state.last_results,
                max_tours=self._cfg.collection_size,
            )
            state.pending_prompt = "show_favorites"
            await self._send(state, messages.COLLECTION_SAVED, messages.yes_no_keyboard())
            return HandleResult(action="favorites", details=f"saved {collection.id}")
        if action == "list":
            return await self._show_favorites(state)
        if action == "clear":
            favorites.clear()
            await self._send(state, messages.FAVORITES_CLEARED)
            return HandleResult(action="favorites", details="cleared")
        if action == "open":
            collection = favorites.open_collection(arg)
            if collection is None:
                await self._send(state, messages.COLLECTION_NOT_FOUND)
                return HandleResult(action="favorites", details="collection not found")
            await self._send(state, f"📂 {messages.collection_title(collection)}")
            for tour in collection.tours:
                await self._send_tour(state, tour, messages.favorite_tour_keyboard(tour))
            return HandleResult(action="favorites", details=f"opened {arg}")
        if action == "delete":
            deleted = favorites.delete_collection(arg)
            await self._send(state, messages.COLLECTION_DELETED if deleted else messages.COLLECTION_GONE)
            return HandleResult(action="favorites", details=f"deleted {arg}")

        log.warning("chat=%s unknown favorites action %r", state.chat_id, rest)
        return HandleResult(action="ignored", details=f"unknown favorites action {rest}")

    async def _show_favorites(self, state: ConversationState) -> HandleResult:
        favorites = state.favorites
        if favorites.is_empty():
            await self._send(state, messages.FAVORITES_EMPTY)
            return HandleResult(action="favorites", details="empty")
        await self._send(
            state,
            messages.favorites_overview(favorites.tours, favorites.collections),
            messages.favorites_keyboard(favorites.collections),
        )
        for tour in favorites.tours:
            await self._send_tour(state, tour, messages.favorite_tour_keyboard(tour))
        return HandleResult(action="favorites", details=f"{len(favorites.all_tours())} tours")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    async def _send(self, state: ConversationState, text: str, buttons: list[list[Button]] | None = None) -> None:
        await self._cfg.channel.send_text(state.chat_id, text, buttons)

    async def _send_tour(self, state: ConversationState, tour: TourResult, buttons: list[list[Button]]) -> None:
        caption = messages.tour_caption(tour)
        if tour.image_url:
            await self._cfg.channel.send_image(state.chat_id, tour.image_url, caption, buttons)
        else:
            await self._send(state, caption, buttons)
