"""
End-to-end conversation tests for ConversationHandler.

Uses simulators only — no network, no credentials.
Covers: slot filling (text and buttons), unsupported destinations,
        refinement and country switch, budget clarification, paging,
        filters, backend failure and retry, stale results, booking with
        duplicate suppression, smalltalk, favorites.
"""

import asyncio
from datetime import date

import pytest

from src import messages
from src.adapters.simulator_intent import SimulatorIntentParser
from src.adapters.simulator_search import SimulatorSearchBackend
from src.adapters.sqlite_leads import SqliteLeadStore
from src.adapters.memory_state_store import InMemoryConversationStore
from src.classifier import IntentClassifier
from src.communication.console_channel import ConsoleChatChannel
from src.communication.ports import UserInfo
from src.conversation import ConversationHandler, HandlerConfig
from src.search_executor import SearchExecutor

CHAT = "chat-1"
FULL_REQUEST = "Хочу в Турцию на 7 ночей до 120к"


async def _no_sleep(_seconds: float) -> None:
    return None


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class GatedExecutor:
    """Holds the first search until released; later searches run straight through."""

    def __init__(self, inner: SearchExecutor):
        self._inner = inner
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def execute_with_retry(self, spec):
        self.calls += 1
        if self.calls == 1:
            self.entered.set()
            await self.release.wait()
        return await self._inner.execute_with_retry(spec)


@pytest.fixture
def channel():
    return ConsoleChatChannel(echo=False)


@pytest.fixture
def backend():
    return SimulatorSearchBackend(seed="conversation", today=date(2026, 5, 1))


@pytest.fixture
def executor(backend):
    return SearchExecutor(backend, poll_interval=0, retry_delay=0, sleep=_no_sleep)


@pytest.fixture
def leads():
    return SqliteLeadStore(":memory:")


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def clock():
    return FakeClock()


def _handler(channel, executor, leads, store, clock) -> ConversationHandler:
    config = HandlerConfig(
        channel=channel,
        classifier=IntentClassifier(parser=SimulatorIntentParser()),
        executor=executor,
        leads=leads,
        store=store,
        clock=clock,
        today=date(2026, 5, 1),
    )
    return ConversationHandler(config)


@pytest.fixture
def handler(channel, executor, leads, store, clock):
    return _handler(channel, executor, leads, store, clock)


async def _state(store):
    return await store.get(CHAT)


def _tokens(message) -> list[str]:
    return [b.token for row in message.buttons for b in row]


# ---------------------------------------------------------------------------
# Slot filling
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_request_runs_search(handler, channel, store):
    result = await handler.handle_text(CHAT, FULL_REQUEST)

    assert result.action == "search_executed"
    state = await _state(store)
    assert state.mode == "results"
    assert state.last_search.country_id == 47
    assert state.last_search.budget_max == 120_000
    assert 0 < len(state.last_results) <= 5
    assert all(t.price <= 120_000 for t in state.last_results)

    texts = channel.texts(CHAT)
    assert texts[0].startswith("Поняла: Турция")
    assert texts[1].startswith("Нашла ")
    assert texts[-1] == messages.PICK_HINT
    card_tokens = _tokens(channel.sent[2])
    assert card_tokens[0].startswith(f"want:{state.last_request_id}:")


@pytest.mark.asyncio
async def test_slots_are_asked_one_at_a_time(handler, channel, store):
    r1 = await handler.handle_text(CHAT, "Турция")
    assert (r1.action, r1.details) == ("prompted", "nights")
    assert channel.sent[-1].text.startswith("Поняла: Турция.")
    assert "nights:7" in _tokens(channel.sent[-1])

    r2 = await handler.handle_text(CHAT, "7")
    assert (r2.action, r2.details) == ("prompted", "budget")

    r3 = await handler.handle_text(CHAT, "до 120к")
    assert r3.action == "search_executed"
    state = await _state(store)
    assert (state.last_search.nights_min, state.last_search.budget_max) == (7, 120_000)
    assert state.draft is None


@pytest.mark.asyncio
async def test_slots_filled_with_buttons(handler, store):
    assert (await handler.handle_button(CHAT, "country:54")).details == "nights"
    assert (await handler.handle_button(CHAT, "nights:10")).details == "budget"
    result = await handler.handle_button(CHAT, "budget:150000")
    assert result.action == "search_executed"
    state = await _state(store)
    assert state.last_search.country_id == 54
    assert state.last_search.budget_max == 150_000


@pytest.mark.asyncio
async def test_invalid_slot_answer_reprompts(handler, channel, store):
    await handler.handle_text(CHAT, "Турция")
    result = await handler.handle_text(CHAT, "50")
    assert result.action == "reprompted"
    assert channel.sent[-1].text == messages.INVALID_NIGHTS
    assert (await _state(store)).awaiting == "nights"


@pytest.mark.asyncio
async def test_answer_with_extra_slots_advances_further(handler, store):
    await handler.handle_text(CHAT, "Турция")
    result = await handler.handle_text(CHAT, "10 ночей до 200к")
    assert result.action == "search_executed"
    assert (await _state(store)).last_search.nights_min == 10


@pytest.mark.asyncio
async def test_unsupported_country_asks_for_supported_one(handler, channel, store):
    result = await handler.handle_text(CHAT, "Хочу в Италию на неделю")
    assert result.action == "unsupported_country"
    assert channel.sent[-1].text.startswith("Италия пока не в каталоге")
    state = await _state(store)
    assert state.mode == "collecting"
    assert state.awaiting == "country"
    assert state.draft.country_id is None


@pytest.mark.asyncio
async def test_unsupported_answer_to_country_prompt(handler, store):
    await handler.handle_text(CHAT, "до 150к")
    result = await handler.handle_text(CHAT, "Вьетнам")
    assert result.action == "unsupported_country"
    state = await _state(store)
    assert state.awaiting == "country"
    assert state.draft.budget.max == 150_000


@pytest.mark.asyncio
async def test_repeated_approximate_budget_keeps_country(handler, store):
    first = await handler.handle_text(CHAT, "Египет около 120к")
    assert (first.action, first.details) == ("prompted", "nights")

    second = await handler.handle_text(CHAT, "около 120000")
    assert second.action != "clarification_asked"
    assert second.details == "nights"
    state = await _state(store)
    assert state.mode == "collecting"
    assert state.awaiting == "nights"
    assert state.pending_budget is None
    assert state.draft.country_id == 54
    assert state.draft.budget.target == 120_000


# ---------------------------------------------------------------------------
# Refinement
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_refinement_keeps_other_parameters(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    result = await handler.handle_text(CHAT, "а на 10 ночей?")
    assert result.action == "search_executed"
    assert messages.REFINING in channel.texts(CHAT)
    spec = (await _state(store)).last_search
    assert (spec.country_id, spec.nights_min, spec.budget_max) == (47, 10, 120_000)


@pytest.mark.asyncio
async def test_country_switch_is_announced(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_text(CHAT, "а в Египет?")
    assert messages.country_switch("Египет") in channel.texts(CHAT)
    state = await _state(store)
    assert state.last_search.country_id == 54
    assert all(t.country == "Egypt" for t in state.last_results)


@pytest.mark.asyncio
async def test_ambiguous_budget_asks_ceiling_or_target(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    asked = await handler.handle_text(CHAT, "а за 200к?")
    assert asked.action == "clarification_asked"
    assert channel.sent[-1].text == messages.budget_question(200_000)
    assert (await _state(store)).mode == "awaiting_clarification"

    result = await handler.handle_text(CHAT, "это потолок")
    assert result.action == "search_executed"
    spec = (await _state(store)).last_search
    assert spec.budget_max == 200_000
    assert spec.budget_min is None


@pytest.mark.asyncio
async def test_month_only_refinement_changes_dates(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    result = await handler.handle_text(CHAT, "а в июле?")
    assert result.action == "search_executed"
    spec = (await _state(store)).last_search
    assert (spec.country_id, spec.nights_min, spec.budget_max) == (47, 7, 120_000)
    assert (spec.date_from, spec.date_to) == ("2026-07-01", "2026-07-31")


@pytest.mark.asyncio
async def test_target_answer_raises_ceiling(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_text(CHAT, "а за 200к?")
    await handler.handle_text(CHAT, "ориентир")
    assert (await _state(store)).last_search.budget_max == 240_000


@pytest.mark.asyncio
async def test_ambiguous_budget_before_any_search(handler, store):
    asked = await handler.handle_text(CHAT, "хочу тур за 150к?")
    assert asked.action == "clarification_asked"

    result = await handler.handle_text(CHAT, "максимум")
    assert result.details == "country"
    state = await _state(store)
    assert state.mode == "collecting"
    assert state.draft.budget.max == 150_000


@pytest.mark.asyncio
async def test_new_request_abandons_clarification(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_text(CHAT, "а за 200к?")
    result = await handler.handle_text(CHAT, "а в Египет на 10 ночей")
    assert result.action == "search_executed"
    state = await _state(store)
    assert state.pending_budget is None
    assert state.last_search.country_id == 54


# ---------------------------------------------------------------------------
# Paging and empty results
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_show_more_pages_forward(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    first = {t.hotel_id for t in (await _state(store)).last_results}

    result = await handler.handle_button(CHAT, "more")
    assert result.action == "search_executed"
    state = await _state(store)
    assert state.last_search.offset == 5
    assert not first & {t.hotel_id for t in state.last_results}
    assert messages.SHOW_MORE in channel.texts(CHAT)


@pytest.mark.asyncio
async def test_show_more_past_the_end(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    state = await _state(store)
    state.last_search = state.last_search.with_changes(offset=1000)

    await handler.handle_text(CHAT, "показать ещё")
    assert channel.sent[-1].text == messages.NO_MORE
    assert state.last_search.offset == 1000


@pytest.mark.asyncio
async def test_show_more_without_search(handler, channel):
    await handler.handle_button(CHAT, "more")
    assert channel.sent[-1].text == messages.NEED_SEARCH_FIRST


@pytest.mark.asyncio
async def test_no_results_offers_filters(handler, channel):
    result = await handler.handle_text(CHAT, "Турция на 7 ночей до 20к")
    assert result.details == "0 results"
    assert channel.sent[-1].text == messages.NO_RESULTS
    assert "filter:budget" in _tokens(channel.sent[-1])


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rating_filter_button(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    assert (await handler.handle_button(CHAT, "filters")).action == "filter_menu"
    await handler.handle_button(CHAT, "filter:rating")
    assert (await _state(store)).mode == "editing_filter"

    await handler.handle_button(CHAT, "rating:4.2")
    state = await _state(store)
    assert state.mode == "results"
    assert state.last_search.rating == 4.2
    assert all(t.rating >= 4.2 for t in state.last_results)


@pytest.mark.asyncio
async def test_budget_filter_text(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_button(CHAT, "filter:budget")
    result = await handler.handle_text(CHAT, "150000")
    assert result.action == "search_executed"
    spec = (await _state(store)).last_search
    assert (spec.budget_min, spec.budget_max) == (None, 150_000)


@pytest.mark.asyncio
async def test_budget_filter_rejects_small_amount(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_button(CHAT, "filter:budget")
    result = await handler.handle_text(CHAT, "500")
    assert result.action == "reprompted"
    assert channel.sent[-1].text == messages.INVALID_BUDGET
    assert (await _state(store)).mode == "editing_filter"


@pytest.mark.asyncio
async def test_period_filter_button(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_button(CHAT, "filter:period")
    await handler.handle_button(CHAT, "period:summer")
    spec = (await _state(store)).last_search
    assert (spec.period, spec.date_from, spec.date_to) == ("summer", "2026-06-01", "2026-08-31")


@pytest.mark.asyncio
async def test_meal_any_clears_meal(handler, store):
    await handler.handle_text(CHAT, "Турция на 7 ночей до 150к всё включено")
    assert (await _state(store)).last_search.meal == "AI"
    await handler.handle_button(CHAT, "meal:ANY")
    assert (await _state(store)).last_search.meal is None


@pytest.mark.asyncio
async def test_unknown_period_button_is_ignored(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    before = (await _state(store)).last_search
    result = await handler.handle_button(CHAT, "period:forever")
    assert result.action == "ignored"
    assert (await _state(store)).last_search == before


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["rating:lots", "rating:9", "meal:XX"])
async def test_out_of_range_filter_buttons_are_ignored(handler, store, token):
    await handler.handle_text(CHAT, FULL_REQUEST)
    before = (await _state(store)).last_search
    assert (await handler.handle_button(CHAT, token)).action == "ignored"
    assert (await _state(store)).last_search == before


# ---------------------------------------------------------------------------
# Backend failures and stale results
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_backend_failure_offers_retry(handler, backend, channel):
    backend.fail_next(2, "submit")
    result = await handler.handle_text(CHAT, FULL_REQUEST)
    assert result.action == "search_failed"
    assert channel.sent[-1].text == messages.BACKEND_DOWN
    assert "retry" in _tokens(channel.sent[-1])

    retried = await handler.handle_button(CHAT, "retry")
    assert retried.action == "search_executed"


@pytest.mark.asyncio
async def test_single_failure_is_retried_transparently(handler, backend):
    backend.fail_next(1, "poll")
    result = await handler.handle_text(CHAT, FULL_REQUEST)
    assert result.action == "search_executed"


@pytest.mark.asyncio
async def test_results_after_cancel_are_discarded(channel, executor, leads, store, clock):
    gated = GatedExecutor(executor)
    handler = _handler(channel, gated, leads, store, clock)

    task = asyncio.create_task(handler.handle_text(CHAT, FULL_REQUEST))
    await gated.entered.wait()
    await handler.handle_text(CHAT, "/cancel")
    gated.release.set()
    result = await task

    assert result.action == "search_stale"
    state = await _state(store)
    assert state.mode == "idle"
    assert state.last_results == []
    assert messages.PICK_HINT not in channel.texts(CHAT)


@pytest.mark.asyncio
async def test_newer_search_supersedes_older(channel, executor, leads, store, clock):
    gated = GatedExecutor(executor)
    handler = _handler(channel, gated, leads, store, clock)

    task = asyncio.create_task(handler.handle_text(CHAT, FULL_REQUEST))
    await gated.entered.wait()
    newer = await handler.handle_text(CHAT, "а в Египет?")
    gated.release.set()
    older = await task

    assert newer.action == "search_executed"
    assert older.action == "search_stale"
    state = await _state(store)
    assert state.last_search.country_id == 54
    assert all(t.country == "Egypt" for t in state.last_results)


# ---------------------------------------------------------------------------
# Booking
# ---------------------------------------------------------------------------


async def _pick_first_tour(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    state = await _state(store)
    tour = state.last_results[0]
    token = f"want:{state.last_request_id}:{tour.hotel_id}:results"
    return tour, token


@pytest.mark.asyncio
async def test_booking_flow_saves_lead(handler, channel, leads, store):
    tour, token = await _pick_first_tour(handler, store)

    started = await handler.handle_button(CHAT, token)
    assert started.action == "booking_started"
    assert channel.sent[-1].text == messages.ASK_PHONE
    assert (await _state(store)).mode == "awaiting_phone"

    bad = await handler.handle_text(CHAT, "позвоните мне")
    assert bad.action == "phone_invalid"
    assert channel.sent[-1].text == messages.PHONE_FORMAT

    user = UserInfo(username="traveller", first_name="Анна")
    saved = await handler.handle_text(CHAT, "+7 999 123-45-67", user)
    assert saved.action == "lead_saved"

    [lead] = await leads.recent()
    assert lead.phone_number == "+79991234567"
    assert lead.hotel_id == tour.hotel_id
    assert lead.username == "traveller"
    assert lead.country_id == 47
    assert lead.search_params["budget_max"] == 120_000
    state = await _state(store)
    assert state.mode == "idle"
    assert state.pinned is None


@pytest.mark.asyncio
async def test_rapid_duplicate_selection_is_suppressed(handler, channel, clock, store):
    _, token = await _pick_first_tour(handler, store)
    await handler.handle_button(CHAT, token)

    clock.now += 5
    duplicate = await handler.handle_button(CHAT, token)
    assert duplicate.action == "duplicate_action"
    assert channel.sent[-1].text == messages.ALREADY_CHECKING

    clock.now += 60
    again = await handler.handle_button(CHAT, token)
    assert again.action == "booking_started"


@pytest.mark.asyncio
async def test_selection_from_old_results_is_stale(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    result = await handler.handle_button(CHAT, "want:mock-old:1001:results")
    assert result.action == "ignored"
    assert channel.sent[-1].text == messages.SESSION_STALE


@pytest.mark.asyncio
async def test_cancel_during_booking_forgets_selection(handler, channel, store):
    _, token = await _pick_first_tour(handler, store)
    await handler.handle_button(CHAT, token)

    cancelled = await handler.handle_text(CHAT, "отмена")
    assert cancelled.action == "cancelled"
    state = await _state(store)
    assert state.mode == "idle"
    assert state.pinned is None

    again = await handler.handle_button(CHAT, token)
    assert again.action != "duplicate_action"


@pytest.mark.asyncio
async def test_smalltalk_keeps_phone_prompt(handler, channel, store):
    _, token = await _pick_first_tour(handler, store)
    await handler.handle_button(CHAT, token)

    result = await handler.handle_text(CHAT, "спасибо")
    assert result.action == "smalltalk"
    assert channel.sent[-2].text == messages.SMALLTALK_THANKS
    assert channel.sent[-1].text == messages.PHONE_REMINDER
    assert (await _state(store)).mode == "awaiting_phone"


@pytest.mark.asyncio
async def test_lead_store_failure_is_reported(handler, channel, leads, store, monkeypatch):
    _, token = await _pick_first_tour(handler, store)
    await handler.handle_button(CHAT, token)

    async def broken(_lead):
        raise OSError("disk full")

    monkeypatch.setattr(leads, "append", broken)
    result = await handler.handle_text(CHAT, "89991234567")
    assert result.details == "lead store failed"
    assert channel.sent[-1].text == messages.LEAD_FAILED
    assert (await _state(store)).mode == "awaiting_phone"


# ---------------------------------------------------------------------------
# Smalltalk, meta, commands
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_smalltalk_reissues_slot_prompt(handler, channel, store):
    await handler.handle_text(CHAT, "Турция")
    result = await handler.handle_text(CHAT, "привет")
    assert result.action == "smalltalk"
    assert channel.sent[-2].text == messages.SMALLTALK_CONTINUE
    assert channel.sent[-1].text.endswith(messages.ASK_NIGHTS)
    assert (await _state(store)).awaiting == "nights"


@pytest.mark.asyncio
async def test_slash_commands(handler, channel):
    assert (await handler.handle_text(CHAT, "/start")).details == "start"
    assert channel.sent[-1].text == messages.WELCOME
    assert (await handler.handle_text(CHAT, "/help")).action == "meta"
    await handler.handle_text(CHAT, "/weather")
    assert channel.sent[-1].text == messages.UNKNOWN_SLASH


@pytest.mark.asyncio
async def test_meta_question(handler, channel):
    result = await handler.handle_text(CHAT, "что ты умеешь?")
    assert result.action == "meta"
    assert channel.sent[-1].text == messages.HELP


@pytest.mark.asyncio
async def test_unknown_text_asks_questions(handler, channel):
    result = await handler.handle_text(CHAT, "что-нибудь интересное")
    assert result.action == "unknown"
    assert channel.sent[-1].text.startswith("Нужно чуть больше деталей:")


@pytest.mark.asyncio
async def test_new_search_command_resets(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    result = await handler.handle_text(CHAT, "Новый поиск")
    assert result.details == "new_search"
    state = await _state(store)
    assert state.last_search is None
    assert (state.mode, state.awaiting) == ("collecting", "country")


@pytest.mark.asyncio
async def test_chats_do_not_share_state(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_text("chat-2", "Египет")
    assert (await _state(store)).last_search.country_id == 47
    other = await store.get("chat-2")
    assert other.last_search is None
    assert other.awaiting == "nights"


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_favorite_tours(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    hotel_id = (await _state(store)).last_results[0].hotel_id

    await handler.handle_button(CHAT, f"fav:add:{hotel_id}")
    assert channel.sent[-1].text == messages.FAV_ADDED
    await handler.handle_button(CHAT, f"fav:add:{hotel_id}")
    assert channel.sent[-1].text == messages.FAV_ALREADY

    shown = await handler.handle_text(CHAT, "избранное")
    assert shown.action == "favorites"
    assert f"fav:remove:{hotel_id}" in _tokens(channel.sent[-1])


@pytest.mark.asyncio
async def test_save_collection_then_confirm(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_button(CHAT, "fav:save")
    assert channel.sent[-1].text == messages.COLLECTION_SAVED
    assert (await _state(store)).pending_prompt == "show_favorites"

    result = await handler.handle_text(CHAT, "да")
    assert result.action == "favorites"
    assert "fav:open:fav-1" in _tokens(channel.sent[-1])


@pytest.mark.asyncio
async def test_favorites_survive_reset_and_can_be_booked(handler, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    hotel_id = (await _state(store)).last_results[0].hotel_id
    await handler.handle_button(CHAT, f"fav:add:{hotel_id}")
    await handler.handle_text(CHAT, "/start")

    result = await handler.handle_button(CHAT, f"want:fav:{hotel_id}:fav")
    assert result.action == "booking_started"
    assert (await _state(store)).pinned.hotel_id == hotel_id


@pytest.mark.asyncio
async def test_clear_favorites(handler, channel, store):
    await handler.handle_text(CHAT, FULL_REQUEST)
    await handler.handle_button(CHAT, "fav:save")
    await handler.handle_button(CHAT, "fav:clear")
    assert (await _state(store)).favorites.is_empty()
    await handler.handle_text(CHAT, "избранное")
    assert channel.sent[-1].text == messages.FAVORITES_EMPTY


@pytest.mark.asyncio
async def test_button_events_are_acknowledged(handler, channel):
    event = channel.inject_button(CHAT, "countries")
    await handler.handle_event(event)
    assert channel.acknowledged == [(event.event_id, None)]
    assert channel.sent[-1].text == messages.COUNTRY_LIST


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [
    "country:oops",
    "nights:",
    "budget:много",
    "want:req-1:abc:results",
    "fav:add:x",
    "fav:remove:",
])
async def test_malformed_button_tokens_are_ignored(handler, channel, token):
    result = await handler.handle_button(CHAT, token)
    assert result.action == "ignored"
    assert result.details.startswith("malformed token")
    assert channel.sent == []
