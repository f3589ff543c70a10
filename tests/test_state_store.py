"""
Conversation state tests: the in-memory store, search generations,
reset semantics and the duplicate-action window.
"""

import pytest

from src.adapters.memory_state_store import InMemoryConversationStore
from src.domain.search import SearchDraft, TourResult
from src.domain.state import ConversationState, RecentActions


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_get_creates_and_reuses_state():
    store = InMemoryConversationStore()
    a = await store.get("c1")
    assert a.mode == "idle"
    assert await store.get("c1") is a
    assert await store.get("c2") is not a
    assert len(store) == 2


@pytest.mark.asyncio
async def test_idle_states_are_evicted():
    clock = FakeClock()
    store = InMemoryConversationStore(ttl=60, clock=clock)
    await store.get("old")
    clock.now += 30
    await store.get("fresh")
    clock.now += 40
    assert await store.evict_idle() == 1
    assert len(store) == 1
    # evicted chats start over
    assert (await store.get("old")).search_seq == 0


@pytest.mark.asyncio
async def test_discard():
    store = InMemoryConversationStore()
    await store.get("c1")
    await store.discard("c1")
    assert len(store) == 0


def test_newer_search_makes_older_stale():
    state = ConversationState(chat_id="c1")
    first = state.begin_search()
    second = state.begin_search()
    assert state.is_stale(first)
    assert not state.is_stale(second)


def test_reset_keeps_favorites_and_invalidates_searches():
    state = ConversationState(chat_id="c1")
    seq = state.begin_search()
    state.favorites.save_tour(TourResult(price=1000, hotel_id=1))
    state.start_collecting(SearchDraft(country_id=47), "nights")
    state.reset()
    assert state.mode == "idle"
    assert state.draft is None
    assert state.is_stale(seq)
    assert not state.favorites.is_empty()


def test_stop_collecting_without_search_goes_idle():
    state = ConversationState(chat_id="c1")
    state.start_collecting(SearchDraft(), "country")
    state.stop_collecting()
    assert state.mode == "idle"


def test_recent_actions_window():
    recent = RecentActions(window=45, retention=60)
    assert not recent.is_duplicate("k", now=0)
    assert recent.is_duplicate("k", now=10)
    assert not recent.is_duplicate("k", now=50)


def test_recent_actions_forget():
    recent = RecentActions(window=45)
    recent.is_duplicate("k", now=0)
    recent.forget("k")
    assert not recent.is_duplicate("k", now=1)
