"""
In-memory ConversationStore — one process, states keyed by chat id.

States are created on first contact and evicted once idle for longer
than the TTL.  Every get() refreshes the state's last-seen time.
"""

import logging
import time
from typing import Callable

from src.domain.state import ConversationState, ConversationStore

log = logging.getLogger(__name__)


class InMemoryConversationStore(ConversationStore):

    def __init__(self, ttl: float = 6 * 3600, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._states: dict[str, ConversationState] = {}

    async def get(self, chat_id: str) -> ConversationState:
        state = self._states.get(chat_id)
        if state is None:
            state = ConversationState(chat_id=chat_id)
            self._states[chat_id] = state
            log.debug("New conversation chat=%s", chat_id)
        state.last_seen = self._clock()
        return state

    async def discard(self, chat_id: str) -> None:
        self._states.pop(chat_id, None)

    async def evict_idle(self) -> int:
        now = self._clock()
        stale = [cid for cid, s in self._states.items() if now - s.last_seen > self._ttl]
        for chat_id in stale:
            del self._states[chat_id]
        if stale:
            log.info("Evicted %d idle conversations", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._states)
