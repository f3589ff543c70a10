"""
Core polling logic for the tour-search bot daemon.

Extracted from scripts/run.py so it can be imported and tested
without pulling in Claude or Telegram adapter dependencies.
"""

import asyncio
import logging

from src.communication.ports import ChatChannel, InboundEvent
from src.conversation import ConversationHandler, HandleResult
from src.domain.extractors import is_cancel_text

log = logging.getLogger(__name__)

_CANCEL_COMMANDS = ("/cancel", "/start")


def preempts(event: InboundEvent) -> bool:
    """True for events that reset the conversation: they jump the chat's queue."""
    if event.kind == "button":
        return (event.token or "") == "cancel"
    text = (event.text or "").strip()
    if text.startswith("/"):
        return text.split()[0].lower().split("@")[0] in _CANCEL_COMMANDS
    return bool(text) and is_cancel_text(text)


class _Lane:
    """One chat's serial queue. Closed when a cancel overtakes it."""

    def __init__(self):
        self.tail: asyncio.Task | None = None
        self.closed = False


class Dispatcher:
    """
    Runs inbound events as background tasks.

    Events of one chat are handled one at a time, in arrival order; chats
    never wait for each other.  A cancel (/cancel, /start, "отмена", the
    cancel button) does not queue behind the chat's running work: it starts
    at once, so a search in flight becomes stale, and events that were
    still waiting behind that work are dropped.
    """

    def __init__(self, handler: ConversationHandler):
        self._handler = handler
        self._lanes: dict[str, _Lane] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def busy(self) -> int:
        """Number of events submitted but not finished."""
        return len(self._tasks)

    def submit(self, event: InboundEvent) -> asyncio.Task:
        chat_id = event.chat_id
        lane = self._lanes.get(chat_id)
        if lane is None or preempts(event):
            if lane is not None:
                lane.closed = True
                log.info("chat=%s cancel overtakes queued work", chat_id)
            lane = self._lanes[chat_id] = _Lane()

        task = asyncio.create_task(self._queued(event, lane, lane.tail))
        lane.tail = task
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finished(chat_id, lane, done))
        return task

    async def drain(self) -> None:
        """Wait until every submitted event has been handled."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    def _finished(self, chat_id: str, lane: _Lane, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if lane.tail is task and self._lanes.get(chat_id) is lane:
            del self._lanes[chat_id]

    async def _queued(self, event: InboundEvent, lane: _Lane, previous: asyncio.Task | None) -> HandleResult | None:
        if previous is not None:
            await asyncio.wait([previous])
        if lane.closed:
            log.info("chat=%s %s event dropped after cancel", event.chat_id, event.kind)
            return HandleResult(action="ignored", details="superseded by cancel")
        return await self._run(event)

    async def _run(self, event: InboundEvent) -> HandleResult | None:
        try:
            result = await self._handler.handle_event(event)
        except Exception as exc:
            log.error("Handler error for chat %s (%s): %s", event.chat_id, event.kind, exc)
            return None
        if result.action != "ignored":
            log.debug("chat=%s action=%s: %s", event.chat_id, result.action, result.details[:60])
        return result


async def poll_once(dispatcher: Dispatcher, channel: ChatChannel, wait: bool = True) -> list[HandleResult]:
    """
    One poll cycle.

    1. Fetch all inbound events since the last poll.
    2. Hand each one to the dispatcher.
    3. With wait=True, return the results of this batch once all are handled;
       the daemon passes wait=False and keeps polling while they run.

    A failing event is logged and skipped; it never stops the cycle.
    """
    try:
        events = await channel.poll_events()
    except Exception as exc:
        log.error("Failed to poll chat events: %s", exc)
        return []

    if not events:
        return []

    log.info("Poll: %d event(s) across %d chat(s)", len(events), len({e.chat_id for e in events}))

    tasks = [dispatcher.submit(event) for event in events]
    if not wait:
        return []
    results = await asyncio.gather(*tasks)
    return [result for result in results if result is not None]
