"""
Local process runner for the tour-search bot.

Polls the chat channel every POLL_INTERVAL seconds for new messages and
button presses, handles them through the conversation handler, and evicts
idle conversations.

Usage:
    source .env && python scripts/run.py

Environment variables (all optional):
    CHAT_CHANNEL         - "telegram" or "console" (default: console)
    TELEGRAM_BOT_TOKEN   - required when CHAT_CHANNEL=telegram
    SEARCH_BACKEND       - "tourvisor" or "mock" (default: mock)
    TOURVISOR_LOGIN, TOURVISOR_PASS - required when SEARCH_BACKEND=tourvisor
    LLM_PROVIDER         - "claude" or "mock" (default: mock)
    LLM_DISABLED         - "1" to use rule-based classification only
    ANTHROPIC_API_KEY    - required when LLM_PROVIDER=claude
    LEADS_PATH           - leads file; *.db selects SQLite (default: data/leads.jsonl)
    MOCK_SEARCH_SEED     - explicit seed mixed into the synthetic market
    HOTEL_ASSETS_DIR     - hotel images for the synthetic market (default: public/assets/hotels)
    PUBLIC_DIR           - root that image paths resolve against for upload (default: public)
    LLM_SEED             - seed of the rule-based parser's clarifying questions
    DEFAULT_SEARCH_YEAR  - year used for month names and default window (default: 2026)
    SEARCH_POLL_INTERVAL - seconds between backend polls (default: 1.5)
    SEARCH_TIMEOUT       - seconds before a search gives up polling (default: 20)
    CLASSIFIER_TIMEOUT   - seconds allowed for the external classifier (default: 3.5)
    SESSION_TTL          - seconds of inactivity before a conversation is evicted (default: 21600)
    POLL_INTERVAL        - seconds between channel polls (default: 1)
    LOG_LEVEL            - logging level (default: INFO)
"""

import asyncio
import logging
import os
import sys

# Make sure project root is on sys.path when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.adapters.factory import create_intent_parser, create_lead_store, create_search_backend
from src.adapters.memory_state_store import InMemoryConversationStore
from src.classifier import IntentClassifier
from src.communication.factory import create_chat_channel
from src.conversation import ConversationHandler, HandlerConfig
from src.daemon import Dispatcher, poll_once
from src.domain.search import SearchDefaults
from src.search_executor import SearchExecutor

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


def _env_number(name: str, default: str) -> float:
    value = os.environ.get(name, default)
    try:
        return float(value)
    except ValueError:
        print(f"ERROR: environment variable {name!r} must be a number, got {value!r}.", file=sys.stderr)
        sys.exit(1)


def build_handler(channel, store: InMemoryConversationStore) -> ConversationHandler:
    year = int(_env_number("DEFAULT_SEARCH_YEAR", "2026"))
    executor = SearchExecutor(
        backend=create_search_backend(),
        poll_interval=_env_number("SEARCH_POLL_INTERVAL", "1.5"),
        timeout=_env_number("SEARCH_TIMEOUT", "20"),
    )
    classifier = IntentClassifier(
        parser=create_intent_parser(),
        timeout=_env_number("CLASSIFIER_TIMEOUT", "3.5"),
        default_year=year,
    )
    config = HandlerConfig(
        channel=channel,
        classifier=classifier,
        executor=executor,
        leads=create_lead_store(),
        store=store,
        defaults=SearchDefaults(year=year),
    )
    return ConversationHandler(config)


async def main() -> None:
    poll_interval = _env_number("POLL_INTERVAL", "1")
    channel = create_chat_channel()
    store = InMemoryConversationStore(ttl=_env_number("SESSION_TTL", str(6 * 3600)))
    dispatcher = Dispatcher(build_handler(channel, store))

    log.info("Daemon started — channel=%s  interval=%.1fs", type(channel).__name__, poll_interval)

    while True:
        await poll_once(dispatcher, channel, wait=False)
        await store.evict_idle()
        await asyncio.sleep(poll_interval)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        log.info("Daemon stopped.")
