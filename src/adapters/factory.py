import logging
import os

from src.domain.intent import IntentParser
from src.domain.leads import LeadStore

from .ports import SearchBackend

log = logging.getLogger(__name__)


def create_search_backend(kind: str | None = None) -> SearchBackend:
    """
    Factory: create the search backend based on config.

    The kind can be passed explicitly or read from the SEARCH_BACKEND
    env var. Defaults to "mock" (the deterministic synthetic market).
    """
    kind = kind or os.environ.get("SEARCH_BACKEND", "mock")

    if kind == "tourvisor":
        from .tourvisor_client import BASE_URL, RESULT_URL, TourvisorClient

        return TourvisorClient(
            login=os.environ.get("TOURVISOR_LOGIN", ""),
            password=os.environ.get("TOURVISOR_PASS", ""),
            base_url=os.environ.get("TOURVISOR_BASE_URL", BASE_URL),
            result_url=os.environ.get("TOURVISOR_RESULT_URL", RESULT_URL),
        )

    if kind == "mock":
        from .simulator_search import SimulatorSearchBackend

        return SimulatorSearchBackend(
            seed=os.environ.get("MOCK_SEARCH_SEED") or None,
            assets_dir=os.environ.get("HOTEL_ASSETS_DIR", "public/assets/hotels"),
        )

    raise ValueError(f"Unknown search backend: {kind!r}. Use 'mock' or 'tourvisor'.")


def create_intent_parser(provider: str | None = None) -> IntentParser | None:
    """
    Factory: the external intent parser, or None when disabled.

    LLM_DISABLED=1 turns external parsing off entirely. LLM_PROVIDER picks
    "mock" (default) or "claude"; "claude" without ANTHROPIC_API_KEY falls
    back to the deterministic parser.
    """
    if os.environ.get("LLM_DISABLED") == "1":
        return None
    provider = provider or os.environ.get("LLM_PROVIDER", "mock")

    if provider == "claude":
        if os.environ.get("ANTHROPIC_API_KEY"):
            from .claude_intent import ClaudeIntentParser

            return ClaudeIntentParser()
        log.warning("LLM_PROVIDER=claude but ANTHROPIC_API_KEY is not set; using mock parser")
        provider = "mock"

    if provider == "mock":
        from .simulator_intent import SimulatorIntentParser

        return SimulatorIntentParser(seed=os.environ.get("LLM_SEED", "0"))

    raise ValueError(f"Unknown LLM provider: {provider!r}. Use 'mock' or 'claude'.")


def create_lead_store(path: str | None = None) -> LeadStore:
    """JSON-lines file by default; a .db path selects SQLite."""
    path = path or os.environ.get("LEADS_PATH", "data/leads.jsonl")

    if path.endswith(".db") or path == ":memory:":
        from .sqlite_leads import SqliteLeadStore

        return SqliteLeadStore(path)

    from .jsonl_leads import JsonlLeadStore

    return JsonlLeadStore(path)
