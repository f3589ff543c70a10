"""
JSON-lines adapter for LeadStore — one lead per line, append-only.
"""

import json
from dataclasses import asdict
from pathlib import Path

from src.domain.leads import Lead, LeadStore


class JsonlLeadStore(LeadStore):

    def __init__(self, path: str | Path = "data/leads.jsonl"):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    async def append(self, lead: Lead) -> None:
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(asdict(lead), ensure_ascii=False) + "\n")

    async def recent(self, limit: int = 20) -> list[Lead]:
        if not self._path.exists():
            return []
        lines = [line for line in self._path.read_text(encoding="utf-8").splitlines() if line.strip()]
        return [Lead(**json.loads(line)) for line in lines[-limit:]]
