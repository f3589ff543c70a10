"""
SQLite adapter for LeadStore.

Use ":memory:" for tests, a file path for production.
"""

import json
import sqlite3

from src.domain.leads import Lead, LeadStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS leads (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    ts            TEXT NOT NULL,
    chat_id       TEXT NOT NULL,
    phone_number  TEXT NOT NULL,
    hotel_id      INTEGER NOT NULL,
    request_id    TEXT NOT NULL,
    country_id    INTEGER,
    username      TEXT,
    first_name    TEXT,
    last_name     TEXT,
    search_params TEXT NOT NULL DEFAULT '{}'
);
"""


class SqliteLeadStore(LeadStore):

    def __init__(self, db_path: str = "leads.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)

    async def append(self, lead: Lead) -> None:
        self._conn.execute(
            "INSERT INTO leads"
            " (ts, chat_id, phone_number, hotel_id, request_id, country_id,"
            "  username, first_name, last_name, search_params)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (lead.ts, lead.chat_id, lead.phone_number, lead.hotel_id, lead.request_id,
             lead.country_id, lead.username, lead.first_name, lead.last_name,
             json.dumps(lead.search_params, ensure_ascii=False)),
        )
        self._conn.commit()

    async def recent(self, limit: int = 20) -> list[Lead]:
        rows = self._conn.execute(
            "SELECT * FROM (SELECT * FROM leads ORDER BY id DESC LIMIT ?) ORDER BY id",
            (limit,),
        ).fetchall()
        return [self._row_to_lead(r) for r in rows]

    @staticmethod
    def _row_to_lead(row) -> Lead:
        return Lead(
            ts=row["ts"],
            chat_id=row["chat_id"],
            phone_number=row["phone_number"],
            hotel_id=row["hotel_id"],
            request_id=row["request_id"],
            country_id=row["country_id"],
            username=row["username"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            search_params=json.loads(row["search_params"] or "{}"),
        )
