import asyncio
import json
import logging
from pathlib import Path

import requests

from .ports import Button, ChatChannel, InboundEvent, UserInfo

log = logging.getLogger(__name__)

BASE_URL = "https://api.telegram.org"


def _markup(buttons: list[list[Button]] | None) -> dict | None:
    if not buttons:
        return None
    return {
        "inline_keyboard": [
            [{"text": b.label, "callback_data": b.token} for b in row] for row in buttons
        ]
    }


class TelegramChatChannel(ChatChannel):
    """Adapter: Telegram Bot API over long polling (getUpdates)."""

    def __init__(self, token: str, assets_root: str | Path = ".", long_poll: int = 20):
        self.session = requests.Session()
        self._url = f"{BASE_URL}/bot{token}"
        self._assets_root = Path(assets_root)
        self._long_poll = long_poll
        self._offset = 0

    def _call(self, method: str, files: dict | None = None, **payload) -> dict:
        payload = {k: v for k, v in payload.items() if v is not None}
        if files:
            resp = self.session.post(f"{self._url}/{method}", data=payload, files=files, timeout=30)
        else:
            resp = self.session.post(f"{self._url}/{method}", json=payload, timeout=self._long_poll + 10)
        resp.raise_for_status()
        data = resp.json()
        if not data.get("ok"):
            raise RuntimeError(f"Telegram {method} failed: {data.get('description')}")
        return data

    async def send_text(self, chat_id: str, text: str, buttons: list[list[Button]] | None = None) -> None:
        await asyncio.to_thread(
            self._call, "sendMessage",
            chat_id=chat_id, text=text, parse_mode="HTML", reply_markup=_markup(buttons),
        )

    async def send_image(
        self,
        chat_id: str,
        image_url: str,
        caption: str,
        buttons: list[list[Button]] | None = None,
    ) -> None:
        markup = _markup(buttons)
        if image_url.startswith("http"):
            await asyncio.to_thread(
                self._call, "sendPhoto",
                chat_id=chat_id, photo=image_url, caption=caption, parse_mode="HTML", reply_markup=markup,
            )
            return

        path = self._assets_root / image_url.lstrip("/")
        if not path.is_file():
            log.warning("Image %s not found, sending caption only", path)
            await self.send_text(chat_id, caption, buttons)
            return

        def upload() -> dict:
            with path.open("rb") as fh:
                return self._call(
                    "sendPhoto",
                    files={"photo": (path.name, fh)},
                    chat_id=chat_id,
                    caption=caption,
                    parse_mode="HTML",
                    reply_markup=json.dumps(markup) if markup else None,
                )

        await asyncio.to_thread(upload)

    async def acknowledge(self, event: InboundEvent, text: str | None = None) -> None:
        if event.kind != "button" or not event.event_id:
            return
        await asyncio.to_thread(self._call, "answerCallbackQuery", callback_query_id=event.event_id, text=text)

    async def poll_events(self) -> list[InboundEvent]:
        data = await asyncio.to_thread(
            self._call, "getUpdates", offset=self._offset, timeout=self._long_poll,
            allowed_updates=["message", "callback_query"],
        )
        events = []
        for update in data.get("result", []):
            self._offset = max(self._offset, update["update_id"] + 1)
            event = self._to_event(update)
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _to_event(update: dict) -> InboundEvent | None:
        if "callback_query" in update:
            query = update["callback_query"]
            message = query.get("message") or {}
            return InboundEvent(
                chat_id=str(message.get("chat", {}).get("id", query["from"]["id"])),
                kind="button",
                token=query.get("data", ""),
                event_id=query["id"],
                user=_user(query.get("from", {})),
            )
        message = update.get("message")
        if not message or not message.get("text"):
            return None
        return InboundEvent(
            chat_id=str(message["chat"]["id"]),
            kind="text",
            text=message["text"],
            event_id=str(message.get("message_id", "")),
            user=_user(message.get("from", {})),
        )


def _user(data: dict) -> UserInfo:
    return UserInfo(
        username=data.get("username"),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
    )
