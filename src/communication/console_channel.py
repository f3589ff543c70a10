from .ports import Button, ChatChannel, InboundEvent, OutboundMessage, UserInfo


class ConsoleChatChannel(ChatChannel):
    """
    Adapter: print to console, buffer inbound events in memory. For dev/testing.

    Test helpers:
        inject_text()    — simulate a typed message
        inject_button()  — simulate an inline button press
        sent             — list of OutboundMessage, in send order
        acknowledged     — list of (event_id, text) for acknowledged presses
    """

    def __init__(self, echo: bool = True):
        self._echo = echo
        self._pending: list[InboundEvent] = []
        self._next_id = 1
        self.sent: list[OutboundMessage] = []
        self.acknowledged: list[tuple[str | None, str | None]] = []

    async def send_text(self, chat_id: str, text: str, buttons: list[list[Button]] | None = None) -> None:
        message = OutboundMessage(chat_id=chat_id, text=text, buttons=buttons or [])
        self.sent.append(message)
        self._print(message)

    async def send_image(
        self,
        chat_id: str,
        image_url: str,
        caption: str,
        buttons: list[list[Button]] | None = None,
    ) -> None:
        message = OutboundMessage(chat_id=chat_id, text=caption, image_url=image_url, buttons=buttons or [])
        self.sent.append(message)
        self._print(message)

    async def acknowledge(self, event: InboundEvent, text: str | None = None) -> None:
        self.acknowledged.append((event.event_id, text))
        if self._echo and text:
            print(f"  [ack] {text}")

    async def poll_events(self) -> list[InboundEvent]:
        events = self._pending.copy()
        self._pending.clear()
        return events

    def inject_text(self, chat_id: str, text: str, user: UserInfo | None = None) -> InboundEvent:
        event = InboundEvent(chat_id=chat_id, kind="text", text=text, event_id=self._new_id(), user=user)
        self._pending.append(event)
        return event

    def inject_button(self, chat_id: str, token: str, user: UserInfo | None = None) -> InboundEvent:
        event = InboundEvent(chat_id=chat_id, kind="button", token=token, event_id=self._new_id(), user=user)
        self._pending.append(event)
        return event

    def texts(self, chat_id: str | None = None) -> list[str]:
        """Sent texts/captions, optionally for one chat."""
        return [m.text for m in self.sent if chat_id is None or m.chat_id == chat_id]

    def _new_id(self) -> str:
        event_id = f"console-{self._next_id}"
        self._next_id += 1
        return event_id

    def _print(self, message: OutboundMessage) -> None:
        if not self._echo:
            return
        print(f"\n{'=' * 60}")
        print(f"  TO CHAT: {message.chat_id}")
        if message.image_url:
            print(f"  IMAGE: {message.image_url}")
        print(f"{'=' * 60}")
        print(message.text)
        for row in message.buttons:
            print("  " + "  ".join(f"[{b.label} → {b.token}]" for b in row))
        print(f"{'=' * 60}\n")
