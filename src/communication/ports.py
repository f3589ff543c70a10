from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal


@dataclass
class Button:
    """An inline button: visible label plus the opaque token sent back on press."""

    label: str
    token: str


@dataclass
class UserInfo:
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass
class InboundEvent:
    """What the user did: typed text, pressed an inline button, or tapped a reply-keyboard label."""

    chat_id: str
    kind: Literal["text", "button", "label"]
    text: str = ""          # typed text or the tapped label
    token: str | None = None  # button token
    event_id: str | None = None  # needed to acknowledge a button press
    user: UserInfo | None = None


@dataclass
class OutboundMessage:
    """What we sent (recorded by simulators, built by the handler)."""

    chat_id: str
    text: str
    image_url: str | None = None
    buttons: list[list[Button]] = field(default_factory=list)


class ChatChannel(ABC):
    """
    Port: how we talk to travellers.

    The conversation logic depends ONLY on this interface.
    It doesn't know or care whether messages go via Telegram,
    a console, or anything else with text, photos and buttons.
    """

    @abstractmethod
    async def send_text(self, chat_id: str, text: str, buttons: list[list[Button]] | None = None) -> None:
        ...

    @abstractmethod
    async def send_image(
        self,
        chat_id: str,
        image_url: str,
        caption: str,
        buttons: list[list[Button]] | None = None,
    ) -> None:
        """Send a photo with a caption; channels without photos may send the caption alone."""
        ...

    @abstractmethod
    async def acknowledge(self, event: InboundEvent, text: str | None = None) -> None:
        """Acknowledge a button press, optionally with a short toast."""
        ...

    @abstractmethod
    async def poll_events(self) -> list[InboundEvent]:
        """Return all inbound events since the last poll."""
        ...
