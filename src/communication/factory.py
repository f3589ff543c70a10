import os

from .ports import ChatChannel


def create_chat_channel(channel: str | None = None) -> ChatChannel:
    """
    Factory: create the right adapter based on config.

    The channel can be passed explicitly or read from the
    CHAT_CHANNEL env var. Defaults to "console".
    """
    channel = channel or os.environ.get("CHAT_CHANNEL", "console")

    if channel == "telegram":
        from .telegram_channel import TelegramChatChannel

        return TelegramChatChannel(
            token=os.environ["TELEGRAM_BOT_TOKEN"],
            assets_root=os.environ.get("PUBLIC_DIR", "public"),
        )

    if channel == "console":
        from .console_channel import ConsoleChatChannel

        return ConsoleChatChannel()

    raise ValueError(f"Unknown chat channel: {channel!r}")
