from dataclasses import dataclass
from enum import Enum

import services.logger as log
from services.error import raise_and_log

l = log.get_logger()


class Direction(str, Enum):
    BOTH = "both"
    TELEGRAM_TO_DISCORD = "telegram_to_discord"
    DISCORD_TO_TELEGRAM = "discord_to_telegram"


@dataclass(frozen=True)
class Bridge:
    """One Telegram chat paired with one Discord channel."""
    name: str
    telegram_chat_id: int
    discord_channel_id: int
    direction: Direction = Direction.BOTH
    relay_join_messages: bool = True
    relay_leave_messages: bool = True
    send_emoji_with_stickers: bool = True

    @property
    def relays_telegram_to_discord(self) -> bool:
        return self.direction != Direction.DISCORD_TO_TELEGRAM


class BridgeMap:
    """
    Read-only registry of the configured bridges.

    Built once at startup. A chat that is not in the map is "unmanaged";
    lookups then return ``None`` and it is up to the caller to react.
    """

    def __init__(self, bridges: list[Bridge]):
        self._bridges = list(bridges)
        self._by_telegram: dict[int, Bridge] = {}

        for b in self._bridges:
            if b.telegram_chat_id in self._by_telegram:
                raise_and_log(
                    f"Bridge '{b.name}' reuses Telegram chat {b.telegram_chat_id} "
                    f"already bridged by '{self._by_telegram[b.telegram_chat_id].name}'",
                    ValueError,
                )
            self._by_telegram[b.telegram_chat_id] = b

        l.info(f"Loaded {len(self._bridges)} bridge(s)")

    @classmethod
    def from_config(cls, configs) -> "BridgeMap":
        return cls([
            Bridge(
                name=c.name,
                telegram_chat_id=c.telegram.chat_id,
                discord_channel_id=c.discord.channel_id,
                direction=Direction(c.direction),
                relay_join_messages=c.telegram.relay_join_messages,
                relay_leave_messages=c.telegram.relay_leave_messages,
                send_emoji_with_stickers=c.telegram.send_emoji_with_stickers,
            )
            for c in configs
        ])

    def from_telegram_chat_id(self, chat_id: int) -> Bridge | None:
        return self._by_telegram.get(chat_id)

    def __iter__(self):
        return iter(self._bridges)

    def __len__(self) -> int:
        return len(self._bridges)
