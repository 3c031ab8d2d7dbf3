from abc import ABC, abstractmethod
from typing import BinaryIO, Generic, Protocol, TypeVar

from pydantic import BaseModel

from services.message import RemoteFile

T = TypeVar("T", bound=BaseModel)


class BaseDriver(ABC, Generic[T]):
    """Abstract base class for the platform drivers."""

    def __init__(self, config: T):
        self.config: T = config

    @abstractmethod
    async def start(self):
        """Start the driver (connect, authenticate, begin listening).
        Long-running drivers should loop indefinitely here."""


class SourceClient(Protocol):
    """What the relay needs from the Telegram side."""

    @property
    def bot_username(self) -> str | None:
        """Username of the bot account, known once the client has logged in."""

    async def get_file(self, file_id: str) -> RemoteFile:
        """Resolve a file id to its server-side path and download URL."""

    async def send_message(self, chat_id: int, text: str, markdown: bool = False) -> None:
        """Post *text* into a Telegram chat."""


class DestinationClient(Protocol):
    """What the relay needs from the Discord side."""

    async def wait_until_ready(self) -> None:
        """Return once the client has logged in. Never blocks after that."""

    async def send(
        self,
        channel_id: int,
        text: str,
        file: BinaryIO | None = None,
        file_name: str = "",
    ) -> int:
        """Post into a channel and return the new message's id."""

    async def edit(self, channel_id: int, message_id: int, text: str) -> None:
        """Fetch a message from a channel and replace its content."""
