"""Shared fakes and fixtures for the relay tests."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

import services.logger as log
import services.media as media
from services.bridges import Bridge, BridgeMap, Direction
from services.message import ChatMessage, RemoteFile, Sender
from services.message_map import MemoryMessageMap
from services.relay import Relay

CHAT_ID = -100123
CHANNEL_ID = 555


@dataclass
class SentMessage:
    channel_id: int
    text: str
    file_data: bytes | None
    file_name: str
    message_id: int


class FakeDestination:
    """Stands in for the Discord driver."""

    def __init__(self):
        self.sent: list[SentMessage] = []
        self.edits: list[tuple[int, int, str]] = []
        self.ready_waits = 0
        self.fail_sends = 0
        self.fail_edits = 0
        self._next_id = 9000

    async def wait_until_ready(self) -> None:
        self.ready_waits += 1

    async def send(self, channel_id, text, file=None, file_name=""):
        if self.fail_sends:
            self.fail_sends -= 1
            raise RuntimeError("Discord rejected the message")
        self._next_id += 1
        self.sent.append(SentMessage(
            channel_id=channel_id,
            text=text,
            file_data=file.read() if file is not None else None,
            file_name=file_name,
            message_id=self._next_id,
        ))
        return self._next_id

    async def edit(self, channel_id, message_id, text):
        if self.fail_edits:
            self.fail_edits -= 1
            raise RuntimeError("Must be 2000 or fewer in length")
        self.edits.append((channel_id, message_id, text))

    @property
    def calls(self) -> int:
        return len(self.sent) + len(self.edits)


class FakeSource:
    """Stands in for the Telegram driver."""

    def __init__(self, bot_username: str | None = "crosstalk_bot"):
        self._username = bot_username
        self.messages: list[tuple[int, str, bool]] = []
        self.requested_files: list[str] = []
        self.file_paths: dict[str, str] = {}
        self.fail_sends = False

    @property
    def bot_username(self):
        return self._username

    async def get_file(self, file_id):
        self.requested_files.append(file_id)
        path = self.file_paths.get(file_id, f"https://api.telegram.org/file/botTOKEN/documents/{file_id}")
        return RemoteFile(file_path=path, url=path)

    async def send_message(self, chat_id, text, markdown=False):
        if self.fail_sends:
            raise RuntimeError("Forbidden: bot was kicked")
        self.messages.append((chat_id, text, markdown))


def make_user(first_name="Ada", last_name="", username="ada", user_id=42) -> Sender:
    return Sender(id=user_id, first_name=first_name, last_name=last_name, username=username)


def make_message(text="hello", message_id=1, chat_id=CHAT_ID, sender=None, **kwargs) -> ChatMessage:
    return ChatMessage(
        message_id=message_id,
        chat_id=chat_id,
        chat_title="Test group",
        sender=sender if sender is not None else make_user(),
        text=text,
        **kwargs,
    )


def make_bridge(**overrides) -> Bridge:
    values = dict(
        name="test-bridge",
        telegram_chat_id=CHAT_ID,
        discord_channel_id=CHANNEL_ID,
        direction=Direction.BOTH,
    )
    values.update(overrides)
    return Bridge(**values)


@pytest.fixture
def bridge() -> Bridge:
    return make_bridge()


@pytest.fixture
def bridge_map(bridge) -> BridgeMap:
    return BridgeMap([bridge])


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def destination() -> FakeDestination:
    return FakeDestination()


@pytest.fixture
def message_map() -> MemoryMessageMap:
    return MemoryMessageMap()


@pytest.fixture
def relay(source, destination, message_map) -> Relay:
    return Relay(source, destination, message_map)


@pytest.fixture
def downloads(monkeypatch):
    """Replace attachment downloads; returns the list of fetched URLs."""
    fetched: list[str] = []

    async def fake_fetch(url, max_bytes=0):
        fetched.append(url)
        return b"file-bytes", "application/octet-stream"

    monkeypatch.setattr(media, "fetch", fake_fetch)
    return fetched


@pytest.fixture
def app_log(caplog):
    """The app logger doesn't propagate; hook caplog onto it directly."""
    log.logger.addHandler(caplog.handler)
    yield caplog
    log.logger.removeHandler(caplog.handler)
