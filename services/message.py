import io
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class Sender:
    """A Telegram account as seen by the relay."""
    id: int
    first_name: str
    last_name: str = ""
    username: str = ""  # without the leading "@"; empty when the account has none


@dataclass
class TextEntity:
    """Formatting span. Offsets and lengths count UTF-16 code units."""
    type: str
    offset: int
    length: int
    url: str = ""
    language: str = ""


@dataclass
class ChatMessage:
    """Canonical message payload, the same for messages, channel posts and edits."""
    message_id: int
    chat_id: int
    chat_title: str = ""
    sender: Sender | None = None  # None for anonymous channel posts
    text: str = ""
    entities: list[TextEntity] = field(default_factory=list)
    caption: str = ""
    caption_entities: list[TextEntity] = field(default_factory=list)
    forward_origin: str = ""  # display name of the original author, if forwarded
    reply_to: "ChatMessage | None" = None


@dataclass
class PhotoVariant:
    file_id: str
    width: int
    height: int
    file_size: int = 0


# ---------------------------------------------------------------------------
# Event variants. ``kind`` is the tag; the router dispatches on the class.
# ---------------------------------------------------------------------------

@dataclass
class RelayEvent:
    kind: ClassVar[str] = ""
    message: ChatMessage


@dataclass
class TextEvent(RelayEvent):
    kind: ClassVar[str] = "text"


@dataclass
class PhotoEvent(RelayEvent):
    kind: ClassVar[str] = "photo"
    variants: list[PhotoVariant] = field(default_factory=list)


@dataclass
class StickerEvent(RelayEvent):
    kind: ClassVar[str] = "sticker"
    file_id: str = ""
    thumb_file_id: str = ""
    emoji: str = ""


@dataclass
class DocumentEvent(RelayEvent):
    kind: ClassVar[str] = "document"
    file_id: str = ""
    file_name: str = ""
    mime_type: str = ""


@dataclass
class VoiceEvent(RelayEvent):
    kind: ClassVar[str] = "voice"
    file_id: str = ""
    mime_type: str = ""


@dataclass
class AudioEvent(RelayEvent):
    kind: ClassVar[str] = "audio"
    file_id: str = ""
    title: str = ""
    mime_type: str = ""


@dataclass
class VideoEvent(RelayEvent):
    kind: ClassVar[str] = "video"
    file_id: str = ""
    file_name: str = ""
    mime_type: str = ""


@dataclass
class JoinEvent(RelayEvent):
    kind: ClassVar[str] = "join"
    members: list[Sender] = field(default_factory=list)


@dataclass
class LeaveEvent(RelayEvent):
    kind: ClassVar[str] = "leave"
    member: Sender | None = None


@dataclass
class EditEvent(RelayEvent):
    kind: ClassVar[str] = "edit"


EVENT_TYPES: tuple[type[RelayEvent], ...] = (
    TextEvent,
    PhotoEvent,
    StickerEvent,
    DocumentEvent,
    VoiceEvent,
    AudioEvent,
    VideoEvent,
    JoinEvent,
    LeaveEvent,
    EditEvent,
)


@dataclass
class AttachmentDescriptor:
    """A file on its way from Telegram to Discord. Consumed by one send call."""
    file_id: str
    file_name: str
    caption: str = ""
    resolve_extension: bool = False  # append the extension of the server-side path
    fallback_extension: str = ""     # used when the server-side path has none
    payload: io.BytesIO | None = None


@dataclass
class RemoteFile:
    """Result of resolving a Telegram file id."""
    file_path: str
    url: str
