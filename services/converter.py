"""
Turns canonical Telegram messages into Discord-ready text.

Telegram describes formatting as entity spans over the text, measured in
UTF-16 code units. Discord wants inline markdown, so every supported span is
rewritten into its markdown markers; anything else falls through as plain
text.
"""

from dataclasses import dataclass
from typing import Iterator

from services.message import ChatMessage, Sender, TextEntity
from services.user_map import DiscordUserMap

DISCORD_MESSAGE_LIMIT = 2000

NO_USERNAME = "No username"

_REPLY_EXCERPT_LEN = 100

_WRAPPERS = {
    "bold":          ("**", "**"),
    "italic":        ("*", "*"),
    "underline":     ("__", "__"),
    "strikethrough": ("~~", "~~"),
    "spoiler":       ("||", "||"),
    "code":          ("`", "`"),
}


@dataclass
class NameObject:
    name: str      # first name, plus last name when present
    username: str  # "@handle" or NO_USERNAME


@dataclass
class Content:
    """What a Telegram message looks like once it is ready for Discord."""
    name: str
    username: str
    sender: str
    composed: str


def make_name_object(user: Sender) -> NameObject:
    name = user.first_name + (f" {user.last_name}" if user.last_name else "")
    username = f"@{user.username}" if user.username else NO_USERNAME
    return NameObject(name=name, username=username)


def sender_label(message: ChatMessage, use_first_name: bool = False) -> str:
    """The name shown in bold in front of a relayed message."""
    user = message.sender
    if user is None:
        return message.chat_title or "Channel"
    if use_first_name or not user.username:
        return user.first_name
    return user.username


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class _Utf16Text:
    """Slices a string by UTF-16 code-unit offsets, the way Telegram counts."""

    def __init__(self, text: str):
        self._units = text.encode("utf-16-le")

    def __len__(self) -> int:
        return len(self._units) // 2

    def slice(self, start: int, end: int) -> str:
        return self._units[start * 2:end * 2].decode("utf-16-le", errors="replace")


def _wrap(entity: TextEntity, inner: str, raw: str, user_map: DiscordUserMap | None) -> str:
    if entity.type in _WRAPPERS:
        left, right = _WRAPPERS[entity.type]
        return f"{left}{inner}{right}"
    if entity.type == "pre":
        return f"```{entity.language}\n{raw}\n```"
    if entity.type == "text_link" and entity.url:
        return f"[{inner}]({entity.url})"
    if entity.type == "mention" and user_map is not None:
        user_id = user_map.lookup(raw)
        if user_id is not None:
            return f"<@{user_id}>"
    return inner


def _render(
    text: _Utf16Text,
    start: int,
    end: int,
    entities: list[TextEntity],
    user_map: DiscordUserMap | None,
) -> str:
    out: list[str] = []
    pos = start
    for i, e in enumerate(entities):
        e_end = e.offset + e.length
        # Already covered by an earlier span, or straddling its boundary
        if e.offset < pos or e_end > end:
            continue
        out.append(text.slice(pos, e.offset))
        nested = [
            n for n in entities[i + 1:]
            if n.offset >= e.offset and n.offset + n.length <= e_end
        ]
        # Code spans are literal; nothing inside them is formatted
        if e.type in ("code", "pre"):
            nested = []
        inner = _render(text, e.offset, e_end, nested, user_map)
        out.append(_wrap(e, inner, text.slice(e.offset, e_end), user_map))
        pos = e_end
    out.append(text.slice(pos, end))
    return "".join(out)


def entities_to_markdown(
    text: str,
    entities: list[TextEntity],
    user_map: DiscordUserMap | None = None,
) -> str:
    """Rewrite Telegram formatting entities as Discord markdown."""
    if not entities:
        return text
    utf16 = _Utf16Text(text)
    ordered = sorted(
        (e for e in entities if e.length > 0),
        key=lambda e: (e.offset, -e.length),
    )
    return _render(utf16, 0, len(utf16), ordered, user_map)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def _reply_quote(reply: ChatMessage, use_first_name: bool) -> str:
    excerpt = (reply.text or reply.caption).replace("\n", " ")
    if len(excerpt) > _REPLY_EXCERPT_LEN:
        excerpt = excerpt[:_REPLY_EXCERPT_LEN] + "…"
    return f"> **{sender_label(reply, use_first_name)}**: {excerpt}\n"


def compose(
    message: ChatMessage,
    body: str,
    use_first_name: bool = False,
    separator: str = " ",
) -> str:
    """Prefix *body* with the bold sender label.

    A replied-to message is quoted on its own line above the label.
    """
    label = f"**{sender_label(message, use_first_name)}**"
    if message.forward_origin:
        label += f" (forwarded from **{message.forward_origin}**)"
    quote = _reply_quote(message.reply_to, use_first_name) if message.reply_to is not None else ""
    return f"{quote}{label}:{separator}{body}"


def convert(
    message: ChatMessage,
    user_map: DiscordUserMap | None = None,
    use_first_name: bool = False,
) -> Content:
    """Build the Discord representation of *message*.

    Text messages keep the body on the sender's line. Messages that only
    carry a caption put it on the next line, matching how uploads are
    labelled, so an edited caption reads the same as the original post.
    """
    if message.sender is not None:
        names = make_name_object(message.sender)
    else:
        names = NameObject(name=message.chat_title, username=NO_USERNAME)

    if message.text:
        body = entities_to_markdown(message.text, message.entities, user_map)
        separator = " "
    else:
        body = entities_to_markdown(message.caption, message.caption_entities, user_map)
        separator = "\n"

    return Content(
        name=names.name,
        username=names.username,
        sender=sender_label(message, use_first_name),
        composed=compose(message, body, use_first_name, separator),
    )


def chunks(text: str, size: int = DISCORD_MESSAGE_LIMIT) -> Iterator[str]:
    """Split *text* into consecutive pieces of at most *size* characters."""
    for i in range(0, len(text), size):
        yield text[i:i + size]
