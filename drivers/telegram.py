# Telegram driver via python-telegram-bot (v21+).
# Long-polls the bot API and turns every update into a relay event.
#
# Config keys (under telegram):
#   token                               – bot token from @BotFather (required)
#   skip_old_messages                   – drop updates queued while the bridge
#                                         was down (default true)
#   use_first_name_instead_of_username  – label senders by first name
#   max_file_size                       – max bytes downloaded per attachment

import asyncio
from typing import Awaitable, Callable

from telegram import Bot, Message, MessageEntity, Update, User
from telegram.constants import ParseMode
from telegram.ext import Application, ContextTypes, MessageHandler, filters

import services.logger as log
from drivers import BaseDriver
from services.config_schema import TelegramConfig
from services.message import (
    AudioEvent,
    ChatMessage,
    DocumentEvent,
    EditEvent,
    JoinEvent,
    LeaveEvent,
    PhotoEvent,
    PhotoVariant,
    RelayEvent,
    RemoteFile,
    Sender,
    StickerEvent,
    TextEntity,
    TextEvent,
    VideoEvent,
    VoiceEvent,
)

l = log.get_logger()


# ---------------------------------------------------------------------------
# Update normalization
# ---------------------------------------------------------------------------

def _sender(user: User) -> Sender:
    return Sender(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name or "",
        username=user.username or "",
    )


def _entities(entities: tuple[MessageEntity, ...] | None) -> list[TextEntity]:
    return [
        TextEntity(
            type=str(e.type),
            offset=e.offset,
            length=e.length,
            url=e.url or "",
            language=e.language or "",
        )
        for e in (entities or ())
    ]


def _origin_name(origin) -> str:
    """Display name of whoever originally wrote a forwarded message."""
    if origin is None:
        return ""
    user = getattr(origin, "sender_user", None)
    if user is not None:
        return user.full_name
    hidden = getattr(origin, "sender_user_name", None)
    if hidden:
        return hidden
    chat = getattr(origin, "sender_chat", None) or getattr(origin, "chat", None)
    if chat is not None:
        return chat.title or chat.full_name or ""
    return ""


def chat_message(msg: Message) -> ChatMessage:
    """Canonical payload for a message, channel post or edit."""
    return ChatMessage(
        message_id=msg.message_id,
        chat_id=msg.chat.id,
        chat_title=msg.chat.title or msg.chat.full_name or "",
        sender=_sender(msg.from_user) if msg.from_user else None,
        text=msg.text or "",
        entities=_entities(msg.entities),
        caption=msg.caption or "",
        caption_entities=_entities(msg.caption_entities),
        forward_origin=_origin_name(msg.forward_origin),
        reply_to=chat_message(msg.reply_to_message) if msg.reply_to_message else None,
    )


def event_from_update(update: Update) -> RelayEvent | None:
    """Map a Telegram update onto a relay event; ``None`` when there is nothing to relay."""
    edited = update.edited_message or update.edited_channel_post
    if edited is not None:
        return EditEvent(message=chat_message(edited))

    msg = update.message or update.channel_post
    if msg is None:
        return None
    cm = chat_message(msg)

    if msg.text is not None:
        return TextEvent(message=cm)
    if msg.photo:
        return PhotoEvent(
            message=cm,
            variants=[
                PhotoVariant(p.file_id, p.width, p.height, p.file_size or 0)
                for p in msg.photo
            ],
        )
    if msg.sticker:
        thumb = msg.sticker.thumbnail
        return StickerEvent(
            message=cm,
            file_id=msg.sticker.file_id,
            thumb_file_id=thumb.file_id if thumb else "",
            emoji=msg.sticker.emoji or "",
        )
    if msg.voice:
        return VoiceEvent(message=cm, file_id=msg.voice.file_id, mime_type=msg.voice.mime_type or "")
    if msg.audio:
        return AudioEvent(
            message=cm,
            file_id=msg.audio.file_id,
            title=msg.audio.title or "",
            mime_type=msg.audio.mime_type or "",
        )
    if msg.video:
        return VideoEvent(
            message=cm,
            file_id=msg.video.file_id,
            file_name=msg.video.file_name or "",
            mime_type=msg.video.mime_type or "",
        )
    # Animations arrive with a document attached as well; relay them as files
    if msg.document:
        return DocumentEvent(
            message=cm,
            file_id=msg.document.file_id,
            file_name=msg.document.file_name or "",
            mime_type=msg.document.mime_type or "",
        )
    if msg.new_chat_members:
        return JoinEvent(message=cm, members=[_sender(u) for u in msg.new_chat_members])
    if msg.left_chat_member:
        return LeaveEvent(message=cm, member=_sender(msg.left_chat_member))
    return None


async def skip_backlog(bot: Bot) -> int:
    """Acknowledge every update queued before startup and return the next offset."""
    updates = await bot.get_updates(offset=-1, limit=1, timeout=0)
    if not updates:
        return 0
    offset = updates[-1].update_id + 1
    # Asking for updates past the last one confirms everything before it
    await bot.get_updates(offset=offset, limit=1, timeout=0)
    return offset


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

class TelegramDriver(BaseDriver[TelegramConfig]):

    def __init__(self, config: TelegramConfig):
        super().__init__(config)
        self._on_event: Callable[[RelayEvent], Awaitable[None]] | None = None
        self._username: str | None = None
        # Updates are handled concurrently; relay order across messages is best effort
        self._app: Application = (
            Application.builder()
            .token(config.token)
            .concurrent_updates(True)
            .build()
        )
        self._app.add_handler(MessageHandler(filters.ALL, self._on_update))

    def subscribe(self, callback: Callable[[RelayEvent], Awaitable[None]]) -> None:
        self._on_event = callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        # async-with runs initialize() (which calls getMe) and shutdown()
        async with self._app:
            me = self._app.bot
            self._username = me.username
            l.info(f"Telegram: {me.username} ({me.id})")

            if self.config.skip_old_messages:
                offset = await skip_backlog(self._app.bot)
                l.info(f"Telegram: skipped old updates, starting at offset {offset}")

            await self._app.start()
            await self._app.updater.start_polling(allowed_updates=Update.ALL_TYPES)
            l.info("Telegram polling started")
            try:
                await asyncio.Event().wait()  # keep running until cancelled
            finally:
                await self._app.updater.stop()
                await self._app.stop()

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def _on_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        event = event_from_update(update)
        if event is None:
            l.debug(f"Telegram: update {update.update_id} has nothing to relay")
            return
        if self._on_event is None:
            l.warning("Telegram: no event subscriber, dropping update")
            return
        await self._on_event(event)

    # ------------------------------------------------------------------
    # SourceClient
    # ------------------------------------------------------------------

    @property
    def bot_username(self) -> str | None:
        return self._username

    async def get_file(self, file_id: str) -> RemoteFile:
        f = await self._app.bot.get_file(file_id)
        # file_path holds the full download URL
        path = f.file_path or ""
        return RemoteFile(file_path=path, url=path)

    async def send_message(self, chat_id: int, text: str, markdown: bool = False) -> None:
        await self._app.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN if markdown else None,
        )
