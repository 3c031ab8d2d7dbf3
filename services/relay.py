# Relay handlers: one coroutine per Telegram event kind, each posting the
# converted message to the bridge's Discord channel.
#
# Every handler owns its failures. Anything that goes wrong while downloading
# or sending is logged against the bridge and dropped; no retries.

import io
from typing import Awaitable, Callable

import services.converter as converter
import services.logger as log
import services.media as media
from drivers import DestinationClient, SourceClient
from services.bridges import Bridge
from services.error import AttachmentError, relay_guard
from services.message import (
    AttachmentDescriptor,
    AudioEvent,
    ChatMessage,
    DocumentEvent,
    EditEvent,
    JoinEvent,
    LeaveEvent,
    PhotoEvent,
    RelayEvent,
    Sender,
    StickerEvent,
    TextEvent,
    VideoEvent,
    VoiceEvent,
)
from services.message_map import TELEGRAM_TO_DISCORD, MessageMap
from services.user_map import DiscordUserMap

l = log.get_logger()

Handler = Callable[[RelayEvent, Bridge], Awaitable[None]]


class Relay:

    def __init__(
        self,
        source: SourceClient,
        destination: DestinationClient,
        message_map: MessageMap,
        user_map: DiscordUserMap | None = None,
        use_first_name: bool = False,
        max_file_size: int = 20 * 1024 * 1024,
    ):
        self.source = source
        self.destination = destination
        self.message_map = message_map
        self.user_map = user_map
        self.use_first_name = use_first_name
        self.max_file_size = max_file_size

    def handlers(self) -> dict[type[RelayEvent], Handler]:
        return {
            TextEvent:     self.text,
            PhotoEvent:    self.photo,
            StickerEvent:  self.sticker,
            DocumentEvent: self.document,
            VoiceEvent:    self.voice,
            AudioEvent:    self.audio,
            VideoEvent:    self.video,
            JoinEvent:     self.join,
            LeaveEvent:    self.leave,
            EditEvent:     self.edit,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _convert(self, message: ChatMessage) -> converter.Content:
        return converter.convert(message, self.user_map, self.use_first_name)

    def _caption(self, message: ChatMessage) -> str:
        return converter.entities_to_markdown(
            message.caption, message.caption_entities, self.user_map
        )

    async def _send_file(self, bridge: Bridge, message: ChatMessage, att: AttachmentDescriptor):
        text = converter.compose(message, att.caption, self.use_first_name, separator="\n")

        await self.destination.wait_until_ready()

        remote = await self.source.get_file(att.file_id)
        file_name = att.file_name
        if att.resolve_extension:
            ext = media.extension_of_path(remote.file_path) or att.fallback_extension
            if ext:
                file_name = f"{file_name}.{ext}"

        result = await media.fetch(remote.url, self.max_file_size)
        if result is None:
            raise AttachmentError(
                f"{file_name} could not be downloaded (empty URL or over {self.max_file_size} bytes)"
            )
        att.payload = io.BytesIO(result[0])

        message_id = await self.destination.send(
            bridge.discord_channel_id, text, file=att.payload, file_name=file_name
        )
        self.message_map.insert(TELEGRAM_TO_DISCORD, message.message_id, message_id)

    async def _notify(self, bridge: Bridge, text: str, action: str):
        with relay_guard(bridge.name, action, text):
            await self.destination.wait_until_ready()
            await self.destination.send(bridge.discord_channel_id, text)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def text(self, event: TextEvent, bridge: Bridge):
        message = event.message
        content = self._convert(message)

        with relay_guard(bridge.name, "Discord did not accept a text message", message.text):
            await self.destination.wait_until_ready()

            # Discord caps messages at 2000 characters; send the pieces in order.
            # Only the last piece is remembered, so an edit only reaches that one.
            last_id = None
            for chunk in converter.chunks(content.composed):
                last_id = await self.destination.send(bridge.discord_channel_id, chunk)

            if last_id is not None:
                self.message_map.insert(TELEGRAM_TO_DISCORD, message.message_id, last_id)

    async def photo(self, event: PhotoEvent, bridge: Bridge):
        if not event.variants:
            l.warning(f"[{bridge.name}] Photo message {event.message.message_id} has no sizes")
            return
        largest = max(event.variants, key=lambda p: (p.width * p.height, p.file_size))
        # Telegram re-encodes every photo as JPEG
        att = AttachmentDescriptor(
            file_id=largest.file_id,
            file_name="photo.jpg",
            caption=self._caption(event.message),
        )
        with relay_guard(bridge.name, "Could not send photo", att):
            await self._send_file(bridge, event.message, att)

    async def sticker(self, event: StickerEvent, bridge: Bridge):
        # The thumbnail is a webp even when Telegram calls it something else
        att = AttachmentDescriptor(
            file_id=event.thumb_file_id or event.file_id,
            file_name="sticker.webp",
            caption=event.emoji if bridge.send_emoji_with_stickers else "",
        )
        with relay_guard(bridge.name, "Could not send sticker", att):
            await self._send_file(bridge, event.message, att)

    async def document(self, event: DocumentEvent, bridge: Bridge):
        file_name = event.file_name or f"file.{media.extension_for(event.mime_type)}"
        att = AttachmentDescriptor(
            file_id=event.file_id,
            file_name=file_name,
            caption=self._caption(event.message),
        )
        with relay_guard(bridge.name, "Could not send document", att):
            await self._send_file(bridge, event.message, att)

    async def voice(self, event: VoiceEvent, bridge: Bridge):
        att = AttachmentDescriptor(
            file_id=event.file_id,
            file_name=f"voice.{media.extension_for(event.mime_type)}",
            caption=self._caption(event.message),
        )
        with relay_guard(bridge.name, "Could not send voice", att):
            await self._send_file(bridge, event.message, att)

    async def audio(self, event: AudioEvent, bridge: Bridge):
        # The mime type of audio files is often generic; trust the server path first
        att = AttachmentDescriptor(
            file_id=event.file_id,
            file_name=event.title or "audio",
            caption=self._caption(event.message),
            resolve_extension=True,
            fallback_extension=media.extension_for(event.mime_type),
        )
        with relay_guard(bridge.name, "Could not send audio", att):
            await self._send_file(bridge, event.message, att)

    async def video(self, event: VideoEvent, bridge: Bridge):
        file_name = event.file_name or f"video.{media.extension_for(event.mime_type)}"
        att = AttachmentDescriptor(
            file_id=event.file_id,
            file_name=file_name,
            caption=self._caption(event.message),
        )
        with relay_guard(bridge.name, "Could not send video", att):
            await self._send_file(bridge, event.message, att)

    async def join(self, event: JoinEvent, bridge: Bridge):
        if not bridge.relay_join_messages:
            return
        for user in event.members:
            await self._notify(
                bridge,
                _membership_text(user, "joined"),
                "Could not notify Discord about a user that joined Telegram",
            )

    async def leave(self, event: LeaveEvent, bridge: Bridge):
        if not bridge.relay_leave_messages or event.member is None:
            return
        await self._notify(
            bridge,
            _membership_text(event.member, "left"),
            "Could not notify Discord about a user that left Telegram",
        )

    async def edit(self, event: EditEvent, bridge: Bridge):
        message = event.message
        discord_id = self.message_map.get_corresponding(TELEGRAM_TO_DISCORD, message.message_id)
        if discord_id is None:
            l.error(
                f"[{bridge.name}] Could not edit Discord message: "
                f"Telegram message {message.message_id} has no known Discord counterpart"
            )
            return

        content = self._convert(message)
        # Not chunked: an edit that grows past Discord's limit is rejected and logged
        with relay_guard(bridge.name, "Could not edit Discord message", message.text or message.caption):
            await self.destination.wait_until_ready()
            await self.destination.edit(bridge.discord_channel_id, int(discord_id), content.composed)


def _membership_text(user: Sender, verb: str) -> str:
    names = converter.make_name_object(user)
    return f"**{names.name} ({names.username})** {verb} the Telegram side of the chat"
