from __future__ import annotations

import logging
import math

import pytest

import services.media as media
from services.message import (
    AudioEvent,
    DocumentEvent,
    EditEvent,
    JoinEvent,
    LeaveEvent,
    PhotoEvent,
    PhotoVariant,
    StickerEvent,
    TextEvent,
    VideoEvent,
    VoiceEvent,
)
from services.message_map import TELEGRAM_TO_DISCORD

from tests.conftest import CHANNEL_ID, make_bridge, make_message, make_user


def _errors(app_log) -> list[str]:
    return [r.getMessage() for r in app_log.records if r.levelno >= logging.ERROR]


class TestText:

    @pytest.mark.asyncio
    async def test_sends_composed_text_and_records_mapping(self, relay, destination, message_map, bridge) -> None:
        await relay.text(TextEvent(message=make_message("hi there", message_id=7)), bridge)

        assert len(destination.sent) == 1
        sent = destination.sent[0]
        assert sent.channel_id == CHANNEL_ID
        assert sent.text == "**ada**: hi there"
        assert message_map.get_corresponding(TELEGRAM_TO_DISCORD, 7) == str(sent.message_id)
        assert destination.ready_waits == 1

    @pytest.mark.asyncio
    async def test_long_text_is_chunked_in_order(self, relay, destination, message_map, bridge) -> None:
        body = "".join(str(i % 10) for i in range(4500))
        await relay.text(TextEvent(message=make_message(body, message_id=8)), bridge)

        composed = "**ada**: " + body
        assert len(destination.sent) == math.ceil(len(composed) / 2000)
        assert all(len(s.text) <= 2000 for s in destination.sent)
        assert "".join(s.text for s in destination.sent) == composed
        # Only the last chunk can be found again for edits
        assert message_map.get_corresponding(TELEGRAM_TO_DISCORD, 8) == str(destination.sent[-1].message_id)

    @pytest.mark.asyncio
    async def test_send_failure_is_logged_not_raised(self, relay, destination, message_map, bridge, app_log) -> None:
        destination.fail_sends = 1
        await relay.text(TextEvent(message=make_message("boom", message_id=9)), bridge)

        assert destination.sent == []
        assert message_map.get_corresponding(TELEGRAM_TO_DISCORD, 9) is None
        assert any("[test-bridge]" in m for m in _errors(app_log))

    @pytest.mark.asyncio
    async def test_failure_does_not_block_next_message(self, relay, destination, bridge) -> None:
        destination.fail_sends = 1
        await relay.text(TextEvent(message=make_message("first", message_id=1)), bridge)
        await relay.text(TextEvent(message=make_message("second", message_id=2)), bridge)

        assert [s.text for s in destination.sent] == ["**ada**: second"]


class TestFiles:

    @pytest.mark.asyncio
    async def test_photo_uses_largest_variant(self, relay, source, destination, bridge, downloads) -> None:
        event = PhotoEvent(
            message=make_message(text="", caption="sunset", message_id=3),
            variants=[
                PhotoVariant("small", 90, 60, 1_000),
                PhotoVariant("large", 1280, 853, 90_000),
                PhotoVariant("medium", 320, 213, 10_000),
            ],
        )
        await relay.photo(event, bridge)

        assert source.requested_files == ["large"]
        sent = destination.sent[0]
        assert sent.file_name == "photo.jpg"
        assert sent.text == "**ada**:\nsunset"
        assert sent.file_data == b"file-bytes"

    @pytest.mark.asyncio
    async def test_sticker_sends_thumbnail_with_emoji(self, relay, source, destination, bridge, downloads) -> None:
        event = StickerEvent(message=make_message(text=""), file_id="full", thumb_file_id="thumb", emoji="🐱")
        await relay.sticker(event, bridge)

        assert source.requested_files == ["thumb"]
        assert destination.sent[0].file_name == "sticker.webp"
        assert destination.sent[0].text.endswith("\n🐱")

    @pytest.mark.asyncio
    async def test_sticker_emoji_can_be_disabled(self, relay, destination, downloads) -> None:
        bridge = make_bridge(send_emoji_with_stickers=False)
        event = StickerEvent(message=make_message(text=""), file_id="full", thumb_file_id="thumb", emoji="🐱")
        await relay.sticker(event, bridge)

        assert "🐱" not in destination.sent[0].text

    @pytest.mark.asyncio
    async def test_sticker_without_thumbnail_falls_back_to_file(self, relay, source, bridge, downloads) -> None:
        await relay.sticker(StickerEvent(message=make_message(text=""), file_id="full"), bridge)
        assert source.requested_files == ["full"]

    @pytest.mark.asyncio
    async def test_document_without_name_gets_extension_from_mime(self, relay, destination, bridge, downloads) -> None:
        event = DocumentEvent(message=make_message(text=""), file_id="doc", mime_type="audio/ogg")
        await relay.document(event, bridge)
        assert destination.sent[0].file_name == "file.ogg"

    @pytest.mark.asyncio
    async def test_document_keeps_source_name(self, relay, destination, bridge, downloads) -> None:
        event = DocumentEvent(
            message=make_message(text=""), file_id="doc", file_name="report.pdf", mime_type="application/pdf"
        )
        await relay.document(event, bridge)
        assert destination.sent[0].file_name == "report.pdf"

    @pytest.mark.asyncio
    async def test_voice_name_from_mime(self, relay, destination, bridge, downloads) -> None:
        await relay.voice(VoiceEvent(message=make_message(text=""), file_id="v", mime_type="audio/ogg"), bridge)
        assert destination.sent[0].file_name == "voice.ogg"

    @pytest.mark.asyncio
    async def test_audio_extension_from_server_path(self, relay, source, destination, bridge, downloads) -> None:
        source.file_paths["a"] = "https://api.telegram.org/file/botTOKEN/music/file_3.m4a"
        event = AudioEvent(message=make_message(text=""), file_id="a", title="Song", mime_type="audio/mpeg")
        await relay.audio(event, bridge)
        assert destination.sent[0].file_name == "Song.m4a"

    @pytest.mark.asyncio
    async def test_audio_extension_falls_back_to_mime(self, relay, source, destination, bridge, downloads) -> None:
        source.file_paths["a"] = "https://api.telegram.org/file/botTOKEN/music/file_3"
        event = AudioEvent(message=make_message(text=""), file_id="a", mime_type="audio/mpeg")
        await relay.audio(event, bridge)
        assert destination.sent[0].file_name == "audio.mp3"

    @pytest.mark.asyncio
    async def test_video_prefers_declared_name(self, relay, destination, bridge, downloads) -> None:
        named = VideoEvent(message=make_message(text=""), file_id="v1", file_name="clip.mov", mime_type="video/mp4")
        unnamed = VideoEvent(message=make_message(text="", caption="look"), file_id="v2", mime_type="video/mp4")
        await relay.video(named, bridge)
        await relay.video(unnamed, bridge)

        assert [s.file_name for s in destination.sent] == ["clip.mov", "video.mp4"]
        assert destination.sent[1].text.endswith("\nlook")

    @pytest.mark.asyncio
    async def test_oversized_download_is_dropped(self, relay, destination, bridge, monkeypatch, app_log) -> None:
        async def too_big(url, max_bytes=0):
            return None

        monkeypatch.setattr(media, "fetch", too_big)
        await relay.document(DocumentEvent(message=make_message(text=""), file_id="d", file_name="x.zip"), bridge)

        assert destination.sent == []
        assert any("Could not send document" in m for m in _errors(app_log))

    @pytest.mark.asyncio
    async def test_download_error_is_dropped(self, relay, destination, bridge, monkeypatch, app_log) -> None:
        async def broken(url, max_bytes=0):
            raise ConnectionError("connection reset")

        monkeypatch.setattr(media, "fetch", broken)
        await relay.voice(VoiceEvent(message=make_message(text=""), file_id="v", mime_type="audio/ogg"), bridge)

        assert destination.sent == []
        assert any("[test-bridge] Could not send voice" in m for m in _errors(app_log))


class TestMembership:

    @pytest.mark.asyncio
    async def test_join_disabled_sends_nothing(self, relay, destination) -> None:
        bridge = make_bridge(relay_join_messages=False)
        await relay.join(JoinEvent(message=make_message(text=""), members=[make_user()]), bridge)
        assert destination.calls == 0

    @pytest.mark.asyncio
    async def test_join_notice_per_user(self, relay, destination, bridge) -> None:
        members = [
            make_user("Ada", "Lovelace", "ada", 1),
            make_user("Grace", "", "", 2),
        ]
        await relay.join(JoinEvent(message=make_message(text=""), members=members), bridge)

        assert [s.text for s in destination.sent] == [
            "**Ada Lovelace (@ada)** joined the Telegram side of the chat",
            "**Grace (No username)** joined the Telegram side of the chat",
        ]

    @pytest.mark.asyncio
    async def test_leave_notice(self, relay, destination, message_map, bridge) -> None:
        await relay.leave(LeaveEvent(message=make_message(text="", message_id=5), member=make_user()), bridge)

        assert destination.sent[0].text == "**Ada (@ada)** left the Telegram side of the chat"
        assert message_map.get_corresponding(TELEGRAM_TO_DISCORD, 5) is None

    @pytest.mark.asyncio
    async def test_leave_disabled(self, relay, destination) -> None:
        bridge = make_bridge(relay_leave_messages=False)
        await relay.leave(LeaveEvent(message=make_message(text=""), member=make_user()), bridge)
        assert destination.calls == 0


class TestEdit:

    @pytest.mark.asyncio
    async def test_edit_targets_recorded_message(self, relay, destination, message_map, bridge) -> None:
        message_map.insert(TELEGRAM_TO_DISCORD, 11, 4242)
        await relay.edit(EditEvent(message=make_message("fixed typo", message_id=11)), bridge)

        assert destination.edits == [(CHANNEL_ID, 4242, "**ada**: fixed typo")]
        assert destination.sent == []

    @pytest.mark.asyncio
    async def test_edit_without_mapping_is_dropped(self, relay, destination, bridge, app_log) -> None:
        await relay.edit(EditEvent(message=make_message("never relayed", message_id=12)), bridge)

        assert destination.calls == 0
        errors = _errors(app_log)
        assert len(errors) == 1
        assert "Telegram message 12" in errors[0]

    @pytest.mark.asyncio
    async def test_edit_after_relay_round_trip(self, relay, destination, bridge) -> None:
        await relay.text(TextEvent(message=make_message("first", message_id=13)), bridge)
        await relay.edit(EditEvent(message=make_message("second", message_id=13)), bridge)

        assert destination.edits == [(CHANNEL_ID, destination.sent[0].message_id, "**ada**: second")]

    @pytest.mark.asyncio
    async def test_rejected_edit_is_swallowed(self, relay, destination, message_map, bridge, app_log) -> None:
        message_map.insert(TELEGRAM_TO_DISCORD, 14, 1)
        destination.fail_edits = 1
        await relay.edit(EditEvent(message=make_message("x" * 2500, message_id=14)), bridge)

        assert destination.edits == []
        assert any("Could not edit Discord message" in m for m in _errors(app_log))
