# Discord driver via discord.py.
#
# Sends relayed messages as the bot, fetches and edits them for Telegram
# edits, and keeps the username → id map used to turn Telegram @mentions
# into Discord pings (needs the privileged "Server Members" intent).
#
# Config keys (under discord):
#   token – bot token (required)

import asyncio
from typing import BinaryIO

import discord

import services.logger as log
from drivers import BaseDriver
from services.config_schema import DiscordConfig
from services.user_map import DiscordUserMap

l = log.get_logger()


class DiscordDriver(BaseDriver[DiscordConfig]):

    def __init__(self, config: DiscordConfig, user_map: DiscordUserMap | None = None):
        super().__init__(config)
        self.user_map = user_map if user_map is not None else DiscordUserMap()
        # Set once on the first on_ready and never cleared; reconnects don't re-gate sends
        self._ready = asyncio.Event()

        intents = discord.Intents.default()
        intents.members = True
        self._client = discord.Client(intents=intents)

        @self._client.event
        async def on_ready():
            l.info(f"Discord: logged in as {self._client.user}")
            for guild in self._client.guilds:
                for member in guild.members:
                    self.user_map.add(member.name, member.id)
            l.debug(f"Discord: {len(self.user_map)} user(s) known for mentions")
            self._ready.set()

        @self._client.event
        async def on_member_join(member: discord.Member):
            self.user_map.add(member.name, member.id)

        @self._client.event
        async def on_member_update(before: discord.Member, after: discord.Member):
            self.user_map.add(after.name, after.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        # Blocks until the bot disconnects
        async with self._client:
            await self._client.start(self.config.token)

    # ------------------------------------------------------------------
    # DestinationClient
    # ------------------------------------------------------------------

    async def wait_until_ready(self) -> None:
        await self._ready.wait()

    async def _channel(self, channel_id: int):
        ch = self._client.get_channel(channel_id)
        if ch is None:
            ch = await self._client.fetch_channel(channel_id)
        return ch

    async def send(
        self,
        channel_id: int,
        text: str,
        file: BinaryIO | None = None,
        file_name: str = "",
    ) -> int:
        ch = await self._channel(channel_id)
        if file is not None:
            sent = await ch.send(text or None, file=discord.File(file, filename=file_name))
        else:
            sent = await ch.send(text)
        return sent.id

    async def edit(self, channel_id: int, message_id: int, text: str) -> None:
        ch = await self._channel(channel_id)
        message = await ch.fetch_message(message_id)
        await message.edit(content=text)
