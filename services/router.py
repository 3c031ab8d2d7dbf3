"""
Event router.

Every Telegram event goes through the same short pipeline before it reaches
its relay handler:

    chat-info command  →  bridge lookup  →  direction filter  →  dispatch

Each step is a middleware ``(ctx, call_next)``; a step stops the event by
simply not calling ``call_next``.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

import services.logger as log
from drivers import SourceClient
from services.bridges import Bridge, BridgeMap
from services.config_schema import AdvisoryConfig
from services.error import raise_and_log, relay_guard
from services.message import EVENT_TYPES, RelayEvent
from services.relay import Handler

l = log.get_logger()


@dataclass
class RouteContext:
    event: RelayEvent
    bridge: Bridge | None = None


Next = Callable[[RouteContext], Awaitable[None]]
Middleware = Callable[[RouteContext, Next], Awaitable[None]]


def chain(middlewares: list[Middleware], endpoint: Next) -> Next:
    """Compose *middlewares* around *endpoint*; the first one runs first."""
    handler = endpoint
    for middleware in reversed(middlewares):
        handler = _link(middleware, handler)
    return handler


def _link(middleware: Middleware, call_next: Next) -> Next:
    async def run(ctx: RouteContext) -> None:
        await middleware(ctx, call_next)
    return run


def advisory_text(cfg: AdvisoryConfig) -> str:
    """Markdown notice sent to chats that have no bridge."""
    project = f"[{cfg.project_name}]({cfg.project_url})" if cfg.project_url else cfg.project_name
    text = (
        f"This is an instance of a {project} bot, "
        "bridging a chat in Telegram with one in Discord. "
        f"If you wish to use {cfg.project_name} yourself, please download and create an instance."
    )
    links = []
    if cfg.telegram_support_url:
        links.append(f"[Telegram group]({cfg.telegram_support_url})")
    if cfg.discord_support_url:
        links.append(f"[Discord server]({cfg.discord_support_url})")
    if links:
        text += f" Join our {' or '.join(links)} for help"
    return text


class EventRouter:

    def __init__(
        self,
        source: SourceClient,
        bridge_map: BridgeMap,
        handlers: dict[type[RelayEvent], Handler],
        advisory: AdvisoryConfig | None = None,
    ):
        missing = [t.__name__ for t in EVENT_TYPES if t not in handlers]
        if missing:
            raise_and_log(f"No relay handler for event type(s): {', '.join(missing)}", TypeError)

        self._source = source
        self._bridges = bridge_map
        self._handlers = dict(handlers)
        advisory = advisory or AdvisoryConfig()
        if not (advisory.telegram_support_url and advisory.discord_support_url):
            l.warning(
                "advisory.telegram_support_url and advisory.discord_support_url are not both set; "
                "unmanaged chats will get a notice without support links"
            )
        self._advisory = advisory_text(advisory)
        self._pipeline = chain(
            [self._chat_info, self._resolve_bridge, self._enforce_direction],
            self._dispatch,
        )

    async def handle(self, event: RelayEvent) -> None:
        """Entry point for every normalized Telegram event."""
        await self._pipeline(RouteContext(event=event))

    # ------------------------------------------------------------------
    # Middlewares
    # ------------------------------------------------------------------

    async def _chat_info(self, ctx: RouteContext, call_next: Next) -> None:
        message = ctx.event.message
        username = self._source.bot_username
        if message.text and username and message.text.strip().lower() == f"@{username} chatinfo".lower():
            # Answered in any chat, bridged or not
            try:
                await self._source.send_message(message.chat_id, f"chatID: {message.chat_id}")
            except Exception as e:
                l.error(f"Could not send chat info to {message.chat_id}: {e!r}")
            return
        await call_next(ctx)

    async def _resolve_bridge(self, ctx: RouteContext, call_next: Next) -> None:
        chat_id = ctx.event.message.chat_id
        bridge = self._bridges.from_telegram_chat_id(chat_id)
        if bridge is None:
            try:
                await self._source.send_message(chat_id, self._advisory, markdown=True)
            except Exception as e:
                l.error(f"Could not tell chat {chat_id} to get their own bridge instance: {e!r}")
            return
        ctx.bridge = bridge
        await call_next(ctx)

    async def _enforce_direction(self, ctx: RouteContext, call_next: Next) -> None:
        if ctx.bridge.relays_telegram_to_discord:
            await call_next(ctx)

    async def _dispatch(self, ctx: RouteContext) -> None:
        handler = self._handlers[type(ctx.event)]
        l.debug(f"[{ctx.bridge.name}] Relaying {ctx.event.kind} {ctx.event.message.message_id}")
        with relay_guard(ctx.bridge.name, f"Relaying {ctx.event.kind} failed", ctx.event.message):
            await handler(ctx.event, ctx.bridge)
