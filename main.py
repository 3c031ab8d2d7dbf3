import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

import services.error  # installs global uncaught-exception hook
import services.logger as log
import services.media as media
import services.util as u
import services.config_io as config_io
from services.bridges import BridgeMap
from services.message_map import create_message_map
from services.relay import Relay
from services.router import EventRouter
from services.user_map import DiscordUserMap

from drivers.discord import DiscordDriver
from drivers.telegram import TelegramDriver

l = log.get_logger()


def cmd_convert(src: str, dst: str) -> None:
    src_path = Path(src)
    dst_path = Path(dst)

    if not src_path.is_file():
        print(f"Error: source file not found: {src_path}", file=sys.stderr)
        sys.exit(1)

    try:
        data = config_io.load_config(src_path)
    except Exception as e:
        print(f"Error reading {src_path}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        config_io.save_config(data, dst_path)
    except Exception as e:
        print(f"Error writing {dst_path}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Converted {src_path} → {dst_path}")


async def main():
    l.info("Crosstalk starting…")

    config_path = config_io.find_config(Path(u.get_data_path()))
    if config_path is None:
        l.critical(f"No config file found in: {u.get_data_path()} (tried {', '.join(config_io.CONFIG_NAMES)})")
        return

    l.info(f"Loading config from: {config_path}")
    try:
        cfg = config_io.load_app_config(config_path)
    except ValidationError as exc:
        l.critical(f"Config error in {config_path}:\n{exc}")
        return

    log.register_sensitive(cfg.secrets())

    bridge_map = BridgeMap.from_config(cfg.bridges)
    if not len(bridge_map):
        l.warning("No bridges configured; every Telegram chat will only get the advisory notice")

    user_map = DiscordUserMap()
    discord_driver = DiscordDriver(cfg.discord, user_map)
    telegram_driver = TelegramDriver(cfg.telegram)

    relay = Relay(
        source=telegram_driver,
        destination=discord_driver,
        message_map=create_message_map(cfg.message_map),
        user_map=user_map,
        use_first_name=cfg.telegram.use_first_name_instead_of_username,
        max_file_size=cfg.telegram.max_file_size,
    )
    router = EventRouter(telegram_driver, bridge_map, relay.handlers(), cfg.advisory)
    telegram_driver.subscribe(router.handle)

    def _on_task_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            l.error(f"Driver '{task.get_name()}' crashed: {exc}")

    driver_tasks: list[asyncio.Task] = []
    for name, drv in (("discord", discord_driver), ("telegram", telegram_driver)):
        task = asyncio.create_task(drv.start(), name=name)
        task.add_done_callback(_on_task_done)
        driver_tasks.append(task)
        l.info(f"Started driver: {name}")

    try:
        results = await asyncio.gather(*driver_tasks, return_exceptions=True)
        for task, result in zip(driver_tasks, results):
            if isinstance(result, Exception):
                l.error(f"Driver '{task.get_name()}' exited with error: {result}")
    except asyncio.CancelledError:
        l.info("Crosstalk shutting down…")
        for task in driver_tasks:
            task.cancel()
        await asyncio.gather(*driver_tasks, return_exceptions=True)
        l.info("Crosstalk stopped.")
    finally:
        await media.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(prog="crosstalk", description="Telegram to Discord chat relay")
    subparsers = parser.add_subparsers(dest="command")

    conv = subparsers.add_parser("convert", help="Convert a config file between formats (json/yaml/toml)")
    conv.add_argument("src", help="Source config file (e.g. config.json)")
    conv.add_argument("dst", help="Destination config file (e.g. config.yaml)")

    args = parser.parse_args()

    if args.command == "convert":
        cmd_convert(args.src, args.dst)
        sys.exit(0)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
