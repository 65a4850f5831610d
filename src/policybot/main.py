"""
PolicyBot entry point.

Loads configuration, authenticates with the router, then handles Telegram
updates one at a time until interrupted.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

import structlog
from telegram.error import TelegramError

from .config import ConfigManager, load_config
from .gateway import TelegramGateway
from .keenetic import KeeneticClient, RouterAuthError
from .observability import configure_logging
from .persistence import DatabaseManager, SessionStore
from .runtime import UpdateDispatcher

logger = structlog.get_logger(__name__)


async def serve(dispatcher: UpdateDispatcher, once: bool = False) -> None:
    """
    Handle updates sequentially.

    A failure while handling one update is logged and does not stop the loop.

    Args:
        dispatcher: Configured UpdateDispatcher
        once: Handle a single update and return
    """
    while True:
        try:
            await dispatcher.handle()
        except Exception as e:
            logger.error(
                "update_handling_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True
            )
        if once:
            return


async def run(config: ConfigManager, once: bool = False) -> int:
    """
    Wire components together and serve updates.

    Returns:
        Process exit status
    """
    logger.info("policybot_starting", config=config.redacted())

    if not config.get("telegram.bot_token"):
        logger.error("telegram_bot_token_missing")
        return 1

    db_manager = DatabaseManager(config.get("database.path"))
    router = KeeneticClient(
        base_url=config.get("router.base_url"),
        login=config.get("router.login"),
        password=config.get("router.password"),
        favorite_macs=config.get("router.favorite_macs"),
        timeout=config.get("router.request_timeout_seconds"),
    )
    chat = TelegramGateway(
        token=config.get("telegram.bot_token"),
        poll_timeout=config.get("telegram.poll_timeout_seconds"),
        error_backoff=config.get("telegram.error_backoff_seconds"),
    )

    try:
        await db_manager.init_db()

        try:
            await router.auth()
        except RouterAuthError as e:
            logger.error("router_auth_failed", error=str(e))
            return 1

        try:
            await chat.start()
        except TelegramError as e:
            logger.error("telegram_start_failed", error=str(e), error_type=type(e).__name__)
            return 1

        dispatcher = UpdateDispatcher(
            router=router,
            chat=chat,
            sessions=SessionStore(db_manager),
            restricted_policy=config.get("router.restricted_policy"),
            allowed_chat_ids=config.get("telegram.allowed_chat_ids"),
        )
        logger.info("policybot_started")
        try:
            await serve(dispatcher, once=once)
        finally:
            await chat.stop()
    finally:
        await router.aclose()
        await db_manager.close()
        logger.info("policybot_stopped")

    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="policybot",
        description="Toggle a Keenetic router traffic policy from Telegram.",
    )
    parser.add_argument("--config", type=Path, default=Path("config/default.toml"),
                        help="TOML configuration file")
    parser.add_argument("--env-file", type=Path, default=Path(".env"),
                        help=".env file with secrets")
    parser.add_argument("--once", action="store_true",
                        help="handle a single update and exit")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)

    try:
        config = load_config(args.config, args.env_file)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(config.get("logging.level"), config.get("logging.json"))

    try:
        status = asyncio.run(run(config, once=args.once))
    except KeyboardInterrupt:
        status = 0
    sys.exit(status)
