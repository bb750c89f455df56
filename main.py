import argparse
import asyncio
import signal
import sys
from functools import partial
from pathlib import Path

from telegram import Update
from telegram.ext import Application, ApplicationBuilder

from incident_review import db_engine
from incident_review.approval_sweep import ApprovalSweep
from incident_review.article_details import ArticleDetailsFetcher
from incident_review.config import Settings, load_settings
from incident_review.database import SqlIncidentRepository, init_db
from incident_review.ingestion import IngestionLoop
from incident_review.review_bot import ReviewDispatcher, build_update_handler
from incident_review.rss_feed import fetch_candidates
from incident_review.store import CandidateStore
from telegram_bot.telegram_bot import TelegramNotifier
from util.logging_util import set_default_level, setup_logger

logger = setup_logger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="RSS fire incident review bot")
    parser.add_argument("--config", type=Path, default=None, help="Path to the settings YAML")
    parser.add_argument(
        "--polling",
        action="store_true",
        help="Use long polling even if a webhook URL is configured",
    )
    return parser.parse_args()


async def start_intake(application: Application, settings: Settings, polling: bool):
    telegram = settings.telegram
    if telegram.webhook_url and not polling:
        webhook_url = f"{telegram.webhook_url.rstrip('/')}/{telegram.url_path}"
        logger.info(f"Receiving updates via webhook at {webhook_url}")
        await application.updater.start_webhook(
            listen=telegram.listen,
            port=telegram.port,
            url_path=telegram.url_path,
            secret_token=telegram.webhook_secret,
            webhook_url=webhook_url,
            allowed_updates=[Update.MESSAGE, Update.CALLBACK_QUERY],
        )
    else:
        logger.info("Receiving updates via long polling")
        await application.updater.start_polling(allowed_updates=[Update.MESSAGE, Update.CALLBACK_QUERY])


def build_services(settings: Settings, store: CandidateStore, notifier: TelegramNotifier):
    """The ingestion loop, approval sweep and update dispatcher, sharing one store.

    The sweep and the dispatcher scrape from different worker threads, so
    each gets its own fetcher and with it its own requests.Session.
    """
    repository = SqlIncidentRepository(ArticleDetailsFetcher(), settings.persistence.default_photo_url)

    ingestion = IngestionLoop(
        store,
        partial(fetch_candidates, settings.rss.feeds, settings.rss.keywords),
        notifier,
        settings.rss.poll_interval_seconds,
    )
    sweep = ApprovalSweep(store, repository, settings.persistence.poll_interval_seconds)
    dispatcher = ReviewDispatcher(store, notifier, repository, ArticleDetailsFetcher(), settings)
    return ingestion, sweep, dispatcher


async def run(settings: Settings, polling: bool):
    db_engine.configure(settings.persistence.database_url)
    init_db()

    store = CandidateStore()
    notifier = TelegramNotifier(settings.telegram.bot_token, settings.telegram.chat_id)
    ingestion, sweep, dispatcher = build_services(settings, store, notifier)

    application = ApplicationBuilder().token(settings.telegram.bot_token).concurrent_updates(True).build()
    application.add_handler(build_update_handler(dispatcher))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with application:
        await application.start()
        await start_intake(application, settings, polling)

        tasks = [
            asyncio.create_task(ingestion.run(stop_event)),
            asyncio.create_task(sweep.run(stop_event)),
        ]
        logger.info("Incident review bot started")

        await stop_event.wait()
        logger.info("Shutting down")

        await asyncio.gather(*tasks)
        await application.updater.stop()
        await application.stop()

    await notifier.aclose()


def main():
    args = parse_args()
    settings = load_settings(args.config)
    set_default_level(settings.log_level)

    if not settings.telegram.bot_token:
        logger.error("Telegram bot token is missing. Set TELEGRAM_BOT_TOKEN or telegram.bot_token.")
        sys.exit(1)

    asyncio.run(run(settings, args.polling))


if __name__ == "__main__":
    main()
