"""
Background worker for appointment reminders and outgoing mail.

Usage:
    python -m app.worker

Runs the daily reminder scan and drains the mail queue on a fixed interval.
Use it instead of the in-process scheduler when the API runs with
REMINDER_SCHEDULER_ENABLED=false or with several replicas.
"""

import asyncio

from app.core import config
from app.core.logger import logger
from app.db.client import ensure_indexes, get_db
from app.services.notification_service import MailDispatcher
from app.services.reminder_service import run_reminder_loop


async def run_mail_loop(db, interval_seconds: int) -> None:
    dispatcher = MailDispatcher(db)
    while True:
        try:
            await asyncio.to_thread(dispatcher.dispatch_pending)
        except Exception as e:
            logger.error(f"Mail dispatch crashed: {str(e)}")
        await asyncio.sleep(interval_seconds)


async def main() -> None:
    config.validate_runtime_config()
    db = get_db()
    ensure_indexes(db)
    logger.info("Worker started")
    await asyncio.gather(
        run_reminder_loop(db),
        run_mail_loop(db, config.MAIL_DISPATCH_INTERVAL_SECONDS),
    )


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped")
