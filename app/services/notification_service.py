# app/services/notification_service.py

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import requests
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core import config
from app.core.logger import logger
from app.db.client import MAIL_QUEUE

PENDING = "pending"
SENDING = "sending"
SENT = "sent"
FAILED = "failed"
DRY_RUN = "dry_run"


class NotificationGateway:
    """
    Accepts outgoing emails by placing them on the ``mail_queue`` collection.

    Queuing only means the message was accepted for later delivery. Callers
    treat ``queued: False`` as non-fatal.
    """

    def __init__(self, db):
        self.db = db

    def enqueue(self, recipient: Optional[str], subject: str, body: str) -> Dict[str, bool]:
        if not recipient:
            logger.warning(f"Email not queued, no recipient: {subject}")
            return {"queued": False}

        message = {
            "to": recipient,
            "subject": subject,
            "html": body,
            "status": PENDING,
            "attempts": 0,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            self.db[MAIL_QUEUE].insert_one(message)
        except PyMongoError as e:
            logger.error(f"Failed to queue email to {recipient}: {str(e)}")
            return {"queued": False}

        logger.info(f"Email queued to {recipient}: {subject}")
        return {"queued": True}


class MailDispatcher:
    """
    Drains ``mail_queue`` through the HTTP email API.

    A claim moves a message to ``sending``. If the process dies before the
    outcome is written, the message is claimed again once
    ``MAIL_SENDING_TIMEOUT_SECONDS`` have passed, so it may be delivered twice.
    """

    def __init__(self, db, session: Optional[requests.Session] = None):
        self.db = db
        self.session = session or requests.Session()

    def _claim_next(self, skip_ids: list) -> Optional[dict]:
        # Messages already tried in this pass wait for the next one
        now = datetime.now(timezone.utc)
        stale_before = now - timedelta(seconds=config.MAIL_SENDING_TIMEOUT_SECONDS)
        return self.db[MAIL_QUEUE].find_one_and_update(
            {
                "_id": {"$nin": skip_ids},
                "$or": [
                    {"status": PENDING},
                    {"status": SENDING, "claimed_at": {"$lt": stale_before}},
                ],
            },
            {"$set": {"status": SENDING, "claimed_at": now}, "$inc": {"attempts": 1}},
            sort=[("created_at", 1)],
            return_document=ReturnDocument.AFTER,
        )

    def _deliver(self, message: dict) -> None:
        response = self.session.post(
            config.EMAIL_API_URL,
            json={
                "from": config.EMAIL_FROM,
                "to": [message["to"]],
                "subject": message["subject"],
                "html": message["html"],
            },
            headers={"Authorization": f"Bearer {config.EMAIL_API_KEY}"},
            timeout=config.EMAIL_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

    def dispatch_pending(self, limit: int = 50) -> Dict[str, int]:
        stats = {SENT: 0, FAILED: 0, PENDING: 0, DRY_RUN: 0}
        try:
            seen = []
            for _ in range(limit):
                message = self._claim_next(seen)
                if message is None:
                    break
                seen.append(message["_id"])
                outcome = self._process(message)
                stats[outcome] += 1
        except PyMongoError as e:
            logger.error(f"Mail queue unavailable: {str(e)}")

        if any(stats.values()):
            logger.info(f"Mail dispatch finished: {stats}")
        return stats

    def _process(self, message: dict) -> str:
        queue = self.db[MAIL_QUEUE]
        now = datetime.now(timezone.utc)

        # Reclaimed too many times after crashed passes
        if message["attempts"] > config.MAIL_MAX_ATTEMPTS:
            logger.error(f"Email to {message['to']} abandoned after {message['attempts'] - 1} attempts")
            queue.update_one({"_id": message["_id"]}, {"$set": {"status": FAILED}})
            return FAILED

        if not config.EMAIL_API_URL:
            logger.info(f"[DRY RUN] Email to {message['to']} not sent: {message['subject']}")
            queue.update_one({"_id": message["_id"]}, {"$set": {"status": DRY_RUN, "sent_at": now}})
            return DRY_RUN

        try:
            self._deliver(message)
        except requests.RequestException as e:
            next_status = FAILED if message["attempts"] >= config.MAIL_MAX_ATTEMPTS else PENDING
            logger.error(
                f"Email delivery to {message['to']} failed (attempt {message['attempts']}): {str(e)}"
            )
            queue.update_one(
                {"_id": message["_id"]},
                {"$set": {"status": next_status, "last_error": str(e)}}
            )
            return next_status

        queue.update_one({"_id": message["_id"]}, {"$set": {"status": SENT, "sent_at": now}})
        logger.info(f"Email sent to {message['to']}: {message['subject']}")
        return SENT


def dispatch_mail_queue(db) -> None:
    """Background-task entry point used by the routes."""
    MailDispatcher(db).dispatch_pending()
