# app/services/reminder_service.py

import asyncio
from datetime import date
from typing import Optional, Sequence

from pymongo.errors import PyMongoError

from app.core import config
from app.core.logger import logger
from app.crud import appointment_crud
from app.models.appointment import Appointment, AppointmentStatus, ReminderRunSummary
from app.services.notification_service import NotificationGateway
from app.services.scheduling_service import consultant_email_for
from app.utils import email_templates
from app.utils.date_utils import days_between, local_now, local_today, seconds_until_next_run


def reminder_level(days_until: int) -> str:
    if days_until > 14:
        return "gentle"
    if days_until > 7:
        return "moderate"
    if days_until > 1:
        return "firm"
    return "urgent"


def due_offset(days_until: int, offsets: Sequence[int]) -> Optional[int]:
    """The offset due today, if any. Missed offsets are not caught up."""
    for offset in offsets:
        if days_until == offset:
            return offset
    return None


class ReminderScheduler:
    """
    Sends each configured reminder offset at most once per appointment.

    ``reminders_sent`` on the appointment records the offsets already handled;
    it is emptied whenever the date changes, so a moved appointment gets a
    fresh set of reminders. A failure for one client is logged and the run
    moves on to the next.

    The email is queued before the offset is recorded. If that record write
    fails the reminder still counts as sent, and a second run on the same day
    may queue it again.
    """

    def __init__(self, db, offsets: Sequence[int] = None, gateway: Optional[NotificationGateway] = None):
        self.db = db
        self.offsets = tuple(sorted(offsets or config.REMINDER_OFFSETS, reverse=True))
        self.gateway = gateway or NotificationGateway(db)

    def run_once(self, today: Optional[date] = None) -> ReminderRunSummary:
        today = today or local_today()
        summary = ReminderRunSummary(run_date=today.isoformat())
        logger.info(f"Running appointment reminders for {summary.run_date} (offsets {list(self.offsets)})")

        try:
            clients = list(appointment_crud.iter_clients_with_appointments(self.db, active_only=True))
        except PyMongoError as e:
            logger.error(f"Reminder run aborted, client scan failed: {str(e)}")
            summary.failed += 1
            return summary

        for client in clients:
            summary.scanned += 1
            try:
                if self._remind_client(client, today):
                    summary.sent += 1
                else:
                    summary.skipped += 1
            except Exception as e:
                summary.failed += 1
                logger.error(f"Reminder failed for client {client.get('_id')}: {str(e)}")

        logger.info(
            f"Reminders complete: scanned={summary.scanned} sent={summary.sent} "
            f"skipped={summary.skipped} failed={summary.failed}"
        )
        return summary

    def _remind_client(self, client: dict, today: date) -> bool:
        client_id = client["_id"]
        appointment = Appointment.from_document(client.get("next_appointment"))
        if appointment is None:
            return False

        # No reminders while a counter-proposal is unresolved
        if appointment.status == AppointmentStatus.PENDING_CHANGE:
            return False

        days_until = days_between(today, appointment.date)
        if days_until <= 0:
            return False

        offset = due_offset(days_until, self.offsets)
        if offset is None or offset in appointment.reminders_sent:
            return False

        owner_email = (client.get("owner") or {}).get("email")
        if not owner_email:
            logger.warning(f"Client {client_id} has no owner email, reminder J-{offset} skipped")
            return False

        level = reminder_level(days_until)
        outcome = self.gateway.enqueue(
            owner_email,
            f"[{config.FIRM_NAME}] {email_templates.REMINDER_SUBJECTS[level]}",
            email_templates.build_reminder_email(
                client_name=email_templates.client_display_name(client),
                company_name=client.get("company_name", ""),
                date=appointment.date,
                time=appointment.time,
                location=appointment.location,
                days_until=days_until,
                level=level,
            ),
        )
        if not outcome["queued"]:
            raise RuntimeError(f"reminder J-{offset} could not be queued")

        try:
            recorded = appointment_crud.mark_reminder_sent(self.db, client_id, appointment, offset)
        except PyMongoError as e:
            # Counted as sent: the email is already on the queue
            logger.error(f"Reminder J-{offset} queued for client {client_id} but not recorded: {str(e)}")
        else:
            if not recorded:
                logger.warning(
                    f"Appointment for client {client_id} changed during the run, J-{offset} not recorded"
                )

        if offset == 1:
            self.gateway.enqueue(
                consultant_email_for(client),
                f"[{config.FIRM_NAME}] Appointment tomorrow: {client.get('company_name', '')}",
                email_templates.build_consultant_eve_notice(
                    client.get("company_name", ""), appointment.date, appointment.time
                ),
            )

        logger.info(f"Reminder J-{offset} queued for client {client_id}")
        return True


async def run_reminder_loop(db, run_hour: int = None) -> None:
    """Wake daily at ``run_hour`` local time and run the scan in a worker thread."""
    run_hour = config.REMINDER_RUN_HOUR if run_hour is None else run_hour
    scheduler = ReminderScheduler(db)
    while True:
        delay = seconds_until_next_run(local_now(), run_hour)
        logger.info(f"Next reminder run in {int(delay)}s")
        await asyncio.sleep(delay)
        try:
            await asyncio.to_thread(scheduler.run_once)
        except Exception as e:
            logger.error(f"Reminder run crashed: {str(e)}")
