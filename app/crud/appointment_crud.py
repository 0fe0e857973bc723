from typing import Iterator, Optional

from app.db.client import CLIENTS
from app.models.appointment import Appointment


def get_client(db, client_id: str) -> Optional[dict]:
    return db[CLIENTS].find_one({"_id": client_id})


def replace_appointment(db, client_id: str, appointment: Appointment) -> bool:
    """Overwrite the client's appointment sub-document in one write.

    Last write wins: concurrent writers are not detected.
    """
    result = db[CLIENTS].update_one(
        {"_id": client_id},
        {"$set": {"next_appointment": appointment.to_document()}}
    )
    return result.matched_count == 1


def mark_reminder_sent(db, client_id: str, appointment: Appointment, offset: int) -> bool:
    """Record ``offset`` for the appointment instance the caller read.

    Only ``reminders_sent`` is written, and only while the stored appointment
    is still the snapshot: a reschedule, confirm or counter-proposal made
    meanwhile turns the write into a no-op.
    """
    reminders = sorted(set(appointment.reminders_sent) | {offset}, reverse=True)
    result = db[CLIENTS].update_one(
        {
            "_id": client_id,
            "next_appointment.token": appointment.token,
            "next_appointment.date": appointment.date,
            "next_appointment.time": appointment.time,
            "next_appointment.status": appointment.status.value,
            "next_appointment.proposed_date": appointment.proposed_date,
            "next_appointment.proposed_time": appointment.proposed_time,
            "next_appointment.reminders_sent": appointment.reminders_sent,
        },
        {"$set": {"next_appointment.reminders_sent": reminders}}
    )
    return result.modified_count == 1


def iter_clients_with_appointments(db, active_only: bool = False) -> Iterator[dict]:
    query = {"next_appointment": {"$ne": None}}
    if active_only:
        query["status"] = "active"
    return db[CLIENTS].find(query)
