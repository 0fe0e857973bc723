# app/services/scheduling_service.py

from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Tuple

from pymongo.errors import PyMongoError

from app.core import config
from app.core.errors import AlreadyConfirmed, Internal, InvalidArgument, InvalidState, NotFound
from app.core.logger import logger, mask_token
from app.crud import appointment_crud
from app.models.appointment import (
    Appointment,
    AppointmentStatus,
    AppointmentView,
    ScheduleResult,
    UpcomingAppointment,
)
from app.services.notification_service import NotificationGateway
from app.services.token_service import TokenService
from app.utils import email_templates
from app.utils.date_utils import format_date, is_valid_date, is_valid_time, local_today, parse_date

EMAIL_SENT_MESSAGE = "Appointment saved. Invitation email sent."
EMAIL_FAILED_MESSAGE = (
    "Appointment saved, but the invitation email could not be sent. "
    "Check the client's email address and contact them directly."
)


def _validate_slot(slot_date: Optional[str], slot_time: Optional[str]) -> None:
    if not slot_date or not slot_time:
        raise InvalidArgument("date and time are required.")
    if not is_valid_date(slot_date):
        raise InvalidArgument("Invalid date format (YYYY-MM-DD expected).")
    if not is_valid_time(slot_time):
        raise InvalidArgument("Invalid time format (HH:MM expected).")


def consultant_email_for(client: dict) -> str:
    return client.get("assigned_consultant_email") or config.DEFAULT_CONSULTANT_EMAIL


class SchedulingService:
    """
    Appointment state machine.

        (none) -> proposed -> confirmed
        proposed | confirmed -> pending_change -> confirmed (accept) | proposed (reschedule)

    Consultant operations address a client id; client operations carry a
    capability token. Every write replaces the whole appointment
    sub-document and concurrent writers are last-write-wins. Emails are
    queued best-effort and never undo a transition.
    """

    def __init__(
            self,
            db,
            today: Callable[[], date] = local_today,
            gateway: Optional[NotificationGateway] = None,
            tokens: Optional[TokenService] = None
    ):
        if db is None:
            raise ValueError("Database connection is required")
        self.db = db
        self.today = today
        self.gateway = gateway or NotificationGateway(db)
        self.tokens = tokens or TokenService(db)

    # Consultant operations

    def schedule(
            self,
            client_id: str,
            slot_date: str,
            slot_time: str,
            location: Optional[str] = None,
            consultant_name: Optional[str] = None
    ) -> ScheduleResult:
        """Propose a new slot to the client, replacing any current appointment."""
        if not client_id:
            raise InvalidArgument("clientId is required.")
        _validate_slot(slot_date, slot_time)

        client = self._load_client(client_id)

        # Token record first so the emailed link always resolves
        token = self.tokens.issue(client_id)
        appointment = Appointment(
            date=slot_date,
            time=slot_time,
            location=location or "",
            status=AppointmentStatus.PROPOSED,
            token=token,
            reminders_sent=[],
            created_at=datetime.now(timezone.utc),
        )
        self._write(client_id, appointment)

        confirm_url = f"{config.PUBLIC_BASE_URL}/links/confirm?token={token}"
        propose_url = f"{config.PUBLIC_BASE_URL}/links/propose?token={token}"
        owner = client.get("owner") or {}
        body = email_templates.build_invitation_email(
            client_name=email_templates.client_display_name(client),
            company_name=client.get("company_name", ""),
            date=slot_date,
            time=slot_time,
            location=location,
            consultant_name=consultant_name or f"Your {config.FIRM_NAME} consultant",
            confirm_url=confirm_url,
            propose_url=propose_url,
        )
        outcome = self.gateway.enqueue(
            owner.get("email"),
            f"[{config.FIRM_NAME}] Appointment on {format_date(slot_date)}",
            body,
        )
        email_queued = outcome["queued"]

        logger.info(
            f"Appointment scheduled for client {client_id} on {slot_date} {slot_time} "
            f"(token {mask_token(token)}, email_queued={email_queued})"
        )
        return ScheduleResult(
            client_id=client_id,
            token=token,
            email_queued=email_queued,
            confirm_url=confirm_url,
            propose_url=propose_url,
            message=EMAIL_SENT_MESSAGE if email_queued else EMAIL_FAILED_MESSAGE,
        )

    def reschedule(
            self,
            client_id: str,
            slot_date: str,
            slot_time: str,
            location: Optional[str] = None,
            consultant_name: Optional[str] = None
    ) -> ScheduleResult:
        """Same as ``schedule``: new token, new email, full overwrite, from any state."""
        logger.info(f"Rescheduling appointment for client {client_id}")
        return self.schedule(client_id, slot_date, slot_time, location, consultant_name)

    def accept_proposal(self, client_id: str) -> AppointmentView:
        """Adopt the client's counter-proposal. Keeps the token, sends no email."""
        client = self._load_client(client_id)
        appointment = Appointment.from_document(client.get("next_appointment"))
        if appointment is None:
            raise NotFound("This client has no appointment.")
        if appointment.status != AppointmentStatus.PENDING_CHANGE:
            raise InvalidState(
                f"Only a pending change can be accepted (current status: {appointment.status.value})."
            )

        accepted = Appointment(
            date=appointment.proposed_date,
            time=appointment.proposed_time,
            location=appointment.location,
            status=AppointmentStatus.CONFIRMED,
            token=appointment.token,
            reminders_sent=[],
            created_at=appointment.created_at,
        )
        self._write(client_id, accepted)

        logger.info(f"Proposed date {accepted.date} {accepted.time} accepted for client {client_id}")
        return AppointmentView.from_appointment(accepted)

    def list_upcoming(self, from_today: bool = False) -> List[UpcomingAppointment]:
        try:
            clients = list(appointment_crud.iter_clients_with_appointments(self.db))
        except PyMongoError as e:
            logger.error(f"Error listing appointments: {str(e)}")
            raise Internal("Failed to list appointments.")

        today = self.today().isoformat()
        upcoming = []
        for client in clients:
            appointment = Appointment.from_document(client.get("next_appointment"))
            if appointment is None:
                continue
            if from_today and appointment.date < today:
                continue
            upcoming.append(UpcomingAppointment(
                client_id=str(client["_id"]),
                client_name=email_templates.client_display_name(client),
                appointment=AppointmentView.from_appointment(appointment),
            ))

        upcoming.sort(key=lambda item: (item.appointment.date, item.appointment.time))
        return upcoming

    # Client operations (capability token)

    def confirm(self, token: str) -> AppointmentView:
        client_id, client, appointment = self.tokens.resolve_appointment(token)

        if appointment.status == AppointmentStatus.CONFIRMED:
            raise AlreadyConfirmed(
                f"Your appointment on {format_date(appointment.date)} at {appointment.time} is already confirmed."
            )

        # From pending_change this confirms the original slot and drops the proposal
        confirmed = appointment.model_copy(update={
            "status": AppointmentStatus.CONFIRMED,
            "proposed_date": None,
            "proposed_time": None,
        })
        self._write(client_id, confirmed)

        self.gateway.enqueue(
            consultant_email_for(client),
            f"[{config.FIRM_NAME}] Appointment confirmed: {client.get('company_name', '')}",
            email_templates.build_confirmed_notice(
                email_templates.client_display_name(client),
                client.get("company_name", ""),
                confirmed.date,
                confirmed.time,
            ),
        )

        logger.info(f"Appointment confirmed for client {client_id} on {confirmed.date}")
        return AppointmentView.from_appointment(confirmed)

    def propose_new_date(self, token: str, new_date: str, new_time: str) -> AppointmentView:
        _validate_slot(new_date, new_time)
        if parse_date(new_date) <= self.today():
            raise InvalidArgument("The proposed date must be in the future.")

        client_id, client, appointment = self.tokens.resolve_appointment(token)

        # The original date/time stay in place until the consultant accepts
        pending = appointment.model_copy(update={
            "status": AppointmentStatus.PENDING_CHANGE,
            "proposed_date": new_date,
            "proposed_time": new_time,
            "reminders_sent": [],
        })
        self._write(client_id, pending)

        self.gateway.enqueue(
            consultant_email_for(client),
            f"[{config.FIRM_NAME}] Change requested: {client.get('company_name', '')}",
            email_templates.build_change_request_notice(
                email_templates.client_display_name(client),
                client.get("company_name", ""),
                appointment.date,
                appointment.time,
                new_date,
                new_time,
            ),
        )

        logger.info(f"New date proposed by client {client_id}: {new_date} {new_time}")
        return AppointmentView.from_appointment(pending)

    def appointment_for_token(self, token: str) -> Tuple[dict, Appointment]:
        """Current appointment behind a link, for rendering the propose form."""
        _, client, appointment = self.tokens.resolve_appointment(token)
        return client, appointment

    # Helpers

    def _load_client(self, client_id: str) -> dict:
        try:
            client = appointment_crud.get_client(self.db, client_id)
        except PyMongoError as e:
            logger.error(f"Client lookup failed for {client_id}: {str(e)}")
            raise Internal("Could not load the client. Please try again.")
        if not client:
            raise NotFound(f"Client {client_id} not found.")
        return client

    def _write(self, client_id: str, appointment: Appointment) -> None:
        try:
            matched = appointment_crud.replace_appointment(self.db, client_id, appointment)
        except PyMongoError as e:
            logger.error(f"Failed to save appointment for client {client_id}: {str(e)}")
            raise Internal("Could not save the appointment. Please try again.")
        if not matched:
            raise NotFound(f"Client {client_id} not found.")
