# app/api/appointments.py

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi import status as http_status

from app.core.config import CONSULTANT_ROLES
from app.core.errors import AppointmentError
from app.core.logger import logger
from app.core.security import get_current_user, require_role
from app.db.client import get_db
from app.models.appointment import (
    AppointmentView,
    ReminderRunSummary,
    ScheduleRequest,
    ScheduleResult,
    UpcomingAppointment,
)
from app.services.notification_service import dispatch_mail_queue
from app.services.reminder_service import ReminderScheduler
from app.services.scheduling_service import SchedulingService

router = APIRouter(
    prefix="/appointments",
    tags=["Appointments"]
)


def get_scheduling_service(db=Depends(get_db)) -> SchedulingService:
    """Dependency to get the scheduling service with database"""
    return SchedulingService(db)


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error {action}: {str(e)}")
    return HTTPException(
        status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}"
    )


@router.post("/{client_id}/schedule", response_model=ScheduleResult)
def schedule_appointment(
        client_id: str,
        request: ScheduleRequest,
        background_tasks: BackgroundTasks,
        consultant: dict = Depends(require_role(CONSULTANT_ROLES)),
        service: SchedulingService = Depends(get_scheduling_service)
):
    """Propose an appointment slot to a client and email the invitation."""
    try:
        result = service.schedule(
            client_id, request.date, request.time, request.location,
            consultant_name=consultant.get("full_name"),
        )
        background_tasks.add_task(dispatch_mail_queue, service.db)
        return result
    except AppointmentError:
        raise
    except Exception as e:
        raise _internal_error("scheduling appointment", e)


@router.post("/{client_id}/reschedule", response_model=ScheduleResult)
def reschedule_appointment(
        client_id: str,
        request: ScheduleRequest,
        background_tasks: BackgroundTasks,
        consultant: dict = Depends(require_role(CONSULTANT_ROLES)),
        service: SchedulingService = Depends(get_scheduling_service)
):
    """Replace the client's appointment with a new proposal and a new link."""
    try:
        result = service.reschedule(
            client_id, request.date, request.time, request.location,
            consultant_name=consultant.get("full_name"),
        )
        background_tasks.add_task(dispatch_mail_queue, service.db)
        return result
    except AppointmentError:
        raise
    except Exception as e:
        raise _internal_error("rescheduling appointment", e)


@router.post("/{client_id}/accept-proposal", response_model=AppointmentView)
def accept_proposal(
        client_id: str,
        consultant: dict = Depends(require_role(CONSULTANT_ROLES)),
        service: SchedulingService = Depends(get_scheduling_service)
):
    try:
        return service.accept_proposal(client_id)
    except AppointmentError:
        raise
    except Exception as e:
        raise _internal_error("accepting proposal", e)


@router.get("/upcoming", response_model=List[UpcomingAppointment])
def list_upcoming(
        from_today: bool = Query(False, description="Only appointments dated today or later"),
        current_user: dict = Depends(get_current_user),
        service: SchedulingService = Depends(get_scheduling_service)
):
    """Every client's current appointment, for the consultant calendar."""
    try:
        upcoming = service.list_upcoming(from_today=from_today)
        logger.info(f"Listed {len(upcoming)} appointments for {current_user.get('email')}")
        return upcoming
    except AppointmentError:
        raise
    except Exception as e:
        raise _internal_error("listing appointments", e)


@router.post("/reminders/run", response_model=ReminderRunSummary)
def run_reminders(
        background_tasks: BackgroundTasks,
        consultant: dict = Depends(require_role(CONSULTANT_ROLES)),
        db=Depends(get_db)
):
    """Run the reminder scan now. Offsets already sent are not repeated."""
    summary = ReminderScheduler(db).run_once()
    background_tasks.add_task(dispatch_mail_queue, db)
    logger.info(f"Manual reminder run by {consultant.get('email')}: {summary.sent} sent")
    return summary
