# app/api/public_appointments.py
#
# Anonymous endpoints reached from the links in appointment emails. The
# capability token is the only credential.

from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, Query
from fastapi import status as http_status
from fastapi.responses import HTMLResponse

from app.core.errors import AlreadyConfirmed, AppointmentError, InvalidArgument, InvalidState, NotFound
from app.core.logger import logger
from app.db.client import get_db
from app.models.appointment import AppointmentView, ConfirmRequest, ProposeRequest
from app.services.notification_service import dispatch_mail_queue
from app.services.scheduling_service import SchedulingService
from app.utils.date_utils import format_date
from app.utils.email_templates import build_propose_form_page, build_result_page

router = APIRouter(tags=["Client appointment links"])

GENERIC_ERROR = "Something went wrong. Please try again or contact your consultant."


def get_scheduling_service(db=Depends(get_db)) -> SchedulingService:
    return SchedulingService(db)


def _error_page(e: AppointmentError) -> HTMLResponse:
    if isinstance(e, AlreadyConfirmed):
        # A second click on the confirm link is harmless
        return HTMLResponse(build_result_page("Already confirmed", e.message, "success"))
    if isinstance(e, NotFound):
        title, kind = "Link no longer valid", "error"
    elif isinstance(e, InvalidState):
        title, kind = "Appointment changed", "warning"
    elif isinstance(e, InvalidArgument):
        title, kind = "Please check your input", "error"
    else:
        title, kind = "Error", "error"
    return HTMLResponse(build_result_page(title, e.message, kind), status_code=e.status_code)


# JSON API

@router.post("/public/appointments/confirm", response_model=AppointmentView)
def confirm_appointment(
        request: ConfirmRequest,
        background_tasks: BackgroundTasks,
        service: SchedulingService = Depends(get_scheduling_service)
):
    try:
        result = service.confirm(request.token)
        background_tasks.add_task(dispatch_mail_queue, service.db)
        return result
    except AppointmentError:
        raise
    except Exception as e:
        logger.error(f"Error confirming appointment: {str(e)}")
        raise HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERIC_ERROR)


@router.post("/public/appointments/propose", response_model=AppointmentView)
def propose_new_date(
        request: ProposeRequest,
        background_tasks: BackgroundTasks,
        service: SchedulingService = Depends(get_scheduling_service)
):
    try:
        result = service.propose_new_date(request.token, request.proposed_date, request.proposed_time)
        background_tasks.add_task(dispatch_mail_queue, service.db)
        return result
    except AppointmentError:
        raise
    except Exception as e:
        logger.error(f"Error proposing new date: {str(e)}")
        raise HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERIC_ERROR)


# Email link landing pages

@router.get("/links/confirm", response_class=HTMLResponse)
def confirm_link(
        background_tasks: BackgroundTasks,
        token: str = Query(""),
        service: SchedulingService = Depends(get_scheduling_service)
):
    try:
        appointment = service.confirm(token)
    except AppointmentError as e:
        return _error_page(e)
    except Exception as e:
        logger.error(f"Error confirming appointment from link: {str(e)}")
        return HTMLResponse(build_result_page("Error", GENERIC_ERROR, "error"), status_code=500)

    background_tasks.add_task(dispatch_mail_queue, service.db)
    return HTMLResponse(build_result_page(
        "Appointment confirmed",
        f"Your appointment on {format_date(appointment.date)} at {appointment.time} is confirmed. "
        f"Location: {appointment.location or 'to be confirmed'}.",
    ))


@router.get("/links/propose", response_class=HTMLResponse)
def propose_form(
        token: str = Query(""),
        service: SchedulingService = Depends(get_scheduling_service)
):
    try:
        _, appointment = service.appointment_for_token(token)
    except AppointmentError as e:
        return _error_page(e)

    min_date = (service.today() + timedelta(days=1)).isoformat()
    return HTMLResponse(build_propose_form_page(
        token, appointment.date, appointment.time, appointment.location, min_date
    ))


@router.post("/links/propose", response_class=HTMLResponse)
def propose_form_submit(
        background_tasks: BackgroundTasks,
        token: str = Form(""),
        proposed_date: str = Form(""),
        proposed_time: str = Form(""),
        service: SchedulingService = Depends(get_scheduling_service)
):
    try:
        appointment = service.propose_new_date(token, proposed_date, proposed_time)
    except AppointmentError as e:
        return _error_page(e)
    except Exception as e:
        logger.error(f"Error proposing new date from link: {str(e)}")
        return HTMLResponse(build_result_page("Error", GENERIC_ERROR, "error"), status_code=500)

    background_tasks.add_task(dispatch_mail_queue, service.db)
    return HTMLResponse(build_result_page(
        "Proposal sent",
        f"Your consultant has been told you would prefer {format_date(appointment.proposed_date)} "
        f"at {appointment.proposed_time}. They will get back to you to confirm.",
    ))
