import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from pymongo.errors import PyMongoError
from starlette.middleware.cors import CORSMiddleware

from app.api import appointments, auth, public_appointments
from app.core import config
from app.core.errors import AppointmentError, appointment_error_handler
from app.core.logger import logger
from app.db.client import ensure_indexes, get_db
from app.services.reminder_service import run_reminder_loop


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.validate_runtime_config()
    try:
        ensure_indexes()
    except PyMongoError:
        logger.exception("Index creation failed. Check MONGO_URI.")

    reminder_task = None
    if config.REMINDER_SCHEDULER_ENABLED:
        reminder_task = asyncio.create_task(run_reminder_loop(get_db()))
        logger.info("Reminder scheduler started")

    yield

    if reminder_task is not None:
        reminder_task.cancel()
        try:
            await reminder_task
        except asyncio.CancelledError:
            logger.info("Reminder scheduler stopped")


app = FastAPI(title="Advisory Client Portal", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppointmentError, appointment_error_handler)

app.include_router(auth.router)
app.include_router(appointments.router)
app.include_router(public_appointments.router)


@app.get("/")
async def root():
    return {"message": "Advisory Client Portal API"}
