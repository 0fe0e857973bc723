from pymongo import ASCENDING, MongoClient

from app.core.config import MONGO_DB_NAME, MONGO_URI
from app.core.logger import logger

if not MONGO_URI:
    raise ValueError("MONGO_URI is not set in the environment")

client = MongoClient(MONGO_URI)
db = client[MONGO_DB_NAME]

CLIENTS = "clients"
APPOINTMENT_TOKENS = "appointment_tokens"
MAIL_QUEUE = "mail_queue"
USERS = "users"


def get_db():
    return db


def ensure_indexes(database=None):
    if database is None:
        database = db
    database[CLIENTS].create_index([("status", ASCENDING)])
    database[CLIENTS].create_index([("next_appointment.date", ASCENDING)])
    database[MAIL_QUEUE].create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    logger.info(f"MongoDB indexes ensured on {database.name}")
