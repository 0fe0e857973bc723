import bcrypt

from app.db.client import CLIENTS
from app.models.appointment import Appointment


def stored_appointment(db, client_id):
    client = db[CLIENTS].find_one({'_id': client_id}, {'next_appointment': 1})
    if not client:
        return None
    return Appointment.from_document(client.get('next_appointment'))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')
