from datetime import datetime, timezone
from typing import Optional

from app.db.client import APPOINTMENT_TOKENS


def insert_token(db, token: str, client_id: str) -> None:
    # Write-once; a duplicate _id raises DuplicateKeyError
    db[APPOINTMENT_TOKENS].insert_one({
        "_id": token,
        "client_id": client_id,
        "created_at": datetime.now(timezone.utc),
    })


def find_client_id(db, token: str) -> Optional[str]:
    record = db[APPOINTMENT_TOKENS].find_one({"_id": token})
    if not record:
        return None
    return record["client_id"]
