# app/services/token_service.py

import secrets
from typing import Tuple

from pymongo.errors import PyMongoError

from app.core.errors import Internal, InvalidState, InvalidToken, NotFound
from app.core.logger import logger, mask_token
from app.crud import appointment_crud, token_crud
from app.models.appointment import Appointment

TOKEN_BYTES = 32


class TokenService:
    """
    Issues and resolves the bearer tokens embedded in appointment emails.

    A token is an opaque random string; possession of it is the credential.
    Tokens never expire and are not revoked when a newer one is issued for
    the same client. A superseded token still resolves to its client but
    fails the appointment check in ``resolve_appointment``.
    """

    def __init__(self, db):
        if db is None:
            raise ValueError("Database connection is required")
        self.db = db

    @staticmethod
    def generate() -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    def issue(self, client_id: str) -> str:
        token = self.generate()
        try:
            token_crud.insert_token(self.db, token, client_id)
        except PyMongoError as e:
            logger.error(f"Failed to store appointment token for client {client_id}: {str(e)}")
            raise Internal("Could not create the appointment link. Please try again.")

        logger.info(f"Issued appointment token {mask_token(token)} for client {client_id}")
        return token

    def resolve(self, token: str) -> str:
        if not token:
            raise InvalidToken("Invalid link: no token provided.")
        try:
            client_id = token_crud.find_client_id(self.db, token)
        except PyMongoError as e:
            logger.error(f"Token lookup failed for {mask_token(token)}: {str(e)}")
            raise Internal("Could not verify the link. Please try again later.")

        if client_id is None:
            logger.warning(f"Unknown appointment token {mask_token(token)}")
            raise InvalidToken("This link is no longer valid. Please contact your consultant.")
        return client_id

    def resolve_appointment(self, token: str) -> Tuple[str, dict, Appointment]:
        """Resolve a token to (client_id, client document, current appointment)."""
        client_id = self.resolve(token)
        try:
            client = appointment_crud.get_client(self.db, client_id)
        except PyMongoError as e:
            logger.error(f"Client lookup failed for {client_id}: {str(e)}")
            raise Internal("Could not load the appointment. Please try again later.")

        if not client:
            raise NotFound("Client not found.")

        appointment = Appointment.from_document(client.get("next_appointment"))
        if appointment is None or appointment.token != token:
            logger.info(f"Superseded token {mask_token(token)} used for client {client_id}")
            raise InvalidState("This appointment has been changed. Please check your latest emails.")

        return client_id, client, appointment
