# app/api/auth.py

from datetime import datetime, timezone, timedelta

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from pymongo.errors import PyMongoError

from app.core.config import ACCESS_TOKEN_EXPIRE_MINUTES
from app.core.logger import logger
from app.core.security import authenticate_user, create_access_token
from app.db.client import USERS, get_db
from app.models.schemas import Token

router = APIRouter(tags=["Authentication"])


@router.post("/token", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db=Depends(get_db)):
    email = form_data.username

    # Authenticate user
    user = authenticate_user(db, email, form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    # Check if user is active
    if not user.get("is_active", False):
        raise HTTPException(
            status_code=403,
            detail="Your account has been deactivated. Please contact administrator."
        )

    try:
        db[USERS].update_one(
            {"email": email},
            {"$set": {"last_login_at": datetime.now(timezone.utc)}}
        )
        logger.info(f"User {email} logged in successfully")
    except PyMongoError as e:
        logger.error(f"Failed to update login time for {email}: {str(e)}")
        # Continue with login even if update fails

    access_token = create_access_token(
        data={"sub": user["email"], "role": user["role"]},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    return {"access_token": access_token, "token_type": "bearer"}
