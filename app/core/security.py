# app/core/security.py

import datetime

import bcrypt
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from app.core.config import JWT_ALGORITHM, JWT_SECRET_KEY
from app.core.errors import PermissionDenied, Unauthenticated
from app.db.client import USERS, get_db

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/token", auto_error=False)


# Verify and return user if credentials are valid
def authenticate_user(db, email: str, password: str):
    user = db[USERS].find_one({"email": email})
    if not user or not bcrypt.checkpw(password.encode("utf-8"), user["password"].encode("utf-8")):
        return None
    return user


# Create JWT token with expiration
def create_access_token(data: dict, expires_delta: datetime.timedelta) -> str:
    to_encode = data.copy()
    expire = datetime.datetime.now(datetime.timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


# Get current user from the consultant session token
def get_current_user(token: str | None = Depends(oauth2_scheme), db=Depends(get_db)):
    if not token:
        raise Unauthenticated("Authentication required.")
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        email = payload.get("sub")
        if not email:
            raise Unauthenticated("Could not validate credentials.")
    except JWTError:
        raise Unauthenticated("Could not validate credentials.")

    user = db[USERS].find_one({"email": email})
    if not user or not user.get("is_active", True):
        raise Unauthenticated("Could not validate credentials.")

    return user


#  Role-based access control
def require_role(allowed_roles: list[str]):
    def _role_checker(current_user: dict = Depends(get_current_user)):
        if current_user.get("role") not in allowed_roles:
            raise PermissionDenied("Only consultants can manage appointments.")
        return current_user
    return _role_checker
