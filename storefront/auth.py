# storefront/auth.py

"""
Username/password authentication backed by server-side sessions.

A session is a row in the `sessions` table; the browser only holds its id in
an HttpOnly cookie. Route handlers depend on `get_current_user` or
`get_current_admin` and never look at the cookie themselves.
"""
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .db import get_db
from .models import User
from .schemas import LoginRequest, UserCreate, UserResponse
from .storage import Storage

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "sid")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "168"))
SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

router = APIRouter(prefix="/api", tags=["auth"])


def get_password_hash(password: str) -> str:
    return pwd_ctx.hash(password)


def verify_password(password: str, hash_: str) -> bool:
    return pwd_ctx.verify(password, hash_)


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def start_session(storage: Storage, user: User, response: Response) -> str:
    sid = secrets.token_urlsafe(32)
    expires_at = datetime.now(timezone.utc) + timedelta(hours=SESSION_TTL_HOURS)
    storage.create_session(sid, user.id, expires_at)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        sid,
        max_age=SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )
    return sid


def get_current_user_optional(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return None
    storage = Storage(db)
    record = storage.get_session(sid)
    if record is None:
        return None
    if _as_utc(record.expires_at) <= datetime.now(timezone.utc):
        logger.info(f"Session for user {record.user_id} expired; discarding it.")
        storage.delete_session(sid)
        return None
    return storage.get_user(record.user_id)


def get_current_user(user: Optional[User] = Depends(get_current_user_optional)) -> User:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


# -----------------------------
# Auth endpoints
# -----------------------------
@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, response: Response, db: Session = Depends(get_db)):
    """
    Creates a customer account and logs it in.
    Usernames and emails are unique across all users.
    """
    storage = Storage(db)
    if storage.get_user_by_username(payload.username):
        raise HTTPException(status_code=400, detail="Username already exists")
    if storage.get_user_by_email(payload.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = storage.create_user(payload, get_password_hash(payload.password))
    start_session(storage, user, response)
    logger.info(f"User '{user.username}' (ID: {user.id}) registered.")
    return user


@router.post("/login", response_model=UserResponse)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    storage = Storage(db)
    user = storage.get_user_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password):
        logger.warning(f"Failed login attempt for username '{payload.username}'.")
        raise HTTPException(status_code=401, detail="Invalid username or password")
    start_session(storage, user, response)
    logger.info(f"User '{user.username}' logged in.")
    return user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(request: Request, db: Session = Depends(get_db)):
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if sid:
        Storage(db).delete_session(sid)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@router.get("/user", response_model=UserResponse)
def current_user(user: User = Depends(get_current_user)):
    return user
