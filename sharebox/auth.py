# Filename: sharebox/auth.py
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status, Request
from typing import Optional
from sqlmodel import Session, select

from .config import settings
from .models import User
from .db import get_session

# user credentials and password-gated files share one scheme
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_COOKIE = "access_token"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {"sub": str(subject), "iat": int(issued.timestamp()), "exp": int((issued + lifetime).timestamp())}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def get_user_by_username(session: Session, username: str) -> Optional[User]:
    return session.exec(select(User).where(User.username == username)).first()


def extract_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else from the login cookie.

    Both places accept a raw token or ``Bearer <token>``."""
    raw = request.headers.get("authorization") or request.cookies.get(TOKEN_COOKIE)
    if not raw:
        return None
    scheme, _, value = raw.partition(" ")
    if value and scheme.lower() == "bearer":
        return value.strip()
    return raw.strip()


def _user_for_token(session: Session, token: str) -> User:
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    username = payload.get("sub")
    if not username:
        raise LookupError("token has no subject")
    user = get_user_by_username(session, username)
    if user is None:
        raise LookupError(f"unknown user {username}")
    return user


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_optional_user(request: Request, session: Session = Depends(get_session)) -> Optional[User]:
    """Anonymous callers resolve to None; a token that is present but invalid is rejected."""
    token = extract_token(request)
    if token is None:
        return None
    try:
        return _user_for_token(session, token)
    except (JWTError, LookupError):
        raise _credentials_error()


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise _credentials_error()
    return user
