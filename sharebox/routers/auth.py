# Filename: sharebox/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, status, Response, Body
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session, select

from ..db import get_session
from ..models import User
from ..schemas import Token, UserCreate, UserOut
from ..auth import TOKEN_COOKIE, get_password_hash, verify_password, create_access_token, get_current_user
from ..config import settings

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(user_in: UserCreate, session: Session = Depends(get_session)):
    statement = select(User).where(User.username == user_in.username)
    if user_in.email:
        statement = select(User).where((User.username == user_in.username) | (User.email == user_in.email))
    if session.exec(statement).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already registered")
    user = User(username=user_in.username, email=user_in.email, hashed_password=get_password_hash(user_in.password))
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _authenticate(session: Session, username: str, password: str) -> User:
    user = session.exec(select(User).where(User.username == username)).first()
    if not user or not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password", headers={"WWW-Authenticate": "Bearer"})
    return user


@router.post("/token", response_model=Token)
def login_token(form_data: OAuth2PasswordRequestForm = Depends(), session: Session = Depends(get_session)):
    user = _authenticate(session, form_data.username, form_data.password)
    return {"access_token": create_access_token(user.username), "token_type": "bearer"}


# JSON login for browsers: the token goes into an HttpOnly cookie
@router.post("/login-cookie")
def login_cookie(
    response: Response,
    username: str = Body(...),
    password: str = Body(...),
    remember: bool = Body(False),
    session: Session = Depends(get_session),
):
    user = _authenticate(session, username, password)
    token = create_access_token(user.username)
    max_age = 60 * 60 * 24 * 30 if remember else None  # 30 days, else a session cookie
    response.set_cookie(
        TOKEN_COOKIE, token, httponly=True, secure=settings.environment == "production", samesite="lax", max_age=max_age
    )
    return {"status": "ok"}


# Logout clears cookie
@router.post("/logout-cookie")
def logout_cookie(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"status": "ok"}


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user
