"""Authentication routes: registration, login, logout and the current user."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from aurora_hunts.config import settings
from aurora_hunts.database import get_db
from aurora_hunts.models.user import User
from aurora_hunts.services.auth import get_auth_provider
from aurora_hunts.services.auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8)
    name: Optional[str] = Field(None, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    is_admin: bool


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


@router.post("/register", response_model=UserOut, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Create an account and log it in."""
    existing = db.query(User).filter(User.email == body.email.lower()).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    auth_provider = get_auth_provider()
    user = await auth_provider.create_user(db, body.email, body.password, name=body.name)
    token = await auth_provider.create_session(db, user, request)
    _set_session_cookie(response, token)

    logger.info("Registered user %s", user.id)
    return user


@router.post("/login", response_model=UserOut)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    auth_provider = get_auth_provider()
    user = await auth_provider.authenticate(db, body.email, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = await auth_provider.create_session(db, user, request)
    _set_session_cookie(response, token)
    return user


@router.post("/logout")
async def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    """Revoke the session and clear the cookie."""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        await get_auth_provider().revoke_session(db, token)
    response.delete_cookie(settings.session_cookie_name)
    return {"success": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user
