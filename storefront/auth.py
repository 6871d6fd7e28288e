import logging
from typing import Iterable, Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from passlib.context import CryptContext
from passlib.exc import UnknownHashError

from . import cookies
from .config import ADMIN_USERNAMES
from .errors import AuthRequired, Forbidden
from .oauth import GoogleOAuthClient, get_oauth
from .schemas import LoginForm, RegisterForm, Role, UserCreate, UserOut
from .store import Store, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

# 🔑 Argon2 for new hashes; bcrypt stays in the context so older hashes still verify.
pwd_context = CryptContext(schemes=["argon2", "bcrypt"], deprecated="auto")


# 🔐 Утилиты
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        # OAuth-only account
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (UnknownHashError, ValueError):
        # Hash stored is not recognizable by our pwd_context; treat as authentication failure.
        return False


def role_for(username: str) -> Role:
    return Role.ADMIN if username.lower() in ADMIN_USERNAMES else Role.USER


def has_role(user: UserOut, roles: Iterable[Role]) -> bool:
    """Empty ``roles`` means any authenticated user."""
    allowed = frozenset(roles)
    return not allowed or user.role in allowed


def safe_return_url(url: Optional[str]) -> str:
    """Local path only; browsers read a backslash as a slash, so "/\\host" is off-site too."""
    if not url or not url.startswith("/"):
        return "/"
    parts = urlsplit(url.replace("\\", "/"))
    if parts.scheme or parts.netloc:
        return "/"
    return url


def _request_path(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


# ✅ Gate
async def current_user(request: Request, store: Store = Depends(get_store)) -> Optional[UserOut]:
    username = cookies.read_username(request)
    if username is None:
        return None
    return await store.get_user(username)


def require_roles(*roles: Role):
    async def dependency(request: Request, user: Optional[UserOut] = Depends(current_user)) -> UserOut:
        if user is None:
            raise AuthRequired(_request_path(request))
        if not has_role(user, roles):
            raise Forbidden(_request_path(request))
        return user
    return dependency


# ✅ Регистрация пользователя
@router.get("/register")
async def register_page():
    return {"message": None}


@router.post("/register")
async def register_user(payload: RegisterForm, store: Store = Depends(get_store)):
    if await store.get_user(payload.username) is not None:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"message": "User already exists"})

    await store.create_user(UserCreate(
        username=payload.username,
        display_name=payload.display_name,
        password_hash=get_password_hash(payload.password),
        role=role_for(payload.username),
    ))
    logger.info("registered user %s", payload.username)
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)


# ✅ Логин
@router.get("/login")
async def login_page(returnUrl: Optional[str] = None, oauth: GoogleOAuthClient = Depends(get_oauth)):
    return {"google": oauth.authorization_url(), "returnUrl": returnUrl, "message": None}


@router.post("/login")
async def login_user(
    payload: LoginForm,
    returnUrl: Optional[str] = None,
    store: Store = Depends(get_store),
    oauth: GoogleOAuthClient = Depends(get_oauth),
):
    user = await store.get_user(payload.username)
    if user is None or not verify_password(payload.password, user.password_hash):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"message": "Wrong username or password", "google": oauth.authorization_url()},
        )

    response = RedirectResponse(safe_return_url(returnUrl), status_code=status.HTTP_303_SEE_OTHER)
    cookies.set_username(response, user.username)
    return response


@router.get("/logout")
async def logout(user: UserOut = Depends(require_roles())):
    response = RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)
    cookies.clear(response, cookies.USER_COOKIE)
    return response


# ✅ Callback от Google
@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = None,
    store: Store = Depends(get_store),
    oauth: GoogleOAuthClient = Depends(get_oauth),
):
    profile = await oauth.fetch_profile(code)
    username = str(profile.email)

    if await store.get_user(username) is None:
        await store.create_user(UserCreate(
            username=username,
            display_name=profile.name or username,
            password_hash=None,
            role=role_for(username),
        ))
        logger.info("provisioned user %s from Google login", username)

    response = RedirectResponse("/", status_code=status.HTTP_303_SEE_OTHER)
    cookies.set_username(response, username)
    return response
