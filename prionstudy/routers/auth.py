import logging
from fastapi import APIRouter, Depends, Request
from prionstudy.auth import UserPrincipal, get_current_user, login_session, logout_session
from prionstudy.exceptions import AuthError, ValidationError
from prionstudy.rate_limit import panel_limit
from prionstudy.schemas.auth import LoginRequest, LoginResponse, UserResponse
from prionstudy.services.csv_service import authenticate_user
from prionstudy.services.i18n_service import translate
from prionstudy.services.record_store import record_store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
@panel_limit
async def login(request: Request, body: LoginRequest):
    if not body.username or not body.password:
        raise ValidationError("Username and password required")

    record = authenticate_user(record_store.credentials, body.username, body.password)
    if record is None:
        logger.info("Failed login for %s", body.username)
        raise AuthError(translate(body.lang or "en", "login.error"))

    user = UserPrincipal.from_record(record)
    login_session(request, user)
    logger.info("User %s logged in", user.username)
    return LoginResponse(user=UserResponse(**user.as_record()))


@router.post("/logout")
async def logout(request: Request):
    logout_session(request)
    return {"success": True}


@router.get("/user")
async def current_user(user: UserPrincipal = Depends(get_current_user)):
    return {"user": user.as_record()}
