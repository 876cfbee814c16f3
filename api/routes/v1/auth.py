"""
api/routes/v1/auth.py -- Account and token endpoints.

Routes:
  POST /api/v1/auth/signup   -- create a collaborator account, returns a token (public)
  POST /api/v1/auth/login    -- email + password -> bearer token (public)
  GET  /api/v1/auth/me       -- identity decoded from the caller's token

Security:
  signup and login are rate-limited per client address (Settings).
  authenticate_user() provides timing equalization -- use it, never inline.
  Wrong email and wrong password produce the same 401 so the response does
  not reveal which accounts exist.
  Cache-Control: no-store on every response that carries a token.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    Envelope,
    LoginRequest,
    LoginResponse,
    MeResponse,
    SignupRequest,
    SignupResponse,
    UserResponse,
)
from auth.dependencies import get_current_claim
from auth.models import IdentityClaim, Role, User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password
from core.config import get_settings
from core.errors import Conflict, Unauthorized

logger = logging.getLogger("repohub.api.auth")

# Auth policy:
# - POST /api/v1/auth/signup:  public
# - POST /api/v1/auth/login:   public
# - GET  /api/v1/auth/me:      any valid token (get_current_claim)
router = APIRouter()


def _token_response(model: type[LoginResponse], user: User) -> LoginResponse:
    expires_in = get_settings().token_expire_seconds
    token = create_access_token(user.id, user.role, email=user.email, expire_seconds=expires_in)
    return model(access_token=token, expires_in=expires_in, user=UserResponse.from_domain(user))


@router.post("/auth/signup", response_model=Envelope[SignupResponse])
@limiter.limit(lambda: get_settings().signup_rate_limit)
def signup(request: Request, response: Response, body: SignupRequest) -> Envelope[SignupResponse]:
    """Register a new account and sign it in. Self-registered accounts get the collaborator role."""
    response.headers["Cache-Control"] = "no-store"
    user_store: UserStore = request.app.state.user_store
    if user_store.get_by_email(body.email) is not None:
        raise Conflict("An account with this email already exists")
    user = user_store.create_user(
        User(
            email=body.email,
            display_name=body.display_name,
            role=Role.collaborator,
            hashed_password=hash_password(body.password),
        )
    )
    logger.info("User %s signed up", user.id)
    return Envelope(data=_token_response(SignupResponse, user))


@router.post("/auth/login", response_model=Envelope[LoginResponse])
@limiter.limit(lambda: get_settings().login_rate_limit)
def login(request: Request, response: Response, body: LoginRequest) -> Envelope[LoginResponse]:
    """Exchange email and password for a signed bearer token."""
    user_store: UserStore = request.app.state.user_store
    response.headers["Cache-Control"] = "no-store"
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        logger.info("Failed login attempt from %s", request.client.host if request.client else "unknown")
        raise Unauthorized("Invalid email or password.")

    return Envelope(data=_token_response(LoginResponse, user))


@router.get("/auth/me", response_model=Envelope[MeResponse])
def me(claim: IdentityClaim = Depends(get_current_claim)) -> Envelope[MeResponse]:
    """Return the identity carried by the caller's token."""
    return Envelope(data=MeResponse(subject_id=claim.subject_id, role=claim.role, email=claim.email))
