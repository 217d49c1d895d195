"""
api/routes/v1/auth.py -- Authentication, session and password-reset endpoints.

Routes:
  POST /api/v1/auth/register                 -- create account; sets JWT cookie
  POST /api/v1/auth/login                    -- password login; sets JWT cookie
  POST /api/v1/auth/logout                   -- revoke session, clear cookie
  GET  /api/v1/auth/me                       -- current user + permissions (requires auth)
  POST /api/v1/auth/password-strength        -- policy check without storing anything
  GET  /api/v1/auth/password/generate        -- policy-compliant random password
  POST /api/v1/auth/forgot-password          -- request a reset link (generic answer)
  GET  /api/v1/auth/reset-password/{token}   -- is this reset token live?
  POST /api/v1/auth/reset-password           -- consume token, set new password

Security:
  [H2] POST /login, /register and /forgot-password are rate-limited per IP by
       slowapi, on top of the lockout and reset per-origin rules.
  [C1] Login goes through AccountLockoutEngine.authenticate(), which equalizes
       timing for unknown identities -- never inline lookup + verify here.
  [M5] Cache-Control: no-store on every response that carries a credential.
  [R1] forgot-password answers identically for known and unknown emails; the
       reset service pads every branch to the same minimum duration.

Handlers that hash or verify passwords are plain `def` so FastAPI runs them in
its threadpool; Argon2 must not block the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    ForgotPasswordRequest,
    GeneratedPasswordResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PasswordCheckRequest,
    PasswordStrengthResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenValidResponse,
    UserResponse,
)
from auth.dependencies import get_current_user, get_session_claims
from auth.email import dispatch
from auth.errors import ForbiddenAccess, WeakPassword
from auth.models import User
from core.config import get_settings

# Auth policy:
# - POST /auth/register, /login, /forgot-password, /reset-password: public, CSRF-exempt
# - POST /auth/password-strength:  public, CSRF-exempt (stores nothing)
# - GET  /auth/password/generate, /reset-password/{token}: public
# - POST /auth/logout:             CSRF-protected; no-op without a session
# - GET  /auth/me:                 requires auth (get_current_user)
router = APIRouter()


def _login_limit() -> str:
    return get_settings().login_rate_limit


def _session_response(request: Request, user: User, status_code: int = 200) -> JSONResponse:
    """Issue a session token for user and return it in body and cookie."""
    tokens = request.app.state.tokens
    token = tokens.issue(user)
    resp = JSONResponse(
        status_code=status_code,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=tokens.expire_seconds,
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    tokens.set_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=LoginResponse, status_code=201)
@limiter.limit(_login_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a user account and start a session for it.

    The password policy runs before anything touches the store, and a
    rejection lists every violated rule (WeakPassword -> 400).
    """
    state = request.app.state
    if not state.settings.self_registration_enabled:
        raise ForbiddenAccess("Self-registration is disabled.")

    policy = state.password_policy
    result = policy.validate(body.password)
    if not result.is_valid:
        raise WeakPassword(result.errors, policy.score(body.password), policy.classify(body.password))

    user_store = state.user_store
    conflict = HTTPException(
        status_code=409,
        detail={"code": "conflict", "message": "That username or email is already registered."},
    )
    if user_store.get_by_username(body.username) or user_store.get_by_email(body.email):
        raise conflict

    new_user = User(
        username=body.username,
        email=body.email,
        hashed_password=state.hasher.hash(body.password),
        bio=body.bio,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same name/email.
        raise conflict from exc

    created = user_store.get_by_id(user_id)
    if created is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return _session_response(request, created, status_code=201)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_login_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username or email plus password; set JWT cookie.

    Every failure is raised by the lockout engine as an AuthError and rendered
    by the handler in api/main.py. Wrong password and unknown identity produce
    the same InvalidCredentials response.
    """
    user = request.app.state.lockout.authenticate(
        body.identifier,
        body.password,
        origin=get_remote_address(request),
    )
    return _session_response(request, user)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the current session token, drop its CSRF tokens and clear the cookie."""
    state = request.app.state
    claims = get_session_claims(request)
    if claims is not None:
        state.tokens.revoke(claims)
        state.csrf.clear_user(claims.user_id)
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    state.tokens.clear_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the authenticated user and the permissions their role grants."""
    perms = request.app.state.permissions.permissions_for(current_user.role)
    return MeResponse(
        user=UserResponse.from_user(current_user),
        permissions=sorted(str(p) for p in perms),
    )


# ---------------------------------------------------------------------------
# Password policy helpers
# ---------------------------------------------------------------------------


@router.post("/auth/password-strength", response_model=PasswordStrengthResponse)
async def password_strength(request: Request, body: PasswordCheckRequest) -> PasswordStrengthResponse:
    """Evaluate a candidate password without storing it."""
    policy = request.app.state.password_policy
    result = policy.validate(body.password)
    return PasswordStrengthResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        strength=policy.score(body.password),
        strength_label=policy.classify(body.password),
    )


@router.get("/auth/password/generate", response_model=GeneratedPasswordResponse)
async def generate_password(request: Request) -> JSONResponse:
    policy = request.app.state.password_policy
    password = policy.generate()
    resp = JSONResponse(
        content=GeneratedPasswordResponse(
            password=password,
            strength=policy.score(password),
            strength_label=policy.classify(password),
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.limit(_login_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest, background_tasks: BackgroundTasks) -> MessageResponse:
    """Start a password reset. The answer never reveals whether the email exists [R1].

    The reset email is sent after the response, so mail latency and mail
    failures are invisible to the caller.
    """
    state = request.app.state
    outcome = state.reset.request_reset(body.email, origin=get_remote_address(request))
    if outcome.email is not None:
        background_tasks.add_task(dispatch, state.email_sender, outcome.email)
    return MessageResponse(message=outcome.message)


@router.get("/auth/reset-password/{token}", response_model=TokenValidResponse)
def check_reset_token(request: Request, token: str) -> TokenValidResponse:
    """Report whether a reset token is live. Raises TokenExpiredOrInvalid (400) if not."""
    request.app.state.reset.validate(token)
    return TokenValidResponse(valid=True)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest, background_tasks: BackgroundTasks) -> MessageResponse:
    """Consume a reset token and set a new password.

    Also clears any lock, zeroes the failed-attempt counter and reactivates an
    inactive account: proving control of the mailbox is the recovery path.
    """
    state = request.app.state
    _user, confirmation = state.reset.consume(body.token, body.password)
    background_tasks.add_task(dispatch, state.email_sender, confirmation)
    return MessageResponse(message="Your password has been reset. You can now log in.")
