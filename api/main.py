"""
api/main.py -- FastAPI application entry point for MoveMaster.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware  -- rejects unexpected Host headers
  2. CORSMiddleware         -- CORS headers for allowed browser origins
  3. log_requests           -- method, path, status, latency for every request
  4. SessionMiddleware      -- authlib keeps OAuth state in the session
  5. SlowAPIMiddleware      -- per-route rate limits from api.limiter
  6. enforce_access_policy  -- auth.policy decision: 401 / login redirect / 403

Lifespan opens the user and move stores, bootstraps the optional admin
account, and closes both stores on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, MeResponse
from api.routes.auth import LOGIN_PATH
from api.routes.auth import router as auth_router
from api.routes.moves import router as moves_router
from api.routes.oauth import router as oauth_router
from api.routes.secure import router as secure_router
from auth.dependencies import get_current_user, try_get_current_user
from auth.models import Provider, Role, User
from auth.oauth import oauth as oauth_client
from auth.passwords import hash_password
from auth.policy import DEFAULT_POLICY, Decision
from auth.store import UserStore
from core.config import get_settings
from moves.store import MoveStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("movemaster.api")

_settings = get_settings()

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Admin bootstrap
# ---------------------------------------------------------------------------


def bootstrap_admin(user_store: UserStore, email: str, password: str) -> bool:
    """Create a local ROLE_ADMIN account if email is not registered yet.

    Returns True when an account was created. Registration never grants
    ROLE_ADMIN, so this is the only way an admin comes into existence.
    """
    if not email or not password:
        return False
    if user_store.get_by_email(email) is not None:
        return False
    admin = User(
        email=email,
        hashed_password=hash_password(password),
        provider=Provider.LOCAL,
        roles=frozenset({Role.USER, Role.ADMIN}),
    )
    try:
        user_store.create_user(admin)
    except IntegrityError:
        # Another worker process bootstrapped the same account.
        return False
    logger.info("Bootstrap admin account created")
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores on startup, close them on shutdown."""
    logger.info("MoveMaster API starting up")
    app.state.user_store = UserStore()
    app.state.moves = MoveStore()
    app.state.oauth = oauth_client
    bootstrap_admin(app.state.user_store, _settings.admin_email, _settings.admin_password)
    logger.info("Auth initialized (users=%d)", app.state.user_store.count_users())

    yield

    app.state.moves.close()
    app.state.user_store.close()
    logger.info("MoveMaster API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="MoveMaster API",
    description="Accounts, role-based access and moves for MoveMaster.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette inserts each added middleware outside the previous ones, so the
# registration order below is innermost first: the access policy sits right
# in front of the routes, TrustedHost and CORS on the outside (CORS preflight
# requests are answered before the policy could reject them).
# ---------------------------------------------------------------------------


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "")


@app.middleware("http")
async def enforce_access_policy(request: Request, call_next):
    """Apply auth.policy.DEFAULT_POLICY before any route handler runs.

    Public paths skip identity resolution entirely. Otherwise the caller's
    identity is resolved (cookie, Bearer or Basic) and the decision maps to:
      AUTHENTICATION_REQUIRED -> browsers: 302 to the login page;
                                 others:   401 with a Basic challenge
      ACCESS_DENIED           -> 403
    """
    path = request.url.path
    if DEFAULT_POLICY.is_public(path):
        return await call_next(request)

    user = await run_in_threadpool(try_get_current_user, request)
    decision = DEFAULT_POLICY.evaluate(path, user)

    if decision is Decision.AUTHENTICATION_REQUIRED:
        if _wants_html(request):
            target = f"{path}?{request.url.query}" if request.url.query else path
            return RedirectResponse(f"{LOGIN_PATH}?next={quote(target, safe='/')}", status_code=302)
        return JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="unauthorized", message="Authentication required.")
            ).model_dump(),
            headers={"WWW-Authenticate": 'Basic realm="movemaster"'},
        )
    if decision is Decision.ACCESS_DENIED:
        logger.info("Access denied to %s for user id=%d", path, user.id)
        return JSONResponse(
            status_code=403,
            content=ErrorResponse(error=ErrorDetail(code="forbidden", message="Access denied.")).model_dump(),
        )
    return await call_next(request)


app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware looks for app.state.limiter by convention.
app.state.limiter = limiter

# authlib stores the OAuth state value in the session between the
# authorization redirect and the callback.
app.add_middleware(SessionMiddleware, secret_key=_settings.secret_key, https_only=_settings.secure_cookies)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(secure_router, prefix="/api", tags=["Secure"])
app.include_router(moves_router, prefix="/api", tags=["Moves"])
app.include_router(oauth_router, tags=["OAuth2"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for HTTP exceptions.

    Handlers raise HTTPException with a dict detail ({"code", "message"});
    that dict becomes the error field as-is. Any headers on the exception
    (e.g. WWW-Authenticate) are carried over.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Public greeting and authenticated landing page
# ---------------------------------------------------------------------------


@app.get("/api/hello", response_class=PlainTextResponse, tags=["Health"])
async def hello() -> str:
    """Unauthenticated liveness check."""
    return "Hello from MoveMaster!"


@app.get("/", response_model=MeResponse, tags=["Auth"])
def index(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Landing page after OAuth login: who am I."""
    return MeResponse.from_user(current_user)
