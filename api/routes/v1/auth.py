"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register              -- create password account; 201 + token
  POST /api/v1/auth/login                 -- email/password login; token
  GET  /api/v1/auth/providers             -- list configured OAuth providers (public)
  GET  /api/v1/auth/{provider}            -- start OAuth flow; auth_url + state
  GET  /api/v1/auth/{provider}/callback   -- finish OAuth flow; token
  POST /api/v1/auth/validate              -- validate a bearer token (for other services)

Handlers are plain `def` so FastAPI runs them in its thread pool: bcrypt, the
database and the provider exchange are all blocking calls.

Errors are raised by the service as AuthError subclasses and rendered by the
handler in api/main.py -- no route builds an error response itself.

Security:
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query
from fastapi.responses import JSONResponse

from api.models import AuthResponse, OAuthProviderInfo, OAuthStartResponse, UserResponse, ValidateResponse
from auth.dependencies import get_auth_service
from auth.errors import ValidationFailed
from auth.models import AuthResult
from auth.service import AuthService
from auth.tokens import extract_bearer

# Auth policy: every route here is public. /validate authenticates the token
# it is given rather than the caller.
router = APIRouter()


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    payload: dict[str, Any] = Body(...),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create a password account and return a token for it."""
    return _token_response(service.register(payload), status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: dict[str, Any] = Body(...),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password return the same 401 invalid_credentials.
    """
    return _token_response(service.login(payload))


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
def list_providers(service: AuthService = Depends(get_auth_service)) -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers so the client knows which buttons to render."""
    return [OAuthProviderInfo(name=p.value, label=p.label) for p in service.enabled_providers()]


@router.get("/auth/{provider}", response_model=OAuthStartResponse)
def oauth_start(provider: str, service: AuthService = Depends(get_auth_service)) -> OAuthStartResponse:
    """Issue a state nonce and return the provider authorization URL."""
    auth_url, state = service.begin_oauth(provider)
    return OAuthStartResponse(auth_url=auth_url, state=state)


@router.get("/auth/{provider}/callback", response_model=AuthResponse)
def oauth_callback(
    provider: str,
    code: str = Query(default=""),
    state: str = Query(default=""),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Provider redirect target. State is checked before the code is exchanged."""
    return _token_response(service.oauth_callback(provider, code, state))


@router.post("/auth/validate", response_model=ValidateResponse)
def validate(
    authorization: str = Header(default=""),
    service: AuthService = Depends(get_auth_service),
) -> ValidateResponse:
    """Validate a token for another service and return the account it belongs to.

    Accepts "Bearer <token>" or a bare token in the Authorization header.
    """
    if not authorization.strip():
        raise ValidationFailed({"authorization": "Authorization header is required"})
    token = extract_bearer(authorization) or authorization.strip()
    account = service.validate_token(token)
    return ValidateResponse(user=UserResponse.from_account(account))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _token_response(result: AuthResult, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=AuthResponse.from_result(result).model_dump())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp
