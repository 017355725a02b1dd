"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Bearer tokens travel as "Authorization: Bearer <token>". The header is
parsed by extract_bearer(); the token is checked by AuthService.validate_token(),
which also re-reads the account so a deleted account is rejected even while
its token signature is still valid.

Failures are raised as AuthError subclasses (TokenInvalid, TokenExpired,
AccountNotFound); the exception handler in api/main.py turns them into the
JSON error envelope with the matching status code.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. Nothing else in auth/ does.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import TokenInvalid
from auth.models import Account
from auth.profiles import ProfileService
from auth.service import AuthService
from auth.tokens import extract_bearer


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profile_service


def get_current_account(request: Request) -> Account:
    """Require a valid bearer token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: Account = Depends(get_current_account)): ...
    """
    token = extract_bearer(request.headers.get("Authorization"))
    if not token:
        raise TokenInvalid("Missing or malformed Authorization header.")
    return get_auth_service(request).validate_token(token)
