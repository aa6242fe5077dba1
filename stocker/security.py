"""
API key authentication and authorization for the HTTP pipeline.

The authenticator only marks a request as authenticated by attaching an
ApiKeyPrincipal to the request state. Rejecting unauthenticated requests is
the job of the authorization stage that runs after it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

API_KEY_SCHEME = "ApiKeyAuth"
API_USER_ROLE = "ROLE_API_USER"
PUBLIC_PATH_PREFIXES = ("/swagger-ui", "/v3/api-docs", "/api-docs")
READ_ONLY_COLLECTION = "/api/candlesticks"
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
UNAUTHORIZED_DETAIL = "Full authentication is required to access this resource"


@dataclass(frozen=True)
class ApiKeyPrincipal:
    """Authenticated API client. Lives only for the duration of one request."""

    api_key: str = field(repr=False)
    role: str = API_USER_ROLE
    principal: str = "api-client"

    @property
    def name(self) -> str:
        return f"{self.principal}-{self.api_key[:8]}"

    def has_role(self, role: str) -> bool:
        return role == self.role


def error_response(error: str, details: str, status_code: int, headers: Optional[dict] = None) -> JSONResponse:
    payload = {"error": error, "details": details, "status": status_code}
    return JSONResponse(payload, status_code=status_code, headers=headers)


class ApiKeyAuthenticator:
    """Checks a header value against the configured set of valid keys."""

    def __init__(
        self,
        valid_keys: Iterable[str],
        header_name: str,
        public_path_prefixes: Iterable[str] = PUBLIC_PATH_PREFIXES,
    ):
        self.valid_keys = frozenset(valid_keys)
        self.header_name = header_name
        self.public_path_prefixes = tuple(public_path_prefixes)

    def is_public(self, path: str) -> bool:
        return path.startswith(self.public_path_prefixes)

    def authenticate(self, method: str, path: str, api_key: Optional[str]) -> Optional[ApiKeyPrincipal]:
        """Return a principal for a valid key, None otherwise. Never raises."""
        if self.is_public(path) or api_key is None:
            return None

        if api_key in self.valid_keys:
            principal = ApiKeyPrincipal(api_key=api_key)
            logger.info(
                f"API key authenticated for request to: {method} {path}",
                extra={"client": principal.name},
            )
            return principal

        logger.warning(f"Invalid API key attempted for request to: {method} {path}")
        return None


def read_only_guard(request: Request) -> Optional[JSONResponse]:
    """Reject write verbs against the read-only candlestick collection."""
    path = request.url.path
    targets_collection = path == READ_ONLY_COLLECTION or path.startswith(READ_ONLY_COLLECTION + "/")
    if targets_collection and request.method in WRITE_METHODS:
        logger.info(f"Rejected {request.method} {path}: candlesticks are read-only")
        return error_response(
            "method_not_allowed",
            f"Request method '{request.method}' is not supported",
            405,
            headers={"Allow": "GET"},
        )
    return None


def authorize(request: Request, authenticator: ApiKeyAuthenticator) -> Optional[JSONResponse]:
    """Return a 401 response when a protected path was reached without a principal."""
    if authenticator.is_public(request.url.path):
        return None
    if getattr(request.state, "principal", None) is not None:
        return None

    logger.warning(f"Unauthenticated request rejected: {request.method} {request.url.path}")
    return error_response(
        "unauthorized",
        UNAUTHORIZED_DETAIL,
        401,
        headers={"WWW-Authenticate": f'ApiKey header="{authenticator.header_name}"'},
    )


def current_principal(request: Request) -> ApiKeyPrincipal:
    """Dependency handing the request's principal to route handlers."""
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)
    return principal


def install_security(app, authenticator: ApiKeyAuthenticator):
    """
    Register the security stages on the app.

    Starlette runs the most recently added middleware first, so the stages
    are added innermost first: authorization, then authentication, then the
    read-only guard.
    """

    @app.middleware("http")
    async def api_key_authorization(request: Request, call_next):
        rejection = authorize(request, authenticator)
        if rejection is not None:
            return rejection
        return await call_next(request)

    @app.middleware("http")
    async def api_key_authentication(request: Request, call_next):
        request.state.principal = authenticator.authenticate(
            request.method,
            request.url.path,
            request.headers.get(authenticator.header_name),
        )
        try:
            return await call_next(request)
        finally:
            del request.state.principal

    @app.middleware("http")
    async def read_only_collection(request: Request, call_next):
        rejection = read_only_guard(request)
        if rejection is not None:
            return rejection
        return await call_next(request)
