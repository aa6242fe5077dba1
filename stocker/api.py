"""
FastAPI REST API endpoints.
Exposes the candlestick table read-only, behind API key authentication.
"""
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
import logging
from time import perf_counter
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_redoc_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from stocker.config import Settings, settings as default_settings
from stocker.database import build_engine, build_session_factory, get_db, init_db
from stocker.models import Candlestick
from stocker.observability import RequestStatsRecorder
from stocker.schemas import (
    CandlestickCollectionResponse,
    CandlestickEmbedded,
    CandlestickResponse,
    ErrorResponse,
    HealthResponse,
    Link,
    LinksResponse,
    PageMetadata,
)
from stocker.security import (
    API_KEY_SCHEME,
    ApiKeyAuthenticator,
    ApiKeyPrincipal,
    current_principal,
    install_security,
)
from stocker.services.candlestick_service import CandlestickQueryService, InvalidSortError

logger = logging.getLogger(__name__)

OPENAPI_URL = "/v3/api-docs"
SWAGGER_UI_URL = "/swagger-ui/index.html"
REDOC_URL = "/api-docs/redoc"
COLLECTION_PATH = "/api/candlesticks"

ERROR_RESPONSES = {
    401: {
        "model": ErrorResponse,
        "description": "Missing or invalid API key",
        "content": {"application/json": {"example": {"error": "unauthorized", "details": "Full authentication is required to access this resource", "status": 401}}},
    },
    404: {
        "model": ErrorResponse,
        "description": "Resource not found",
        "content": {"application/json": {"example": {"error": "request_failed", "details": "Candlestick 42 not found", "status": 404}}},
    },
    422: {
        "model": ErrorResponse,
        "description": "Validation error",
        "content": {"application/json": {"example": {"error": "validation_error", "details": "query.page: Input should be greater than or equal to 0", "status": 422}}},
    },
    500: {
        "model": ErrorResponse,
        "description": "Internal server error",
        "content": {"application/json": {"example": {"error": "internal_server_error", "details": "Unexpected server error", "status": 500}}},
    },
}

router = APIRouter()


def get_query_service(db: Session = Depends(get_db)) -> CandlestickQueryService:
    return CandlestickQueryService(db)


def _href(request: Request, path: str, **params) -> Link:
    base = str(request.base_url).rstrip("/")
    query = urlencode([(k, v) for k, v in params.items() if v is not None], doseq=True)
    return Link(href=f"{base}{path}?{query}" if query else f"{base}{path}")


def _to_resource(request: Request, candlestick: Candlestick) -> CandlestickResponse:
    item = CandlestickResponse.model_validate(candlestick)
    item.links = {"self": _href(request, f"{COLLECTION_PATH}/{candlestick.id}")}
    return item


def _flatten_validation_errors(exc: RequestValidationError) -> str:
    """Return a concise, stable validation message string."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(i) for i in err.get("loc", []) if i != "body")
        msg = err.get("msg", "Invalid value")
        parts.append(f"{loc}: {msg}")
    return "; ".join(parts)


@router.get("/api", response_model=LinksResponse, responses=ERROR_RESPONSES, summary="API index", description="Returns links to the exported collections.")
def api_index(request: Request, principal: ApiKeyPrincipal = Depends(current_principal)):
    return LinksResponse(links={
        "candlesticks": _href(request, COLLECTION_PATH),
        "openapi": _href(request, OPENAPI_URL),
    })


@router.get(COLLECTION_PATH, response_model=CandlestickCollectionResponse, responses=ERROR_RESPONSES, summary="List candlesticks", description="Returns a page of candlesticks, in insertion order unless sorted.")
def list_candlesticks(
    request: Request,
    page: int = Query(0, ge=0, description="Zero-based page index", examples=[0]),
    size: Optional[int] = Query(None, description="Page size; values below 1 fall back to the default, larger ones are capped", examples=[20]),
    sort: Optional[List[str]] = Query(None, description="Sort expression `field[,asc|desc]`, repeatable", examples=[["timestamp,desc"]]),
    service: CandlestickQueryService = Depends(get_query_service),
    principal: ApiKeyPrincipal = Depends(current_principal),
):
    app_settings: Settings = request.app.state.settings
    page_size = min(size if size and size > 0 else app_settings.default_page_size, app_settings.max_page_size)

    try:
        result = service.list_all(page=page, size=page_size, sort=sort)
    except InvalidSortError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    links = {
        "self": _href(request, COLLECTION_PATH, page=page, size=page_size, sort=sort),
        "first": _href(request, COLLECTION_PATH, page=0, size=page_size, sort=sort),
        "last": _href(request, COLLECTION_PATH, page=max(result.total_pages - 1, 0), size=page_size, sort=sort),
        "search": _href(request, f"{COLLECTION_PATH}/search"),
    }
    if result.has_previous:
        links["prev"] = _href(request, COLLECTION_PATH, page=page - 1, size=page_size, sort=sort)
    if result.has_next:
        links["next"] = _href(request, COLLECTION_PATH, page=page + 1, size=page_size, sort=sort)

    return CandlestickCollectionResponse(
        embedded=CandlestickEmbedded(candlesticks=[_to_resource(request, c) for c in result.items]),
        links=links,
        page=PageMetadata(
            size=result.size,
            total_elements=result.total_elements,
            total_pages=result.total_pages,
            number=result.page,
        ),
    )


@router.get(f"{COLLECTION_PATH}/search", response_model=LinksResponse, responses=ERROR_RESPONSES, summary="Search resources", description="Lists the available candlestick searches.")
def search_index(request: Request, principal: ApiKeyPrincipal = Depends(current_principal)):
    return LinksResponse(links={
        "by-symbol": _href(request, f"{COLLECTION_PATH}/search/by-symbol"),
        "self": _href(request, f"{COLLECTION_PATH}/search"),
    })


@router.get(f"{COLLECTION_PATH}/search/by-symbol", response_model=CandlestickCollectionResponse, response_model_exclude_none=True, responses=ERROR_RESPONSES, summary="Candlesticks by symbol", description="Returns all candlesticks whose symbol matches exactly (case-sensitive).")
def find_by_symbol(
    request: Request,
    symbol: str = Query(..., description="Ticker symbol (e.g., BOL.ST)", examples=["BOL.ST"]),
    service: CandlestickQueryService = Depends(get_query_service),
    principal: ApiKeyPrincipal = Depends(current_principal),
):
    candlesticks = service.find_by_symbol(symbol)
    return CandlestickCollectionResponse(
        embedded=CandlestickEmbedded(candlesticks=[_to_resource(request, c) for c in candlesticks]),
        links={"self": _href(request, f"{COLLECTION_PATH}/search/by-symbol", symbol=symbol)},
    )


@router.get(f"{COLLECTION_PATH}/{{candlestick_id}}", response_model=CandlestickResponse, responses=ERROR_RESPONSES, summary="Candlestick by id", description="Returns a single candlestick.")
def get_candlestick(
    candlestick_id: int,
    request: Request,
    service: CandlestickQueryService = Depends(get_query_service),
    principal: ApiKeyPrincipal = Depends(current_principal),
):
    candlestick = service.get_by_id(candlestick_id)
    if candlestick is None:
        raise HTTPException(status_code=404, detail=f"Candlestick {candlestick_id} not found")
    return _to_resource(request, candlestick)


@router.get("/health", response_model=HealthResponse, responses=ERROR_RESPONSES, summary="Service health", description="Checks database connectivity and returns request outcome and latency counters.")
def health_check(
    request: Request,
    db: Session = Depends(get_db),
    principal: ApiKeyPrincipal = Depends(current_principal),
):
    request_stats: RequestStatsRecorder = request.app.state.request_stats
    db_healthy = True
    candlestick_count = None
    try:
        db.execute(text("SELECT 1"))
        candlestick_count = CandlestickQueryService(db).count()
    except Exception as exc:
        db_healthy = False
        logger.error(f"Health check DB query failed: {exc}")

    stats = request_stats.snapshot()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "service": "stocker-api",
        "database": {"healthy": db_healthy, "candlestick_count": candlestick_count},
        "uptime_seconds": round(request_stats.uptime_seconds(), 3),
        "process_started_at": request_stats.started_at,
        "requests": asdict(stats),
        "timestamp": datetime.now(timezone.utc),
    }


def _install_openapi(app: FastAPI, header_name: str):
    """Declare the API key scheme so Swagger UI can send the header."""

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        schema.setdefault("components", {})["securitySchemes"] = {
            API_KEY_SCHEME: {"type": "apiKey", "in": "header", "name": header_name},
        }
        schema["security"] = [{API_KEY_SCHEME: []}]
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi


def _install_exception_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException):
        details = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        payload = ErrorResponse(error="request_failed", details=details, status=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=payload.model_dump(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        payload = ErrorResponse(error="validation_error", details=_flatten_validation_errors(exc), status=422)
        return JSONResponse(status_code=422, content=payload.model_dump())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_: Request, exc: Exception):
        logger.error(f"Unhandled API exception: {exc}", exc_info=True)
        payload = ErrorResponse(error="internal_server_error", details="Unexpected server error", status=500)
        return JSONResponse(status_code=500, content=payload.model_dump())


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the application with its own engine, authenticator and metrics."""
    app_settings = app_settings or default_settings
    engine = build_engine(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app_settings.create_schema:
            init_db(engine)
        logger.info("Stocker API started")
        try:
            yield
        finally:
            engine.dispose()
            logger.info("Shutdown complete")

    app = FastAPI(
        title=app_settings.app_name,
        description=(
            "Read-only access to stock price candlesticks.\n\n"
            f"Every endpoint except the documentation requires the `{app_settings.api_key_header}` header. "
            "Errors use the standardized shape `{error, details, status}`."
        ),
        version=app_settings.app_version,
        openapi_url=OPENAPI_URL,
        docs_url=SWAGGER_UI_URL,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.request_stats = RequestStatsRecorder()

    @app.get(REDOC_URL, include_in_schema=False)
    async def redoc_html():
        return get_redoc_html(openapi_url=OPENAPI_URL, title=f"{app.title} - ReDoc", with_google_fonts=False)

    app.include_router(router)
    _install_openapi(app, app_settings.api_key_header)
    _install_exception_handlers(app)

    if not app_settings.valid_api_keys:
        logger.warning("No API keys configured; every protected request will be rejected")
    authenticator = ApiKeyAuthenticator(app_settings.valid_api_keys, header_name=app_settings.api_key_header)
    install_security(app, authenticator)

    @app.middleware("http")
    async def record_request_stats(request: Request, call_next):
        """Count every response, including those rejected by the security stages."""
        started = perf_counter()
        response = await call_next(request)
        app.state.request_stats.record(response.status_code, (perf_counter() - started) * 1000)
        return response

    return app
