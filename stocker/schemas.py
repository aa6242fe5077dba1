"""
Pydantic schemas for API responses.
Defines the HAL-style contract between the API and consumers.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standardized error payload for all API and validation errors."""

    error: str
    details: str
    status: int

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "unauthorized",
                "details": "Full authentication is required to access this resource",
                "status": 401,
            }
        }
    )


class Link(BaseModel):
    href: str


class CandlestickResponse(BaseModel):
    """A single candlestick with its self link."""

    id: int
    open: float
    close: float
    high: float
    low: float
    volume: int
    timestamp: int
    symbol: str
    links: Dict[str, Link] = Field(default_factory=dict, alias="_links")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "open": 100.0,
                "close": 102.0,
                "high": 113.0,
                "low": 97.0,
                "volume": 5000,
                "timestamp": 1753038000,
                "symbol": "BOL.ST",
                "_links": {"self": {"href": "http://localhost:8080/api/candlesticks/1"}},
            }
        },
    )


class CandlestickEmbedded(BaseModel):
    candlesticks: List[CandlestickResponse]


class PageMetadata(BaseModel):
    size: int
    total_elements: int = Field(alias="totalElements")
    total_pages: int = Field(alias="totalPages")
    number: int

    model_config = ConfigDict(populate_by_name=True)


class CandlestickCollectionResponse(BaseModel):
    """Collection of candlesticks. `page` is present only for paginated listings."""

    embedded: CandlestickEmbedded = Field(alias="_embedded")
    links: Dict[str, Link] = Field(alias="_links")
    page: Optional[PageMetadata] = None

    model_config = ConfigDict(populate_by_name=True)


class LinksResponse(BaseModel):
    """Index resource made of links only."""

    links: Dict[str, Link] = Field(alias="_links")

    model_config = ConfigDict(populate_by_name=True)


class DatabaseHealth(BaseModel):
    healthy: bool
    candlestick_count: Optional[int]


class RequestStatsResponse(BaseModel):
    total: int
    unauthorized: int
    method_not_allowed: int
    not_found: int
    server_errors: int
    average_ms: float
    max_ms: float


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str
    service: str
    database: DatabaseHealth
    uptime_seconds: float
    process_started_at: datetime
    requests: RequestStatsResponse
    timestamp: datetime
