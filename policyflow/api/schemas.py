"""
Pydantic schemas for API request/response validation.
Entity responses reuse the pipeline models directly.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from policyflow.pipeline.models import Policy, Product, UnderwritingCase


class ProductListResponse(BaseModel):
    items: List[Product] = Field(default_factory=list)


class CaseListResponse(BaseModel):
    """Referred underwriting cases awaiting a manual decision."""
    items: List[UnderwritingCase] = Field(default_factory=list)
    limit: int


class PolicyListResponse(BaseModel):
    items: List[Policy] = Field(default_factory=list)
    total: int
    limit: int
    offset: int


class ExpireOffersResponse(BaseModel):
    expired: int


class WorkerStatus(BaseModel):
    name: str
    running: bool
    interval: float
    ticks: int
    errors: int
    last_run: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    backend: str
    database_connected: bool
    workers: List[WorkerStatus] = Field(default_factory=list)
    timestamp: datetime


class ProblemResponse(BaseModel):
    """Error body returned for every failed request."""
    type: str = "about:blank"
    title: str
    status: int
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "type": "about:blank",
                "title": "Conflict",
                "status": 409,
                "detail": "offer is not in pending status",
            }
        }
