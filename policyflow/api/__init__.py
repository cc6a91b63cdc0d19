"""API module for the quote-to-policy service."""

from policyflow.api.routes import router
from policyflow.api.schemas import (
    HealthResponse,
    PolicyListResponse,
    ProblemResponse,
    ProductListResponse,
)

__all__ = [
    "router",
    "HealthResponse",
    "PolicyListResponse",
    "ProblemResponse",
    "ProductListResponse",
]
