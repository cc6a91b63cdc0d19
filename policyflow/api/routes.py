"""
API routes for the quote-to-policy service.

Workflow errors raised by the pipeline are rendered as problem JSON by the
exception handlers registered in ``policyflow.main``.
"""

from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, Header, Query, Request

from policyflow import __version__
from policyflow.api.schemas import (
    CaseListResponse,
    ExpireOffersResponse,
    HealthResponse,
    PolicyListResponse,
    ProblemResponse,
    ProductListResponse,
    WorkerStatus,
)
from policyflow.pipeline.models import (
    Application,
    ApplicationInput,
    ApplicationPatch,
    DecisionInput,
    Offer,
    Policy,
    PolicyFilter,
    PolicyStatus,
    Quote,
    QuoteInput,
    UnderwritingCase,
)
from policyflow.pipeline.orchestrator import InsurancePipeline
from policyflow.pipeline.underwriting import DEFAULT_DECIDER


router = APIRouter()
api = APIRouter(
    prefix="/api/v1",
    responses={
        400: {"model": ProblemResponse},
        404: {"model": ProblemResponse},
        409: {"model": ProblemResponse},
    },
)


def get_pipeline(request: Request) -> InsurancePipeline:
    return request.app.state.pipeline


@router.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check(request: Request):
    """
    Check the health status of the API, its database and the background workers.
    """
    repositories = request.app.state.repositories
    connected = repositories.ping()
    workers = [WorkerStatus(**worker.status) for worker in request.app.state.workers]

    return HealthResponse(
        status="healthy" if connected else "degraded",
        version=__version__,
        backend=repositories.backend,
        database_connected=connected,
        workers=workers,
        timestamp=datetime.now(timezone.utc),
    )


# ---------------------------------------------------------------------------
# Products and quotes
# ---------------------------------------------------------------------------

@api.get("/products", response_model=ProductListResponse, tags=["Products"])
def list_products(pipeline: InsurancePipeline = Depends(get_pipeline)):
    return ProductListResponse(items=pipeline.list_products())


@api.post(
    "/quotes",
    response_model=Quote,
    status_code=201,
    tags=["Quotes"],
    summary="Price a quote",
    description="Price monthly premium for a product, coverage amount and applicant profile. Quotes are valid for 24 hours."
)
def create_quote(body: QuoteInput, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.quotes.price(body)


@api.get("/quotes/{quote_id}", response_model=Quote, tags=["Quotes"])
def get_quote(quote_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.quotes.get(quote_id)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

@api.post("/applications", response_model=Application, status_code=201, tags=["Applications"])
def create_application(body: ApplicationInput, pipeline: InsurancePipeline = Depends(get_pipeline)):
    """Create a draft application from an unexpired quote."""
    return pipeline.applications.create(body)


@api.get("/applications/{application_id}", response_model=Application, tags=["Applications"])
def get_application(application_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.applications.get(application_id)


@api.patch("/applications/{application_id}", response_model=Application, tags=["Applications"])
def patch_application(
    application_id: str,
    body: ApplicationPatch,
    pipeline: InsurancePipeline = Depends(get_pipeline)
):
    return pipeline.applications.patch(application_id, body)


@api.post("/applications/{application_id}/submit", response_model=Application, tags=["Applications"])
def submit_application(application_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    """Submit a draft; the underwriting worker picks it up on its next tick."""
    return pipeline.applications.submit(application_id)


@api.get(
    "/applications/{application_id}/underwriting",
    response_model=UnderwritingCase,
    tags=["Underwriting"]
)
def get_application_case(application_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.underwriting.get_by_application_id(application_id)


@api.post("/applications/{application_id}/offers", response_model=Offer, tags=["Offers"])
def generate_offer(application_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    """Return the offer for an approved application, creating it if needed."""
    return pipeline.offers.generate_offer(application_id)


@api.get("/applications/{application_id}/offer", response_model=Offer, tags=["Offers"])
def get_application_offer(application_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.offers.get_by_application_id(application_id)


# ---------------------------------------------------------------------------
# Underwriting
# ---------------------------------------------------------------------------

@api.get("/underwriting/cases", response_model=CaseListResponse, tags=["Underwriting"])
def list_referred_cases(
    limit: int = Query(default=0, description="0 uses the configured default"),
    pipeline: InsurancePipeline = Depends(get_pipeline)
):
    """List referred cases waiting for a manual decision."""
    service = pipeline.underwriting
    effective_limit = min(limit, service.referred_max_limit) if limit > 0 else service.referred_default_limit
    return CaseListResponse(items=service.list_referred(limit), limit=effective_limit)


@api.get("/underwriting/cases/{case_id}", response_model=UnderwritingCase, tags=["Underwriting"])
def get_case(case_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.underwriting.get_case(case_id)


@api.post("/underwriting/cases/{case_id}/decision", response_model=UnderwritingCase, tags=["Underwriting"])
def decide_case(
    case_id: str,
    body: DecisionInput,
    x_decided_by: Optional[str] = Header(default=None),
    pipeline: InsurancePipeline = Depends(get_pipeline)
):
    """Approve or decline a pending or referred case."""
    return pipeline.underwriting.make_decision(case_id, body, decided_by=x_decided_by or DEFAULT_DECIDER)


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------

@api.get("/offers/{offer_id}", response_model=Offer, tags=["Offers"])
def get_offer(offer_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.offers.get(offer_id)


@api.post("/offers/{offer_id}/accept", response_model=Offer, tags=["Offers"])
def accept_offer(offer_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    """Accept a pending offer; the issuance worker issues the policy."""
    return pipeline.offers.accept(offer_id)


@api.post("/offers/{offer_id}/decline", response_model=Offer, tags=["Offers"])
def decline_offer(offer_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.offers.decline(offer_id)


@api.post("/offers/expire", response_model=ExpireOffersResponse, tags=["Offers"])
def expire_offers(pipeline: InsurancePipeline = Depends(get_pipeline)):
    """Mark every pending offer past its expiry as expired."""
    return ExpireOffersResponse(expired=pipeline.offers.expire_stale())


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

@api.get("/policies", response_model=PolicyListResponse, tags=["Policies"])
def list_policies(
    application_id: Optional[str] = None,
    status: Optional[PolicyStatus] = None,
    limit: int = 0,
    offset: int = 0,
    pipeline: InsurancePipeline = Depends(get_pipeline)
):
    service = pipeline.policies
    effective_limit = min(limit, service.list_max_limit) if limit > 0 else service.list_default_limit
    items, total = service.list(
        PolicyFilter(application_id=application_id, status=status),
        limit=limit,
        offset=offset,
    )
    return PolicyListResponse(items=items, total=total, limit=effective_limit, offset=max(offset, 0))


@api.get("/policies/by-number/{number}", response_model=Policy, tags=["Policies"])
def get_policy_by_number(number: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.policies.get_by_number(number)


@api.get("/policies/{policy_id}", response_model=Policy, tags=["Policies"])
def get_policy(policy_id: str, pipeline: InsurancePipeline = Depends(get_pipeline)):
    return pipeline.policies.get(policy_id)


router.include_router(api)
