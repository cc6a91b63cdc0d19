"""Quote-to-policy workflow services."""

from policyflow.pipeline.applications import ApplicationService
from policyflow.pipeline.issuance import PolicyService
from policyflow.pipeline.offers import OfferService
from policyflow.pipeline.orchestrator import InsurancePipeline
from policyflow.pipeline.pricing import QuoteService
from policyflow.pipeline.risk_engine import RiskEngine
from policyflow.pipeline.underwriting import UnderwritingService

__all__ = [
    "ApplicationService",
    "InsurancePipeline",
    "OfferService",
    "PolicyService",
    "QuoteService",
    "RiskEngine",
    "UnderwritingService",
]
