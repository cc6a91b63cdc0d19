"""
Pipeline Orchestrator
Wires the quote-to-policy services over one set of repositories.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from policyflow.config import Settings
from policyflow.core.ids import utc_now
from policyflow.pipeline.applications import ApplicationService
from policyflow.pipeline.issuance import PolicyService
from policyflow.pipeline.offers import OfferService
from policyflow.pipeline.pricing import QuoteService
from policyflow.pipeline.risk_engine import RiskEngine
from policyflow.pipeline.underwriting import UnderwritingService


logger = logging.getLogger(__name__)


class InsurancePipeline:
    """
    Holds every service of the pipeline, sharing repositories and a clock.
    Both the API and the background workers drive the pipeline through
    this object.
    """

    def __init__(
        self,
        repositories,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
        risk_engine: Optional[RiskEngine] = None
    ):
        """
        Initialize the pipeline.

        Args:
            repositories: Object exposing products, quotes, applications,
                          underwriting, offers and policies repositories
            settings: Listing limits are taken from here (defaults if not provided)
            clock: Time source shared by all services
            risk_engine: Custom risk rules (default RiskEngine if not provided)
        """
        settings = settings or Settings()
        self.repositories = repositories
        self.clock = clock

        self.quotes = QuoteService(repositories.products, repositories.quotes, clock)
        self.applications = ApplicationService(repositories.applications, repositories.quotes, clock)
        self.offers = OfferService(repositories.offers, repositories.applications, clock)
        self.underwriting = UnderwritingService(
            repositories.underwriting,
            repositories.applications,
            self.offers,
            risk_engine=risk_engine,
            clock=clock,
            referred_default_limit=settings.referred_list_default_limit,
            referred_max_limit=settings.referred_list_max_limit,
        )
        self.policies = PolicyService(
            repositories.policies,
            repositories.offers,
            repositories.applications,
            clock=clock,
            list_default_limit=settings.policy_list_default_limit,
            list_max_limit=settings.policy_list_max_limit,
        )

    def list_products(self):
        return self.repositories.products.list()
