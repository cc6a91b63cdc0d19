"""
Pytest configuration and fixtures.
"""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from policyflow.config import Settings
from policyflow.pipeline.catalog import seed_products
from policyflow.pipeline.models import Applicant, ApplicationInput, Product, QuoteInput
from policyflow.pipeline.orchestrator import InsurancePipeline
from policyflow.store.factory import build_memory_repositories


class FrozenClock:
    """Callable time source that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at 2025-03-14 12:00 UTC."""
    return FrozenClock(datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(db_type="memory", workers_enabled=False, _env_file=None)


@pytest.fixture
def repositories():
    """Fresh in-memory repositories seeded with the default catalog."""
    repos = build_memory_repositories()
    for product in seed_products():
        repos.products.upsert_by_slug(product)
    return repos


@pytest.fixture
def pipeline(repositories, settings, clock):
    return InsurancePipeline(repositories, settings=settings, clock=clock)


@pytest.fixture
def term_life_10(repositories) -> Product:
    return repositories.products.get_by_slug("term-life-10")


@pytest.fixture
def applicant():
    """Complete applicant: 35 year old non-smoker."""
    return Applicant(
        first_name="Ada",
        last_name="Lovelace",
        email="ada.lovelace@example.com",
        date_of_birth="1990-01-15",
        age=35,
        smoker=False,
        state="TX",
    )


@pytest.fixture
def make_submitted_application(pipeline):
    """Factory: price, apply and submit in one call."""

    def _make(applicant: Applicant, coverage: int = 150_000, product: str = "term-life-10", term: int = 10):
        quote = pipeline.quotes.price(QuoteInput(
            product_slug=product,
            coverage_amount=coverage,
            term_years=term,
            age=applicant.age,
            smoker=applicant.smoker,
        ))
        application = pipeline.applications.create(ApplicationInput(quote_id=quote.id, applicant=applicant))
        return pipeline.applications.submit(application.id)

    return _make


@pytest.fixture
def approved_application(pipeline, applicant, make_submitted_application):
    """Application auto-approved by underwriting, with its offer generated."""
    application = make_submitted_application(applicant)
    pipeline.underwriting.process_application(application.id)
    return pipeline.applications.get(application.id)


@pytest.fixture
def accepted_offer(pipeline, approved_application):
    offer = pipeline.offers.get_by_application_id(approved_application.id)
    return pipeline.offers.accept(offer.id)
