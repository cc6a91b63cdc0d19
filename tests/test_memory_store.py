"""
Tests for the in-memory repositories.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from policyflow.core.exceptions import AlreadyExistsError, NotFoundError
from policyflow.pipeline.catalog import seed_products
from policyflow.pipeline.models import (
    Applicant,
    Application,
    ApplicationStatus,
    Offer,
    OfferStatus,
    PolicyFilter,
)
from policyflow.store.factory import build_memory_repositories, build_repositories


NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def make_application(app_id: str, quote_id: str, status=ApplicationStatus.SUBMITTED, minutes: int = 0) -> Application:
    return Application(
        id=app_id,
        quote_id=quote_id,
        product_id="p1",
        product_slug="term-life-10",
        coverage_amount=100_000,
        term_years=10,
        monthly_premium=Decimal("25.00"),
        applicant=Applicant(first_name="Ada"),
        status=status,
        created_at=NOW + timedelta(minutes=minutes),
        updated_at=NOW + timedelta(minutes=minutes),
    )


def make_offer(offer_id: str, application_id: str, expires_in: timedelta) -> Offer:
    return Offer(
        id=offer_id,
        application_id=application_id,
        product_slug="term-life-10",
        coverage_amount=100_000,
        term_years=10,
        monthly_premium=Decimal("25.00"),
        created_at=NOW,
        expires_at=NOW + expires_in,
    )


class TestMemoryRepositories:
    """Tests for uniqueness, copies and queries."""

    def test_returns_copies(self):
        repos = build_memory_repositories()
        repos.applications.create(make_application("a1", "q1"))

        loaded = repos.applications.get("a1")
        loaded.status = ApplicationStatus.DECLINED

        assert repos.applications.get("a1").status == ApplicationStatus.SUBMITTED

    def test_unique_natural_key(self):
        repos = build_memory_repositories()
        repos.applications.create(make_application("a1", "q1"))

        with pytest.raises(AlreadyExistsError):
            repos.applications.create(make_application("a2", "q1"))
        with pytest.raises(AlreadyExistsError):
            repos.applications.create(make_application("a1", "q2"))

    def test_update_missing(self):
        repos = build_memory_repositories()
        with pytest.raises(NotFoundError):
            repos.applications.update(make_application("a1", "q1"))
        with pytest.raises(NotFoundError):
            repos.applications.update_status("a1", ApplicationStatus.DECLINED, NOW)

    def test_find_by_status_oldest_first(self):
        repos = build_memory_repositories()
        repos.applications.create(make_application("late", "q1", minutes=5))
        repos.applications.create(make_application("early", "q2", minutes=1))
        repos.applications.create(make_application("draft", "q3", status=ApplicationStatus.DRAFT))

        found = repos.applications.find_by_status(ApplicationStatus.SUBMITTED, 10)
        assert [a.id for a in found] == ["early", "late"]
        assert len(repos.applications.find_by_status(ApplicationStatus.SUBMITTED, 1)) == 1

    def test_expire_offers(self):
        repos = build_memory_repositories()
        repos.offers.create(make_offer("stale", "a1", timedelta(days=-1)))
        repos.offers.create(make_offer("fresh", "a2", timedelta(days=1)))

        assert repos.offers.expire_offers(NOW) == 1
        assert repos.offers.get("stale").status == OfferStatus.EXPIRED
        assert repos.offers.get("fresh").status == OfferStatus.PENDING

    def test_product_upsert_keeps_id(self):
        repos = build_memory_repositories()
        product = seed_products()[0]
        first = repos.products.upsert_by_slug(product)

        changed = product.model_copy(update={"id": "other", "base_rate": Decimal("0.30")})
        second = repos.products.upsert_by_slug(changed)

        assert second.id == first.id
        assert repos.products.get_by_slug(product.slug).base_rate == Decimal("0.30")
        assert len(repos.products.list()) == 1

    def test_empty_policy_list(self):
        repos = build_memory_repositories()
        assert repos.policies.list(PolicyFilter(), 20, 0) == ([], 0)

    def test_build_repositories_memory(self, settings):
        repos = build_repositories(settings)
        assert repos.backend == "memory"
        assert repos.ping() is True
        repos.close()
