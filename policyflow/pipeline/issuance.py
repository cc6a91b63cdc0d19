"""
Policy Issuance Service
Issues a numbered policy for an accepted offer.
"""

import calendar
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from policyflow.core.exceptions import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    PolicyflowError,
    ValidationError,
)
from policyflow.core.ids import new_id, utc_now
from policyflow.pipeline.models import (
    OfferStatus,
    Policy,
    PolicyFilter,
    PolicyStatus,
)
from policyflow.store.base import ApplicationRepository, OfferRepository, PolicyRepository


logger = logging.getLogger(__name__)


def format_policy_number(year: int, sequence: int) -> str:
    return f"POL-{year}-{sequence:06d}"


def add_years(value: datetime, years: int) -> datetime:
    """Add calendar years; Feb 29 rolls over to Mar 1 in non-leap target years."""
    target = value.year + years
    if value.month == 2 and value.day == 29 and not calendar.isleap(target):
        return value.replace(year=target, month=3, day=1)
    return value.replace(year=target)


class PolicyService:
    """At most one policy exists per offer."""

    def __init__(
        self,
        policies: PolicyRepository,
        offers: OfferRepository,
        applications: ApplicationRepository,
        clock: Callable[[], datetime] = utc_now,
        list_default_limit: int = 20,
        list_max_limit: int = 100
    ):
        self.policies = policies
        self.offers = offers
        self.applications = applications
        self.clock = clock
        self.list_default_limit = list_default_limit
        self.list_max_limit = list_max_limit

    def issue_from_offer(self, offer_id: str) -> Policy:
        """
        Issue the policy for an accepted offer.

        Safe to repeat: a second call for the same offer returns the policy
        issued by the first one.
        """
        if not offer_id:
            raise ValidationError("offer id is required")

        offer = self.offers.get(offer_id)

        try:
            existing = self.policies.get_by_offer_id(offer_id)
        except NotFoundError:
            existing = None
        if existing is not None:
            if offer.status == OfferStatus.ACCEPTED:
                self._mark_offer_issued(offer, existing)
            return existing

        if offer.status != OfferStatus.ACCEPTED:
            raise InvalidStateError("offer is not in accepted status")

        application = self.applications.get(offer.application_id)

        now = self.clock()
        sequence = self.policies.next_policy_number(now.year)
        policy = Policy(
            id=new_id(),
            number=format_policy_number(now.year, sequence),
            application_id=application.id,
            offer_id=offer.id,
            product_slug=offer.product_slug,
            coverage_amount=offer.coverage_amount,
            term_years=offer.term_years,
            monthly_premium=offer.monthly_premium,
            insured=application.applicant.model_copy(deep=True),
            status=PolicyStatus.ACTIVE,
            effective_date=now,
            expiry_date=add_years(now, offer.term_years),
            issued_at=now,
        )

        try:
            self.policies.create(policy)
        except AlreadyExistsError:
            logger.info(f"Policy for offer {offer_id} created concurrently, re-reading")
            return self.policies.get_by_offer_id(offer_id)

        logger.info(f"Issued policy {policy.number} for offer {offer_id}")
        self._mark_offer_issued(offer, policy)
        return policy

    def _mark_offer_issued(self, offer, policy: Policy) -> None:
        """Best-effort; the policy record is authoritative."""
        offer.status = OfferStatus.ISSUED
        try:
            self.offers.update(offer)
        except PolicyflowError as e:
            logger.warning(f"Policy {policy.number} issued but offer {offer.id} not marked issued: {e}")

    def get(self, policy_id: str) -> Policy:
        if not policy_id:
            raise ValidationError("policy id is required")
        return self.policies.get(policy_id)

    def get_by_number(self, number: str) -> Policy:
        if not number:
            raise ValidationError("policy number is required")
        return self.policies.get_by_number(number)

    def list(
        self,
        filter: Optional[PolicyFilter] = None,
        limit: int = 0,
        offset: int = 0
    ) -> Tuple[List[Policy], int]:
        if limit <= 0:
            limit = self.list_default_limit
        limit = min(limit, self.list_max_limit)
        offset = max(offset, 0)
        return self.policies.list(filter or PolicyFilter(), limit, offset)
