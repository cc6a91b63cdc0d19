"""
Offer Manager
Generates offers for approved applications and records the applicant's
acceptance or decline.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from policyflow.core.exceptions import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    OfferExpiredError,
    PolicyflowError,
    ValidationError,
)
from policyflow.core.ids import new_id, utc_now
from policyflow.pipeline.models import (
    OFFER_VALIDITY,
    ApplicationStatus,
    Offer,
    OfferStatus,
)
from policyflow.store.base import ApplicationRepository, OfferRepository


logger = logging.getLogger(__name__)


class OfferService:
    """At most one offer exists per application."""

    def __init__(
        self,
        offers: OfferRepository,
        applications: ApplicationRepository,
        clock: Callable[[], datetime] = utc_now
    ):
        self.offers = offers
        self.applications = applications
        self.clock = clock

    def generate_offer(self, application_id: str) -> Offer:
        """
        Return the offer for an approved application, creating it if needed.
        Safe to call repeatedly and concurrently for the same application.
        """
        if not application_id:
            raise ValidationError("application id is required")

        application = self.applications.get(application_id)
        if application.status != ApplicationStatus.APPROVED:
            raise InvalidStateError("application is not approved")

        try:
            return self.offers.get_by_application_id(application_id)
        except NotFoundError:
            pass

        now = self.clock()
        offer = Offer(
            id=new_id(),
            application_id=application.id,
            product_slug=application.product_slug,
            coverage_amount=application.coverage_amount,
            term_years=application.term_years,
            monthly_premium=application.monthly_premium,
            status=OfferStatus.PENDING,
            created_at=now,
            expires_at=now + OFFER_VALIDITY,
        )

        try:
            self.offers.create(offer)
        except AlreadyExistsError:
            logger.info(f"Offer for application {application_id} created concurrently, re-reading")
            return self.offers.get_by_application_id(application_id)

        logger.info(f"Generated offer {offer.id} for application {application_id}")
        return offer

    def get(self, offer_id: str) -> Offer:
        if not offer_id:
            raise ValidationError("offer id is required")
        return self.offers.get(offer_id)

    def get_by_application_id(self, application_id: str) -> Offer:
        if not application_id:
            raise ValidationError("application id is required")
        return self.offers.get_by_application_id(application_id)

    def accept(self, offer_id: str) -> Offer:
        """
        Accept a pending offer.

        Raises:
            InvalidStateError: Offer is not pending
            OfferExpiredError: Offer is past its expiry; it is marked expired
        """
        offer = self.get(offer_id)
        if offer.status != OfferStatus.PENDING:
            raise InvalidStateError("offer is not in pending status")

        now = self.clock()
        if now > offer.expires_at:
            offer.status = OfferStatus.EXPIRED
            try:
                self.offers.update(offer)
            except PolicyflowError as e:
                logger.warning(f"Could not mark offer {offer.id} expired: {e}")
            raise OfferExpiredError("offer has expired")

        offer.status = OfferStatus.ACCEPTED
        offer.accepted_at = now
        self.offers.update(offer)
        logger.info(f"Offer {offer.id} accepted")
        return offer

    def decline(self, offer_id: str) -> Offer:
        offer = self.get(offer_id)
        if offer.status != OfferStatus.PENDING:
            raise InvalidStateError("offer is not in pending status")

        offer.status = OfferStatus.DECLINED
        offer.declined_at = self.clock()
        self.offers.update(offer)
        logger.info(f"Offer {offer.id} declined")
        return offer

    def expire_stale(self, before: Optional[datetime] = None) -> int:
        """Mark every pending offer whose expiry is before the given time as expired."""
        count = self.offers.expire_offers(before or self.clock())
        if count:
            logger.info(f"Expired {count} stale offers")
        return count
