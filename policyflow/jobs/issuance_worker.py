"""
Issues policies for accepted offers.
"""

import logging

from policyflow.jobs.worker import PollingWorker
from policyflow.pipeline.issuance import PolicyService
from policyflow.store.base import OfferRepository


logger = logging.getLogger(__name__)


class IssuanceWorker(PollingWorker):
    """Each tick issues policies for up to ``batch_limit`` accepted offers."""

    def __init__(
        self,
        offers: OfferRepository,
        policies: PolicyService,
        interval: float = 5.0,
        batch_limit: int = 10
    ):
        super().__init__("issuance-worker", interval, self.process_batch)
        self.offers = offers
        self.policies = policies
        self.batch_limit = batch_limit

    def process_batch(self) -> int:
        batch = self.offers.find_accepted(self.batch_limit)
        if not batch:
            return 0

        logger.info(f"Issuing policies for {len(batch)} accepted offers")
        issued = 0
        for offer in batch:
            try:
                policy = self.policies.issue_from_offer(offer.id)
            except Exception as e:
                logger.exception(f"Failed to issue policy for offer {offer.id}: {e}")
                continue
            issued += 1
            logger.info(f"Offer {offer.id} -> policy {policy.number}")
        return issued
