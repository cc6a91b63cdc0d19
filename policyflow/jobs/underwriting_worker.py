"""
Drives submitted applications through automatic underwriting.
"""

import logging

from policyflow.jobs.worker import PollingWorker
from policyflow.pipeline.models import ApplicationStatus
from policyflow.pipeline.underwriting import UnderwritingService
from policyflow.store.base import ApplicationRepository


logger = logging.getLogger(__name__)


class UnderwritingWorker(PollingWorker):
    """Each tick underwrites up to ``batch_limit`` submitted applications."""

    def __init__(
        self,
        applications: ApplicationRepository,
        underwriting: UnderwritingService,
        interval: float = 5.0,
        batch_limit: int = 10
    ):
        super().__init__("underwriting-worker", interval, self.process_batch)
        self.applications = applications
        self.underwriting = underwriting
        self.batch_limit = batch_limit

    def process_batch(self) -> int:
        """Returns the number of applications processed without error."""
        batch = self.applications.find_by_status(ApplicationStatus.SUBMITTED, self.batch_limit)
        if not batch:
            return 0

        logger.info(f"Underwriting {len(batch)} submitted applications")
        processed = 0
        for application in batch:
            try:
                case = self.underwriting.process_application(application.id)
            except Exception as e:
                logger.exception(f"Failed to underwrite application {application.id}: {e}")
                continue
            processed += 1
            logger.info(f"Application {application.id} -> case {case.id} ({case.decision.value})")
        return processed
