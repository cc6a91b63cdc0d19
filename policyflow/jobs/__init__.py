"""Background drivers that move applications and offers through the pipeline."""

from policyflow.jobs.issuance_worker import IssuanceWorker
from policyflow.jobs.underwriting_worker import UnderwritingWorker
from policyflow.jobs.worker import PollingWorker

__all__ = ["IssuanceWorker", "PollingWorker", "UnderwritingWorker"]
