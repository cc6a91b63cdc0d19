"""
Underwriting Orchestrator
Runs automatic underwriting for submitted applications and records manual
decisions for referred cases.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from policyflow.core.exceptions import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from policyflow.core.ids import new_id, utc_now
from policyflow.pipeline.models import (
    Application,
    ApplicationStatus,
    DecisionInput,
    RiskFactors,
    UnderwritingCase,
    UnderwritingDecision,
    UnderwritingMethod,
)
from policyflow.pipeline.offers import OfferService
from policyflow.pipeline.risk_engine import RiskEngine
from policyflow.store.base import ApplicationRepository, UnderwritingRepository


logger = logging.getLogger(__name__)

SYSTEM_DECIDER = "system"
DEFAULT_DECIDER = "admin"
AUTO_APPROVE_REASON = "Auto-approved: meets low-risk criteria"
AUTO_DECLINE_REASON = "Auto-declined: does not meet eligibility requirements"

MANUAL_DECISIONS = {
    UnderwritingDecision.APPROVED.value: UnderwritingDecision.APPROVED,
    UnderwritingDecision.DECLINED.value: UnderwritingDecision.DECLINED,
}

DECISION_TO_STATUS = {
    UnderwritingDecision.APPROVED: ApplicationStatus.APPROVED,
    UnderwritingDecision.DECLINED: ApplicationStatus.DECLINED,
}


class UnderwritingService:
    """
    Creates exactly one underwriting case per application and moves the
    application to its final status.
    """

    def __init__(
        self,
        cases: UnderwritingRepository,
        applications: ApplicationRepository,
        offer_service: OfferService,
        risk_engine: Optional[RiskEngine] = None,
        clock: Callable[[], datetime] = utc_now,
        referred_default_limit: int = 50,
        referred_max_limit: int = 200
    ):
        self.cases = cases
        self.applications = applications
        self.offer_service = offer_service
        self.risk_engine = risk_engine or RiskEngine()
        self.clock = clock
        self.referred_default_limit = referred_default_limit
        self.referred_max_limit = referred_max_limit

    def _advance(self, application: Application, target: ApplicationStatus, now: datetime) -> None:
        if not application.status.can_transition_to(target):
            raise InvalidStateError(
                f"cannot move application from {application.status.value} to {target.value}"
            )
        self.applications.update_status(application.id, target, now)
        application.status = target
        application.updated_at = now

    def process_application(self, application_id: str) -> UnderwritingCase:
        """
        Score a submitted application and record the automatic decision.

        Args:
            application_id: Application in submitted status

        Returns:
            The underwriting case. If a case already exists for the
            application it is returned unchanged.
        """
        application = self.applications.get(application_id)
        if application.status != ApplicationStatus.SUBMITTED:
            raise InvalidStateError(
                f"application must be submitted, got {application.status.value}"
            )

        try:
            return self.cases.get_by_application_id(application_id)
        except NotFoundError:
            pass

        now = self.clock()
        self._advance(application, ApplicationStatus.UNDER_REVIEW, now)

        factors = RiskFactors(
            age=application.applicant.age,
            smoker=application.applicant.smoker,
            coverage_amount=application.coverage_amount,
            term_years=application.term_years,
        )
        risk = self.risk_engine.score_risk(factors)
        decision, method = self.risk_engine.determine_decision(factors, risk)

        case = UnderwritingCase(
            id=new_id(),
            application_id=application.id,
            risk_factors=factors,
            risk_score=risk,
            decision=decision,
            method=method,
            created_at=now,
            updated_at=now,
        )
        if decision == UnderwritingDecision.APPROVED:
            case.decided_by = SYSTEM_DECIDER
            case.decided_at = now
            case.reason = AUTO_APPROVE_REASON
        elif decision == UnderwritingDecision.DECLINED:
            case.decided_by = SYSTEM_DECIDER
            case.decided_at = now
            case.reason = AUTO_DECLINE_REASON

        try:
            self.cases.create(case)
        except AlreadyExistsError:
            logger.info(f"Underwriting case for {application_id} created concurrently, re-reading")
            return self.cases.get_by_application_id(application_id)

        logger.info(
            f"Application {application_id} scored {risk.score} {risk.flags}: {decision.value}"
        )

        target = DECISION_TO_STATUS.get(decision)
        if target is not None:
            self._advance(application, target, now)
        if decision == UnderwritingDecision.APPROVED:
            self.offer_service.generate_offer(application_id)

        return case

    def make_decision(
        self,
        case_id: str,
        request: DecisionInput,
        decided_by: str = DEFAULT_DECIDER
    ) -> UnderwritingCase:
        """Record a manual approve/decline decision on a pending or referred case."""
        decision = MANUAL_DECISIONS.get(request.decision)
        if decision is None:
            raise ValidationError("decision must be 'approved' or 'declined'")
        if not request.reason:
            raise ValidationError("reason is required")

        case = self.get_case(case_id)
        if not case.decision.can_transition_to(decision):
            raise InvalidStateError(
                f"cannot transition from {case.decision.value} to {decision.value}"
            )

        application = self.applications.get(case.application_id)
        target = DECISION_TO_STATUS[decision]
        if not application.status.can_transition_to(target):
            raise InvalidStateError(
                f"cannot move application from {application.status.value} to {target.value}"
            )

        now = self.clock()
        case.decision = decision
        case.method = UnderwritingMethod.MANUAL
        case.decided_by = decided_by
        case.reason = request.reason
        case.decided_at = now
        case.updated_at = now
        self.cases.update(case)

        self._advance(application, target, now)
        if decision == UnderwritingDecision.APPROVED:
            self.offer_service.generate_offer(application.id)

        logger.info(f"Case {case.id} manually {decision.value} by {decided_by}")
        return case

    def get_case(self, case_id: str) -> UnderwritingCase:
        if not case_id:
            raise ValidationError("case id is required")
        return self.cases.get(case_id)

    def get_by_application_id(self, application_id: str) -> UnderwritingCase:
        if not application_id:
            raise ValidationError("application id is required")
        return self.cases.get_by_application_id(application_id)

    def list_referred(self, limit: int = 0) -> List[UnderwritingCase]:
        if limit <= 0:
            limit = self.referred_default_limit
        limit = min(limit, self.referred_max_limit)
        return self.cases.find_referred(limit)
