"""
Tests for the underwriting orchestrator.
"""

import pytest

from policyflow.core.exceptions import AlreadyExistsError, InvalidStateError, NotFoundError, ValidationError
from policyflow.pipeline.models import (
    ApplicationStatus,
    DecisionInput,
    OfferStatus,
    UnderwritingDecision,
    UnderwritingMethod,
)
from policyflow.pipeline.underwriting import AUTO_APPROVE_REASON, AUTO_DECLINE_REASON


@pytest.fixture
def senior_smoker(applicant):
    """55 year old smoker; with 300k cover scores 65 and is referred."""
    return applicant.model_copy(update={"age": 55, "smoker": True})


@pytest.fixture
def referred_case(pipeline, senior_smoker, make_submitted_application):
    application = make_submitted_application(senior_smoker, coverage=300_000, product="term-life-20", term=20)
    return pipeline.underwriting.process_application(application.id)


class TestProcessApplication:
    """Tests for automatic underwriting."""

    def test_auto_approval(self, pipeline, applicant, make_submitted_application, clock):
        """Test a low-risk applicant is approved and gets an offer."""
        application = make_submitted_application(applicant)
        case = pipeline.underwriting.process_application(application.id)

        assert case.application_id == application.id
        assert case.risk_score.score == 10
        assert case.decision == UnderwritingDecision.APPROVED
        assert case.method == UnderwritingMethod.AUTO
        assert case.decided_by == "system"
        assert case.decided_at == clock.now
        assert case.reason == AUTO_APPROVE_REASON
        assert case.risk_factors.age == 35

        assert pipeline.applications.get(application.id).status == ApplicationStatus.APPROVED
        offer = pipeline.offers.get_by_application_id(application.id)
        assert offer.status == OfferStatus.PENDING
        assert offer.monthly_premium == application.monthly_premium

    def test_auto_decline(self, pipeline, applicant, make_submitted_application):
        """Test an 85 year old is declined without an offer."""
        old = applicant.model_copy(update={"age": 85})
        application = make_submitted_application(old, coverage=50_000, product="senior-life", term=15)
        case = pipeline.underwriting.process_application(application.id)

        assert case.decision == UnderwritingDecision.DECLINED
        assert case.reason == AUTO_DECLINE_REASON
        assert case.decided_at is not None
        assert pipeline.applications.get(application.id).status == ApplicationStatus.DECLINED
        with pytest.raises(NotFoundError):
            pipeline.offers.get_by_application_id(application.id)

    def test_referral(self, pipeline, referred_case):
        """Test that a referred case leaves the application under review."""
        assert referred_case.decision == UnderwritingDecision.REFERRED
        assert referred_case.decided_at is None
        assert referred_case.decided_by is None
        application = pipeline.applications.get(referred_case.application_id)
        assert application.status == ApplicationStatus.UNDER_REVIEW

    def test_requires_submitted(self, pipeline, referred_case):
        with pytest.raises(InvalidStateError):
            pipeline.underwriting.process_application(referred_case.application_id)

    def test_existing_case_returned(self, pipeline, repositories, applicant, make_submitted_application):
        """Test re-polling an application that already has a case returns that case."""
        application = make_submitted_application(applicant)
        case = pipeline.underwriting.process_application(application.id)

        # Simulate a partial failure that left the application submitted
        repositories.applications.update_status(application.id, ApplicationStatus.SUBMITTED, case.created_at)

        again = pipeline.underwriting.process_application(application.id)
        assert again.id == case.id

    def test_lost_create_race_returns_winner(self, pipeline, repositories, applicant, make_submitted_application, mocker):
        """Test that a duplicate case create re-reads the existing case."""
        application = make_submitted_application(applicant)
        winner = pipeline.underwriting.process_application(application.id)
        repositories.applications.update_status(application.id, ApplicationStatus.SUBMITTED, winner.created_at)

        mocker.patch.object(
            repositories.underwriting,
            "get_by_application_id",
            side_effect=[NotFoundError("case not found"), winner],
        )
        mocker.patch.object(repositories.underwriting, "create", side_effect=AlreadyExistsError("dup"))

        result = pipeline.underwriting.process_application(application.id)
        assert result.id == winner.id

    def test_list_referred(self, pipeline, referred_case):
        cases = pipeline.underwriting.list_referred(0)
        assert [c.id for c in cases] == [referred_case.id]

    def test_list_referred_default_limit(self, pipeline, repositories, mocker):
        find_referred = mocker.patch.object(repositories.underwriting, "find_referred", return_value=[])
        pipeline.underwriting.list_referred(-1)
        pipeline.underwriting.list_referred(10_000)
        assert find_referred.call_args_list == [mocker.call(50), mocker.call(200)]


class TestMakeDecision:
    """Tests for manual decisions."""

    def test_manual_approval_creates_offer(self, pipeline, referred_case, clock):
        clock.advance(hours=2)
        case = pipeline.underwriting.make_decision(
            referred_case.id,
            DecisionInput(decision="approved", reason="Medical records reviewed"),
            decided_by="underwriter@example.com",
        )

        assert case.decision == UnderwritingDecision.APPROVED
        assert case.method == UnderwritingMethod.MANUAL
        assert case.decided_by == "underwriter@example.com"
        assert case.decided_at == clock.now
        assert case.reason == "Medical records reviewed"
        assert pipeline.applications.get(case.application_id).status == ApplicationStatus.APPROVED
        assert pipeline.offers.get_by_application_id(case.application_id).status == OfferStatus.PENDING

    def test_manual_decline(self, pipeline, referred_case):
        case = pipeline.underwriting.make_decision(
            referred_case.id, DecisionInput(decision="declined", reason="Too risky"),
        )

        assert case.decided_by == "admin"
        assert pipeline.applications.get(case.application_id).status == ApplicationStatus.DECLINED
        with pytest.raises(NotFoundError):
            pipeline.offers.get_by_application_id(case.application_id)

    @pytest.mark.parametrize("decision", ["referred", "pending", "maybe", ""])
    def test_invalid_decision(self, pipeline, referred_case, decision):
        with pytest.raises(ValidationError, match="decision must be"):
            pipeline.underwriting.make_decision(referred_case.id, DecisionInput(decision=decision, reason="x"))

    def test_reason_required(self, pipeline, referred_case):
        with pytest.raises(ValidationError, match="reason"):
            pipeline.underwriting.make_decision(referred_case.id, DecisionInput(decision="approved"))

    def test_decided_case_cannot_change(self, pipeline, referred_case):
        pipeline.underwriting.make_decision(referred_case.id, DecisionInput(decision="declined", reason="no"))
        with pytest.raises(InvalidStateError, match="cannot transition from declined to approved"):
            pipeline.underwriting.make_decision(referred_case.id, DecisionInput(decision="approved", reason="yes"))

    def test_unknown_case(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.underwriting.make_decision("missing", DecisionInput(decision="approved", reason="ok"))

    def test_lookups_validate_ids(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.underwriting.get_case("")
        with pytest.raises(ValidationError):
            pipeline.underwriting.get_by_application_id("")

    def test_decision_transition_table(self):
        assert UnderwritingDecision.PENDING.can_transition_to(UnderwritingDecision.REFERRED)
        assert UnderwritingDecision.REFERRED.can_transition_to(UnderwritingDecision.APPROVED)
        assert not UnderwritingDecision.REFERRED.can_transition_to(UnderwritingDecision.PENDING)
        assert not UnderwritingDecision.APPROVED.can_transition_to(UnderwritingDecision.DECLINED)
