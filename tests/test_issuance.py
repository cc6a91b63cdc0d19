"""
Tests for policy issuance.
"""

import pytest
from datetime import datetime, timezone

from policyflow.core.exceptions import AlreadyExistsError, InvalidStateError, NotFoundError, StorageError, ValidationError
from policyflow.pipeline.issuance import add_years, format_policy_number
from policyflow.pipeline.models import OfferStatus, PolicyFilter, PolicyStatus


class TestHelpers:
    """Tests for numbering and date helpers."""

    def test_policy_number_format(self):
        assert format_policy_number(2025, 1) == "POL-2025-000001"
        assert format_policy_number(2025, 123456) == "POL-2025-123456"

    def test_add_years(self):
        start = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
        assert add_years(start, 10) == datetime(2035, 3, 14, 12, 0, tzinfo=timezone.utc)

    def test_add_years_leap_day(self):
        """Test Feb 29 rolls over to Mar 1 in a non-leap target year."""
        start = datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)
        assert add_years(start, 1) == datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert add_years(start, 4) == datetime(2028, 2, 29, 12, 0, tzinfo=timezone.utc)

    def test_leap_day_issuance_expiry(self, pipeline, applicant, make_submitted_application, clock):
        """Test a policy issued on Feb 29 expires on Mar 1 of a non-leap year."""
        clock.now = datetime(2024, 2, 29, 9, 30, tzinfo=timezone.utc)
        application = make_submitted_application(applicant)
        pipeline.underwriting.process_application(application.id)
        offer = pipeline.offers.get_by_application_id(application.id)
        pipeline.offers.accept(offer.id)

        policy = pipeline.policies.issue_from_offer(offer.id)

        assert policy.number == "POL-2024-000001"
        assert policy.expiry_date == datetime(2034, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestIssueFromOffer:
    """Tests for PolicyService.issue_from_offer."""

    def test_issue(self, pipeline, accepted_offer, applicant, clock):
        policy = pipeline.policies.issue_from_offer(accepted_offer.id)

        assert policy.number == "POL-2025-000001"
        assert policy.status == PolicyStatus.ACTIVE
        assert policy.offer_id == accepted_offer.id
        assert policy.application_id == accepted_offer.application_id
        assert policy.monthly_premium == accepted_offer.monthly_premium
        assert policy.insured == applicant
        assert policy.effective_date == clock.now
        assert policy.expiry_date == datetime(2035, 3, 14, 12, 0, tzinfo=timezone.utc)
        assert pipeline.offers.get(accepted_offer.id).status == OfferStatus.ISSUED

    def test_idempotent(self, pipeline, accepted_offer):
        """Test issuing twice returns the same policy id and number."""
        first = pipeline.policies.issue_from_offer(accepted_offer.id)
        second = pipeline.policies.issue_from_offer(accepted_offer.id)

        assert first.id == second.id
        assert first.number == second.number

    def test_numbers_increase_without_gaps(self, pipeline, applicant, make_submitted_application):
        numbers = []
        for i in range(3):
            person = applicant.model_copy(update={"email": f"person{i}@example.com"})
            application = make_submitted_application(person)
            pipeline.underwriting.process_application(application.id)
            offer = pipeline.offers.get_by_application_id(application.id)
            pipeline.offers.accept(offer.id)
            numbers.append(pipeline.policies.issue_from_offer(offer.id).number)

        assert numbers == ["POL-2025-000001", "POL-2025-000002", "POL-2025-000003"]

    def test_counter_is_per_year(self, repositories):
        assert repositories.policies.next_policy_number(2025) == 1
        assert repositories.policies.next_policy_number(2025) == 2
        assert repositories.policies.next_policy_number(2026) == 1

    def test_requires_accepted_offer(self, pipeline, approved_application):
        offer = pipeline.offers.get_by_application_id(approved_application.id)
        with pytest.raises(InvalidStateError, match="offer is not in accepted status"):
            pipeline.policies.issue_from_offer(offer.id)

    def test_unknown_offer(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.policies.issue_from_offer("missing")

    def test_create_race_rereads(self, pipeline, repositories, accepted_offer, mocker):
        winner = pipeline.policies.issue_from_offer(accepted_offer.id)
        offer = repositories.offers.get(accepted_offer.id)
        offer.status = OfferStatus.ACCEPTED
        repositories.offers.update(offer)

        mocker.patch.object(
            repositories.policies,
            "get_by_offer_id",
            side_effect=[NotFoundError("policy not found"), winner],
        )
        mocker.patch.object(repositories.policies, "create", side_effect=AlreadyExistsError("dup"))

        assert pipeline.policies.issue_from_offer(accepted_offer.id).id == winner.id

    def test_offer_update_failure_is_not_fatal(self, pipeline, repositories, accepted_offer, mocker):
        """Test the policy is returned even if the offer cannot be marked issued."""
        mocker.patch.object(repositories.offers, "update", side_effect=StorageError("down"))

        policy = pipeline.policies.issue_from_offer(accepted_offer.id)

        assert policy.number == "POL-2025-000001"
        assert repositories.offers.get(accepted_offer.id).status == OfferStatus.ACCEPTED

    def test_retry_marks_offer_issued(self, pipeline, repositories, accepted_offer, mocker):
        """Test re-polling an accepted offer with a policy finishes the offer update."""
        update = mocker.patch.object(repositories.offers, "update", side_effect=StorageError("down"))
        policy = pipeline.policies.issue_from_offer(accepted_offer.id)
        mocker.stopall()

        again = pipeline.policies.issue_from_offer(accepted_offer.id)

        assert update.call_count == 1
        assert again.id == policy.id
        assert repositories.offers.get(accepted_offer.id).status == OfferStatus.ISSUED


class TestQueries:
    """Tests for policy lookups and listing."""

    def test_get_by_number(self, pipeline, accepted_offer):
        policy = pipeline.policies.issue_from_offer(accepted_offer.id)

        assert pipeline.policies.get(policy.id).number == policy.number
        assert pipeline.policies.get_by_number(policy.number).id == policy.id

    def test_lookups_validate(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.policies.get("")
        with pytest.raises(ValidationError):
            pipeline.policies.get_by_number("")
        with pytest.raises(NotFoundError):
            pipeline.policies.get_by_number("POL-2025-999999")

    def test_list_filters(self, pipeline, accepted_offer):
        policy = pipeline.policies.issue_from_offer(accepted_offer.id)

        items, total = pipeline.policies.list(PolicyFilter(application_id=policy.application_id))
        assert total == 1
        assert items[0].id == policy.id

        items, total = pipeline.policies.list(PolicyFilter(status=PolicyStatus.LAPSED))
        assert (items, total) == ([], 0)

    def test_list_limits(self, pipeline, repositories, mocker):
        list_mock = mocker.patch.object(repositories.policies, "list", return_value=([], 0))

        pipeline.policies.list(limit=0, offset=-5)
        pipeline.policies.list(limit=500, offset=10)

        assert list_mock.call_args_list[0].args[1:] == (20, 0)
        assert list_mock.call_args_list[1].args[1:] == (100, 10)
