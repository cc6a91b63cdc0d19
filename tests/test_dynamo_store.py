"""
Tests for the DynamoDB repositories against a mocked client.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from botocore.exceptions import ClientError, ReadTimeoutError

from policyflow.core.dynamodb_client import Tables
from policyflow.core.exceptions import AlreadyExistsError, NotFoundError, StorageError, StorageTimeoutError
from policyflow.pipeline.models import Applicant, Application, ApplicationStatus, Quote
from policyflow.store.dynamo import build_dynamo_repositories, format_timestamp, from_item, to_attr, to_item


NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def client_error(code: str, operation: str = "PutItem", **extra) -> ClientError:
    response = {"Error": {"Code": code, "Message": code}}
    response.update(extra)
    return ClientError(response, operation)


def transaction_canceled(*reasons: str) -> ClientError:
    return client_error(
        "TransactionCanceledException",
        "TransactWriteItems",
        CancellationReasons=[{"Code": reason} for reason in reasons],
    )


@pytest.fixture
def client(mocker):
    return mocker.MagicMock()


@pytest.fixture
def repos(client):
    return build_dynamo_repositories(client)


@pytest.fixture
def quote():
    return Quote(
        id="q1",
        product_id="p1",
        product_slug="term-life-10",
        coverage_amount=150_000,
        term_years=10,
        monthly_premium=Decimal("37.50"),
        created_at=NOW,
        expires_at=NOW,
    )


@pytest.fixture
def application():
    return Application(
        id="a1",
        quote_id="q1",
        product_id="p1",
        product_slug="term-life-10",
        coverage_amount=150_000,
        term_years=10,
        monthly_premium=Decimal("37.50"),
        applicant=Applicant(first_name="Ada", age=35),
        created_at=NOW,
        updated_at=NOW,
    )


class TestItems:
    """Tests for model to item conversion."""

    def test_to_item(self, quote):
        item = to_item(quote)

        assert item["id"] == {"S": "q1"}
        assert item["coverage_amount"] == {"N": "150000"}
        assert item["monthly_premium"] == {"S": "37.50"}
        assert item["created_at"]["S"].startswith("2025-03-14T12:00:00")

    def test_round_trip(self, application):
        restored = from_item(Application, to_item(application))

        assert restored == application
        assert isinstance(restored.coverage_amount, int)
        assert restored.applicant.age == 35

    def test_none_fields_omitted(self, application):
        assert "submitted_at" not in to_item(application)

    def test_timestamps_fixed_width(self, quote):
        assert to_item(quote)["created_at"] == {"S": "2025-03-14T12:00:00.000000Z"}

    def test_timestamp_order_matches_time_order(self):
        """Test a whole-second timestamp sorts before a later fractional one."""
        whole = format_timestamp(NOW)
        fraction = format_timestamp(NOW + timedelta(milliseconds=500))
        assert whole < fraction
        assert len(whole) == len(fraction)

    def test_timestamp_converted_to_utc(self):
        local = NOW.astimezone(timezone(timedelta(hours=2)))
        assert to_attr(local) == {"S": "2025-03-14T12:00:00.000000Z"}


class TestDynamoRepositories:
    """Tests for conditional writes and error mapping."""

    def test_plain_insert(self, repos, client, quote):
        repos["quotes"].create(quote)

        kwargs = client.put_item.call_args.kwargs
        assert kwargs["TableName"] == Tables.QUOTES
        assert kwargs["ConditionExpression"] == "attribute_not_exists(id)"
        client.transact_write_items.assert_not_called()

    def test_plain_insert_conflict(self, repos, client, quote):
        client.put_item.side_effect = client_error("ConditionalCheckFailedException")
        with pytest.raises(AlreadyExistsError):
            repos["quotes"].create(quote)

    def test_unique_insert_writes_guard(self, repos, client, application):
        repos["applications"].create(application)

        items = client.transact_write_items.call_args.kwargs["TransactItems"]
        assert len(items) == 2
        guard = items[1]["Put"]
        assert guard["TableName"] == Tables.UNIQUE_KEYS
        assert guard["Item"]["key"] == {"S": f"{Tables.APPLICATIONS}#quote_id#q1"}

    def test_unique_insert_conflict(self, repos, client, application):
        client.transact_write_items.side_effect = transaction_canceled("None", "ConditionalCheckFailed")
        with pytest.raises(AlreadyExistsError):
            repos["applications"].create(application)

    def test_transaction_conflict_is_not_duplicate(self, repos, client, application):
        """Test a cancellation caused by a concurrent transaction is a storage error."""
        client.transact_write_items.side_effect = transaction_canceled("None", "TransactionConflict")
        with pytest.raises(StorageError) as exc_info:
            repos["applications"].create(application)

        assert not isinstance(exc_info.value, AlreadyExistsError)
        assert "TransactionConflict" in exc_info.value.message

    def test_cancellation_without_reasons(self, repos, client, application):
        client.transact_write_items.side_effect = transaction_canceled()
        with pytest.raises(StorageError) as exc_info:
            repos["applications"].create(application)
        assert not isinstance(exc_info.value, AlreadyExistsError)

    def test_other_client_error(self, repos, client, application):
        client.transact_write_items.side_effect = client_error("ProvisionedThroughputExceededException")
        with pytest.raises(StorageError) as exc_info:
            repos["applications"].create(application)
        assert not isinstance(exc_info.value, AlreadyExistsError)

    def test_timeout(self, repos, client):
        client.get_item.side_effect = ReadTimeoutError(endpoint_url="http://localhost:8000")
        with pytest.raises(StorageTimeoutError):
            repos["quotes"].get("q1")

    def test_get(self, repos, client, quote):
        client.get_item.return_value = {"Item": to_item(quote)}
        assert repos["quotes"].get("q1") == quote
        assert client.get_item.call_args.kwargs["ConsistentRead"] is True

    def test_get_missing(self, repos, client):
        client.get_item.return_value = {}
        with pytest.raises(NotFoundError):
            repos["quotes"].get("q1")

    def test_replace_missing(self, repos, client, application):
        client.put_item.side_effect = client_error("ConditionalCheckFailedException")
        with pytest.raises(NotFoundError):
            repos["applications"].update(application)

    def test_find_by_status_paginates(self, repos, client, application):
        second = application.model_copy(update={"id": "a2", "quote_id": "q2"})
        client.query.side_effect = [
            {"Items": [to_item(application)], "LastEvaluatedKey": {"id": {"S": "a1"}}},
            {"Items": [to_item(second)]},
        ]

        found = repos["applications"].find_by_status(ApplicationStatus.DRAFT, 10)

        assert [a.id for a in found] == ["a1", "a2"]
        first_call = client.query.call_args_list[0].kwargs
        assert first_call["IndexName"] == "status-index"
        assert first_call["ExpressionAttributeValues"] == {":v": {"S": "draft"}}
        assert client.query.call_args_list[1].kwargs["ExclusiveStartKey"] == {"id": {"S": "a1"}}

    def test_expire_offers_skips_raced_items(self, repos, client):
        client.query.return_value = {"Items": [{"id": {"S": "o1"}}, {"id": {"S": "o2"}}]}
        client.update_item.side_effect = [None, client_error("ConditionalCheckFailedException", "UpdateItem")]

        assert repos["offers"].expire_offers(NOW) == 1
        assert client.query.call_args.kwargs["FilterExpression"] == "expires_at < :before"

        before = client.query.call_args.kwargs["ExpressionAttributeValues"][":before"]
        assert before == {"S": "2025-03-14T12:00:00.000000Z"}

    def test_next_policy_number(self, repos, client):
        client.update_item.return_value = {"Attributes": {"seq": {"N": "12"}}}

        assert repos["policies"].next_policy_number(2025) == 12
        kwargs = client.update_item.call_args.kwargs
        assert kwargs["TableName"] == Tables.COUNTERS
        assert kwargs["Key"] == {"counter_name": {"S": "policy_2025"}}
        assert kwargs["UpdateExpression"] == "ADD seq :one"
