"""
DynamoDB repositories.

Items are stored with fixed-width ISO-8601 UTC timestamps and string
decimals so that range keys sort chronologically. Natural-key uniqueness
(for example one offer per application) is enforced by writing a guard item
to the unique keys table in the same transaction as the entity itself.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generic, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from policyflow.core.dynamodb_client import Tables
from policyflow.core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    StorageError,
    StorageTimeoutError,
)
from policyflow.pipeline.models import (
    Application,
    ApplicationStatus,
    Offer,
    OfferStatus,
    Policy,
    PolicyFilter,
    Product,
    Quote,
    UnderwritingCase,
    UnderwritingDecision,
)
from policyflow.store.base import (
    ApplicationRepository,
    OfferRepository,
    PolicyRepository,
    ProductRepository,
    QuoteRepository,
    UnderwritingRepository,
)


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()

CONDITION_FAILED = "ConditionalCheckFailedException"
TRANSACTION_CANCELED = "TransactionCanceledException"
CONDITION_FAILED_REASON = "ConditionalCheckFailed"


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp, so string order matches time order."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def _jsonable(value):
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return format_timestamp(value)
    return to_jsonable_python(value)


def to_attr(value) -> dict:
    """Serialize one plain value (str, int, bool, datetime) to a DynamoDB attribute."""
    return _serializer.serialize(_jsonable(value))


def to_item(model: BaseModel) -> dict:
    data = _jsonable(model.model_dump(exclude_none=True))
    return {key: _serializer.serialize(value) for key, value in data.items()}


def _plain(value):
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, Decimal) and value == value.to_integral_value():
        return int(value)
    return value


def from_item(model_cls: Type[M], item: dict) -> M:
    data = {key: _deserializer.deserialize(value) for key, value in item.items()}
    return model_cls.model_validate(_plain(data))


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def cancellation_reasons(error: ClientError) -> List[str]:
    """Reason codes of a cancelled transaction, one per item; "None" for items that passed."""
    return [reason.get("Code", "") for reason in error.response.get("CancellationReasons", [])]


class DynamoRepository(Generic[M]):
    """Shared plumbing for one table holding one entity type."""

    table_name: str = ""
    model_cls: Type[M] = None
    kind: str = "entity"
    # Fields that must be unique across the table, enforced via guard items
    unique_fields: Sequence[str] = ()

    def __init__(self, client, unique_table: str = Tables.UNIQUE_KEYS):
        self.client = client
        self.unique_table = unique_table

    @contextmanager
    def _operation(self, action: str):
        """Translate botocore errors into storage errors."""
        try:
            yield
        except ClientError as e:
            raise StorageError(f"{action} {self.kind} failed: {error_code(e)}", original_error=e)
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            raise StorageTimeoutError(f"{action} {self.kind} timed out", original_error=e)
        except BotoCoreError as e:
            raise StorageError(f"{action} {self.kind} failed: {e}", original_error=e)

    def _guard_key(self, field: str, value) -> str:
        return f"{self.table_name}#{field}#{value}"

    def _insert(self, model: M) -> None:
        item = to_item(model)
        entity_put = {
            "TableName": self.table_name,
            "Item": item,
            "ConditionExpression": "attribute_not_exists(id)",
        }

        if not self.unique_fields:
            try:
                with self._operation("create"):
                    self.client.put_item(**entity_put)
            except StorageError as e:
                if isinstance(e.original_error, ClientError) and error_code(e.original_error) == CONDITION_FAILED:
                    raise AlreadyExistsError(f"{self.kind} already exists", original_error=e.original_error)
                raise
            return

        transact_items = [{"Put": entity_put}]
        for field in self.unique_fields:
            transact_items.append({
                "Put": {
                    "TableName": self.unique_table,
                    "Item": {
                        "key": {"S": self._guard_key(field, getattr(model, field))},
                        "owner_id": {"S": model.id},
                    },
                    "ConditionExpression": "attribute_not_exists(#k)",
                    "ExpressionAttributeNames": {"#k": "key"},
                }
            })

        try:
            with self._operation("create"):
                self.client.transact_write_items(TransactItems=transact_items)
        except StorageError as e:
            error = e.original_error
            if isinstance(error, ClientError) and error_code(error) == TRANSACTION_CANCELED:
                reasons = cancellation_reasons(error)
                if CONDITION_FAILED_REASON in reasons:
                    logger.debug(f"Unique key collision on {self.table_name}: {reasons}")
                    raise AlreadyExistsError(f"{self.kind} already exists", original_error=error)
                # Conflicting concurrent transaction; nothing was written
                raise StorageError(
                    f"create {self.kind} cancelled: {', '.join(reasons) or 'unknown'}",
                    original_error=error,
                )
            raise

    def _replace(self, model: M) -> None:
        try:
            with self._operation("update"):
                self.client.put_item(
                    TableName=self.table_name,
                    Item=to_item(model),
                    ConditionExpression="attribute_exists(id)",
                )
        except StorageError as e:
            if isinstance(e.original_error, ClientError) and error_code(e.original_error) == CONDITION_FAILED:
                raise NotFoundError(f"{self.kind} not found")
            raise

    def get(self, entity_id: str) -> M:
        with self._operation("get"):
            response = self.client.get_item(
                TableName=self.table_name,
                Key={"id": {"S": entity_id}},
                ConsistentRead=True,
            )
        item = response.get("Item")
        if not item:
            raise NotFoundError(f"{self.kind} not found")
        return from_item(self.model_cls, item)

    def _query(
        self,
        index: str,
        field: str,
        value,
        limit: Optional[int] = None,
        forward: bool = True,
        filter_expression: Optional[str] = None,
        filter_values: Optional[dict] = None
    ) -> Iterator[dict]:
        """Yield items from a GSI query, following pagination up to limit."""
        params = {
            "TableName": self.table_name,
            "IndexName": index,
            "KeyConditionExpression": "#f = :v",
            "ExpressionAttributeNames": {"#f": field},
            "ExpressionAttributeValues": {":v": to_attr(value)},
            "ScanIndexForward": forward,
        }
        if filter_expression:
            params["FilterExpression"] = filter_expression
            params["ExpressionAttributeValues"].update(filter_values or {})

        returned = 0
        while True:
            if limit is not None and not filter_expression:
                params["Limit"] = limit - returned
            with self._operation("query"):
                response = self.client.query(**params)
            for item in response.get("Items", []):
                yield item
                returned += 1
                if limit is not None and returned >= limit:
                    return
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return
            params["ExclusiveStartKey"] = last_key

    def _find_one(self, index: str, field: str, value) -> M:
        for item in self._query(index, field, value, limit=1):
            return from_item(self.model_cls, item)
        raise NotFoundError(f"{self.kind} not found")

    def _find(self, index: str, field: str, value, limit: int) -> List[M]:
        return [from_item(self.model_cls, item) for item in self._query(index, field, value, limit=limit)]

    def _scan(self) -> List[M]:
        items = []
        params = {"TableName": self.table_name}
        while True:
            with self._operation("scan"):
                response = self.client.scan(**params)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key
        return [from_item(self.model_cls, item) for item in items]


class DynamoProductRepository(DynamoRepository[Product], ProductRepository):
    table_name = Tables.PRODUCTS
    model_cls = Product
    kind = "product"
    unique_fields = ("slug",)

    def list(self) -> List[Product]:
        return sorted(self._scan(), key=lambda p: p.slug)

    def get_by_slug(self, slug: str) -> Product:
        return self._find_one("slug-index", "slug", slug)

    def upsert_by_slug(self, product: Product) -> Product:
        try:
            existing = self.get_by_slug(product.slug)
        except NotFoundError:
            self._insert(product)
            return product
        updated = product.model_copy(update={"id": existing.id})
        self._replace(updated)
        return updated


class DynamoQuoteRepository(DynamoRepository[Quote], QuoteRepository):
    table_name = Tables.QUOTES
    model_cls = Quote
    kind = "quote"

    def create(self, quote: Quote) -> None:
        self._insert(quote)


class DynamoApplicationRepository(DynamoRepository[Application], ApplicationRepository):
    table_name = Tables.APPLICATIONS
    model_cls = Application
    kind = "application"
    unique_fields = ("quote_id",)

    def create(self, application: Application) -> None:
        self._insert(application)

    def update(self, application: Application) -> None:
        self._replace(application)

    def update_status(self, application_id: str, status: ApplicationStatus, updated_at: datetime) -> None:
        try:
            with self._operation("update"):
                self.client.update_item(
                    TableName=self.table_name,
                    Key={"id": {"S": application_id}},
                    UpdateExpression="SET #s = :s, updated_at = :u",
                    ConditionExpression="attribute_exists(id)",
                    ExpressionAttributeNames={"#s": "status"},
                    ExpressionAttributeValues={":s": to_attr(status), ":u": to_attr(updated_at)},
                )
        except StorageError as e:
            if isinstance(e.original_error, ClientError) and error_code(e.original_error) == CONDITION_FAILED:
                raise NotFoundError("application not found")
            raise

    def find_by_status(self, status: ApplicationStatus, limit: int) -> List[Application]:
        return self._find("status-index", "status", status, limit)


class DynamoUnderwritingRepository(DynamoRepository[UnderwritingCase], UnderwritingRepository):
    table_name = Tables.UNDERWRITING_CASES
    model_cls = UnderwritingCase
    kind = "underwriting case"
    unique_fields = ("application_id",)

    def create(self, case: UnderwritingCase) -> None:
        self._insert(case)

    def get_by_application_id(self, application_id: str) -> UnderwritingCase:
        return self._find_one("application_id-index", "application_id", application_id)

    def update(self, case: UnderwritingCase) -> None:
        self._replace(case)

    def find_pending(self, limit: int) -> List[UnderwritingCase]:
        return self._find("decision-index", "decision", UnderwritingDecision.PENDING, limit)

    def find_referred(self, limit: int) -> List[UnderwritingCase]:
        return self._find("decision-index", "decision", UnderwritingDecision.REFERRED, limit)


class DynamoOfferRepository(DynamoRepository[Offer], OfferRepository):
    table_name = Tables.OFFERS
    model_cls = Offer
    kind = "offer"
    unique_fields = ("application_id",)

    def create(self, offer: Offer) -> None:
        self._insert(offer)

    def get_by_application_id(self, application_id: str) -> Offer:
        return self._find_one("application_id-index", "application_id", application_id)

    def update(self, offer: Offer) -> None:
        self._replace(offer)

    def find_accepted(self, limit: int) -> List[Offer]:
        offers = self._find("status-index", "status", OfferStatus.ACCEPTED, limit)
        return sorted(offers, key=lambda o: o.accepted_at or o.created_at)

    def expire_offers(self, before: datetime) -> int:
        stale = self._query(
            "status-index",
            "status",
            OfferStatus.PENDING,
            filter_expression="expires_at < :before",
            filter_values={":before": to_attr(before)},
        )
        count = 0
        for item in list(stale):
            try:
                with self._operation("expire"):
                    self.client.update_item(
                        TableName=self.table_name,
                        Key={"id": item["id"]},
                        UpdateExpression="SET #s = :expired",
                        ConditionExpression="#s = :pending",
                        ExpressionAttributeNames={"#s": "status"},
                        ExpressionAttributeValues={
                            ":expired": to_attr(OfferStatus.EXPIRED),
                            ":pending": to_attr(OfferStatus.PENDING),
                        },
                    )
            except StorageError as e:
                # Accepted or declined since the query ran
                if isinstance(e.original_error, ClientError) and error_code(e.original_error) == CONDITION_FAILED:
                    continue
                raise
            count += 1
        return count


class DynamoPolicyRepository(DynamoRepository[Policy], PolicyRepository):
    table_name = Tables.POLICIES
    model_cls = Policy
    kind = "policy"
    unique_fields = ("offer_id", "number")

    def __init__(self, client, unique_table: str = Tables.UNIQUE_KEYS, counters_table: str = Tables.COUNTERS):
        super().__init__(client, unique_table)
        self.counters_table = counters_table

    def create(self, policy: Policy) -> None:
        self._insert(policy)

    def get_by_number(self, number: str) -> Policy:
        return self._find_one("number-index", "number", number)

    def get_by_offer_id(self, offer_id: str) -> Policy:
        return self._find_one("offer_id-index", "offer_id", offer_id)

    def get_by_application_id(self, application_id: str) -> Policy:
        return self._find_one("application_id-index", "application_id", application_id)

    def list(self, filter: PolicyFilter, limit: int, offset: int) -> Tuple[List[Policy], int]:
        if filter.application_id:
            items = self._query("application_id-index", "application_id", filter.application_id)
            policies = [from_item(Policy, item) for item in items]
        elif filter.status:
            items = self._query("status-index", "status", filter.status)
            policies = [from_item(Policy, item) for item in items]
        else:
            policies = self._scan()

        if filter.status:
            policies = [p for p in policies if p.status == filter.status]

        policies.sort(key=lambda p: p.issued_at, reverse=True)
        return policies[offset:offset + limit], len(policies)

    def next_policy_number(self, year: int) -> int:
        with self._operation("increment counter for"):
            response = self.client.update_item(
                TableName=self.counters_table,
                Key={"counter_name": {"S": f"policy_{year}"}},
                UpdateExpression="ADD seq :one",
                ExpressionAttributeValues={":one": {"N": "1"}},
                ReturnValues="UPDATED_NEW",
            )
        return int(response["Attributes"]["seq"]["N"])


def build_dynamo_repositories(client) -> dict:
    """Instantiate every DynamoDB repository over one client."""
    return {
        "products": DynamoProductRepository(client),
        "quotes": DynamoQuoteRepository(client),
        "applications": DynamoApplicationRepository(client),
        "underwriting": DynamoUnderwritingRepository(client),
        "offers": DynamoOfferRepository(client),
        "policies": DynamoPolicyRepository(client),
    }
