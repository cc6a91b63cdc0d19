"""
MongoDB repositories.

Natural-key uniqueness is enforced by the unique indexes created in
``policyflow.core.mongodb_client.ensure_indexes``. Every operation runs
under ``pymongo.timeout`` so a stalled server cannot block a worker tick.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Tuple, Type, TypeVar

import pymongo
from bson.decimal128 import Decimal128
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from policyflow.core.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    StorageError,
    StorageTimeoutError,
)
from policyflow.core.mongodb_client import Collections
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


def _encode(value):
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_encode(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return Decimal128(value)
    return value


def _decode(value):
    if isinstance(value, dict):
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


def to_document(model: BaseModel) -> dict:
    """Serialize a model to a MongoDB document, using the entity id as _id."""
    doc = _encode(model.model_dump())
    doc["_id"] = doc.pop("id")
    return doc


def from_document(model_cls: Type[M], doc: dict) -> M:
    data = _decode(dict(doc))
    data["id"] = data.pop("_id")
    return model_cls.model_validate(data)


class MongoRepository(Generic[M]):
    """Shared plumbing for one collection holding one entity type."""

    collection_name: str = ""
    model_cls: Type[M] = None
    kind: str = "entity"

    def __init__(self, database: Database, op_timeout_ms: int = 500):
        self.database = database
        self.collection = database[self.collection_name]
        self.op_timeout = op_timeout_ms / 1000

    @contextmanager
    def _operation(self, action: str):
        """Apply the operation deadline and translate driver errors."""
        try:
            with pymongo.timeout(self.op_timeout):
                yield
        except DuplicateKeyError as e:
            logger.debug(f"Duplicate key on {self.collection_name}: {e}")
            raise AlreadyExistsError(f"{self.kind} already exists", original_error=e)
        except PyMongoError as e:
            if e.timeout:
                raise StorageTimeoutError(f"{action} {self.kind} timed out", original_error=e)
            raise StorageError(f"{action} {self.kind} failed: {e}", original_error=e)

    def _insert(self, model: M) -> None:
        with self._operation("create"):
            self.collection.insert_one(to_document(model))

    def _find_one(self, query: dict) -> M:
        with self._operation("get"):
            doc = self.collection.find_one(query)
        if doc is None:
            raise NotFoundError(f"{self.kind} not found")
        return from_document(self.model_cls, doc)

    def _replace(self, model: M) -> None:
        doc = to_document(model)
        with self._operation("update"):
            result = self.collection.replace_one({"_id": doc["_id"]}, doc)
        if result.matched_count == 0:
            raise NotFoundError(f"{self.kind} not found")

    def _find(
        self,
        query: dict,
        sort: List[Tuple[str, int]],
        limit: int,
        skip: int = 0
    ) -> List[M]:
        with self._operation("find"):
            cursor = self.collection.find(query).sort(sort).skip(skip).limit(limit)
            docs = list(cursor)
        return [from_document(self.model_cls, doc) for doc in docs]

    def get(self, entity_id: str) -> M:
        return self._find_one({"_id": entity_id})


class MongoProductRepository(MongoRepository[Product], ProductRepository):
    collection_name = Collections.PRODUCTS
    model_cls = Product
    kind = "product"

    def list(self) -> List[Product]:
        return self._find({}, [("slug", ASCENDING)], limit=0)

    def get_by_slug(self, slug: str) -> Product:
        return self._find_one({"slug": slug})

    def upsert_by_slug(self, product: Product) -> Product:
        doc = to_document(product)
        product_id = doc.pop("_id")
        with self._operation("upsert"):
            stored = self.collection.find_one_and_update(
                {"slug": product.slug},
                {"$set": doc, "$setOnInsert": {"_id": product_id}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return from_document(Product, stored)


class MongoQuoteRepository(MongoRepository[Quote], QuoteRepository):
    collection_name = Collections.QUOTES
    model_cls = Quote
    kind = "quote"

    def create(self, quote: Quote) -> None:
        self._insert(quote)


class MongoApplicationRepository(MongoRepository[Application], ApplicationRepository):
    collection_name = Collections.APPLICATIONS
    model_cls = Application
    kind = "application"

    def create(self, application: Application) -> None:
        self._insert(application)

    def update(self, application: Application) -> None:
        self._replace(application)

    def update_status(self, application_id: str, status: ApplicationStatus, updated_at: datetime) -> None:
        with self._operation("update"):
            result = self.collection.update_one(
                {"_id": application_id},
                {"$set": {"status": status.value, "updated_at": updated_at}},
            )
        if result.matched_count == 0:
            raise NotFoundError("application not found")

    def find_by_status(self, status: ApplicationStatus, limit: int) -> List[Application]:
        return self._find({"status": status.value}, [("created_at", ASCENDING)], limit)


class MongoUnderwritingRepository(MongoRepository[UnderwritingCase], UnderwritingRepository):
    collection_name = Collections.UNDERWRITING_CASES
    model_cls = UnderwritingCase
    kind = "underwriting case"

    def create(self, case: UnderwritingCase) -> None:
        self._insert(case)

    def get_by_application_id(self, application_id: str) -> UnderwritingCase:
        return self._find_one({"application_id": application_id})

    def update(self, case: UnderwritingCase) -> None:
        self._replace(case)

    def find_pending(self, limit: int) -> List[UnderwritingCase]:
        return self._find(
            {"decision": UnderwritingDecision.PENDING.value}, [("created_at", ASCENDING)], limit
        )

    def find_referred(self, limit: int) -> List[UnderwritingCase]:
        return self._find(
            {"decision": UnderwritingDecision.REFERRED.value}, [("created_at", ASCENDING)], limit
        )


class MongoOfferRepository(MongoRepository[Offer], OfferRepository):
    collection_name = Collections.OFFERS
    model_cls = Offer
    kind = "offer"

    def create(self, offer: Offer) -> None:
        self._insert(offer)

    def get_by_application_id(self, application_id: str) -> Offer:
        return self._find_one({"application_id": application_id})

    def update(self, offer: Offer) -> None:
        self._replace(offer)

    def find_accepted(self, limit: int) -> List[Offer]:
        return self._find({"status": OfferStatus.ACCEPTED.value}, [("accepted_at", ASCENDING)], limit)

    def expire_offers(self, before: datetime) -> int:
        with self._operation("expire"):
            result = self.collection.update_many(
                {"status": OfferStatus.PENDING.value, "expires_at": {"$lt": before}},
                {"$set": {"status": OfferStatus.EXPIRED.value}},
            )
        return result.modified_count


class MongoPolicyRepository(MongoRepository[Policy], PolicyRepository):
    collection_name = Collections.POLICIES
    model_cls = Policy
    kind = "policy"

    def __init__(self, database: Database, op_timeout_ms: int = 500):
        super().__init__(database, op_timeout_ms)
        self.counters = database[Collections.COUNTERS]

    def create(self, policy: Policy) -> None:
        self._insert(policy)

    def get_by_number(self, number: str) -> Policy:
        return self._find_one({"number": number})

    def get_by_offer_id(self, offer_id: str) -> Policy:
        return self._find_one({"offer_id": offer_id})

    def get_by_application_id(self, application_id: str) -> Policy:
        return self._find_one({"application_id": application_id})

    def list(self, filter: PolicyFilter, limit: int, offset: int) -> Tuple[List[Policy], int]:
        query = {}
        if filter.application_id:
            query["application_id"] = filter.application_id
        if filter.status:
            query["status"] = filter.status.value

        with self._operation("count"):
            total = self.collection.count_documents(query)
        items = self._find(query, [("issued_at", DESCENDING)], limit, skip=offset)
        return items, total

    def next_policy_number(self, year: int) -> int:
        with self._operation("increment counter for"):
            doc = self.counters.find_one_and_update(
                {"_id": f"policy_{year}"},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return int(doc["seq"])


def build_mongo_repositories(database: Database, op_timeout_ms: int = 500) -> dict:
    """Instantiate every Mongo repository over one database."""
    return {
        "products": MongoProductRepository(database, op_timeout_ms),
        "quotes": MongoQuoteRepository(database, op_timeout_ms),
        "applications": MongoApplicationRepository(database, op_timeout_ms),
        "underwriting": MongoUnderwritingRepository(database, op_timeout_ms),
        "offers": MongoOfferRepository(database, op_timeout_ms),
        "policies": MongoPolicyRepository(database, op_timeout_ms),
    }
