"""
In-process repositories backed by dictionaries.
Used for local runs and tests; enforces the same uniqueness rules as the
database backends.
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Generic, List, Sequence, Tuple, TypeVar

from pydantic import BaseModel

from policyflow.core.exceptions import AlreadyExistsError, NotFoundError
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


M = TypeVar("M", bound=BaseModel)


class _Table(Generic[M]):
    """Dictionary keyed by id with optional unique secondary keys."""

    def __init__(self, kind: str, unique: Sequence[str] = ()):
        self.kind = kind
        self.unique = tuple(unique)
        self.rows: Dict[str, M] = {}
        self.lock = threading.RLock()

    def insert(self, item: M) -> None:
        with self.lock:
            if item.id in self.rows:
                raise AlreadyExistsError(f"{self.kind} {item.id} already exists")
            for field in self.unique:
                value = getattr(item, field)
                if any(getattr(row, field) == value for row in self.rows.values()):
                    raise AlreadyExistsError(f"{self.kind} with {field} {value} already exists")
            self.rows[item.id] = item.model_copy(deep=True)

    def replace(self, item: M) -> None:
        with self.lock:
            if item.id not in self.rows:
                raise NotFoundError(f"{self.kind} not found")
            self.rows[item.id] = item.model_copy(deep=True)

    def get(self, item_id: str) -> M:
        with self.lock:
            row = self.rows.get(item_id)
            if row is None:
                raise NotFoundError(f"{self.kind} not found")
            return row.model_copy(deep=True)

    def find_one(self, field: str, value) -> M:
        with self.lock:
            for row in self.rows.values():
                if getattr(row, field) == value:
                    return row.model_copy(deep=True)
        raise NotFoundError(f"{self.kind} not found")

    def select(
        self,
        predicate: Callable[[M], bool],
        sort_key: Callable[[M], object],
        reverse: bool = False,
    ) -> List[M]:
        with self.lock:
            rows = [row for row in self.rows.values() if predicate(row)]
        rows.sort(key=sort_key, reverse=reverse)
        return [row.model_copy(deep=True) for row in rows]


class MemoryProductRepository(ProductRepository):

    def __init__(self):
        self.table = _Table("product", unique=("slug",))

    def list(self) -> List[Product]:
        return self.table.select(lambda p: True, lambda p: p.slug)

    def get(self, product_id: str) -> Product:
        return self.table.get(product_id)

    def get_by_slug(self, slug: str) -> Product:
        return self.table.find_one("slug", slug)

    def upsert_by_slug(self, product: Product) -> Product:
        with self.table.lock:
            try:
                existing = self.table.find_one("slug", product.slug)
            except NotFoundError:
                self.table.insert(product)
                return product.model_copy(deep=True)
            updated = product.model_copy(update={"id": existing.id})
            self.table.replace(updated)
            return updated


class MemoryQuoteRepository(QuoteRepository):

    def __init__(self):
        self.table = _Table("quote")

    def create(self, quote: Quote) -> None:
        self.table.insert(quote)

    def get(self, quote_id: str) -> Quote:
        return self.table.get(quote_id)


class MemoryApplicationRepository(ApplicationRepository):

    def __init__(self):
        self.table = _Table("application", unique=("quote_id",))

    def create(self, application: Application) -> None:
        self.table.insert(application)

    def get(self, application_id: str) -> Application:
        return self.table.get(application_id)

    def update(self, application: Application) -> None:
        self.table.replace(application)

    def update_status(self, application_id: str, status: ApplicationStatus, updated_at: datetime) -> None:
        with self.table.lock:
            application = self.table.get(application_id)
            application.status = status
            application.updated_at = updated_at
            self.table.replace(application)

    def find_by_status(self, status: ApplicationStatus, limit: int) -> List[Application]:
        rows = self.table.select(lambda a: a.status == status, lambda a: a.created_at)
        return rows[:limit]


class MemoryUnderwritingRepository(UnderwritingRepository):

    def __init__(self):
        self.table = _Table("underwriting case", unique=("application_id",))

    def create(self, case: UnderwritingCase) -> None:
        self.table.insert(case)

    def get(self, case_id: str) -> UnderwritingCase:
        return self.table.get(case_id)

    def get_by_application_id(self, application_id: str) -> UnderwritingCase:
        return self.table.find_one("application_id", application_id)

    def update(self, case: UnderwritingCase) -> None:
        self.table.replace(case)

    def _by_decision(self, decision: UnderwritingDecision, limit: int) -> List[UnderwritingCase]:
        rows = self.table.select(lambda c: c.decision == decision, lambda c: c.created_at)
        return rows[:limit]

    def find_pending(self, limit: int) -> List[UnderwritingCase]:
        return self._by_decision(UnderwritingDecision.PENDING, limit)

    def find_referred(self, limit: int) -> List[UnderwritingCase]:
        return self._by_decision(UnderwritingDecision.REFERRED, limit)


class MemoryOfferRepository(OfferRepository):

    def __init__(self):
        self.table = _Table("offer", unique=("application_id",))

    def create(self, offer: Offer) -> None:
        self.table.insert(offer)

    def get(self, offer_id: str) -> Offer:
        return self.table.get(offer_id)

    def get_by_application_id(self, application_id: str) -> Offer:
        return self.table.find_one("application_id", application_id)

    def update(self, offer: Offer) -> None:
        self.table.replace(offer)

    def find_accepted(self, limit: int) -> List[Offer]:
        rows = self.table.select(
            lambda o: o.status == OfferStatus.ACCEPTED,
            lambda o: o.accepted_at or o.created_at,
        )
        return rows[:limit]

    def expire_offers(self, before: datetime) -> int:
        count = 0
        with self.table.lock:
            for row in self.table.rows.values():
                if row.status == OfferStatus.PENDING and row.expires_at < before:
                    row.status = OfferStatus.EXPIRED
                    count += 1
        return count


class MemoryPolicyRepository(PolicyRepository):

    def __init__(self):
        self.table = _Table("policy", unique=("offer_id", "number"))
        self._counters = defaultdict(int)
        self._counter_lock = threading.Lock()

    def create(self, policy: Policy) -> None:
        self.table.insert(policy)

    def get(self, policy_id: str) -> Policy:
        return self.table.get(policy_id)

    def get_by_number(self, number: str) -> Policy:
        return self.table.find_one("number", number)

    def get_by_offer_id(self, offer_id: str) -> Policy:
        return self.table.find_one("offer_id", offer_id)

    def get_by_application_id(self, application_id: str) -> Policy:
        return self.table.find_one("application_id", application_id)

    def list(self, filter: PolicyFilter, limit: int, offset: int) -> Tuple[List[Policy], int]:
        def matches(policy: Policy) -> bool:
            if filter.application_id and policy.application_id != filter.application_id:
                return False
            if filter.status and policy.status != filter.status:
                return False
            return True

        rows = self.table.select(matches, lambda p: p.issued_at, reverse=True)
        return rows[offset:offset + limit], len(rows)

    def next_policy_number(self, year: int) -> int:
        with self._counter_lock:
            self._counters[year] += 1
            return self._counters[year]

