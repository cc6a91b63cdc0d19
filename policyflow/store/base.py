"""
Repository contracts.

Every backend implements these classes. ``create`` raises AlreadyExistsError
when the entity id or its natural key is already taken, ``get*`` raise
NotFoundError, and ``update`` raises NotFoundError when the entity is gone.
Returned entities are always copies owned by the caller.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Tuple

from policyflow.pipeline.models import (
    Application,
    ApplicationStatus,
    Offer,
    Policy,
    PolicyFilter,
    Product,
    Quote,
    UnderwritingCase,
)


class ProductRepository(ABC):

    @abstractmethod
    def list(self) -> List[Product]:
        """Return all products ordered by slug."""

    @abstractmethod
    def get(self, product_id: str) -> Product:
        pass

    @abstractmethod
    def get_by_slug(self, slug: str) -> Product:
        pass

    @abstractmethod
    def upsert_by_slug(self, product: Product) -> Product:
        """Insert or replace the product with the same slug, keeping its id."""


class QuoteRepository(ABC):

    @abstractmethod
    def create(self, quote: Quote) -> None:
        pass

    @abstractmethod
    def get(self, quote_id: str) -> Quote:
        pass


class ApplicationRepository(ABC):
    """Applications are unique per quote_id."""

    @abstractmethod
    def create(self, application: Application) -> None:
        pass

    @abstractmethod
    def get(self, application_id: str) -> Application:
        pass

    @abstractmethod
    def update(self, application: Application) -> None:
        pass

    @abstractmethod
    def update_status(
        self,
        application_id: str,
        status: ApplicationStatus,
        updated_at: datetime
    ) -> None:
        pass

    @abstractmethod
    def find_by_status(self, status: ApplicationStatus, limit: int) -> List[Application]:
        """Oldest first."""


class UnderwritingRepository(ABC):
    """Underwriting cases are unique per application_id."""

    @abstractmethod
    def create(self, case: UnderwritingCase) -> None:
        pass

    @abstractmethod
    def get(self, case_id: str) -> UnderwritingCase:
        pass

    @abstractmethod
    def get_by_application_id(self, application_id: str) -> UnderwritingCase:
        pass

    @abstractmethod
    def update(self, case: UnderwritingCase) -> None:
        pass

    @abstractmethod
    def find_pending(self, limit: int) -> List[UnderwritingCase]:
        pass

    @abstractmethod
    def find_referred(self, limit: int) -> List[UnderwritingCase]:
        pass


class OfferRepository(ABC):
    """Offers are unique per application_id."""

    @abstractmethod
    def create(self, offer: Offer) -> None:
        pass

    @abstractmethod
    def get(self, offer_id: str) -> Offer:
        pass

    @abstractmethod
    def get_by_application_id(self, application_id: str) -> Offer:
        pass

    @abstractmethod
    def update(self, offer: Offer) -> None:
        pass

    @abstractmethod
    def find_accepted(self, limit: int) -> List[Offer]:
        """Accepted offers, earliest accepted_at first."""

    @abstractmethod
    def expire_offers(self, before: datetime) -> int:
        """Mark pending offers with expires_at < before as expired. Returns the count."""


class PolicyRepository(ABC):
    """Policies are unique per offer_id and per number."""

    @abstractmethod
    def create(self, policy: Policy) -> None:
        pass

    @abstractmethod
    def get(self, policy_id: str) -> Policy:
        pass

    @abstractmethod
    def get_by_number(self, number: str) -> Policy:
        pass

    @abstractmethod
    def get_by_offer_id(self, offer_id: str) -> Policy:
        pass

    @abstractmethod
    def get_by_application_id(self, application_id: str) -> Policy:
        pass

    @abstractmethod
    def list(self, filter: PolicyFilter, limit: int, offset: int) -> Tuple[List[Policy], int]:
        """Newest issued first. Returns the page and the total matching count."""

    @abstractmethod
    def next_policy_number(self, year: int) -> int:
        """Atomically increment and return the sequence for the given year."""
