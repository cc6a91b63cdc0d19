"""
Builds the repository bundle for the configured storage backend.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from policyflow.config import Settings
from policyflow.core.dynamodb_client import Tables, close_dynamodb_client, get_dynamodb_client
from policyflow.core.mongodb_client import close_mongodb_client, get_database, get_mongodb_client
from policyflow.store.base import (
    ApplicationRepository,
    OfferRepository,
    PolicyRepository,
    ProductRepository,
    QuoteRepository,
    UnderwritingRepository,
)
from policyflow.store.dynamo import build_dynamo_repositories
from policyflow.store.memory import (
    MemoryApplicationRepository,
    MemoryOfferRepository,
    MemoryPolicyRepository,
    MemoryProductRepository,
    MemoryQuoteRepository,
    MemoryUnderwritingRepository,
)
from policyflow.store.mongo import build_mongo_repositories


logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    """One repository per entity, all on the same backend."""
    products: ProductRepository
    quotes: QuoteRepository
    applications: ApplicationRepository
    underwriting: UnderwritingRepository
    offers: OfferRepository
    policies: PolicyRepository
    backend: str = "memory"
    _ping: Optional[Callable[[], None]] = field(default=None, repr=False)
    _close: Optional[Callable[[], None]] = field(default=None, repr=False)

    def ping(self) -> bool:
        """Return True if the backend answers."""
        if self._ping is None:
            return True
        try:
            self._ping()
            return True
        except Exception as e:
            logger.warning(f"{self.backend} health check failed: {e}")
            return False

    def close(self) -> None:
        if self._close is not None:
            self._close()


def build_memory_repositories() -> Repositories:
    return Repositories(
        products=MemoryProductRepository(),
        quotes=MemoryQuoteRepository(),
        applications=MemoryApplicationRepository(),
        underwriting=MemoryUnderwritingRepository(),
        offers=MemoryOfferRepository(),
        policies=MemoryPolicyRepository(),
        backend="memory",
    )


def build_repositories(settings: Settings) -> Repositories:
    """
    Create repositories for settings.db_type.

    Args:
        settings: Application settings

    Returns:
        Repositories bundle; call close() on shutdown
    """
    if settings.db_type == "memory":
        logger.info("Using in-memory storage")
        return build_memory_repositories()

    if settings.db_type == "mongo":
        database = get_database()
        logger.info(f"Using MongoDB database {settings.mongodb_database}")
        return Repositories(
            **build_mongo_repositories(database, settings.mongo_op_timeout_ms),
            backend="mongo",
            _ping=lambda: get_mongodb_client().admin.command("ping"),
            _close=close_mongodb_client,
        )

    client = get_dynamodb_client()
    logger.info(f"Using DynamoDB in {settings.aws_region}")
    return Repositories(
        **build_dynamo_repositories(client),
        backend="dynamodb",
        _ping=lambda: client.describe_table(TableName=Tables.PRODUCTS),
        _close=close_dynamodb_client,
    )
