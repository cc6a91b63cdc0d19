"""
DynamoDB client singleton and table definitions.
"""

import logging
import boto3
from botocore.config import Config

from policyflow.config import get_settings


logger = logging.getLogger(__name__)

_client = None


class Tables:
    """DynamoDB table names."""
    PRODUCTS = "insurance_products"
    QUOTES = "insurance_quotes"
    APPLICATIONS = "insurance_applications"
    UNDERWRITING_CASES = "insurance_underwriting_cases"
    OFFERS = "insurance_offers"
    POLICIES = "insurance_policies"
    COUNTERS = "insurance_counters"
    UNIQUE_KEYS = "insurance_unique_keys"


def _index(name: str, hash_key: str, range_key: str = None) -> dict:
    schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return {
        "IndexName": name,
        "KeySchema": schema,
        "Projection": {"ProjectionType": "ALL"},
    }


# table -> (partition key, [global secondary indexes])
TABLE_DEFINITIONS = {
    Tables.PRODUCTS: ("id", [_index("slug-index", "slug")]),
    Tables.QUOTES: ("id", []),
    Tables.APPLICATIONS: ("id", [
        _index("quote_id-index", "quote_id"),
        _index("status-index", "status", "created_at"),
    ]),
    Tables.UNDERWRITING_CASES: ("id", [
        _index("application_id-index", "application_id"),
        _index("decision-index", "decision", "created_at"),
    ]),
    Tables.OFFERS: ("id", [
        _index("application_id-index", "application_id"),
        _index("status-index", "status", "created_at"),
    ]),
    Tables.POLICIES: ("id", [
        _index("offer_id-index", "offer_id"),
        _index("number-index", "number"),
        _index("application_id-index", "application_id"),
        _index("status-index", "status", "issued_at"),
    ]),
    Tables.COUNTERS: ("counter_name", []),
    Tables.UNIQUE_KEYS: ("key", []),
}


def get_dynamodb_client():
    """
    Get the low-level DynamoDB client singleton.
    Connect and read timeouts come from settings so a stalled endpoint
    cannot block a worker tick.
    """
    global _client
    if _client is None:
        settings = get_settings()
        config = Config(
            connect_timeout=settings.dynamodb_timeout_sec,
            read_timeout=settings.dynamodb_timeout_sec,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        _client = boto3.client(
            "dynamodb",
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            config=config,
        )
        logger.info(f"DynamoDB client created for region {settings.aws_region}")
    return _client


def ensure_tables(client) -> list:
    """
    Create any missing tables with their indexes (on-demand billing).

    Returns:
        Names of the tables that were created
    """
    existing = set()
    for page in client.get_paginator("list_tables").paginate():
        existing.update(page.get("TableNames", []))

    created = []
    for name, (key, indexes) in TABLE_DEFINITIONS.items():
        if name in existing:
            continue

        attributes = {key}
        for index in indexes:
            for element in index["KeySchema"]:
                attributes.add(element["AttributeName"])

        params = {
            "TableName": name,
            "KeySchema": [{"AttributeName": key, "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": attr, "AttributeType": "S"} for attr in sorted(attributes)
            ],
            "BillingMode": "PAY_PER_REQUEST",
        }
        if indexes:
            params["GlobalSecondaryIndexes"] = indexes

        client.create_table(**params)
        client.get_waiter("table_exists").wait(TableName=name)
        logger.info(f"Created DynamoDB table {name}")
        created.append(name)

    return created


def close_dynamodb_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
