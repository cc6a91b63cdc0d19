"""
One-command setup script for the Policyflow service.
Creates MongoDB indexes or DynamoDB tables, then seeds the product catalog.

Usage: python scripts/setup_and_seed.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from policyflow.config import get_settings
from policyflow.core.dynamodb_client import ensure_tables, get_dynamodb_client
from policyflow.core.exceptions import PolicyflowError
from policyflow.core.mongodb_client import ensure_indexes, get_database
from policyflow.pipeline.catalog import seed_products
from policyflow.store.factory import build_repositories


def print_step(step: str, status: str = "..."):
    """Print step with status."""
    icons = {
        "...": "...",
        "done": "done",
        "skip": "skip",
        "fail": "FAIL"
    }
    print(f"  [{icons.get(status, status)}] {step}")


def print_header(text: str):
    """Print a header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}")


def setup_mongo(settings) -> None:
    print("\nConnecting to MongoDB...")
    try:
        db = get_database()
    except Exception as e:
        print(f"\n  ERROR: Could not connect to MongoDB!")
        print(f"  {e}")
        print("\n  Please check your MONGODB_URI in .env")
        print("  For local: mongodb://localhost:27017")
        sys.exit(1)
    print_step(f"Connected to database: {settings.mongodb_database}", "done")

    print_header("Creating Indexes")
    ensure_indexes(db)
    print_step("Unique and lookup indexes", "done")


def setup_dynamodb(settings) -> None:
    print(f"\nConnecting to DynamoDB ({settings.dynamodb_endpoint or settings.aws_region})...")
    client = get_dynamodb_client()

    print_header("Creating Tables")
    try:
        created = ensure_tables(client)
    except Exception as e:
        print(f"\n  ERROR: Could not create DynamoDB tables!")
        print(f"  {e}")
        sys.exit(1)

    if created:
        for name in created:
            print_step(f"Created {name}", "done")
    else:
        print_step("All tables exist", "skip")


def seed_catalog(settings) -> int:
    """Upsert the default products by slug. Returns the number written."""
    repositories = build_repositories(settings)
    count = 0
    try:
        for product in seed_products():
            try:
                stored = repositories.products.upsert_by_slug(product)
            except PolicyflowError as e:
                print_step(f"{product.slug}: {e}", "fail")
                continue
            print_step(f"{stored.slug} ({stored.name})", "done")
            count += 1
    finally:
        repositories.close()
    return count


def main():
    """Main setup function."""
    print_header("Policyflow - Setup")
    settings = get_settings()
    print(f"\nStorage backend: {settings.db_type}")

    if settings.db_type == "memory":
        print_step("In-memory backend needs no setup; the API seeds it on startup", "skip")
        return

    if settings.db_type == "mongo":
        setup_mongo(settings)
    else:
        setup_dynamodb(settings)

    print_header("Seeding Products")
    count = seed_catalog(settings)

    print_header("Setup Complete")
    print(f"  Products seeded: {count}")
    print("\n  Start the API with: python -m policyflow.main")
    print("  Price a quote with: python -m cli.process_quote --product term-life-10 --coverage 150000 --age 35")


if __name__ == "__main__":
    main()
