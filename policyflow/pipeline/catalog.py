"""
Default product catalog used to seed a fresh database.
"""

from decimal import Decimal
from typing import List

from policyflow.core.ids import new_id
from policyflow.pipeline.models import Product


SEED_PRODUCTS = [
    {
        "slug": "term-life-10",
        "name": "10-Year Term Life",
        "term_years": 10,
        "min_coverage": 50_000,
        "max_coverage": 500_000,
        "base_rate": "0.25",
    },
    {
        "slug": "term-life-20",
        "name": "20-Year Term Life",
        "term_years": 20,
        "min_coverage": 50_000,
        "max_coverage": 1_000_000,
        "base_rate": "0.35",
    },
    {
        "slug": "term-life-30",
        "name": "30-Year Term Life",
        "term_years": 30,
        "min_coverage": 100_000,
        "max_coverage": 2_000_000,
        "base_rate": "0.45",
    },
    {
        "slug": "whole-life",
        "name": "Whole Life",
        "term_years": 99,
        "min_coverage": 25_000,
        "max_coverage": 500_000,
        "base_rate": "1.50",
    },
    {
        "slug": "senior-life",
        "name": "Senior Term Life (Ages 50-80)",
        "term_years": 15,
        "min_coverage": 10_000,
        "max_coverage": 100_000,
        "base_rate": "2.00",
    },
]


def seed_products() -> List[Product]:
    """Build validated Product objects for the default catalog."""
    products = []
    for item in SEED_PRODUCTS:
        product = Product(id=new_id(), **{**item, "base_rate": Decimal(item["base_rate"])})
        product.check()
        products.append(product)
    return products
