"""
Pricing Engine
Turns a product plus applicant attributes into a priced quote.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional

from policyflow.core.exceptions import NotFoundError, ValidationError
from policyflow.core.ids import new_id, utc_now
from policyflow.pipeline.models import QUOTE_VALIDITY, Quote, QuoteInput, QuoteStatus
from policyflow.store.base import ProductRepository, QuoteRepository


logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
PER_THOUSAND = Decimal(1000)

# (maximum age inclusive, factor)
AGE_FACTORS = (
    (30, Decimal("0.90")),
    (40, Decimal("1.00")),
    (50, Decimal("1.20")),
    (60, Decimal("1.60")),
)
SENIOR_AGE_FACTOR = Decimal("2.00")
SMOKER_FACTOR = Decimal("1.50")
NON_SMOKER_FACTOR = Decimal("1.00")
MAX_QUOTE_AGE = 120


def factor_age(age: int) -> Decimal:
    for max_age, factor in AGE_FACTORS:
        if age <= max_age:
            return factor
    return SENIOR_AGE_FACTOR


def factor_smoker(smoker: bool) -> Decimal:
    return SMOKER_FACTOR if smoker else NON_SMOKER_FACTOR


def round_premium(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class QuoteService:
    """
    Prices quotes against the product catalog.
    The quote repository is optional; without it quotes are priced but not stored.
    """

    def __init__(
        self,
        products: ProductRepository,
        quotes: Optional[QuoteRepository] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.products = products
        self.quotes = quotes
        self.clock = clock

    def price(self, request: QuoteInput) -> Quote:
        """
        Price a quote request.

        Args:
            request: Product slug, coverage, term, age and smoker flag

        Returns:
            Quote in priced status, valid for 24 hours

        Raises:
            ValidationError: Invalid input or input outside the product's rules
            NotFoundError: Unknown product slug
        """
        if not request.product_slug:
            raise ValidationError("product_slug is required")
        if request.coverage_amount <= 0:
            raise ValidationError("coverage_amount must be positive")
        if request.term_years <= 0:
            raise ValidationError("term_years must be positive")
        if request.age <= 0 or request.age > MAX_QUOTE_AGE:
            raise ValidationError(f"age must be between 1 and {MAX_QUOTE_AGE}")

        product = self.products.get_by_slug(request.product_slug)

        if request.coverage_amount < product.min_coverage or request.coverage_amount > product.max_coverage:
            raise ValidationError(
                f"coverage_amount must be between {product.min_coverage} and {product.max_coverage}"
            )
        if request.term_years != product.term_years:
            raise ValidationError(f"term_years must be {product.term_years} for {product.slug}")

        premium = (
            Decimal(request.coverage_amount) / PER_THOUSAND
            * product.base_rate
            * factor_age(request.age)
            * factor_smoker(request.smoker)
        )

        now = self.clock()
        quote = Quote(
            id=new_id(),
            product_id=product.id,
            product_slug=product.slug,
            coverage_amount=request.coverage_amount,
            term_years=request.term_years,
            monthly_premium=round_premium(premium),
            status=QuoteStatus.PRICED,
            created_at=now,
            expires_at=now + QUOTE_VALIDITY,
        )

        if self.quotes is not None:
            self.quotes.create(quote)
        logger.info(f"Priced quote {quote.id} for {product.slug}: {quote.monthly_premium}/month")
        return quote

    def get(self, quote_id: str) -> Quote:
        if not quote_id:
            raise ValidationError("quote id is required")
        if self.quotes is None:
            raise NotFoundError("quote not found")
        return self.quotes.get(quote_id)
