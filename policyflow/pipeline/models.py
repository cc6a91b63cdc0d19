"""
Pydantic models for the quote-to-policy pipeline.
These models define the entities passed between pipeline services and
persisted by the repositories.
"""

import re
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from policyflow.core.exceptions import ValidationError


QUOTE_VALIDITY = timedelta(hours=24)
OFFER_VALIDITY = timedelta(days=30)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MIN_APPLICANT_AGE = 18
MAX_APPLICANT_AGE = 120


# ---------------------------------------------------------------------------
# Statuses and transition tables
# ---------------------------------------------------------------------------

class QuoteStatus(str, Enum):
    NEW = "new"
    PRICED = "priced"
    EXPIRED = "expired"


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    DECLINED = "declined"

    def can_transition_to(self, target: "ApplicationStatus") -> bool:
        return target in APPLICATION_TRANSITIONS.get(self, ())


class UnderwritingDecision(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    REFERRED = "referred"

    def can_transition_to(self, target: "UnderwritingDecision") -> bool:
        return target in DECISION_TRANSITIONS.get(self, ())


class UnderwritingMethod(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    ISSUED = "issued"

    def can_transition_to(self, target: "OfferStatus") -> bool:
        return target in OFFER_TRANSITIONS.get(self, ())


class PolicyStatus(str, Enum):
    ACTIVE = "active"
    LAPSED = "lapsed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


APPLICATION_TRANSITIONS = {
    ApplicationStatus.DRAFT: (ApplicationStatus.SUBMITTED,),
    ApplicationStatus.SUBMITTED: (ApplicationStatus.UNDER_REVIEW,),
    ApplicationStatus.UNDER_REVIEW: (ApplicationStatus.APPROVED, ApplicationStatus.DECLINED),
}

DECISION_TRANSITIONS = {
    UnderwritingDecision.PENDING: (
        UnderwritingDecision.APPROVED,
        UnderwritingDecision.DECLINED,
        UnderwritingDecision.REFERRED,
    ),
    UnderwritingDecision.REFERRED: (UnderwritingDecision.APPROVED, UnderwritingDecision.DECLINED),
}

OFFER_TRANSITIONS = {
    OfferStatus.PENDING: (OfferStatus.ACCEPTED, OfferStatus.DECLINED, OfferStatus.EXPIRED),
    OfferStatus.ACCEPTED: (OfferStatus.ISSUED,),
}


# ---------------------------------------------------------------------------
# Products and quotes
# ---------------------------------------------------------------------------

class Product(BaseModel):
    """An insurance product definition."""
    id: str
    slug: str = Field(description="Unique human-readable key, e.g. term-life-20")
    name: str
    term_years: int
    min_coverage: int
    max_coverage: int
    base_rate: Decimal = Field(description="Monthly rate per 1,000 of coverage")

    def check(self) -> None:
        """Raise ValidationError if the product definition is inconsistent."""
        if self.term_years <= 0:
            raise ValidationError("term_years must be positive")
        if self.min_coverage <= 0 or self.max_coverage < self.min_coverage:
            raise ValidationError("invalid coverage range")
        if self.base_rate <= 0:
            raise ValidationError("base_rate must be positive")
        if not self.name:
            raise ValidationError("name is required")


class QuoteInput(BaseModel):
    """Pricing request."""
    product_slug: str = ""
    coverage_amount: int = 0
    term_years: int = 0
    age: int = 0
    smoker: bool = False


class Quote(BaseModel):
    """A priced quote. Never mutated after creation."""
    id: str
    product_id: str
    product_slug: str
    coverage_amount: int
    term_years: int
    monthly_premium: Decimal
    status: QuoteStatus = QuoteStatus.PRICED
    created_at: datetime
    expires_at: datetime


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

class Applicant(BaseModel):
    """Personal details of the person applying for cover."""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    date_of_birth: str = Field(default="", description="YYYY-MM-DD")
    age: int = 0
    smoker: bool = False
    state: str = ""

    def check(self) -> None:
        """Raise ValidationError naming the first missing or invalid field."""
        if not self.first_name:
            raise ValidationError("first_name is required")
        if not self.last_name:
            raise ValidationError("last_name is required")
        if not self.email:
            raise ValidationError("email is required")
        if not EMAIL_PATTERN.match(self.email):
            raise ValidationError("email is invalid")
        if not self.date_of_birth:
            raise ValidationError("date_of_birth is required")
        if self.age < MIN_APPLICANT_AGE or self.age > MAX_APPLICANT_AGE:
            raise ValidationError(
                f"age must be between {MIN_APPLICANT_AGE} and {MAX_APPLICANT_AGE}"
            )
        if not self.state:
            raise ValidationError("state is required")


class ApplicationInput(BaseModel):
    quote_id: str = ""
    applicant: Applicant = Field(default_factory=Applicant)


class ApplicationPatch(BaseModel):
    applicant: Optional[Applicant] = None


class Application(BaseModel):
    """An application for cover, snapshotting the quote it was made from."""
    id: str
    quote_id: str
    product_id: str
    product_slug: str
    coverage_amount: int
    term_years: int
    monthly_premium: Decimal
    applicant: Applicant
    status: ApplicationStatus = ApplicationStatus.DRAFT
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Underwriting
# ---------------------------------------------------------------------------

class RiskFactors(BaseModel):
    age: int
    smoker: bool
    coverage_amount: int
    term_years: int


class RiskScore(BaseModel):
    score: int = Field(ge=0, le=100)
    flags: List[str] = Field(default_factory=list)
    recommended: UnderwritingDecision


class UnderwritingCase(BaseModel):
    """Underwriting record for exactly one application."""
    id: str
    application_id: str
    risk_factors: RiskFactors
    risk_score: RiskScore
    decision: UnderwritingDecision = UnderwritingDecision.PENDING
    method: UnderwritingMethod = UnderwritingMethod.AUTO
    decided_by: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    decided_at: Optional[datetime] = None


class DecisionInput(BaseModel):
    """Manual underwriting decision."""
    decision: str = ""
    reason: str = ""


# ---------------------------------------------------------------------------
# Offers and policies
# ---------------------------------------------------------------------------

class Offer(BaseModel):
    id: str
    application_id: str
    product_slug: str
    coverage_amount: int
    term_years: int
    monthly_premium: Decimal
    status: OfferStatus = OfferStatus.PENDING
    created_at: datetime
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None


class Policy(BaseModel):
    """An issued policy."""
    id: str
    number: str = Field(description="POL-<year>-<6 digit sequence>")
    application_id: str
    offer_id: str
    product_slug: str
    coverage_amount: int
    term_years: int
    monthly_premium: Decimal
    insured: Applicant
    status: PolicyStatus = PolicyStatus.ACTIVE
    effective_date: datetime
    expiry_date: datetime
    issued_at: datetime


class PolicyFilter(BaseModel):
    application_id: Optional[str] = None
    status: Optional[PolicyStatus] = None
