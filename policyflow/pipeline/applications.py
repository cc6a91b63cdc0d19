"""
Application Lifecycle Manager
Creates applications from priced quotes and moves them from draft to submitted.
"""

import logging
from datetime import datetime
from typing import Callable

from policyflow.core.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InvalidStateError,
    ValidationError,
)
from policyflow.core.ids import new_id, utc_now
from policyflow.pipeline.models import (
    Application,
    ApplicationInput,
    ApplicationPatch,
    ApplicationStatus,
)
from policyflow.store.base import ApplicationRepository, QuoteRepository


logger = logging.getLogger(__name__)


class ApplicationService:
    """Owns the draft and submitted stages of an application."""

    def __init__(
        self,
        applications: ApplicationRepository,
        quotes: QuoteRepository,
        clock: Callable[[], datetime] = utc_now
    ):
        self.applications = applications
        self.quotes = quotes
        self.clock = clock

    def create(self, request: ApplicationInput) -> Application:
        """
        Create a draft application from an unexpired quote.
        At most one application can exist per quote.
        """
        if not request.quote_id:
            raise ValidationError("quote_id is required")
        request.applicant.check()

        quote = self.quotes.get(request.quote_id)
        now = self.clock()
        if now > quote.expires_at:
            raise InvalidStateError("quote has expired")

        application = Application(
            id=new_id(),
            quote_id=quote.id,
            product_id=quote.product_id,
            product_slug=quote.product_slug,
            coverage_amount=quote.coverage_amount,
            term_years=quote.term_years,
            monthly_premium=quote.monthly_premium,
            applicant=request.applicant.model_copy(deep=True),
            status=ApplicationStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )

        try:
            self.applications.create(application)
        except AlreadyExistsError as e:
            raise ConflictError("quote already used for an application", original_error=e)

        logger.info(f"Created application {application.id} from quote {quote.id}")
        return application

    def get(self, application_id: str) -> Application:
        if not application_id:
            raise ValidationError("application id is required")
        return self.applications.get(application_id)

    def patch(self, application_id: str, changes: ApplicationPatch) -> Application:
        """Replace applicant details. Only drafts can be edited."""
        application = self.get(application_id)
        if application.status != ApplicationStatus.DRAFT:
            raise InvalidStateError(
                f"cannot update application in {application.status.value} status"
            )

        if changes.applicant is not None:
            changes.applicant.check()
            application.applicant = changes.applicant.model_copy(deep=True)

        application.updated_at = self.clock()
        self.applications.update(application)
        return application

    def submit(self, application_id: str) -> Application:
        """Submit a complete draft for underwriting."""
        application = self.get(application_id)
        if not application.status.can_transition_to(ApplicationStatus.SUBMITTED):
            raise InvalidStateError(
                f"cannot submit application in {application.status.value} status"
            )

        try:
            application.applicant.check()
        except ValidationError as e:
            raise ValidationError(f"application incomplete: {e.message}", original_error=e)

        now = self.clock()
        application.status = ApplicationStatus.SUBMITTED
        application.submitted_at = now
        application.updated_at = now
        self.applications.update(application)

        logger.info(f"Submitted application {application.id}")
        return application
