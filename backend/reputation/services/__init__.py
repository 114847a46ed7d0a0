"""Business logic services for the reputation engine."""

from reputation.services.moderation_service import ModerationService, moderate_review_text
from reputation.services.review_service import ReviewService

__all__ = [
    "ReviewService",
    "ModerationService",
    "moderate_review_text",
]
