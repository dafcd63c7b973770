"""
Custom exceptions for the application.

Every domain error carries the HTTP status and error code it maps to;
the top-level handler in app.main renders them as {"error", "code"}.
"""

from typing import Optional

from fastapi import status


class FlashcardsError(Exception):
    """Base exception for the flashcards backend."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


# ═══════════════════════════════════════════════════════════════════════════
# INPUT EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════


class InvalidInputError(FlashcardsError):
    """Raised when the request payload is malformed or incomplete."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_INPUT"


class UnsupportedMediaError(InvalidInputError):
    """Raised when an uploaded file has a MIME type we do not accept."""
    code = "UNSUPPORTED_MEDIA_TYPE"


class FileTooLargeError(InvalidInputError):
    """Raised when an uploaded file exceeds its size limit."""
    code = "FILE_TOO_LARGE"


# ═══════════════════════════════════════════════════════════════════════════
# AUTHENTICATION EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════


class AuthenticationError(FlashcardsError):
    """Raised when authentication fails."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class InvalidTokenError(AuthenticationError):
    """Raised when a session token is invalid or expired."""
    pass


class UserNotFoundError(AuthenticationError):
    """Raised when the token subject has no matching user."""
    pass


class WebhookVerificationError(FlashcardsError):
    """Raised when a webhook signature does not verify."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_SIGNATURE"


class WebhookConfigurationError(FlashcardsError):
    """Raised when a webhook arrives for a provider whose secret is not configured."""
    code = "WEBHOOK_NOT_CONFIGURED"


class SubscriptionSyncError(FlashcardsError):
    """Raised when a Stripe event cannot be applied to our records."""
    code = "WEBHOOK_PROCESSING_FAILED"


# ═══════════════════════════════════════════════════════════════════════════
# DECK & CARD EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════


class DeckNotFoundError(FlashcardsError):
    """Raised when a deck is not found."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "DECK_NOT_FOUND"


class CardNotFoundError(FlashcardsError):
    """Raised when a card is not found."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "CARD_NOT_FOUND"


class PreviewNotFoundError(FlashcardsError):
    """Raised when a preview session is missing, expired or not owned by the caller."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "PREVIEW_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# GENERATION EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════


class ExternalAPIError(FlashcardsError):
    """Raised when the generative model provider call fails."""
    code = "PROVIDER_ERROR"


class GenerationTimeoutError(FlashcardsError):
    """Raised when a provider call exceeds its deadline."""
    status_code = status.HTTP_408_REQUEST_TIMEOUT
    code = "TIMEOUT"


class GenerationParseError(FlashcardsError):
    """Raised when the model output is not the JSON shape we asked for."""
    code = "PARSE_ERROR"


class NoValidCardsError(FlashcardsError):
    """Raised when every generated card fails validation."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "NO_VALID_CARDS"


# ═══════════════════════════════════════════════════════════════════════════
# QUOTA EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════


class QuotaStoreUnavailableError(FlashcardsError):
    """Raised when the quota store cannot be reached and the policy is fail-closed."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "RATE_LIMIT_UNAVAILABLE"


class RateLimitExceededError(FlashcardsError):
    """Raised when a plan's hourly or monthly quota is exhausted."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        retry_after: int,
        current_plan: str,
        upgrade_message: str,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.current_plan = current_plan
        self.upgrade_message = upgrade_message
        self.headers = headers or {}
