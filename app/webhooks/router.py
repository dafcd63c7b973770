"""
Webhook router - Receives signed events from Stripe (billing) and Clerk (users).

Routes are unauthenticated; every delivery is verified against the provider's
signing secret before anything is written.
"""

import json
import logging

import stripe
from fastapi import APIRouter, Request, status
from pydantic import ValidationError
from svix.webhooks import Webhook as SvixWebhook
from svix.webhooks import WebhookVerificationError as SvixVerificationError

from app.auth.schemas import ClerkEvent
from app.auth.service import get_auth_service
from app.config import get_settings
from app.core.exceptions import (
    InvalidInputError,
    WebhookConfigurationError,
    WebhookVerificationError,
)
from app.core.schemas import ErrorResponse
from app.dependencies import DBSession
from app.rate_limit import WEBHOOK_RATE_LIMIT, limiter
from app.subscriptions.service import get_subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhooks"])

MAX_WEBHOOK_BODY_BYTES = 64 * 1024


async def read_limited_body(request: Request) -> bytes:
    """Read the raw body, rejecting anything over 64 KiB."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > MAX_WEBHOOK_BODY_BYTES:
        raise InvalidInputError("Webhook body too large")

    body = await request.body()
    if len(body) > MAX_WEBHOOK_BODY_BYTES:
        raise InvalidInputError("Webhook body too large")
    return body


# ═══════════════════════════════════════════════════════════════════════════
# SIGNATURE VERIFICATION
# ═══════════════════════════════════════════════════════════════════════════


def verify_stripe_event(payload: bytes, signature: str, secret: str) -> dict:
    """
    Verify a Stripe delivery and return the decoded event.

    Raises:
        WebhookConfigurationError: If no signing secret is configured
        WebhookVerificationError: If the signature or payload is invalid
    """
    if not secret:
        logger.error("[WebhookRouter] Stripe webhook secret is not configured")
        raise WebhookConfigurationError("Stripe webhook secret not configured")

    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"[WebhookRouter] Stripe signature verification failed: {e}")
        raise WebhookVerificationError("Invalid Stripe signature")

    return json.loads(payload)


def verify_clerk_event(payload: bytes, headers: dict, secret: str) -> ClerkEvent:
    """
    Verify a Clerk (svix) delivery and return the parsed event.

    Raises:
        WebhookConfigurationError: If no signing secret is configured
        WebhookVerificationError: If the svix signature headers do not match
    """
    if not secret:
        logger.error("[WebhookRouter] Clerk webhook secret is not configured")
        raise WebhookConfigurationError("Clerk webhook secret not configured")

    try:
        SvixWebhook(secret).verify(payload, headers)
    except (SvixVerificationError, ValueError) as e:
        # Undecodable signatures surface as binascii.Error, a ValueError
        logger.warning(f"[WebhookRouter] Clerk signature verification failed: {e}")
        raise WebhookVerificationError("Invalid Clerk signature")

    try:
        return ClerkEvent.model_validate(json.loads(payload))
    except (ValueError, ValidationError):
        raise InvalidInputError("Malformed Clerk event")


# ═══════════════════════════════════════════════════════════════════════════
# ROUTE
# ═══════════════════════════════════════════════════════════════════════════


@router.post(
    "/{provider}",
    status_code=status.HTTP_200_OK,
    summary="Receive a provider webhook",
    description="Stripe subscription events and Clerk user events. Signatures are verified first.",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown provider, bad signature or malformed body"},
        429: {"description": "Too many requests from this address"},
        500: {"model": ErrorResponse, "description": "Webhook not configured or processing failed"},
    },
)
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def receive_webhook(
    provider: str,
    request: Request,
    db: DBSession,
) -> dict:
    settings = get_settings()
    body = await read_limited_body(request)
    logger.info(f"[WebhookRouter] Received {provider} webhook ({len(body)} bytes)")

    if provider == "stripe":
        event = verify_stripe_event(
            body,
            request.headers.get("stripe-signature", ""),
            settings.stripe_webhook_secret,
        )
        await get_subscription_service(db).handle_stripe_event(event)

    elif provider == "clerk":
        event = verify_clerk_event(
            body,
            {key: value for key, value in request.headers.items() if key.startswith("svix-")},
            settings.clerk_webhook_secret,
        )
        await get_auth_service(db).handle_clerk_event(event)

    else:
        raise InvalidInputError(f"Unknown webhook provider: {provider}")

    return {"received": True}
