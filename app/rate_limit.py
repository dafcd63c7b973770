"""
Per-IP request throttling for unauthenticated routes.
Plan quotas for AI routes live in app.quota.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

WEBHOOK_RATE_LIMIT = "60/minute"
