"""
Webhooks module - Signed deliveries from Stripe and Clerk.
"""
