"""
Subscriptions module - Stripe subscriptions and plan resolution.
"""
