"""
Auth module - Clerk-provisioned users and session token verification.
"""
