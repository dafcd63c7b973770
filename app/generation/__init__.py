"""
Generation module - AI card generation with preview sessions.
"""
