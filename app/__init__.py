"""
AI Flashcards Backend Application.

A FastAPI backend for a flashcard study app.
Provides deck management, study statistics and AI card generation
from text, images and audio, metered per subscription plan.
"""

__version__ = "0.1.0"
