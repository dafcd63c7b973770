"""
Flashcards module - Deck, card and study statistics management.
"""
