"""
Parsing and validation of model output.

The model is asked for JSON but often wraps it in a fenced code block.
After stripping the fence the text is parsed strictly into typed
results; anything that is not the requested shape is a parse error.
Individual cards are then filtered, never repaired.
"""

import logging
import re
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from app.core.exceptions import GenerationParseError, NoValidCardsError

logger = logging.getLogger(__name__)

MAX_CARD_SIDE_LENGTH = 1000


class GeneratedCard(BaseModel):
    front: str = ""
    back: str = ""


class GeneratedDeck(BaseModel):
    title: str = ""
    description: Optional[str] = ""
    cards: List[GeneratedCard] = Field(default_factory=list)


_deck_adapter = TypeAdapter(GeneratedDeck)
_cards_adapter = TypeAdapter(Union[List[GeneratedCard], GeneratedDeck])


_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*")


def extract_json(text: str) -> str:
    """
    Return the body of the first ``` fence, whatever its language tag.
    Unfenced text is returned trimmed; a fence cut off before closing
    loses only its opening line.
    """
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return _OPEN_FENCE_RE.sub("", text.strip()).strip()


def parse_deck(text: str) -> GeneratedDeck:
    """
    Parse a {"title", "description", "cards"} object.

    Raises:
        GenerationParseError: If the text is not valid JSON of that shape
    """
    try:
        return _deck_adapter.validate_json(extract_json(text))
    except ValidationError as e:
        logger.error(f"[Parsing] Invalid deck JSON from model: {e.errors()[:3]}")
        raise GenerationParseError("Failed to parse AI-generated cards")


def parse_cards(text: str) -> List[GeneratedCard]:
    """
    Parse a bare card array; a deck object is accepted too and its cards used.

    Raises:
        GenerationParseError: If the text is neither shape
    """
    try:
        parsed = _cards_adapter.validate_json(extract_json(text))
    except ValidationError as e:
        logger.error(f"[Parsing] Invalid card JSON from model: {e.errors()[:3]}")
        raise GenerationParseError("Failed to parse AI-generated cards")

    if isinstance(parsed, GeneratedDeck):
        return parsed.cards
    return parsed


def is_valid_card(card: GeneratedCard) -> bool:
    front = card.front.strip()
    back = card.back.strip()
    return (
        bool(front)
        and bool(back)
        and len(front) <= MAX_CARD_SIDE_LENGTH
        and len(back) <= MAX_CARD_SIDE_LENGTH
    )


def validate_cards(cards: List[GeneratedCard]) -> List[GeneratedCard]:
    """
    Keep cards with non-blank sides of at most 1000 characters, trimmed.

    Raises:
        NoValidCardsError: If no card survives
    """
    valid = [
        GeneratedCard(front=c.front.strip(), back=c.back.strip())
        for c in cards
        if is_valid_card(c)
    ]
    skipped = len(cards) - len(valid)
    if skipped:
        logger.warning(f"[Parsing] Skipped {skipped} invalid card(s) of {len(cards)}")

    if not valid:
        raise NoValidCardsError("No valid cards were generated")
    return valid


def deck_metadata(deck: GeneratedDeck, fallback_title: str) -> Tuple[str, str]:
    """Title and description for a new deck, with a fallback title."""
    title = (deck.title or "").strip()[:255] or fallback_title
    return title, (deck.description or "").strip()
