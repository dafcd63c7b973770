"""
Prompt templates for card generation and transcription.

Two output shapes are requested from the model:

* deck  - {"title", "description", "cards": [{"front", "back"}]}
          used when a new deck is created and for previews
* cards - a bare [{"front", "back"}] array, used when appending to an
          existing deck
"""

from app.flashcards.models import GenerationType

DECK_JSON_SHAPE = """{{
  "title": "{title_hint}",
  "description": "{description_hint}",
  "cards": [
    {{"front": "Question or key point", "back": "Answer or detailed explanation"}}
  ]
}}"""

CARDS_JSON_SHAPE = """[
  {"front": "Question or key point", "back": "Answer or detailed explanation"}
]"""

JSON_ONLY_RULE = "Respond ONLY with the JSON, no additional text."

CARD_RULES = """Rules:
- Each card tests one distinct, meaningful concept
- Questions should be clear and specific
- Answers should be concise but complete
- Keep each side under 1000 characters"""

# ═══════════════════════════════════════════════════════════════════════════
# INSTRUCTIONS PER INPUT KIND
# ═══════════════════════════════════════════════════════════════════════════

TEXT_INSTRUCTION = """You are an expert flashcard creator.
Generate {count} flashcards with high educational value about the following topic{deck_clause}.

Topic: {topic}"""

IMAGE_INSTRUCTION = """You are an expert flashcard creator.
Analyse the attached image in detail and generate {count} flashcards with high educational value{deck_clause}.

Consider everything the image contains:
- Text (OCR)
- Objects and people
- Places and surroundings
- Concepts and ideas
- Historical or cultural background"""

AUDIO_INSTRUCTION = """You are an expert flashcard creator.
Analyse the attached audio and generate {count} flashcards with high educational value based on its content{deck_clause}.

Turn the following into cards:
- Important concepts and terms
- Main points
- Concrete examples
- Related background knowledge"""

REGENERATE_TEXT_INSTRUCTION = """You are an expert flashcard creator.
Regenerate {count} flashcards with high educational value about the following topic, \
together with a fitting deck title and description, taking the user's feedback into account.

Topic: {topic}

User feedback: {feedback}"""

REGENERATE_MEDIA_INSTRUCTION = """You are an expert flashcard creator.
Regenerate {count} flashcards with high educational value, together with a fitting deck \
title and description, taking the user's feedback on the previous result into account.

User feedback: {feedback}"""

TRANSCRIPTION_PROMPT = """Transcribe this audio accurately. Pay attention to the following:

- Write down exactly what is said
- Record technical terms and proper nouns precisely
- Place punctuation appropriately
- Mark unclear passages as [unclear]

Return only the transcript, with no other explanation."""

_INSTRUCTIONS = {
    GenerationType.TEXT: TEXT_INSTRUCTION,
    GenerationType.IMAGE: IMAGE_INSTRUCTION,
    GenerationType.AUDIO: AUDIO_INSTRUCTION,
}

_SOURCE_NAMES = {
    GenerationType.TEXT: "topic",
    GenerationType.IMAGE: "image",
    GenerationType.AUDIO: "audio",
}


def _deck_shape(kind: GenerationType, refined: bool = False) -> str:
    source = _SOURCE_NAMES[kind]
    if refined:
        title_hint = "Deck title, improved using the feedback"
        description_hint = "Deck description, improved using the feedback"
    else:
        title_hint = f"Short, clear deck title based on the {source}"
        description_hint = f"Deck description explaining what the {source} teaches"
    return DECK_JSON_SHAPE.format(title_hint=title_hint, description_hint=description_hint)


def build_deck_prompt(kind: GenerationType, count: int, topic: str = "") -> str:
    """Prompt asking for a titled deck of `count` cards."""
    instruction = _INSTRUCTIONS[kind].format(
        count=count,
        topic=topic,
        deck_clause=", together with a fitting deck title and description",
    )
    return (
        f"{instruction}\n\n{CARD_RULES}\n\n"
        f"Return the following JSON format:\n{_deck_shape(kind)}\n\n{JSON_ONLY_RULE}"
    )


def build_cards_prompt(kind: GenerationType, count: int, topic: str = "") -> str:
    """Prompt asking for a bare array of `count` cards (appending to a deck)."""
    instruction = _INSTRUCTIONS[kind].format(count=count, topic=topic, deck_clause="")
    return (
        f"{instruction}\n\n{CARD_RULES}\n\n"
        f"Return a JSON array in this format:\n{CARDS_JSON_SHAPE}\n\n{JSON_ONLY_RULE}"
    )


def build_regenerate_prompt(
    kind: GenerationType,
    count: int,
    feedback: str,
    topic: str = "",
) -> str:
    """
    Prompt for regenerating a preview batch.

    Text batches repeat the original topic; image and audio batches
    only carry the feedback since the media is not stored.
    """
    if kind == GenerationType.TEXT:
        instruction = REGENERATE_TEXT_INSTRUCTION.format(count=count, topic=topic, feedback=feedback)
    else:
        instruction = REGENERATE_MEDIA_INSTRUCTION.format(count=count, feedback=feedback)
    return (
        f"{instruction}\n\n{CARD_RULES}\n\n"
        f"Return the following JSON format:\n{_deck_shape(kind, refined=True)}\n\n{JSON_ONLY_RULE}"
    )
