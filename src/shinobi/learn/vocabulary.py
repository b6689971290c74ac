"""Multiple-choice vocabulary exercises.

Questions come from the LLM provider when it answers with usable JSON and
from a small built-in bank otherwise, so the endpoint always has something
to show.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from shinobi.email.templates import language_name
from shinobi.errors import UpstreamProviderError
from shinobi.learn.openrouter import OpenRouterClient

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a language learning assistant that creates vocabulary exercises. "
    "Your responses should be in valid JSON format."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?|\n?```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _q(question: str, options: list[str], answer: int, explanation: str) -> dict[str, Any]:
    return {"question": question, "options": options, "correctAnswerIndex": answer, "explanation": explanation}


FALLBACK_QUESTIONS: dict[str, list[dict[str, Any]]] = {
    "ja": [
        _q('What does "おはよう" mean?', ["Good morning", "Good afternoon", "Good evening", "Goodbye"], 0,
           '"おはよう" (Ohayou) means "Good morning" in Japanese.'),
        _q('Which word means "thank you" in Japanese?', ["さようなら", "ありがとう", "すみません", "はい"], 1,
           '"ありがとう" (Arigatou) means "thank you" in Japanese.'),
        _q('What does "水" mean?', ["Fire", "Earth", "Water", "Wind"], 2,
           '"水" (Mizu) means "water" in Japanese.'),
        _q('Which word means "food" in Japanese?', ["たべもの", "のみもの", "くるま", "いえ"], 0,
           '"たべもの" (Tabemono) means "food" in Japanese.'),
        _q('What does "ねこ" mean?', ["Dog", "Cat", "Bird", "Fish"], 1,
           '"ねこ" (Neko) means "cat" in Japanese.'),
    ],
    "es": [
        _q('What does "hola" mean?', ["Goodbye", "Hello", "Thank you", "Please"], 1,
           '"Hola" means "hello" in Spanish.'),
        _q('Which word means "water" in Spanish?', ["Pan", "Leche", "Agua", "Vino"], 2,
           '"Agua" means "water" in Spanish.'),
        _q('What does "gato" mean?', ["Dog", "Cat", "Bird", "Mouse"], 1,
           '"Gato" means "cat" in Spanish.'),
        _q('Which word means "house" in Spanish?', ["Casa", "Carro", "Libro", "Mesa"], 0,
           '"Casa" means "house" in Spanish.'),
        _q('What does "gracias" mean?', ["Please", "Sorry", "Thank you", "You're welcome"], 2,
           '"Gracias" means "thank you" in Spanish.'),
    ],
    "en": [
        _q('What does "hello" mean?', ["Goodbye", "A greeting when meeting someone", "Thank you", "I don't know"], 1,
           '"Hello" is a greeting used when meeting someone.'),
        _q('Which word means "a place where people live"?', ["Car", "House", "Tree", "Phone"], 1,
           'A "house" is a place where people live.'),
        _q('What is the opposite of "hot"?', ["Warm", "Cold", "Wet", "Dry"], 1,
           'The opposite of "hot" is "cold".'),
        _q("Which word describes water falling from the sky?", ["Wind", "Snow", "Rain", "Cloud"], 2,
           '"Rain" describes water falling from the sky.'),
        _q('What animal says "meow"?', ["Dog", "Cat", "Bird", "Fish"], 1,
           'A cat says "meow".'),
    ],
}


def build_prompt(language_code: str, level: str, count: int) -> str:
    language = language_name(language_code)
    level = level.lower()
    return f"""Generate {count} multiple-choice vocabulary questions for {level} level {language} language learners.

For each question:
1. Create a question about a vocabulary word appropriate for {level} level
2. Provide exactly 4 answer options labeled A, B, C, and D
3. Indicate which option is correct (include the correct answer index as: correctAnswerIndex: 0 for A, 1 for B, 2 for C, or 3 for D)
4. Include a brief explanation of why the answer is correct
5. For non-English languages, include both the target language word and its translation

Return the data in this JSON format:
{{
  "questions": [
    {{
      "question": "What does [word] mean?",
      "options": ["option A", "option B", "option C", "option D"],
      "correctAnswerIndex": 0,
      "explanation": "Explanation of why option A is correct"
    }}
  ]
}}

For the questions, use vocabulary appropriate for {level} level {language} learners."""


def fallback_questions(language_code: str) -> list[dict[str, Any]]:
    bank = FALLBACK_QUESTIONS.get(language_code, FALLBACK_QUESTIONS["en"])
    return [{"id": i, **q} for i, q in enumerate(bank, start=1)]


def is_well_formed(item: Any) -> bool:  # noqa: ANN401
    if not isinstance(item, dict):
        return False
    options = item.get("options")
    answer = item.get("correctAnswerIndex")
    return (
        bool(item.get("question"))
        and isinstance(options, list)
        and len(options) == 4
        and isinstance(answer, int)
        and not isinstance(answer, bool)
        and 0 <= answer <= 3
        and bool(item.get("explanation"))
    )


def parse_questions(content: str) -> list[dict[str, Any]]:
    """Extract well-formed questions from a model reply.

    Accepts bare JSON, JSON wrapped in a Markdown code fence, or JSON
    embedded in prose. The payload may be ``{"questions": [...]}`` or a
    top-level list.

    Raises:
        ValueError: no JSON payload in a recognised shape.
    """
    try:
        data = json.loads(_FENCE_RE.sub("", content).strip())
    except json.JSONDecodeError:
        match = _OBJECT_RE.search(content)
        if match is None:
            raise ValueError("Could not extract JSON from response") from None
        data = json.loads(match.group(0))

    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        items = data["questions"]
    elif isinstance(data, list):
        items = data
    else:
        raise ValueError("Response did not contain valid questions format")
    return [
        {
            "question": str(q["question"]),
            "options": [str(o) for o in q["options"]],
            "correctAnswerIndex": q["correctAnswerIndex"],
            "explanation": str(q["explanation"]),
        }
        for q in items
        if is_well_formed(q)
    ]


async def generate_vocabulary(
    language_code: str,
    level: str = "BEGINNER",
    count: int = 10,
    client: OpenRouterClient | None = None,
) -> tuple[list[dict[str, Any]], str]:
    """Generate up to ``count`` questions.

    Returns ``(questions, source)`` where source is ``"provider"`` or
    ``"fallback"``. Never raises on provider trouble.
    """
    client = client or OpenRouterClient.from_settings()
    log = logger.bind(language_code=language_code, level=level, count=count)
    try:
        content = await client.complete_json(SYSTEM_PROMPT, build_prompt(language_code, level, count))
        try:
            questions = parse_questions(content)
        except ValueError as e:
            raise UpstreamProviderError(f"Unparseable vocabulary response: {e}") from e
        if not questions:
            raise UpstreamProviderError("Provider returned no usable questions")
    except UpstreamProviderError as e:
        log.warning("vocabulary_fallback", reason=e.message)
        return fallback_questions(language_code), "fallback"

    log.info("vocabulary_generated", returned=min(len(questions), count))
    return [{"id": i, **q} for i, q in enumerate(questions[:count], start=1)], "provider"
