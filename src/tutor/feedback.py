"""
One-shot code feedback and lesson generation.

Both prompts ask for labelled plain-text sections instead of JSON; each
section is pulled out with a regex and missing sections get a default.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field

from loguru import logger

from src.tutor.errors import TutorAPIError
from src.tutor.gemini import GeminiClient

FEEDBACK_TYPES = ("hint", "correction", "explanation", "encouragement")

_SUGGESTION_RE = re.compile(r"SUGGESTION:\s*([\s\S]*?)(?=\nEXPLANATION:|$)")
_EXPLANATION_RE = re.compile(r"EXPLANATION:\s*([\s\S]*?)(?=\nTYPE:|$)")
_TYPE_RE = re.compile(r"TYPE:\s*(hint|correction|explanation|encouragement)")

_TITLE_RE = re.compile(r"TITLE:\s*([\s\S]*?)(?=\nDESCRIPTION:|$)")
_DESCRIPTION_RE = re.compile(r"DESCRIPTION:\s*([\s\S]*?)(?=\nCODE:|$)")
_CODE_RE = re.compile(r"CODE:\s*([\s\S]*?)(?=\nOBJECTIVES:|$)")
_OBJECTIVES_RE = re.compile(r"OBJECTIVES:\s*([\s\S]*?)$")


@dataclass
class CodeFeedback:
    suggestion: str
    explanation: str
    type: str = "encouragement"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class Lesson:
    title: str
    description: str
    code: str
    objectives: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _section(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def parse_feedback(text: str) -> CodeFeedback:
    type_match = _TYPE_RE.search(text)
    return CodeFeedback(
        suggestion=_section(_SUGGESTION_RE, text) or "Keep practicing!",
        explanation=_section(_EXPLANATION_RE, text) or "You're on the right track.",
        type=type_match.group(1) if type_match else "encouragement",
    )


def analyze_code(client: GeminiClient, code: str, language: str) -> CodeFeedback:
    """Constructive feedback on a piece of code. Never raises for API failures."""
    prompt = f"""You are an experienced programming tutor. Analyze this {language} code and give constructive feedback:

```{language}
{code}
```

Reply with:
1. One specific suggestion to improve the code
2. An educational explanation of the concept involved
3. Whether this is a hint, correction, explanation or encouragement

Response format:
SUGGESTION: [your suggestion]
EXPLANATION: [your explanation]
TYPE: [hint|correction|explanation|encouragement]"""

    try:
        text = client.generate_text(prompt)
    except TutorAPIError as exc:
        logger.error(f"Code analysis failed: {exc}")
        return CodeFeedback(
            suggestion="Keep writing code! You're doing well.",
            explanation="Practice makes perfect. Keep experimenting!",
            type="encouragement",
        )
    return parse_feedback(text)


def parse_lesson(text: str) -> Lesson:
    objectives = _section(_OBJECTIVES_RE, text)
    return Lesson(
        title=_section(_TITLE_RE, text) or "Programming Lesson",
        description=_section(_DESCRIPTION_RE, text) or "Learn the fundamentals of programming.",
        code=_section(_CODE_RE, text) or "// Your code here",
        objectives=(
            [o.strip() for o in objectives.split("|") if o.strip()]
            if objectives
            else ["Learn basic concepts"]
        ),
    )


def get_lesson(client: GeminiClient, language: str, level: str) -> Lesson:
    """Generate a short standalone lesson. Falls back to a basic lesson on API failure."""
    prompt = f"""Create a {language} programming lesson for the {level} level.

Reply in this format:
TITLE: [lesson title]
DESCRIPTION: [lesson description]
CODE: [example code]
OBJECTIVES: [objectives separated by |]"""

    try:
        text = client.generate_text(prompt)
    except TutorAPIError as exc:
        logger.error(f"Lesson generation failed: {exc}")
        return Lesson(
            title="Basic Lesson",
            description="An introductory programming lesson.",
            code="// Start writing your code here",
            objectives=["Learn basic syntax", "Practice fundamental concepts"],
        )
    return parse_lesson(text)
