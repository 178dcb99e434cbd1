"""
Initial assessment: questions, local heuristics and LLM profile analysis.

The assessment is three multiple-choice questions:
  0. general programming experience
  1. experience with the selected language
  2. concepts already known in that language

AssessmentAnalyzer turns the three answers into a UserAssessment via Gemini.
If the model answers with something that is not the requested JSON, a keyword
heuristic produces the profile instead. API failures (quota, network) are not
swallowed; the learning flow decides what to do with them.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from src.tutor.errors import MalformedResponseError
from src.tutor.gemini import GeminiClient
from src.tutor.models import (
    AdaptiveLevel,
    GeneralLevel,
    LearningStyle,
    Level,
    TimeAvailable,
    UserAssessment,
)

QUESTION_COUNT = 3

GENERAL_EXPERIENCE_OPTIONS = [
    "I have never programmed before - total beginner",
    "I have programmed a little, but only the basics",
    "I have intermediate programming experience",
    "I am an experienced programmer",
]

_LANGUAGE_QUESTIONS: dict[str, dict[str, Any]] = {
    "python": {
        "specific": "And what about Python specifically, have you used it before?",
        "specific_options": [
            "I have never used Python",
            "I have heard of it, but never practiced",
            "I have done a few basic exercises",
            "I have built a few small projects",
            "I have a lot of experience with Python",
        ],
        "concepts": "Which of these Python concepts do you already know or have heard of?",
        "concept_options": [
            "Variables and data types",
            "Lists and dictionaries",
            "Loops (for, while)",
            "Functions",
            "Classes and objects",
            "Libraries (numpy, pandas)",
            "None of these",
        ],
    },
    "javascript": {
        "specific": "And what is your experience with JavaScript?",
        "specific_options": [
            "I have never used JavaScript",
            "I have seen JavaScript code, but I don't understand it",
            "I have written a few basic scripts",
            "I have built some web features",
            "I have a lot of experience with JavaScript",
        ],
        "concepts": "Which JavaScript concepts do you already know?",
        "concept_options": [
            "Variables (let, const, var)",
            "Functions and arrow functions",
            "DOM manipulation",
            "Events (clicks, etc)",
            "Promises and async/await",
            "React/Vue/Angular",
            "None of these",
        ],
    },
}

_GENERIC_QUESTIONS: dict[str, Any] = {
    "specific": "Tell me more about your experience with this language.",
    "specific_options": ["Little experience", "Moderate experience", "A lot of experience"],
    "concepts": "Which concepts do you already know?",
    "concept_options": ["Basic concepts", "Intermediate concepts", "Advanced concepts"],
}

# Keywords for the offline heuristic (answers above plus free-text variants)
_EXPERIENCE_KEYWORDS = ("java", "python", "javascript", "programming", "programmed", "code", "years", "projects")
_NEW_TO_LANGUAGE_KEYWORDS = ("never used", "new", "starting", "never practiced", "first")


def get_assessment_questions(language: str) -> dict[str, Any]:
    """
    Build the question set for a language.

    Returns:
        dict with 'intro' and 'questions' (a list of {index, key, text, options})
    """
    specific = _LANGUAGE_QUESTIONS.get(language.lower(), _GENERIC_QUESTIONS)
    display = language if language.lower() not in _LANGUAGE_QUESTIONS else language.capitalize()
    if language.lower() == "javascript":
        display = "JavaScript"

    return {
        "intro": (
            f"Hi! I see you picked {display}. Great choice! "
            "I'll help you learn in a way that fits you."
        ),
        "questions": [
            {
                "index": 0,
                "key": "experience",
                "text": "To start, what is your overall programming experience?",
                "options": list(GENERAL_EXPERIENCE_OPTIONS),
            },
            {
                "index": 1,
                "key": "specific",
                "text": specific["specific"],
                "options": list(specific["specific_options"]),
            },
            {
                "index": 2,
                "key": "concepts",
                "text": specific["concepts"],
                "options": list(specific["concept_options"]),
            },
        ],
    }


def feedback_for_response(question_index: int, response: str) -> str:
    """Encouraging reply to an answer. Only the first question gets feedback."""
    if question_index != 0:
        return ""

    lowered = response.lower()
    if "never programmed" in lowered:
        return "Perfect! Everyone starts from zero. I'll guide you step by step!"
    if "basics" in lowered or "basic" in lowered:
        return "Great! You already have a foundation, that will help a lot!"
    if "intermediate" in lowered:
        return "Excellent! With your experience we can focus on the specific details!"
    return "Fantastic! I'll adapt the content to your advanced level!"


def analyze_responses_locally(language: str, responses: list[str]) -> Level:
    """Quick level estimate from the first two answers, without the LLM."""
    general = (responses[0] if responses else "").lower()
    specific = (responses[1] if len(responses) > 1 else "").lower()

    if "experienced" in general or "a lot of experience" in specific:
        return Level.ADVANCED
    if "intermediate" in general or "small projects" in specific:
        return Level.INTERMEDIATE
    return Level.BEGINNER


def fallback_assessment(language: str, responses: list[str], user_id: str | None = None) -> UserAssessment:
    """
    Keyword-based profile used when the model reply cannot be parsed.

    Distinguishes total beginners, programmers new to the language (syntax
    focus) and programmers with some language experience.
    """
    lowered = [r.lower() for r in responses]
    never_programmed = any("never programmed" in r for r in lowered)
    has_experience = not never_programmed and any(
        keyword in r for r in lowered for keyword in _EXPERIENCE_KEYWORDS
    )
    new_to_language = any(keyword in r for r in lowered for keyword in _NEW_TO_LANGUAGE_KEYWORDS)

    if has_experience and new_to_language:
        adaptive = AdaptiveLevel.INTERMEDIATE_SYNTAX
        general = GeneralLevel.INTERMEDIATE
        specific = GeneralLevel.NONE
    elif has_experience:
        adaptive = AdaptiveLevel.INTERMEDIATE_CONCEPTS
        general = GeneralLevel.INTERMEDIATE
        specific = GeneralLevel.BASIC
    else:
        adaptive = AdaptiveLevel.BEGINNER
        general = GeneralLevel.NONE
        specific = GeneralLevel.NONE

    return UserAssessment(
        user_id=user_id,
        language=language,
        level=Level.BEGINNER if adaptive == AdaptiveLevel.BEGINNER else Level.INTERMEDIATE,
        experience="Has programming experience" if has_experience else "New to programming",
        interests=["basic programming", "problem solving"],
        previous_knowledge=["basic concepts"] if has_experience else [],
        learning_style=LearningStyle.MIXED,
        goals=["learn programming", "solve problems"],
        time_available=TimeAvailable.MEDIUM,
        general_programming_level=general,
        language_specific_level=specific,
        adaptive_level=adaptive,
        programming_experience_years=2 if has_experience else 0,
        language_experience_level="never_used",
        responses=list(responses),
    )


def personalized_welcome(assessment: UserAssessment) -> str:
    name = assessment.language
    if assessment.level == Level.BEGINNER:
        return f"Perfect! I'll teach you {name} from scratch, step by step and hands-on."
    if assessment.level == Level.INTERMEDIATE:
        return (
            f"Great! Since you already have a foundation, we'll consolidate it "
            f"and explore more advanced {name} concepts."
        )
    return f"Excellent! We'll work on advanced concepts and best practices in {name}."


ASSESSMENT_PROMPT = """Analyze these 3 initial assessment answers for {language}:

ANSWER 1 (Experience): "{answer_1}"
ANSWER 2 (Language experience): "{answer_2}"
ANSWER 3 (Known concepts): "{answer_3}"

Determine separately:
1. GENERAL programming experience (concepts, logic, structures) in ANY language
2. SPECIFIC knowledge of {language} (syntax, libraries, idioms)
3. ADAPTIVE teaching level (the combination of both)

Reply ONLY with JSON:
{{
  "generalProgrammingLevel": "none|basic|intermediate|advanced",
  "languageSpecificLevel": "none|basic|intermediate|advanced",
  "adaptiveLevel": "beginner|intermediate_syntax|intermediate_concepts|advanced",
  "level": "beginner|intermediate|advanced",
  "experience": "short summary of the experience",
  "interests": ["interest1", "interest2", "interest3"],
  "previousKnowledge": ["concept1", "concept2"],
  "learningStyle": "visual|practical|theoretical|mixed",
  "goals": ["goal1", "goal2"],
  "timeAvailable": "low|medium|high",
  "programmingExperienceYears": 0,
  "languageExperienceLevel": "never_used|basic_syntax|some_projects|professional"
}}

adaptiveLevel criteria:
- "beginner": cannot program yet
- "intermediate_syntax": can program, but new to {language} (focus on syntax)
- "intermediate_concepts": some {language} experience, needs depth
- "advanced": experienced in {language}

Example - knows Java, wants to learn Python:
{{"generalProgrammingLevel": "intermediate", "languageSpecificLevel": "none",
  "adaptiveLevel": "intermediate_syntax", "level": "intermediate"}}"""


class AssessmentAnalyzer:
    """Turns assessment answers into a UserAssessment using the analysis model."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def analyze(self, responses: list[str], language: str, user_id: str | None = None) -> UserAssessment:
        """
        Analyze the three answers.

        Raises:
            TutorAPIError: when Gemini cannot be reached or the quota is exhausted
        """
        padded = (list(responses) + ["", "", ""])[:QUESTION_COUNT]
        prompt = ASSESSMENT_PROMPT.format(
            language=language,
            answer_1=padded[0],
            answer_2=padded[1],
            answer_3=padded[2],
        )

        try:
            analysis = self.client.generate_json(prompt)
        except MalformedResponseError as exc:
            logger.warning(f"Assessment analysis unparseable, using heuristic profile: {exc}")
            return fallback_assessment(language, responses, user_id=user_id)

        assessment = UserAssessment.from_dict(
            {
                "user_id": user_id,
                "language": language,
                "level": analysis.get("level"),
                "experience": analysis.get("experience"),
                "interests": analysis.get("interests"),
                "previous_knowledge": analysis.get("previousKnowledge"),
                "learning_style": analysis.get("learningStyle"),
                "goals": analysis.get("goals"),
                "time_available": analysis.get("timeAvailable"),
                "general_programming_level": analysis.get("generalProgrammingLevel"),
                "language_specific_level": analysis.get("languageSpecificLevel"),
                "adaptive_level": analysis.get("adaptiveLevel"),
                "programming_experience_years": analysis.get("programmingExperienceYears"),
                "language_experience_level": analysis.get("languageExperienceLevel"),
                "responses": list(responses),
            }
        )
        logger.info(
            f"Assessment analyzed for {language}: level={assessment.level.value} "
            f"adaptive={assessment.adaptive_level.value}"
        )
        return assessment
