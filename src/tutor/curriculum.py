"""
Personalized curriculum generation.

CurriculumFactory asks the curriculum model for 8-12 topics shaped by the
learner's adaptive level. Replies that cannot be used (not JSON, no topics)
produce the built-in curriculum instead; API failures propagate to the flow.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

from loguru import logger

from src.tutor.errors import MalformedResponseError
from src.tutor.gemini import GeminiClient
from src.tutor.models import (
    AdaptationRule,
    AdaptiveLevel,
    Exercise,
    LearningTopic,
    Level,
    PersonalizedCurriculum,
    SessionProgress,
    TopicType,
    UserAssessment,
)

MIN_TOPICS = 8
MAX_TOPICS = 12
FALLBACK_COMPLETION_MINUTES = 120


# =============================================================================
# Prompt
# =============================================================================

_STRATEGIES: dict[AdaptiveLevel, str] = {
    AdaptiveLevel.INTERMEDIATE_SYNTAX: """FOCUS: LANGUAGE SYNTAX (can program, new to {language})
- Prioritize {language}-specific syntax
- Build on programming concepts the learner already knows
- Show equivalents from other languages where relevant
- Skip basic programming concepts
- Focus on idioms and conventions of the language""",
    AdaptiveLevel.INTERMEDIATE_CONCEPTS: """FOCUS: INTERMEDIATE CONCEPTS (has a base in {language})
- Deepen language-specific concepts
- Appropriate design patterns
- Best practices and conventions
- Tooling and ecosystem
- Practical projects""",
    AdaptiveLevel.ADVANCED: """FOCUS: ADVANCED TOPICS (experienced in {language})
- Optimization and performance
- Software architecture
- Advanced patterns
- Professional tooling
- Complex projects""",
    AdaptiveLevel.BEGINNER: """FOCUS: COMPLETE FUNDAMENTALS (total beginner)
- Basic programming concepts
- Fundamental syntax
- Programming logic
- Problem solving
- Gradual practice""",
}

CURRICULUM_PROMPT = """Create an ADAPTED {language} curriculum for this learner profile:

ANALYSIS:
- General programming experience: {general}
- Specific {language} knowledge: {specific}
- Adaptive level: {adaptive}
- Years of experience: {years}
- Language experience: {language_experience}

PROFILE:
- Level: {level}
- Experience: {experience}
- Interests: {interests}
- Previous knowledge: {previous_knowledge}
- Learning style: {learning_style}
- Goals: {goals}
- Time available: {time_available}

{strategy}

Create {min_topics}-{max_topics} topics for this profile, ordered by difficulty and dependencies.

Reply ONLY with JSON:
{{
  "topics": [
    {{
      "title": "Topic name",
      "description": "What will be learned",
      "type": "concept|exercise|project|challenge",
      "difficulty": 1,
      "estimatedTime": 30,
      "prerequisites": ["earlier topic title"],
      "learningObjectives": ["objective1", "objective2"],
      "tags": ["tag1", "tag2"],
      "priority": 5,
      "focusArea": "syntax|concepts|advanced|fundamentals",
      "codeExample": "short {language} example for the topic",
      "explanation": "one-paragraph explanation of the example",
      "exercises": [
        {{
          "question": "practice task",
          "startingCode": "starter code",
          "hints": ["hint1", "hint2"],
          "solution": "reference solution",
          "explanation": "why the solution works"
        }}
      ]
    }}
  ],
  "estimatedCompletionTime": 600,
  "adaptationRules": [
    {{
      "condition": "struggling_with_concept",
      "action": "provide_hint|skip|reinforce|advance|change_approach",
      "parameters": {{"detail": "value"}}
    }}
  ]
}}

Examples per adaptive level:
- beginner: Variables, Input/Output, Conditionals, Loops
- intermediate_syntax: {language} Syntax, Data Structures in {language}, {language} Idioms
- intermediate_concepts: Advanced Functions, OOP in {language}, Error Handling
- advanced: Design Patterns, Performance, Testing, Architecture"""


def build_curriculum_prompt(assessment: UserAssessment) -> str:
    language = assessment.language
    strategy = _STRATEGIES.get(assessment.adaptive_level, _STRATEGIES[AdaptiveLevel.BEGINNER])
    return CURRICULUM_PROMPT.format(
        language=language,
        general=assessment.general_programming_level.value,
        specific=assessment.language_specific_level.value,
        adaptive=assessment.adaptive_level.value,
        years=assessment.programming_experience_years,
        language_experience=assessment.language_experience_level,
        level=assessment.level.value,
        experience=assessment.experience,
        interests=", ".join(assessment.interests),
        previous_knowledge=", ".join(assessment.previous_knowledge),
        learning_style=assessment.learning_style.value,
        goals=", ".join(assessment.goals),
        time_available=assessment.time_available.value,
        strategy=strategy.format(language=language),
        min_topics=MIN_TOPICS,
        max_topics=MAX_TOPICS,
    )


# =============================================================================
# Built-in topics
# =============================================================================

def _basic_topics() -> list[LearningTopic]:
    return [
        LearningTopic(
            id="topic_variables",
            title="Variables & Data Types",
            description="Create and use variables and understand the different data types",
            type=TopicType.CONCEPT,
            difficulty=1,
            estimated_time=30,
            learning_objectives=["Create variables", "Understand data types", "Use variables in code"],
            tags=["fundamentals", "variables"],
            priority=10,
            focus_area="fundamentals",
            explanation="A variable is a name for a value. The value's type decides what you can do with it.",
            exercises=[
                Exercise(
                    id="variables-1",
                    question="Create variables for your name, your age and whether you like programming",
                    hints=[
                        "Text goes in quotes",
                        "Numbers do not need quotes",
                        "Use a boolean for yes/no values",
                    ],
                    explanation="Assigning a value to a name creates the variable",
                ),
            ],
        ),
        LearningTopic(
            id="topic_conditionals",
            title="Conditionals",
            description="Make decisions in code with if, else and elif",
            type=TopicType.CONCEPT,
            difficulty=2,
            estimated_time=45,
            prerequisites=["Variables & Data Types"],
            learning_objectives=["Use if/else", "Combine conditions", "Solve problems with logic"],
            tags=["logic", "conditionals"],
            priority=9,
            focus_area="fundamentals",
            explanation="A conditional runs a block of code only when its condition is true.",
            exercises=[
                Exercise(
                    id="conditionals-1",
                    question="Print 'adult' when an age is 18 or more, otherwise print 'minor'",
                    hints=["Compare with >=", "The else branch handles everything else"],
                    explanation="Exactly one branch of an if/else runs",
                ),
            ],
        ),
    ]


_PYTHON_LEVEL_TOPICS: dict[Level, list[dict[str, Any]]] = {
    Level.BEGINNER: [
        {
            "id": "python-lists",
            "title": "Working with Lists",
            "description": "Create and manipulate lists of data",
            "difficulty": 2,
            "estimated_time": 40,
            "prerequisites": ["topic_variables"],
            "learning_objectives": ["Create lists", "Index and slice", "Append and remove items"],
            "tags": ["lists", "collections"],
            "priority": 8,
            "code_example": (
                'fruits = ["apple", "banana", "orange"]\n'
                'fruits.append("grape")\n'
                "print(fruits[0])\n"
                "print(len(fruits))"
            ),
            "explanation": "Lists keep items in order. Indexes start at 0.",
            "exercises": [
                {
                    "id": "lists-1",
                    "question": "Create a list of three numbers, append a fourth and print the sum",
                    "starting_code": "numbers = []\n",
                    "hints": ["Use append() to add an item", "sum() adds up a list"],
                    "solution": "numbers = [1, 2, 3]\nnumbers.append(4)\nprint(sum(numbers))",
                    "expected_output": "10",
                    "explanation": "append() grows the list in place and sum() walks every item",
                },
            ],
        },
    ],
    Level.INTERMEDIATE: [
        {
            "id": "python-functions",
            "title": "Advanced Functions",
            "description": "Reusable functions with *args and default parameters",
            "difficulty": 3,
            "estimated_time": 45,
            "learning_objectives": ["Use *args", "Use default parameters", "Write reusable helpers"],
            "tags": ["functions"],
            "priority": 8,
            "code_example": (
                "def average(*grades, weight=1):\n"
                "    return sum(grades) / len(grades) * weight\n"
                "\n"
                "print(average(7, 8, 9))"
            ),
            "explanation": "*args collects any number of positional arguments into a tuple.",
            "exercises": [
                {
                    "id": "functions-1",
                    "question": "Write greet(name, greeting='Hello') that returns '<greeting>, <name>!'",
                    "starting_code": "def greet(name, greeting='Hello'):\n    pass\n",
                    "hints": ["Default values go in the signature", "Use an f-string"],
                    "solution": "def greet(name, greeting='Hello'):\n    return f'{greeting}, {name}!'",
                    "explanation": "Callers may omit greeting and get the default",
                },
            ],
        },
    ],
    Level.ADVANCED: [
        {
            "id": "python-oop",
            "title": "Object-Oriented Programming",
            "description": "Classes, inheritance and properties in Python",
            "difficulty": 4,
            "estimated_time": 60,
            "learning_objectives": ["Design classes", "Use properties", "Apply inheritance"],
            "tags": ["oop", "classes"],
            "priority": 8,
            "code_example": (
                "class BankAccount:\n"
                "    def __init__(self, owner, balance=0):\n"
                "        self.owner = owner\n"
                "        self._balance = balance\n"
                "\n"
                "    @property\n"
                "    def balance(self):\n"
                "        return self._balance\n"
                "\n"
                "    def deposit(self, amount):\n"
                "        if amount <= 0:\n"
                '            raise ValueError("amount must be positive")\n'
                "        self._balance += amount"
            ),
            "explanation": "A property exposes state read-only while methods guard every change.",
            "exercises": [
                {
                    "id": "oop-1",
                    "question": "Add a withdraw(amount) method that refuses to overdraw the account",
                    "starting_code": "class BankAccount:\n    ...\n",
                    "hints": ["Check the balance before subtracting", "Raise ValueError on failure"],
                    "solution": (
                        "def withdraw(self, amount):\n"
                        "    if amount > self._balance:\n"
                        '        raise ValueError("insufficient funds")\n'
                        "    self._balance -= amount"
                    ),
                    "explanation": "Keeping the check inside the class protects the invariant for every caller",
                },
            ],
        },
    ],
}


def topics_for_level(language: str, level: Level) -> list[LearningTopic]:
    """Built-in topic list for a language and level (fundamentals first)."""
    topics = _basic_topics()
    if language.lower() == "python":
        topics.extend(LearningTopic.from_dict(t) for t in _PYTHON_LEVEL_TOPICS.get(level, []))
    return topics


def fallback_curriculum(assessment: UserAssessment) -> PersonalizedCurriculum:
    """Curriculum used when the model reply cannot be turned into topics."""
    topics = topics_for_level(assessment.language, assessment.level)
    return PersonalizedCurriculum(
        user_id=assessment.user_id,
        assessment_id=assessment.id,
        language=assessment.language,
        level=assessment.level,
        adaptive_level=assessment.adaptive_level,
        topics=topics,
        current_topic_index=0,
        estimated_completion_time=max(
            FALLBACK_COMPLETION_MINUTES, sum(t.estimated_time for t in topics)
        ),
        adaptation_rules=[
            AdaptationRule(
                condition="struggling_with_concept",
                action="provide_hint",
                parameters={"type": "explanatory"},
            )
        ],
    )


# =============================================================================
# Factory
# =============================================================================

class CurriculumFactory:
    """Generates personalized curricula with the curriculum model."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def generate(self, assessment: UserAssessment) -> PersonalizedCurriculum:
        """
        Generate a curriculum for an assessed learner.

        Raises:
            TutorAPIError: when Gemini cannot be reached or the quota is exhausted
        """
        try:
            data = self.client.generate_json(build_curriculum_prompt(assessment))
        except MalformedResponseError as exc:
            logger.warning(f"Curriculum reply unparseable, using built-in curriculum: {exc}")
            return fallback_curriculum(assessment)

        raw_topics = data.get("topics")
        if not isinstance(raw_topics, list) or not raw_topics:
            logger.warning("Curriculum reply has no topics, using built-in curriculum")
            return fallback_curriculum(assessment)

        stamp = int(time.time() * 1000)
        topics = []
        for index, raw in enumerate(raw_topics[:MAX_TOPICS]):
            if not isinstance(raw, dict):
                continue
            topic = LearningTopic.from_dict({**raw, "id": None})
            topic.id = f"topic_{stamp}_{index}"
            for number, exercise in enumerate(topic.exercises, start=1):
                exercise.id = f"{topic.id}_ex{number}"
            topics.append(topic)

        if not topics:
            return fallback_curriculum(assessment)
        if len(topics) < MIN_TOPICS:
            logger.info(f"Curriculum model returned {len(topics)} topics (asked for {MIN_TOPICS}+)")

        total = data.get("estimatedCompletionTime")
        try:
            total_minutes = int(total)
        except (TypeError, ValueError):
            total_minutes = sum(t.estimated_time for t in topics)

        rules = [
            AdaptationRule.from_dict(r)
            for r in data.get("adaptationRules") or []
            if isinstance(r, dict)
        ]

        curriculum = PersonalizedCurriculum(
            user_id=assessment.user_id,
            assessment_id=assessment.id,
            language=assessment.language,
            level=assessment.level,
            adaptive_level=assessment.adaptive_level,
            topics=topics,
            current_topic_index=0,
            estimated_completion_time=total_minutes,
            adaptation_rules=rules,
        )
        logger.info(f"Generated {len(topics)}-topic {assessment.language} curriculum ({curriculum.id})")
        return curriculum


def next_recommendation(
    curriculum: PersonalizedCurriculum, completed_topic_ids: list[str]
) -> LearningTopic | None:
    """First uncompleted topic whose prerequisites (by id or title) are all completed."""
    completed = set(completed_topic_ids)
    completed_titles = {t.title for t in curriculum.topics if t.id in completed}

    for topic in curriculum.topics:
        if topic.id in completed:
            continue
        if all(p in completed or p in completed_titles for p in topic.prerequisites):
            return topic
    return None


def adapt_curriculum(curriculum: PersonalizedCurriculum, progress: SessionProgress) -> PersonalizedCurriculum:
    """Record struggling areas as reinforce rules and bump last_updated."""
    existing = {(r.condition, r.action) for r in curriculum.adaptation_rules}
    for area in progress.struggling_areas:
        key = (f"struggling_with:{area}", "reinforce")
        if key not in existing:
            curriculum.adaptation_rules.append(
                AdaptationRule(condition=key[0], action="reinforce", parameters={"area": area})
            )
            existing.add(key)
            progress.adaptations_made += 1
    curriculum.last_updated = datetime.utcnow()
    return curriculum
