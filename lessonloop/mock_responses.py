"""
Mock LLM responses for cost-free development.

Returns fabricated but well-formed multiple-choice question payloads in
the same JSON shape the real model is asked for, without making external
calls. Output is seeded from the request so repeated calls match.
"""

import json
import random
from typing import Any, Dict, List

OPTION_TEMPLATES = [
    "A defining property of {topic}",
    "A common misconception about {topic}",
    "An unrelated fact about {topic}",
    "An example that contradicts {topic}",
]


def get_mcq_response(topic: str, num_questions: int, difficulty: str = "Medium", grade_level: str = "") -> str:
    """
    Generate a mock MCQ response (JSON array of questions).

    Args:
        topic: Subject of the questions.
        num_questions: How many questions to produce.
        difficulty: Difficulty label, echoed into the question text.
        grade_level: Grade level, echoed into the explanation.

    Returns:
        JSON string with an array of questions.
    """
    rng = random.Random(f"{topic}|{num_questions}|{difficulty}|{grade_level}")
    questions: List[Dict[str, Any]] = []
    for i in range(num_questions):
        correct = rng.randint(0, 3)
        options = [t.format(topic=topic) for t in OPTION_TEMPLATES]
        # move the "defining property" option to the correct slot
        options[0], options[correct] = options[correct], options[0]
        questions.append(
            {
                "questionText": f"({difficulty}) Question {i + 1}: which statement best describes {topic}?",
                "options": [{"text": text} for text in options],
                "correctAnswer": correct,
                "explanation": f"The correct option states a defining property of {topic}"
                + (f" at the {grade_level} level." if grade_level else "."),
            }
        )
    return json.dumps(questions, indent=2)
