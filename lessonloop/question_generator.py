"""
AI multiple-choice question generator for LessonLoop.

Builds a prompt, calls the configured LLM provider (or the mock responses
when ``llm.provider`` is ``mock``), and validates every generated question
before it is handed back to the teacher. Nothing is persisted here; the
teacher reviews the questions and saves them through the normal quiz flow.
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional

from lessonloop.errors import UpstreamFailure, ValidationFailure

logger = logging.getLogger(__name__)

OPTIONS_PER_QUESTION = 4
MAX_QUESTIONS = 50


def build_prompt(topic: str, num_questions: int, difficulty: str, grade_level: str) -> str:
    """Build the MCQ generation prompt."""
    return (
        f"You are an expert quiz creator. Generate {num_questions} multiple-choice questions "
        f"about {topic} for a {grade_level} grade level, with a difficulty of {difficulty}. "
        f"Each question must have exactly {OPTIONS_PER_QUESTION} options. "
        "Your response must be a valid, parsable JSON array of objects. Each object in the array "
        "must have the following properties and types: 'questionText' (string), 'options' (an array "
        f"of exactly {OPTIONS_PER_QUESTION} objects, each with a 'text' property of type string), "
        "'correctAnswer' (the 0-based index of the correct option, must be a number between 0 and "
        f"{OPTIONS_PER_QUESTION - 1}), and 'explanation' (a brief explanation for why the correct "
        "answer is correct). Return ONLY the JSON array. Do not include any extra text, "
        "explanations, or formatting outside of the JSON array."
    )


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ``` or ``` ... ```)."""
    text = (text or "").strip()
    if text.startswith("```json") and text.endswith("```") and len(text) >= 10:
        return text[7:-3].strip()
    if text.startswith("```") and text.endswith("```") and len(text) >= 6:
        return text[3:-3].strip()
    return text


def parse_questions(response_text: str) -> List[Any]:
    """Parse the model output into a list.

    Raises:
        UpstreamFailure: the output is not JSON or not a JSON array.
    """
    cleaned = strip_code_fences(response_text)
    try:
        items = json.loads(cleaned)
    except (json.JSONDecodeError, ValueError):
        logger.error("Failed to parse MCQ response as JSON: %.200s", cleaned)
        raise UpstreamFailure("Failed to generate questions: Invalid JSON response from AI.")
    if not isinstance(items, list):
        raise UpstreamFailure("Failed to generate questions: AI response is not a JSON array.")
    return items


def validate_generated_question(question: Any, number: int) -> Dict[str, Any]:
    """Check one generated question against the expected schema.

    Raises:
        ValidationFailure: naming the first field that does not match.
    """
    prefix = f"Failed to generate questions: question {number}"
    if not isinstance(question, dict):
        raise ValidationFailure(f"{prefix} is not an object")
    if not isinstance(question.get("questionText"), str) or not question["questionText"].strip():
        raise ValidationFailure(f"{prefix} is missing 'questionText'")
    if not isinstance(question.get("explanation"), str) or not question["explanation"].strip():
        raise ValidationFailure(f"{prefix} is missing 'explanation'")

    options = question.get("options")
    if not isinstance(options, list) or len(options) != OPTIONS_PER_QUESTION:
        raise ValidationFailure(f"{prefix} must have exactly {OPTIONS_PER_QUESTION} 'options'")
    texts = []
    for option in options:
        text = option.get("text") if isinstance(option, dict) else option
        if not isinstance(text, str) or not text.strip():
            raise ValidationFailure(f"{prefix} has an option without 'text'")
        texts.append(text)

    correct = question.get("correctAnswer")
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < OPTIONS_PER_QUESTION:
        raise ValidationFailure(
            f"{prefix} 'correctAnswer' must be an integer between 0 and {OPTIONS_PER_QUESTION - 1}"
        )

    return {
        "questionText": question["questionText"],
        "options": [{"text": t} for t in texts],
        "correctAnswer": correct,
        "explanation": question["explanation"],
    }


def generate_mcq(
    config: dict,
    topic: str,
    num_questions: Any,
    difficulty: str = "Medium",
    grade_level: str = "",
    provider=None,
    provider_name: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Generate validated multiple-choice questions.

    Args:
        config: Application config dict (``llm`` section).
        topic: Subject to generate questions about.
        num_questions: Number of questions requested.
        difficulty: Difficulty label passed to the model.
        grade_level: Grade level passed to the model.
        provider: Optional LLMProvider instance; bypasses the config lookup.
        provider_name: Optional override for ``llm.provider``.

    Returns:
        List of question dicts (questionText, options, correctAnswer, explanation).

    Raises:
        ValidationFailure: bad request parameters or a schema violation.
        UpstreamFailure: the provider failed or returned unparsable output.
    """
    topic = (topic or "").strip()
    if not topic:
        raise ValidationFailure("Topic is required")
    try:
        num_questions = int(num_questions)
    except (TypeError, ValueError):
        raise ValidationFailure("numQuestions must be a number")
    if not 1 <= num_questions <= MAX_QUESTIONS:
        raise ValidationFailure(f"numQuestions must be between 1 and {MAX_QUESTIONS}")

    if provider_name:
        config = copy.deepcopy(config)
        config.setdefault("llm", {})["provider"] = provider_name

    if provider is None and config.get("llm", {}).get("provider", "mock") == "mock":
        from lessonloop.mock_responses import get_mcq_response

        response_text = get_mcq_response(topic, num_questions, difficulty, grade_level)
    else:
        prompt = build_prompt(topic, num_questions, difficulty, grade_level)
        try:
            if provider is None:
                from lessonloop.llm_provider import get_provider

                provider = get_provider(config)
            response_text = provider.generate([prompt], json_mode=True)
        except UpstreamFailure:
            raise
        except Exception as e:
            logger.error("generate_mcq: LLM call failed: %s", e)
            raise UpstreamFailure(f"Failed to generate MCQs: {e}") from e

    items = parse_questions(response_text)
    questions = [validate_generated_question(q, i) for i, q in enumerate(items, start=1)]
    logger.info("Generated %d MCQ(s) on %r", len(questions), topic)
    return questions
