"""
Quiz store, publishing and submission scoring for LessonLoop.

Quizzes move Draft -> Published -> Archived; there is no way back to
Draft once published. Each student may submit a published quiz once;
the (quiz, student) uniqueness is enforced by the database so concurrent
double submissions cannot both land.
"""

import logging
from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lessonloop.classroom import is_member, require_class, require_member, require_owner
from lessonloop.database import (
    QUIZ_ARCHIVED,
    QUIZ_DRAFT,
    QUIZ_PUBLISHED,
    QUIZ_STATUSES,
    ROLE_STUDENT,
    ROLE_TEACHER,
    Question,
    Quiz,
    QuizResult,
    User,
    utcnow,
)
from lessonloop.errors import Conflict, Forbidden, NotFound, ValidationFailure
from lessonloop.notifications import NEW_QUIZ, notify_class_students

logger = logging.getLogger(__name__)

# Allowed status transitions (one-directional)
STATUS_TRANSITIONS = {
    QUIZ_DRAFT: {QUIZ_DRAFT, QUIZ_PUBLISHED, QUIZ_ARCHIVED},
    QUIZ_PUBLISHED: {QUIZ_PUBLISHED, QUIZ_ARCHIVED},
    QUIZ_ARCHIVED: {QUIZ_ARCHIVED},
}


def parse_due(due_date: Optional[str], due_time: Optional[str] = None) -> Optional[datetime]:
    """Combine a due date and optional HH:MM time into a datetime.

    ``due_date`` may be ``YYYY-MM-DD`` or a full ISO timestamp. Returns
    None when no due date is given.

    Raises:
        ValidationFailure: unparseable date or time.
    """
    if not due_date:
        return None
    try:
        parsed = datetime.fromisoformat(due_date.replace("Z", "+00:00"))
    except (AttributeError, TypeError, ValueError):
        raise ValidationFailure(f"Invalid due date '{due_date}' (use YYYY-MM-DD)")
    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    if due_time:
        try:
            hours, minutes = (int(part) for part in due_time.split(":")[:2])
            parsed = datetime.combine(parsed.date(), time(hours, minutes))
        except (AttributeError, TypeError, ValueError):
            raise ValidationFailure(f"Invalid due time '{due_time}' (use HH:MM)")
    return parsed


def _option_text(option) -> str:
    if isinstance(option, dict):
        return option.get("text")
    return option


def validate_questions(questions: Any) -> List[Dict[str, Any]]:
    """Validate and normalize a list of question payloads.

    Each question needs text, at least two options, and the index of the
    correct option. Both ``{"questionText", "options": [{"text"}],
    "correctAnswer"}`` and ``{"text", "options": [str], "correctIndex"}``
    shapes are accepted.

    Returns:
        List of ``{"text", "options", "correct_index"}`` dicts.

    Raises:
        ValidationFailure: naming the first offending question.
    """
    if not isinstance(questions, list) or not questions:
        raise ValidationFailure("A quiz needs at least one question")

    normalized = []
    for i, q in enumerate(questions, start=1):
        if not isinstance(q, dict):
            raise ValidationFailure(f"Question {i}: must be an object")
        text = (q.get("questionText") or q.get("text") or "").strip()
        if not text:
            raise ValidationFailure(f"Question {i}: missing question text")
        options = q.get("options")
        if not isinstance(options, list) or len(options) < 2:
            raise ValidationFailure(f"Question {i}: needs at least two options")
        option_texts = [_option_text(o) for o in options]
        if any(not isinstance(o, str) or not o.strip() for o in option_texts):
            raise ValidationFailure(f"Question {i}: every option needs text")
        correct = q.get("correctAnswer", q.get("correctIndex"))
        if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(options):
            raise ValidationFailure(f"Question {i}: correct answer must be an option index")
        normalized.append({"text": text, "options": option_texts, "correct_index": correct})
    return normalized


def _set_questions(quiz: Quiz, questions: List[Dict[str, Any]]) -> None:
    quiz.questions = [
        Question(sort_order=i, text=q["text"], options=q["options"], correct_index=q["correct_index"])
        for i, q in enumerate(questions)
    ]


def create_quiz(
    session: Session,
    teacher: User,
    class_id: int,
    title: str,
    questions: Any,
    topic: Optional[str] = None,
    difficulty: Optional[str] = None,
    due_at: Optional[datetime] = None,
) -> Quiz:
    """Create a Draft quiz in a class the teacher owns and notify students."""
    if teacher.role != ROLE_TEACHER:
        raise Forbidden("Only teachers can create quizzes")
    class_obj = require_class(session, class_id)
    require_owner(class_obj, teacher, "Not authorized to create quizzes for this class")
    title = (title or "").strip()
    if not title:
        raise ValidationFailure("Quiz title is required")
    normalized = validate_questions(questions)

    quiz = Quiz(
        class_id=class_obj.id,
        title=title,
        topic=topic,
        difficulty=difficulty,
        status=QUIZ_DRAFT,
        due_at=due_at,
        created_by=teacher.id,
    )
    _set_questions(quiz, normalized)
    session.add(quiz)
    notify_class_students(
        session,
        class_obj,
        NEW_QUIZ,
        f'A new quiz "{title}" has been posted in {class_obj.name}.',
        link=f"/class/{class_obj.id}",
    )
    session.commit()
    logger.info("Teacher %s created quiz %s in class %s", teacher.id, quiz.id, class_obj.id)
    return quiz


def get_quiz(session: Session, quiz_id: int) -> Optional[Quiz]:
    return session.query(Quiz).filter_by(id=quiz_id).first()


def require_quiz(session: Session, quiz_id: int) -> Quiz:
    quiz = get_quiz(session, quiz_id)
    if quiz is None:
        raise NotFound("Quiz not found")
    return quiz


def list_quizzes_for_class(session: Session, class_id: int) -> List[Quiz]:
    """Quizzes of a class in creation order."""
    return session.query(Quiz).filter_by(class_id=class_id).order_by(Quiz.id).all()


def list_quizzes_for_user(session: Session, user: User, class_id: int) -> List[Quiz]:
    """Quizzes visible to a class member. Students never see drafts."""
    class_obj = require_class(session, class_id)
    require_member(class_obj, user)
    quizzes = list_quizzes_for_class(session, class_obj.id)
    if user.role == ROLE_STUDENT:
        quizzes = [q for q in quizzes if q.status != QUIZ_DRAFT]
    return quizzes


def get_quiz_for_user(session: Session, user: User, quiz_id: int) -> Quiz:
    quiz = require_quiz(session, quiz_id)
    require_member(quiz.class_, user, "Not authorized to access this quiz")
    if user.role == ROLE_STUDENT and quiz.status == QUIZ_DRAFT:
        raise NotFound("Quiz not found")
    return quiz


def _require_creator(quiz: Quiz, user: User, action: str) -> None:
    if user.role != ROLE_TEACHER:
        raise Forbidden(f"Only teachers can {action} quizzes")
    if quiz.created_by != user.id:
        raise Forbidden(f"Not authorized to {action} this quiz")


def update_quiz(
    session: Session,
    user: User,
    quiz_id: int,
    title: Optional[str] = None,
    questions: Any = None,
    status: Optional[str] = None,
    due_at: Optional[datetime] = None,
    clear_due: bool = False,
) -> Quiz:
    """Update a quiz's title, questions, status or due date (creator only)."""
    quiz = require_quiz(session, quiz_id)
    _require_creator(quiz, user, "update")

    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationFailure("Quiz title is required")
        quiz.title = title
    if questions is not None:
        if quiz.results:
            raise Conflict("Questions cannot be changed after students have submitted")
        _set_questions(quiz, validate_questions(questions))
    if status is not None:
        if status not in QUIZ_STATUSES:
            raise ValidationFailure(f"Status must be one of: {', '.join(QUIZ_STATUSES)}")
        if status not in STATUS_TRANSITIONS[quiz.status]:
            raise ValidationFailure(f"Cannot change quiz status from {quiz.status} to {status}")
        quiz.status = status
    if clear_due:
        quiz.due_at = None
    elif due_at is not None:
        quiz.due_at = due_at

    session.commit()
    return quiz


def publish_quiz(session: Session, user: User, quiz_id: int) -> Quiz:
    quiz = require_quiz(session, quiz_id)
    _require_creator(quiz, user, "publish")
    if QUIZ_PUBLISHED not in STATUS_TRANSITIONS[quiz.status]:
        raise ValidationFailure(f"Cannot publish a quiz that is {quiz.status}")
    quiz.status = QUIZ_PUBLISHED
    session.commit()
    logger.info("Quiz %s published", quiz.id)
    return quiz


def delete_quiz(session: Session, user: User, quiz_id: int) -> None:
    quiz = require_quiz(session, quiz_id)
    _require_creator(quiz, user, "delete")
    session.delete(quiz)
    session.commit()
    logger.info("Quiz %s deleted by %s", quiz_id, user.id)


def _selected_index(answers: Any, i: int) -> Optional[int]:
    if isinstance(answers, dict):
        value = answers.get(str(i), answers.get(i))
    elif isinstance(answers, list) and i < len(answers):
        value = answers[i]
    else:
        value = None
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def score_answers(quiz: Quiz, answers: Any):
    """Score submitted answers against a quiz.

    Args:
        quiz: Quiz with ordered questions.
        answers: Either a list of selected option indexes (by question
            position) or a dict keyed by question index.

    Returns:
        Tuple of (score, answer_records) where answer_records is a list of
        ``{"questionIndex", "selectedOptionIndex"}`` dicts.
    """
    score = 0
    records = []
    for i, question in enumerate(quiz.questions):
        selected = _selected_index(answers, i)
        records.append({"questionIndex": i, "selectedOptionIndex": selected})
        if selected is not None and selected == question.correct_index:
            score += 1
    return score, records


def result_exists(session: Session, quiz_id: int, student_id: int) -> bool:
    return session.query(QuizResult.id).filter_by(quiz_id=quiz_id, student_id=student_id).first() is not None


def submit_quiz(session: Session, student: User, quiz_id: int, answers: Any, now: Optional[datetime] = None) -> QuizResult:
    """
    Record a student's single submission for a published quiz.

    Late submissions (after the due timestamp) are accepted and flagged.

    Raises:
        Forbidden: not a student, or not enrolled in the quiz's class
        NotFound: unknown quiz
        ValidationFailure: quiz is not published
        Conflict: the student already submitted this quiz
    """
    if student.role != ROLE_STUDENT:
        raise Forbidden("Only students can submit quizzes")
    quiz = require_quiz(session, quiz_id)
    if not is_member(quiz.class_, student):
        raise Forbidden("Not enrolled in this quiz's class")
    if quiz.status != QUIZ_PUBLISHED:
        raise ValidationFailure("Quiz is not published or available for submission")
    if result_exists(session, quiz.id, student.id):
        raise Conflict("You have already submitted this quiz")

    now = now or utcnow()
    score, records = score_answers(quiz, answers)
    result = QuizResult(
        quiz_id=quiz.id,
        student_id=student.id,
        answers=records,
        score=score,
        total_questions=len(quiz.questions),
        is_late=bool(quiz.due_at and now > quiz.due_at),
        created_at=now,
    )
    session.add(result)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning("Duplicate submission for quiz %s by student %s", quiz.id, student.id)
        raise Conflict("You have already submitted this quiz")

    logger.info(
        "Student %s submitted quiz %s: %d/%d%s",
        student.id,
        quiz.id,
        score,
        result.total_questions,
        " (late)" if result.is_late else "",
    )
    return result


# ---------------------------------------------------------------------------
# Result store
# ---------------------------------------------------------------------------


def list_results_for_quizzes(session: Session, quiz_ids: Iterable[int]) -> List[QuizResult]:
    quiz_ids = list(quiz_ids)
    if not quiz_ids:
        return []
    return session.query(QuizResult).filter(QuizResult.quiz_id.in_(quiz_ids)).order_by(QuizResult.id).all()


def list_results_for_student_in_quizzes(session: Session, student_id: int, quiz_ids: Iterable[int]) -> List[QuizResult]:
    quiz_ids = list(quiz_ids)
    if not quiz_ids:
        return []
    return (
        session.query(QuizResult)
        .filter(QuizResult.student_id == student_id, QuizResult.quiz_id.in_(quiz_ids))
        .order_by(QuizResult.id)
        .all()
    )


def list_results_for_student(session: Session, student_id: int) -> List[QuizResult]:
    return session.query(QuizResult).filter_by(student_id=student_id).order_by(QuizResult.id).all()


def find_result(session: Session, quiz_id: int, student_id: int) -> Optional[QuizResult]:
    return session.query(QuizResult).filter_by(quiz_id=quiz_id, student_id=student_id).first()


def list_results_for_quiz(session: Session, user: User, quiz_id: int) -> List[QuizResult]:
    """All submissions for a quiz (teacher who owns the class only)."""
    if user.role != ROLE_TEACHER:
        raise Forbidden("Only teachers can view all quiz results")
    quiz = require_quiz(session, quiz_id)
    require_owner(quiz.class_, user, "Not authorized to view results for this quiz")
    return list_results_for_quizzes(session, [quiz.id])


def get_own_result(session: Session, student: User, quiz_id: int) -> QuizResult:
    """The requesting student's submission for a quiz."""
    quiz = require_quiz(session, quiz_id)
    require_member(quiz.class_, student, "Not authorized to access this quiz")
    result = find_result(session, quiz.id, student.id)
    if result is None:
        raise NotFound("Quiz result not found")
    return result


def list_own_results_in_class(session: Session, student: User, class_id: int) -> List[QuizResult]:
    """A student's submissions for every quiz in one class."""
    if student.role != ROLE_STUDENT:
        raise Forbidden("Only students can view their own quiz results")
    class_obj = require_class(session, class_id)
    require_member(class_obj, student)
    quiz_ids = [q.id for q in list_quizzes_for_class(session, class_obj.id)]
    return list_results_for_student_in_quizzes(session, student.id, quiz_ids)


def get_attempt(session: Session, user: User, attempt_id: int, quiz_id: Optional[int] = None) -> QuizResult:
    """A single submission, visible to class members."""
    result = session.query(QuizResult).filter_by(id=attempt_id).first()
    if result is None or (quiz_id is not None and result.quiz_id != quiz_id):
        raise NotFound("Quiz result not found")
    require_member(result.quiz.class_, user, "Not authorized to access this quiz result")
    if user.role == ROLE_STUDENT and result.student_id != user.id:
        raise Forbidden("Not authorized to access this quiz result")
    return result


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def question_to_dict(question: Question, include_answer: bool = True) -> dict:
    data = {
        "questionText": question.text,
        "options": [{"text": text} for text in question.options or []],
    }
    if include_answer:
        data["correctAnswer"] = question.correct_index
    return data


def quiz_to_dict(quiz: Quiz, include_answers: bool = True) -> dict:
    return {
        "id": quiz.id,
        "class": quiz.class_id,
        "title": quiz.title,
        "topic": quiz.topic,
        "difficulty": quiz.difficulty,
        "status": quiz.status,
        "dueDate": quiz.due_at.isoformat() if quiz.due_at else None,
        "createdBy": quiz.created_by,
        "createdAt": quiz.created_at.isoformat() if quiz.created_at else None,
        "questions": [question_to_dict(q, include_answer=include_answers) for q in quiz.questions],
    }


def result_to_dict(result: QuizResult, student: Optional[dict] = None) -> dict:
    return {
        "id": result.id,
        "quiz": result.quiz_id,
        "student": student if student is not None else result.student_id,
        "answers": result.answers or [],
        "score": result.score,
        "totalQuestions": result.total_questions,
        "isLate": bool(result.is_late),
        "createdAt": result.created_at.isoformat() if result.created_at else None,
    }


def quiz_summary(quiz: Quiz) -> dict:
    return {
        "title": quiz.title,
        "topic": quiz.topic,
        "difficulty": quiz.difficulty,
        "dueDate": quiz.due_at.isoformat() if quiz.due_at else None,
    }
