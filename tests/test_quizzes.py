"""
Tests for quiz CRUD, publishing and submission (lessonloop/quizzes.py).
"""

from datetime import datetime, timedelta

import pytest

from lessonloop.database import QUIZ_ARCHIVED, QUIZ_DRAFT, QUIZ_PUBLISHED, ROLE_TEACHER, Notification, QuizResult
from lessonloop.errors import Conflict, Forbidden, NotFound, ValidationFailure
from lessonloop.quizzes import (
    create_quiz,
    delete_quiz,
    get_attempt,
    get_own_result,
    get_quiz_for_user,
    list_own_results_in_class,
    list_quizzes_for_user,
    list_results_for_quiz,
    parse_due,
    publish_quiz,
    quiz_to_dict,
    score_answers,
    submit_quiz,
    update_quiz,
    validate_questions,
)


@pytest.fixture
def room(db_session, make_user, make_class, enroll):
    teacher = make_user(db_session, "Teacher", role=ROLE_TEACHER)
    ann = make_user(db_session, "Ann")
    ben = make_user(db_session, "Ben")
    cls = make_class(db_session, teacher)
    enroll(db_session, cls, ann, ben)
    return db_session, teacher, ann, ben, cls


class TestParseDue:
    def test_none(self):
        assert parse_due(None) is None
        assert parse_due("") is None

    def test_date_only(self):
        assert parse_due("2024-05-01") == datetime(2024, 5, 1)

    def test_date_and_time(self):
        assert parse_due("2024-05-01", "13:45") == datetime(2024, 5, 1, 13, 45)

    def test_timezone_normalized_to_utc(self):
        assert parse_due("2024-05-01T10:00:00+02:00") == datetime(2024, 5, 1, 8, 0)
        assert parse_due("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0)

    def test_invalid(self):
        with pytest.raises(ValidationFailure):
            parse_due("next tuesday")
        with pytest.raises(ValidationFailure):
            parse_due("2024-05-01", "noon")
        with pytest.raises(ValidationFailure):
            parse_due("2024-05-01", 1200)


class TestValidateQuestions:
    def test_client_shape(self, sample_questions):
        normalized = validate_questions(sample_questions)
        assert normalized[0] == {"text": "2 + 2 = ?", "options": ["3", "4", "5"], "correct_index": 1}

    def test_plain_shape(self):
        normalized = validate_questions([{"text": "Q", "options": ["a", "b"], "correctIndex": 0}])
        assert normalized == [{"text": "Q", "options": ["a", "b"], "correct_index": 0}]

    @pytest.mark.parametrize(
        "questions",
        [
            [],
            "nope",
            [{"questionText": "", "options": ["a", "b"], "correctAnswer": 0}],
            [{"questionText": "Q", "options": ["a"], "correctAnswer": 0}],
            [{"questionText": "Q", "options": ["a", "b"], "correctAnswer": 2}],
            [{"questionText": "Q", "options": ["a", "b"], "correctAnswer": True}],
            [{"questionText": "Q", "options": ["a", ""], "correctAnswer": 0}],
        ],
    )
    def test_rejects_bad_payloads(self, questions):
        with pytest.raises(ValidationFailure):
            validate_questions(questions)


class TestCreateQuiz:
    def test_creates_draft_and_notifies_students(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions, topic="Arithmetic")
        assert quiz.status == QUIZ_DRAFT
        assert [q.text for q in quiz.questions] == ["2 + 2 = ?", "3 * 3 = ?"]
        recipients = {n.recipient_id for n in session.query(Notification).filter_by(type="newQuiz")}
        assert recipients == {ann.id, ben.id}

    def test_student_cannot_create(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        with pytest.raises(Forbidden):
            create_quiz(session, ann, cls.id, "Week 1", sample_questions)

    def test_other_teacher_cannot_create(self, room, make_user, sample_questions):
        session, teacher, ann, ben, cls = room
        other = make_user(session, "Other", role=ROLE_TEACHER)
        with pytest.raises(Forbidden):
            create_quiz(session, other, cls.id, "Week 1", sample_questions)

    def test_title_required(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        with pytest.raises(ValidationFailure):
            create_quiz(session, teacher, cls.id, "  ", sample_questions)


class TestLifecycle:
    def test_publish_then_no_way_back_to_draft(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        publish_quiz(session, teacher, quiz.id)
        assert quiz.status == QUIZ_PUBLISHED
        with pytest.raises(ValidationFailure):
            update_quiz(session, teacher, quiz.id, status=QUIZ_DRAFT)
        update_quiz(session, teacher, quiz.id, status=QUIZ_ARCHIVED)
        with pytest.raises(ValidationFailure):
            publish_quiz(session, teacher, quiz.id)

    def test_only_creator_may_update(self, room, make_user, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        other = make_user(session, "Other", role=ROLE_TEACHER)
        with pytest.raises(Forbidden):
            update_quiz(session, other, quiz.id, title="Hijacked")
        with pytest.raises(Forbidden):
            delete_quiz(session, ann, quiz.id)

    def test_update_due_date_and_clear(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        update_quiz(session, teacher, quiz.id, due_at=datetime(2024, 1, 2))
        assert quiz.due_at == datetime(2024, 1, 2)
        update_quiz(session, teacher, quiz.id, title="Renamed")
        assert quiz.due_at == datetime(2024, 1, 2)
        update_quiz(session, teacher, quiz.id, clear_due=True)
        assert quiz.due_at is None

    def test_questions_locked_after_submission(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        publish_quiz(session, teacher, quiz.id)
        submit_quiz(session, ann, quiz.id, [1, 1])
        with pytest.raises(Conflict):
            update_quiz(session, teacher, quiz.id, questions=sample_questions)

    def test_delete_removes_results(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        publish_quiz(session, teacher, quiz.id)
        submit_quiz(session, ann, quiz.id, [1, 1])
        quiz_id = quiz.id
        delete_quiz(session, teacher, quiz_id)
        assert session.query(QuizResult).filter_by(quiz_id=quiz_id).count() == 0

    def test_students_do_not_see_drafts(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        draft = create_quiz(session, teacher, cls.id, "Draft", sample_questions)
        live = create_quiz(session, teacher, cls.id, "Live", sample_questions)
        publish_quiz(session, teacher, live.id)
        assert [q.title for q in list_quizzes_for_user(session, ann, cls.id)] == ["Live"]
        assert [q.title for q in list_quizzes_for_user(session, teacher, cls.id)] == ["Draft", "Live"]
        with pytest.raises(NotFound):
            get_quiz_for_user(session, ann, draft.id)


class TestScoring:
    def test_list_answers(self, room, make_quiz):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls, num_questions=3)
        score, records = score_answers(quiz, [0, 1, 0])
        assert score == 2
        assert records[1] == {"questionIndex": 1, "selectedOptionIndex": 1}

    def test_dict_answers_and_missing(self, room, make_quiz):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls, num_questions=3)
        score, records = score_answers(quiz, {"0": 0, "2": "x"})
        assert score == 1
        assert records[1]["selectedOptionIndex"] is None
        assert records[2]["selectedOptionIndex"] is None


class TestSubmitQuiz:
    def test_submit_scores_and_records(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        publish_quiz(session, teacher, quiz.id)
        result = submit_quiz(session, ann, quiz.id, [1, 0])
        assert (result.score, result.total_questions, result.is_late) == (1, 2, False)

    def test_duplicate_submission_conflict(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        publish_quiz(session, teacher, quiz.id)
        submit_quiz(session, ann, quiz.id, [1, 1])
        with pytest.raises(Conflict):
            submit_quiz(session, ann, quiz.id, [0, 0])
        results = session.query(QuizResult).filter_by(quiz_id=quiz.id, student_id=ann.id).all()
        assert len(results) == 1
        assert results[0].score == 2

    def test_database_rejects_duplicate_result(self, room, make_quiz, make_result):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls)
        make_result(session, quiz, ann, 5)
        from sqlalchemy.exc import IntegrityError

        with pytest.raises(IntegrityError):
            make_result(session, quiz, ann, 6)
        session.rollback()

    def test_late_submission_flagged_not_rejected(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        due = datetime(2024, 1, 1, 9, 0)
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions, due_at=due)
        publish_quiz(session, teacher, quiz.id)
        late = submit_quiz(session, ann, quiz.id, [1, 1], now=due + timedelta(minutes=1))
        on_time = submit_quiz(session, ben, quiz.id, [1, 1], now=due - timedelta(minutes=1))
        assert late.is_late is True
        assert on_time.is_late is False

    def test_draft_cannot_be_submitted(self, room, sample_questions):
        session, teacher, ann, ben, cls = room
        quiz = create_quiz(session, teacher, cls.id, "Week 1", sample_questions)
        with pytest.raises(ValidationFailure):
            submit_quiz(session, ann, quiz.id, [1, 1])

    def test_non_member_cannot_submit(self, room, make_user, make_quiz):
        session, teacher, ann, ben, cls = room
        outsider = make_user(session, "Olive")
        quiz = make_quiz(session, cls)
        with pytest.raises(Forbidden):
            submit_quiz(session, outsider, quiz.id, [])

    def test_teacher_cannot_submit(self, room, make_quiz):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls)
        with pytest.raises(Forbidden):
            submit_quiz(session, teacher, quiz.id, [])

    def test_unknown_quiz(self, room):
        session, teacher, ann, ben, cls = room
        with pytest.raises(NotFound):
            submit_quiz(session, ann, 999, [])


class TestResultViews:
    def test_teacher_lists_results(self, room, make_quiz, make_result):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls)
        make_result(session, quiz, ann, 5)
        make_result(session, quiz, ben, 6)
        assert [r.score for r in list_results_for_quiz(session, teacher, quiz.id)] == [5, 6]
        with pytest.raises(Forbidden):
            list_results_for_quiz(session, ann, quiz.id)

    def test_own_result(self, room, make_quiz, make_result):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls)
        make_result(session, quiz, ann, 5)
        assert get_own_result(session, ann, quiz.id).score == 5
        with pytest.raises(NotFound):
            get_own_result(session, ben, quiz.id)

    def test_attempt_visibility(self, room, make_quiz, make_result):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls)
        result = make_result(session, quiz, ann, 5)
        assert get_attempt(session, ann, result.id).id == result.id
        assert get_attempt(session, teacher, result.id, quiz_id=quiz.id).id == result.id
        with pytest.raises(Forbidden):
            get_attempt(session, ben, result.id)
        with pytest.raises(NotFound):
            get_attempt(session, ann, result.id, quiz_id=quiz.id + 1)

    def test_own_results_in_class(self, room, make_quiz, make_result):
        session, teacher, ann, ben, cls = room
        q1 = make_quiz(session, cls, title="One")
        q2 = make_quiz(session, cls, title="Two")
        make_result(session, q1, ann, 5)
        make_result(session, q2, ben, 5)
        assert [r.quiz_id for r in list_own_results_in_class(session, ann, cls.id)] == [q1.id]

    def test_quiz_to_dict_hides_answers(self, room, make_quiz):
        session, teacher, ann, ben, cls = room
        quiz = make_quiz(session, cls, num_questions=1)
        data = quiz_to_dict(quiz, include_answers=False)
        assert "correctAnswer" not in data["questions"][0]
        assert quiz_to_dict(quiz)["questions"][0]["correctAnswer"] == 0
