"""Quiz routes: CRUD, publishing, submission, results and AI question generation."""

from flask import Blueprint, g, jsonify

from lessonloop.database import ROLE_STUDENT, ROLE_TEACHER
from lessonloop.question_generator import generate_mcq
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
    quiz_summary,
    quiz_to_dict,
    result_to_dict,
    submit_quiz,
    update_quiz,
)
from lessonloop.users import user_to_dict
from lessonloop.web.blueprints.helpers import _app_config, _get_session, auth_required, json_body, roles_required

quizzes_bp = Blueprint("quizzes", __name__)


def _show_answers():
    return g.current_user.role == ROLE_TEACHER


@quizzes_bp.route("/quizzes", methods=["POST"])
@auth_required
@roles_required(ROLE_TEACHER)
def quiz_create():
    """Create a Draft quiz; enrolled students are notified."""
    data = json_body()
    quiz = create_quiz(
        _get_session(),
        g.current_user,
        data.get("classId", data.get("class")),
        title=data.get("title", ""),
        questions=data.get("questions"),
        topic=data.get("topic"),
        difficulty=data.get("difficulty"),
        due_at=parse_due(data.get("dueDate"), data.get("dueTime")),
    )
    return jsonify(quiz_to_dict(quiz)), 201


@quizzes_bp.route("/quizzes/<int:class_id>")
@auth_required
def quizzes_for_class(class_id):
    quizzes = list_quizzes_for_user(_get_session(), g.current_user, class_id)
    return jsonify([quiz_to_dict(q, include_answers=_show_answers()) for q in quizzes])


@quizzes_bp.route("/quizzes/quiz/<int:quiz_id>")
@auth_required
def quiz_detail(quiz_id):
    quiz = get_quiz_for_user(_get_session(), g.current_user, quiz_id)
    return jsonify(quiz_to_dict(quiz, include_answers=_show_answers()))


@quizzes_bp.route("/quizzes/quiz/<int:quiz_id>", methods=["PUT"])
@auth_required
def quiz_update(quiz_id):
    """Partial update; send ``dueDate: null`` to clear the due date."""
    data = json_body()
    quiz = update_quiz(
        _get_session(),
        g.current_user,
        quiz_id,
        title=data.get("title"),
        questions=data.get("questions"),
        status=data.get("status"),
        due_at=parse_due(data.get("dueDate"), data.get("dueTime")),
        clear_due="dueDate" in data and not data["dueDate"],
    )
    return jsonify(quiz_to_dict(quiz))


@quizzes_bp.route("/quizzes/quiz/<int:quiz_id>", methods=["DELETE"])
@auth_required
def quiz_delete(quiz_id):
    delete_quiz(_get_session(), g.current_user, quiz_id)
    return jsonify({"msg": "Quiz removed"})


@quizzes_bp.route("/quizzes/publish/<int:quiz_id>", methods=["PUT"])
@auth_required
def quiz_publish(quiz_id):
    quiz = publish_quiz(_get_session(), g.current_user, quiz_id)
    return jsonify(quiz_to_dict(quiz))


@quizzes_bp.route("/quizzes/submit/<int:quiz_id>", methods=["POST"])
@auth_required
@roles_required(ROLE_STUDENT)
def quiz_submit(quiz_id):
    data = json_body()
    result = submit_quiz(_get_session(), g.current_user, quiz_id, data.get("answers", []))
    return jsonify(result_to_dict(result)), 201


@quizzes_bp.route("/quizzes/results/<int:quiz_id>")
@auth_required
def quiz_results(quiz_id):
    """All submissions for a quiz, with student details."""
    results = list_results_for_quiz(_get_session(), g.current_user, quiz_id)
    return jsonify([result_to_dict(r, student=user_to_dict(r.student)) for r in results])


@quizzes_bp.route("/quizzes/result/<int:quiz_id>")
@auth_required
@roles_required(ROLE_STUDENT)
def own_result(quiz_id):
    result = get_own_result(_get_session(), g.current_user, quiz_id)
    return jsonify(result_to_dict(result))


@quizzes_bp.route("/quizzes/result/<int:quiz_id>/attempt/<int:attempt_id>")
@auth_required
def attempt_detail(quiz_id, attempt_id):
    result = get_attempt(_get_session(), g.current_user, attempt_id, quiz_id=quiz_id)
    data = result_to_dict(result, student=user_to_dict(result.student))
    data["quiz"] = quiz_to_dict(result.quiz, include_answers=True)
    return jsonify(data)


@quizzes_bp.route("/quizzes/my-results/<int:class_id>")
@auth_required
def my_results(class_id):
    results = list_own_results_in_class(_get_session(), g.current_user, class_id)
    payload = []
    for result in results:
        item = result_to_dict(result)
        item["quiz"] = dict(quiz_summary(result.quiz), id=result.quiz_id)
        payload.append(item)
    return jsonify(payload)


@quizzes_bp.route("/quizzes/generate-mcq", methods=["POST"])
@auth_required
@roles_required(ROLE_TEACHER)
def quiz_generate_mcq():
    """Generate multiple-choice questions with the configured LLM provider."""
    data = json_body()
    questions = generate_mcq(
        _app_config(),
        topic=data.get("topic", ""),
        num_questions=data.get("numQuestions", 5),
        difficulty=data.get("difficulty", "Medium"),
        grade_level=data.get("gradeLevel", ""),
    )
    return jsonify({"questions": questions})
