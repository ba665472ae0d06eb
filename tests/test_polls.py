"""
Tests for live polls and the vote tally (lessonloop/polls.py).
"""

import pytest
from sqlalchemy.exc import IntegrityError

from lessonloop.database import ROLE_TEACHER, Notification, Poll, PollVote
from lessonloop.errors import Conflict, Forbidden, NotFound, ValidationFailure
from lessonloop.polls import create_poll, end_poll, get_active_poll_for_user, has_voted, poll_to_dict, vote


@pytest.fixture
def room(db_session, make_user, make_class, enroll):
    teacher = make_user(db_session, "Teacher", role=ROLE_TEACHER)
    ann = make_user(db_session, "Ann")
    ben = make_user(db_session, "Ben")
    cls = make_class(db_session, teacher)
    enroll(db_session, cls, ann, ben)
    return db_session, teacher, ann, ben, cls


def _counts(poll):
    return [o.votes for o in poll.options]


class TestCreatePoll:
    def test_starts_active_with_zero_votes(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick one", ["A", "B", "C"], correct_index=1)
        assert poll.is_active
        assert _counts(poll) == [0, 0, 0]
        assert poll_to_dict(poll)["options"] == [
            {"text": "A", "votes": 0},
            {"text": "B", "votes": 0},
            {"text": "C", "votes": 0},
        ]
        assert session.query(Notification).filter_by(type="newPoll").count() == 2

    def test_accepts_option_objects(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", [{"text": "Yes"}, {"text": "No"}])
        assert [o.text for o in poll.options] == ["Yes", "No"]

    def test_second_active_poll_conflict(self, room):
        session, teacher, ann, ben, cls = room
        create_poll(session, teacher, cls.id, "First", ["A", "B"])
        with pytest.raises(Conflict):
            create_poll(session, teacher, cls.id, "Second", ["A", "B"])
        assert session.query(Poll).filter_by(class_id=cls.id).count() == 1

    def test_new_poll_allowed_after_ending(self, room):
        session, teacher, ann, ben, cls = room
        first = create_poll(session, teacher, cls.id, "First", ["A", "B"])
        end_poll(session, teacher, first.id)
        second = create_poll(session, teacher, cls.id, "Second", ["A", "B"])
        assert second.is_active

    def test_database_allows_only_one_active_poll(self, room):
        session, teacher, ann, ben, cls = room
        session.add(Poll(class_id=cls.id, question="One", created_by=teacher.id, is_active=True))
        session.commit()
        session.add(Poll(class_id=cls.id, question="Two", created_by=teacher.id, is_active=True))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    @pytest.mark.parametrize(
        "question,options,correct",
        [
            ("", ["A", "B"], None),
            ("Q", ["A"], None),
            ("Q", ["A", " "], None),
            ("Q", ["A", "B"], 2),
        ],
    )
    def test_validation(self, room, question, options, correct):
        session, teacher, ann, ben, cls = room
        with pytest.raises(ValidationFailure):
            create_poll(session, teacher, cls.id, question, options, correct_index=correct)

    def test_student_cannot_create(self, room):
        session, teacher, ann, ben, cls = room
        with pytest.raises(Forbidden):
            create_poll(session, ann, cls.id, "Q", ["A", "B"])


class TestVote:
    def test_first_vote_is_counted(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        assert poll.class_.id == cls.id
        result = vote(session, ann, poll.id, 0)
        assert _counts(result) == [1, 0]
        assert poll_to_dict(result)["votedUsers"] == [ann.id]

    def test_repeat_vote_rejected_counts_unchanged(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        vote(session, ann, poll.id, 0)
        with pytest.raises(Conflict):
            vote(session, ann, poll.id, 1)
        session.expire_all()
        assert _counts(poll) == [1, 0]
        assert has_voted(session, poll.id, ann.id)

    def test_votes_from_different_students(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        vote(session, ann, poll.id, 1)
        result = vote(session, ben, poll.id, 1)
        assert _counts(result) == [0, 2]
        assert sorted(poll_to_dict(result)["votedUsers"]) == sorted([ann.id, ben.id])

    def test_database_rejects_duplicate_voter_row(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        vote(session, ann, poll.id, 0)
        session.add(PollVote(poll_id=poll.id, user_id=ann.id, option_index=1))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()
        assert _counts(poll) == [1, 0]

    def test_inactive_poll(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        end_poll(session, teacher, poll.id)
        with pytest.raises(ValidationFailure):
            vote(session, ann, poll.id, 0)

    @pytest.mark.parametrize("option", [-1, 2, "0", None, True])
    def test_out_of_range_option(self, room, option):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        with pytest.raises(ValidationFailure):
            vote(session, ann, poll.id, option)

    def test_non_member_cannot_vote(self, room, make_user):
        session, teacher, ann, ben, cls = room
        outsider = make_user(session, "Olive")
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        with pytest.raises(Forbidden):
            vote(session, outsider, poll.id, 0)

    def test_unknown_poll(self, room):
        session, teacher, ann, ben, cls = room
        with pytest.raises(NotFound):
            vote(session, ann, 12345, 0)


class TestEndPoll:
    def test_end_is_terminal_and_idempotent(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        end_poll(session, teacher, poll.id)
        end_poll(session, teacher, poll.id)
        assert poll.is_active is False
        assert get_active_poll_for_user(session, ann, cls.id) is None

    def test_only_creator_can_end(self, room):
        session, teacher, ann, ben, cls = room
        poll = create_poll(session, teacher, cls.id, "Pick", ["A", "B"])
        with pytest.raises(Forbidden):
            end_poll(session, ann, poll.id)
