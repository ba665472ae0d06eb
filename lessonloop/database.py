from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

Base = declarative_base()

ROLE_TEACHER = "Teacher"
ROLE_STUDENT = "Student"
ROLES = (ROLE_TEACHER, ROLE_STUDENT)

QUIZ_DRAFT = "Draft"
QUIZ_PUBLISHED = "Published"
QUIZ_ARCHIVED = "Archived"
QUIZ_STATUSES = (QUIZ_DRAFT, QUIZ_PUBLISHED, QUIZ_ARCHIVED)

ATTENDANCE_PRESENT = "Present"
ATTENDANCE_ABSENT = "Absent"
ATTENDANCE_STATUSES = (ATTENDANCE_PRESENT, ATTENDANCE_ABSENT)


def utcnow():
    """Naive UTC timestamp (SQLite drops tzinfo on round-trip)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    uid = Column(String, unique=True, nullable=False)  # identity-provider id
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False)  # Teacher, Student
    password_hash = Column(String)
    avatar = Column(String)
    created_at = Column(DateTime, default=utcnow)


class Class(Base):
    __tablename__ = "classes"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    invite_code = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    teacher = relationship("User")
    enrollments = relationship(
        "Enrollment",
        back_populates="class_",
        order_by="Enrollment.id",
        cascade="all, delete-orphan",
    )
    quizzes = relationship("Quiz", back_populates="class_", order_by="Quiz.id")

    @property
    def students(self):
        """Enrolled students in enrollment order."""
        return [e.student for e in self.enrollments]

    @property
    def student_ids(self):
        return [e.student_id for e in self.enrollments]


class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("class_id", "student_id", name="uq_enrollment"),)
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    joined_at = Column(DateTime, default=utcnow)
    class_ = relationship("Class", back_populates="enrollments")
    student = relationship("User")


class Quiz(Base):
    __tablename__ = "quizzes"
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    title = Column(String, nullable=False)
    topic = Column(String)
    difficulty = Column(String)
    status = Column(String, default=QUIZ_DRAFT)  # Draft, Published, Archived
    due_at = Column(DateTime)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    class_ = relationship("Class", back_populates="quizzes")
    questions = relationship(
        "Question",
        back_populates="quiz",
        order_by="Question.sort_order",
        cascade="all, delete-orphan",
    )
    results = relationship("QuizResult", back_populates="quiz", cascade="all, delete-orphan")


class Question(Base):
    __tablename__ = "questions"
    id = Column(Integer, primary_key=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False)
    sort_order = Column(Integer, default=0)
    text = Column(Text, nullable=False)
    options = Column(JSON)  # list of option strings
    correct_index = Column(Integer, nullable=False)
    quiz = relationship("Quiz", back_populates="questions")


class QuizResult(Base):
    __tablename__ = "quiz_results"
    __table_args__ = (UniqueConstraint("quiz_id", "student_id", name="uq_quiz_result"),)
    id = Column(Integer, primary_key=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    answers = Column(JSON)  # [{"questionIndex": i, "selectedOptionIndex": j}]
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    is_late = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    quiz = relationship("Quiz", back_populates="results")
    student = relationship("User")


class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("class_id", "date", name="uq_attendance_day"),)
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    date = Column(Date, nullable=False)
    records = relationship(
        "AttendanceRecord",
        back_populates="attendance",
        order_by="AttendanceRecord.id",
        cascade="all, delete-orphan",
    )


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    id = Column(Integer, primary_key=True)
    attendance_id = Column(Integer, ForeignKey("attendance.id"), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, nullable=False)  # Present, Absent
    attendance = relationship("Attendance", back_populates="records")
    student = relationship("User")


class Poll(Base):
    __tablename__ = "polls"
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    question = Column(Text, nullable=False)
    correct_index = Column(Integer)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    class_ = relationship("Class")
    options = relationship(
        "PollOption",
        back_populates="poll",
        order_by="PollOption.position",
        cascade="all, delete-orphan",
    )
    votes = relationship("PollVote", back_populates="poll", cascade="all, delete-orphan")


# At most one active poll per class.
Index(
    "uq_active_poll",
    Poll.class_id,
    unique=True,
    sqlite_where=Poll.is_active == True,  # noqa: E712
    postgresql_where=Poll.is_active == True,  # noqa: E712
)


class PollOption(Base):
    __tablename__ = "poll_options"
    id = Column(Integer, primary_key=True)
    poll_id = Column(Integer, ForeignKey("polls.id"), nullable=False)
    position = Column(Integer, nullable=False)
    text = Column(String, nullable=False)
    votes = Column(Integer, default=0, nullable=False)
    poll = relationship("Poll", back_populates="options")


class PollVote(Base):
    __tablename__ = "poll_votes"
    __table_args__ = (UniqueConstraint("poll_id", "user_id", name="uq_poll_vote"),)
    id = Column(Integer, primary_key=True)
    poll_id = Column(Integer, ForeignKey("polls.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    option_index = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    poll = relationship("Poll", back_populates="votes")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # newQuiz, newPoll
    message = Column(Text, nullable=False)
    link = Column(String)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)


class Resource(Base):
    """Class material: metadata for a file held by the file store."""

    __tablename__ = "resources"
    id = Column(Integer, primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    title = Column(String, nullable=False)
    file_url = Column(String, nullable=False)
    file_type = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    upload_date = Column(DateTime, default=utcnow)
    uploader = relationship("User")


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if dbapi_connection.__class__.__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()


def get_engine(db_path=None, url=None):
    """Returns a SQLAlchemy engine.

    ``url`` (e.g. from DATABASE_URL) takes precedence over the SQLite path.
    """
    if url:
        return create_engine(url)
    return create_engine(f"sqlite:///{db_path}")


def init_db(engine):
    """Creates all tables in the database."""
    Base.metadata.create_all(engine)


def get_session(engine):
    """Returns a new session."""
    Session = sessionmaker(bind=engine)
    return Session()
