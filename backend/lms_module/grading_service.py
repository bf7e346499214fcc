"""Submission and grading workflow.

Two storage invariants carry this module:

* one submission per (exercise, student), held by the unique constraint on
  ``submissions`` so two near-simultaneous submits cannot both land;
* zero or one grade per submission, written with a single
  ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent graders never produce a
  second row.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import AlreadySubmitted, DeadlinePassed, NotFound, ScoreOutOfRange
from .models import STAFF_ROLES, Account, Exercise, Grade, Submission, as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradedSubmission:
    submission: Submission
    grade: Grade | None


def _upsert_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Grade upsert is not supported on '{dialect}'")


def submit_exercise(
    db: Session,
    *,
    exercise_id: int,
    student: Account,
    content: str,
    now: datetime | None = None,
) -> Submission:
    exercise = db.query(Exercise).filter(Exercise.id == exercise_id).first()
    if not exercise:
        raise NotFound("Exercise not found")

    now = as_utc(now) if now else utcnow()
    if now > as_utc(exercise.deadline):
        raise DeadlinePassed()

    submission = Submission(exercise_id=exercise_id, student_id=student.id, content=content, submitted_at=now)
    db.add(submission)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AlreadySubmitted() from exc
    db.refresh(submission)
    logger.info(f"Student id={student.id} submitted exercise id={exercise_id}")
    return submission


def grade_submission(
    db: Session,
    *,
    submission_id: int,
    score: float,
    grader: Account,
    feedback: str | None = None,
) -> Grade:
    row = (
        db.query(Submission.id, Exercise.max_score)
        .join(Exercise, Submission.exercise_id == Exercise.id)
        .filter(Submission.id == submission_id)
        .first()
    )
    if row is None:
        raise NotFound("Submission not found")
    # NaN compares false against both bounds, so it has to be refused up front.
    if not math.isfinite(score):
        raise ScoreOutOfRange("Score must be a finite number")
    if score > row.max_score:
        raise ScoreOutOfRange()
    if score < 0:
        raise ScoreOutOfRange("Score cannot be negative")

    now = utcnow()
    insert = _upsert_insert(db)
    stmt = insert(Grade).values(
        submission_id=submission_id,
        score=score,
        feedback=feedback,
        teacher_id=grader.id,
        created_at=now,
        updated_at=now,
    )
    # The first grader stays teacher of record; re-grading only rewrites the mark.
    stmt = stmt.on_conflict_do_update(
        index_elements=["submission_id"],
        set_={"score": stmt.excluded.score, "feedback": stmt.excluded.feedback, "updated_at": now},
    )
    db.execute(stmt)
    db.commit()
    logger.info(f"Submission id={submission_id} graded {score}/{row.max_score} by id={grader.id}")
    return db.query(Grade).filter(Grade.submission_id == submission_id).first()


def list_submissions(db: Session, *, exercise_id: int, viewer: Account) -> list[GradedSubmission]:
    if not db.query(Exercise).filter(Exercise.id == exercise_id).first():
        raise NotFound("Exercise not found")

    query = (
        db.query(Submission, Grade)
        .outerjoin(Grade, Grade.submission_id == Submission.id)
        .filter(Submission.exercise_id == exercise_id)
    )
    if viewer.role not in STAFF_ROLES:
        query = query.filter(Submission.student_id == viewer.id)
    return [
        GradedSubmission(submission=submission, grade=grade)
        for submission, grade in query.order_by(Submission.id).all()
    ]
