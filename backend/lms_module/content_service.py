import logging
import math
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import Conflict, NotFound, ValidationError
from .models import Chapter, Exercise, Lesson, SchoolClass, as_utc

logger = logging.getLogger(__name__)


def _required_text(value: str, field: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError(f"{field} must not be blank")
    return value


def create_class(db: Session, *, name: str) -> SchoolClass:
    school_class = SchoolClass(name=_required_text(name, "name"))
    db.add(school_class)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Class already exists") from exc
    db.refresh(school_class)
    return school_class


def list_classes(db: Session) -> list[SchoolClass]:
    return db.query(SchoolClass).order_by(SchoolClass.id).all()


def delete_class(db: Session, *, class_id: int) -> None:
    # Chapters and everything below go with the class; student accounts keep
    # existing with class_id set to NULL. Both are enforced by the foreign keys.
    deleted = db.query(SchoolClass).filter(SchoolClass.id == class_id).delete(synchronize_session=False)
    if deleted == 0:
        db.rollback()
        raise NotFound("Class not found")
    db.commit()
    logger.info(f"Deleted class id={class_id} with its content")


def create_chapter(db: Session, *, title: str, class_id: int) -> Chapter:
    title = _required_text(title, "title")
    if not db.query(SchoolClass).filter(SchoolClass.id == class_id).first():
        raise NotFound("Class not found")
    chapter = Chapter(title=title, class_id=class_id)
    db.add(chapter)
    db.commit()
    db.refresh(chapter)
    return chapter


def list_chapters(db: Session, *, class_id: int) -> list[Chapter]:
    return db.query(Chapter).filter(Chapter.class_id == class_id).order_by(Chapter.id).all()


def create_lesson(db: Session, *, title: str, content: str, chapter_id: int) -> Lesson:
    title = _required_text(title, "title")
    if not db.query(Chapter).filter(Chapter.id == chapter_id).first():
        raise NotFound("Chapter not found")
    lesson = Lesson(title=title, content=content, chapter_id=chapter_id)
    db.add(lesson)
    db.commit()
    db.refresh(lesson)
    return lesson


def list_lessons(db: Session, *, chapter_id: int) -> list[Lesson]:
    return db.query(Lesson).filter(Lesson.chapter_id == chapter_id).order_by(Lesson.id).all()


def get_lesson(db: Session, *, lesson_id: int) -> Lesson:
    lesson = db.query(Lesson).filter(Lesson.id == lesson_id).first()
    if not lesson:
        raise NotFound("Lesson not found")
    return lesson


def create_exercise(
    db: Session,
    *,
    title: str,
    lesson_id: int,
    deadline: datetime,
    max_score: float,
    description: str | None = None,
) -> Exercise:
    title = _required_text(title, "title")
    # inf would leave grades without an upper bound.
    if not math.isfinite(max_score) or max_score <= 0:
        raise ValidationError("max_score must be a positive finite number")
    if not db.query(Lesson).filter(Lesson.id == lesson_id).first():
        raise NotFound("Lesson not found")
    exercise = Exercise(
        title=title,
        description=description,
        lesson_id=lesson_id,
        deadline=as_utc(deadline),
        max_score=max_score,
    )
    db.add(exercise)
    db.commit()
    db.refresh(exercise)
    return exercise


def list_exercises(db: Session, *, lesson_id: int) -> list[Exercise]:
    return db.query(Exercise).filter(Exercise.lesson_id == lesson_id).order_by(Exercise.id).all()
