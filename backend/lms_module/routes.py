import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import content_service, grading_service, messaging_service
from .database import get_db_session
from .middleware import get_current_user, require_roles
from .models import STAFF_ROLES, Account, Announcement, Exercise, Message, UserRole, as_utc
from .schemas import (
    AnnouncementCreateRequest,
    AnnouncementOut,
    ChangePasswordRequest,
    ChapterCreateRequest,
    ChapterOut,
    ClassCreateRequest,
    ClassOut,
    CreatedResponse,
    ExerciseCreateRequest,
    ExerciseOut,
    GradeRequest,
    HealthOut,
    LessonCreateRequest,
    LessonOut,
    LessonSummaryOut,
    LoginRequest,
    LoginResponse,
    MessageCreateRequest,
    MessageOut,
    MessageResponse,
    SubmissionCreateRequest,
    SubmissionOut,
    UserActiveUpdateRequest,
    UserCreateRequest,
    UserOut,
)
from .services import change_password, create_account, list_accounts, login_user, set_account_active

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["MadaMaths LMS"])

require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(*STAFF_ROLES)
require_student = require_roles(UserRole.STUDENT)


def _user_out(user: Account) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        student_code=user.student_code,
        full_name=user.full_name,
        role=user.role,
        class_id=user.class_id,
        class_name=user.class_name,
        must_change_password=user.must_change_password,
        is_active=user.is_active,
    )


def _exercise_out(exercise: Exercise) -> ExerciseOut:
    return ExerciseOut(
        id=exercise.id,
        title=exercise.title,
        description=exercise.description,
        lesson_id=exercise.lesson_id,
        deadline=as_utc(exercise.deadline),
        max_score=exercise.max_score,
    )


def _message_out(message: Message) -> MessageOut:
    return MessageOut(
        id=message.id,
        sender_id=message.sender_id,
        sender_name=message.sender.full_name,
        receiver_id=message.receiver_id,
        receiver_name=message.receiver.full_name,
        content=message.content,
        created_at=as_utc(message.created_at),
    )


def _announcement_out(announcement: Announcement) -> AnnouncementOut:
    return AnnouncementOut(
        id=announcement.id,
        class_id=announcement.class_id,
        teacher_id=announcement.teacher_id,
        teacher_name=announcement.teacher.full_name,
        content=announcement.content,
        created_at=as_utc(announcement.created_at),
    )


@router.get("/health", response_model=HealthOut)
def health_check(db: Session = Depends(get_db_session)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as exc:
        logger.error(f"Health check database error: {exc}")
        db_status = "error"
    return HealthOut(status="healthy" if db_status == "connected" else "degraded", database=db_status)


# --- Auth ---


@router.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db_session)):
    token, user = login_user(db, identifier=payload.identifier, password=payload.password)
    return LoginResponse(token=token, user=_user_out(user))


@router.post("/auth/change-password", response_model=MessageResponse)
def update_own_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(get_current_user),
):
    change_password(db, account=current_user, new_password=payload.new_password)
    return MessageResponse(message="Password updated successfully")


@router.get("/me", response_model=UserOut)
def me(current_user: Account = Depends(get_current_user)):
    return _user_out(current_user)


# --- Accounts & classes (admin) ---


@router.post("/admin/users", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db_session),
    _: Account = Depends(require_admin),
):
    account = create_account(
        db,
        full_name=payload.full_name,
        role=payload.role,
        username=payload.username,
        student_code=payload.student_code,
        class_id=payload.class_id,
        raw_password=payload.password,
    )
    return CreatedResponse(id=account.id, message="User created successfully")


@router.get("/admin/users", response_model=list[UserOut])
def admin_list_users(db: Session = Depends(get_db_session), _: Account = Depends(require_staff)):
    return [_user_out(account) for account in list_accounts(db)]


@router.patch("/admin/users/{user_id}/active", response_model=UserOut)
def admin_set_user_active(
    user_id: int,
    payload: UserActiveUpdateRequest,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(require_admin),
):
    account = set_account_active(db, account_id=user_id, is_active=payload.is_active, actor=current_user)
    return _user_out(account)


@router.post("/admin/classes", response_model=ClassOut, status_code=status.HTTP_201_CREATED)
def admin_create_class(
    payload: ClassCreateRequest,
    db: Session = Depends(get_db_session),
    _: Account = Depends(require_admin),
):
    return ClassOut.model_validate(content_service.create_class(db, name=payload.name))


@router.delete("/admin/classes/{class_id}", response_model=MessageResponse)
def admin_delete_class(class_id: int, db: Session = Depends(get_db_session), _: Account = Depends(require_admin)):
    content_service.delete_class(db, class_id=class_id)
    return MessageResponse(message="Class deleted")


# --- Content hierarchy ---


@router.get("/classes", response_model=list[ClassOut])
def get_classes(db: Session = Depends(get_db_session), _: Account = Depends(get_current_user)):
    return [ClassOut.model_validate(item) for item in content_service.list_classes(db)]


@router.post("/chapters", response_model=ChapterOut, status_code=status.HTTP_201_CREATED)
def post_chapter(
    payload: ChapterCreateRequest,
    db: Session = Depends(get_db_session),
    _: Account = Depends(require_staff),
):
    chapter = content_service.create_chapter(db, title=payload.title, class_id=payload.class_id)
    return ChapterOut.model_validate(chapter)


@router.get("/classes/{class_id}/chapters", response_model=list[ChapterOut])
def get_chapters(class_id: int, db: Session = Depends(get_db_session), _: Account = Depends(get_current_user)):
    return [ChapterOut.model_validate(item) for item in content_service.list_chapters(db, class_id=class_id)]


@router.post("/lessons", response_model=LessonOut, status_code=status.HTTP_201_CREATED)
def post_lesson(
    payload: LessonCreateRequest,
    db: Session = Depends(get_db_session),
    _: Account = Depends(require_staff),
):
    lesson = content_service.create_lesson(
        db, title=payload.title, content=payload.content, chapter_id=payload.chapter_id
    )
    return LessonOut.model_validate(lesson)


@router.get("/chapters/{chapter_id}/lessons", response_model=list[LessonSummaryOut])
def get_lessons(chapter_id: int, db: Session = Depends(get_db_session), _: Account = Depends(get_current_user)):
    return [LessonSummaryOut.model_validate(item) for item in content_service.list_lessons(db, chapter_id=chapter_id)]


@router.get("/lessons/{lesson_id}", response_model=LessonOut)
def get_lesson(lesson_id: int, db: Session = Depends(get_db_session), _: Account = Depends(get_current_user)):
    return LessonOut.model_validate(content_service.get_lesson(db, lesson_id=lesson_id))


@router.post("/exercises", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def post_exercise(
    payload: ExerciseCreateRequest,
    db: Session = Depends(get_db_session),
    _: Account = Depends(require_staff),
):
    exercise = content_service.create_exercise(
        db,
        title=payload.title,
        description=payload.description,
        lesson_id=payload.lesson_id,
        deadline=payload.deadline,
        max_score=payload.max_score,
    )
    return CreatedResponse(id=exercise.id)


@router.get("/lessons/{lesson_id}/exercises", response_model=list[ExerciseOut])
def get_exercises(lesson_id: int, db: Session = Depends(get_db_session), _: Account = Depends(get_current_user)):
    return [_exercise_out(item) for item in content_service.list_exercises(db, lesson_id=lesson_id)]


# --- Submissions & grades ---


@router.post("/submissions", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def post_submission(
    payload: SubmissionCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(require_student),
):
    submission = grading_service.submit_exercise(
        db, exercise_id=payload.exercise_id, student=current_user, content=payload.content
    )
    return CreatedResponse(id=submission.id)


@router.get("/exercises/{exercise_id}/submissions", response_model=list[SubmissionOut])
def get_submissions(
    exercise_id: int,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(get_current_user),
):
    rows = grading_service.list_submissions(db, exercise_id=exercise_id, viewer=current_user)
    return [
        SubmissionOut(
            id=row.submission.id,
            exercise_id=row.submission.exercise_id,
            student_id=row.submission.student_id,
            student_name=row.submission.student.full_name,
            content=row.submission.content,
            submitted_at=as_utc(row.submission.submitted_at),
            score=row.grade.score if row.grade else None,
            feedback=row.grade.feedback if row.grade else None,
        )
        for row in rows
    ]


@router.post("/grades", response_model=MessageResponse)
def post_grade(
    payload: GradeRequest,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(require_staff),
):
    grading_service.grade_submission(
        db,
        submission_id=payload.submission_id,
        score=payload.score,
        feedback=payload.feedback,
        grader=current_user,
    )
    return MessageResponse(message="Grade saved")


# --- Messages & announcements ---


@router.post("/messages", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def post_message(
    payload: MessageCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(get_current_user),
):
    message = messaging_service.send_message(
        db, sender=current_user, receiver_id=payload.receiver_id, content=payload.content
    )
    return CreatedResponse(id=message.id)


@router.get("/messages", response_model=list[MessageOut])
def get_messages(db: Session = Depends(get_db_session), current_user: Account = Depends(get_current_user)):
    return [_message_out(item) for item in messaging_service.list_messages(db, account=current_user)]


@router.post("/announcements", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
def post_announcement(
    payload: AnnouncementCreateRequest,
    db: Session = Depends(get_db_session),
    current_user: Account = Depends(require_staff),
):
    announcement = messaging_service.post_announcement(
        db, class_id=payload.class_id, author=current_user, content=payload.content
    )
    return _announcement_out(announcement)


@router.get("/classes/{class_id}/announcements", response_model=list[AnnouncementOut])
def get_announcements(class_id: int, db: Session = Depends(get_db_session), _: Account = Depends(get_current_user)):
    return [_announcement_out(item) for item in messaging_service.list_announcements(db, class_id=class_id)]
