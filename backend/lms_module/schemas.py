from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from .models import UserRole
from .security import MAX_PASSWORD_BYTES, password_fits_bcrypt

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


def _check_password_bytes(value: str | None) -> str | None:
    if value is not None and not password_fits_bcrypt(value):
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_password: str = Field(alias="newPassword", min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def new_password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class UserOut(BaseModel):
    id: int
    username: str | None = None
    student_code: str | None = None
    full_name: str
    role: UserRole
    class_id: int | None = None
    class_name: str | None = None
    must_change_password: bool
    is_active: bool


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserOut


class UserCreateRequest(BaseModel):
    username: str | None = Field(default=None, max_length=120)
    student_code: str | None = Field(default=None, max_length=64)
    full_name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=255)]
    role: UserRole
    class_id: int | None = None
    password: str | None = Field(default=None, min_length=8, max_length=72)

    @field_validator("password")
    @classmethod
    def password_within_bcrypt_limit(cls, value: str | None) -> str | None:
        return _check_password_bytes(value)

    @model_validator(mode="after")
    def requires_identifier(self):
        if not (self.username or "").strip() and not (self.student_code or "").strip():
            raise ValueError("username or student_code is required")
        return self


class UserActiveUpdateRequest(BaseModel):
    is_active: bool


class CreatedResponse(BaseModel):
    id: int
    message: str | None = None


class MessageResponse(BaseModel):
    message: str


class ClassCreateRequest(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]


class ClassOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: datetime


class ChapterCreateRequest(BaseModel):
    title: Title
    class_id: int


class ChapterOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    class_id: int


class LessonCreateRequest(BaseModel):
    title: Title
    content: str
    chapter_id: int


class LessonSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    chapter_id: int
    created_at: datetime


class LessonOut(LessonSummaryOut):
    content: str


class ExerciseCreateRequest(BaseModel):
    title: Title
    description: str | None = None
    lesson_id: int
    deadline: datetime
    max_score: float = Field(gt=0, allow_inf_nan=False)


class ExerciseOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    lesson_id: int
    deadline: datetime
    max_score: float


class SubmissionCreateRequest(BaseModel):
    exercise_id: int
    content: str = Field(min_length=1)


class SubmissionOut(BaseModel):
    id: int
    exercise_id: int
    student_id: int
    student_name: str
    content: str
    submitted_at: datetime
    score: float | None = None
    feedback: str | None = None


class GradeRequest(BaseModel):
    submission_id: int
    score: float = Field(allow_inf_nan=False)
    feedback: str | None = None


class MessageCreateRequest(BaseModel):
    receiver_id: int
    content: str = Field(min_length=1)


class MessageOut(BaseModel):
    id: int
    sender_id: int
    sender_name: str
    receiver_id: int
    receiver_name: str
    content: str
    created_at: datetime


class AnnouncementCreateRequest(BaseModel):
    class_id: int
    content: str = Field(min_length=1)


class AnnouncementOut(BaseModel):
    id: int
    class_id: int
    teacher_id: int
    teacher_name: str
    content: str
    created_at: datetime


class HealthOut(BaseModel):
    status: str
    database: str
