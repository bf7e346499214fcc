import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from lms_module import content_service, grading_service, init_lms_module
from lms_module.database import build_engine
from lms_module.errors import AlreadySubmitted, DeadlinePassed, NotFound, ScoreOutOfRange
from lms_module.models import Account, Grade, Submission, UserRole, as_utc
from lms_module.services import create_account


@pytest.fixture()
def exercise(db):
    cls = content_service.create_class(db, name="6A")
    chapter = content_service.create_chapter(db, title="Algebra", class_id=cls.id)
    lesson = content_service.create_lesson(db, title="Intro", content="Solve for x.", chapter_id=chapter.id)
    return content_service.create_exercise(
        db,
        title="Linear equations",
        lesson_id=lesson.id,
        deadline=datetime.now(timezone.utc) + timedelta(hours=1),
        max_score=20,
    )


def test_class_6a_scenario(client, db, exercise, teacher, student, auth_header):
    pupil = auth_header(student)
    staff = auth_header(teacher)

    res = client.post("/api/submissions", json={"exercise_id": exercise.id, "content": "answer"}, headers=pupil)
    assert res.status_code == 201
    submission_id = res.json()["id"]

    res = client.post("/api/submissions", json={"exercise_id": exercise.id, "content": "answer"}, headers=pupil)
    assert res.status_code == 409

    res = client.post("/api/grades", json={"submission_id": submission_id, "score": 25}, headers=staff)
    assert res.status_code == 400

    res = client.post("/api/grades", json={"submission_id": submission_id, "score": 18}, headers=staff)
    assert res.status_code == 200

    res = client.post(
        "/api/grades", json={"submission_id": submission_id, "score": 19, "feedback": "Bien"}, headers=staff
    )
    assert res.status_code == 200

    db.expire_all()
    grades = db.query(Grade).filter(Grade.submission_id == submission_id).all()
    assert len(grades) == 1
    assert grades[0].score == 19
    assert grades[0].feedback == "Bien"

    listed = client.get(f"/api/exercises/{exercise.id}/submissions", headers=pupil).json()
    assert listed[0]["score"] == 19
    assert listed[0]["student_name"] == "Hery Rabe"


def test_only_students_submit(client, exercise, teacher, auth_header):
    res = client.post(
        "/api/submissions", json={"exercise_id": exercise.id, "content": "x"}, headers=auth_header(teacher)
    )
    assert res.status_code == 403


def test_only_staff_grade(client, db, exercise, student, auth_header):
    submission = grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="x")
    res = client.post(
        "/api/grades", json={"submission_id": submission.id, "score": 1}, headers=auth_header(student)
    )
    assert res.status_code == 403


def test_submit_unknown_exercise(client, student, auth_header):
    res = client.post("/api/submissions", json={"exercise_id": 999, "content": "x"}, headers=auth_header(student))
    assert res.status_code == 404


def test_grade_unknown_submission(client, teacher, auth_header):
    res = client.post("/api/grades", json={"submission_id": 999, "score": 1}, headers=auth_header(teacher))
    assert res.status_code == 404


def test_submission_exactly_at_deadline_succeeds(db, exercise, student):
    deadline = as_utc(exercise.deadline)
    submission = grading_service.submit_exercise(
        db, exercise_id=exercise.id, student=student, content="on time", now=deadline
    )
    assert submission.id


def test_submission_after_deadline_fails(db, exercise, student):
    deadline = as_utc(exercise.deadline)
    with pytest.raises(DeadlinePassed):
        grading_service.submit_exercise(
            db, exercise_id=exercise.id, student=student, content="late", now=deadline + timedelta(microseconds=1)
        )
    assert db.query(Submission).count() == 0


def test_deadline_compared_as_instants(db, exercise, student):
    # Same instant as the deadline, expressed in UTC+3.
    deadline = as_utc(exercise.deadline)
    local = deadline.astimezone(timezone(timedelta(hours=3)))
    assert grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="ok", now=local)


def test_past_deadline_over_http(client, db, exercise, student, auth_header):
    exercise.deadline = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()
    res = client.post(
        "/api/submissions", json={"exercise_id": exercise.id, "content": "late"}, headers=auth_header(student)
    )
    assert res.status_code == 400
    assert res.json() == {"error": "Deadline passed"}


def test_second_submission_conflicts_at_storage_level(db, exercise, student):
    grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="first")
    with pytest.raises(AlreadySubmitted):
        grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="second")
    rows = db.query(Submission).all()
    assert [row.content for row in rows] == ["first"]


def test_other_students_submit_independently(db, exercise, student):
    other = create_account(db, full_name="Lova", role=UserRole.STUDENT, student_code="S002")
    grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="a")
    grading_service.submit_exercise(db, exercise_id=exercise.id, student=other, content="b")
    assert db.query(Submission).count() == 2


def test_score_bounds(db, exercise, student, teacher):
    submission = grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="x")
    with pytest.raises(ScoreOutOfRange):
        grading_service.grade_submission(db, submission_id=submission.id, score=20.5, grader=teacher)
    with pytest.raises(ScoreOutOfRange):
        grading_service.grade_submission(db, submission_id=submission.id, score=-1, grader=teacher)
    assert grading_service.grade_submission(db, submission_id=submission.id, score=20, grader=teacher).score == 20
    assert grading_service.grade_submission(db, submission_id=submission.id, score=0, grader=teacher).score == 0


def test_regrade_keeps_first_teacher_of_record(db, exercise, student, teacher, admin):
    submission = grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="x")
    grading_service.grade_submission(db, submission_id=submission.id, score=10, grader=teacher)
    grade = grading_service.grade_submission(db, submission_id=submission.id, score=12, grader=admin, feedback="revu")

    assert grade.teacher_id == teacher.id
    assert grade.score == 12
    assert grade.feedback == "revu"
    assert db.query(Grade).count() == 1


def test_grading_missing_submission_raises(db, teacher):
    with pytest.raises(NotFound):
        grading_service.grade_submission(db, submission_id=12345, score=1, grader=teacher)


def test_students_only_see_their_own_submissions(client, db, exercise, student, teacher, auth_header):
    other = create_account(db, full_name="Lova", role=UserRole.STUDENT, student_code="S002")
    grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="mine")
    grading_service.submit_exercise(db, exercise_id=exercise.id, student=other, content="theirs")

    own = client.get(f"/api/exercises/{exercise.id}/submissions", headers=auth_header(student)).json()
    assert [row["content"] for row in own] == ["mine"]
    everything = client.get(f"/api/exercises/{exercise.id}/submissions", headers=auth_header(teacher)).json()
    assert len(everything) == 2
    assert everything[0]["score"] is None


@pytest.mark.parametrize("score", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_scores_are_refused(db, exercise, student, teacher, score):
    submission = grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="x")
    with pytest.raises(ScoreOutOfRange):
        grading_service.grade_submission(db, submission_id=submission.id, score=score, grader=teacher)
    assert db.query(Grade).count() == 0


def test_nan_score_over_http_is_400(client, db, exercise, student, teacher, auth_header):
    submission = grading_service.submit_exercise(db, exercise_id=exercise.id, student=student, content="x")
    res = client.post(
        "/api/grades",
        content=f'{{"submission_id": {submission.id}, "score": NaN}}',
        headers={**auth_header(teacher), "Content-Type": "application/json"},
    )
    assert res.status_code == 400
    assert "error" in res.json()
    db.expire_all()
    assert db.query(Grade).count() == 0


def test_concurrent_submits_yield_one_success(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_lms_module(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    setup = factory()
    cls = content_service.create_class(setup, name="6A")
    chapter = content_service.create_chapter(setup, title="Algebra", class_id=cls.id)
    lesson = content_service.create_lesson(setup, title="Intro", content="", chapter_id=chapter.id)
    exercise_id = content_service.create_exercise(
        setup, title="Race", lesson_id=lesson.id, deadline=datetime.now(timezone.utc) + timedelta(hours=1), max_score=20
    ).id
    student_id = create_account(setup, full_name="Hery Rabe", role=UserRole.STUDENT, student_code="S001").id
    setup.close()

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        session = factory()
        try:
            student = session.query(Account).filter(Account.id == student_id).first()
            barrier.wait()
            try:
                grading_service.submit_exercise(session, exercise_id=exercise_id, student=student, content="answer")
                outcome = "ok"
            except AlreadySubmitted:
                outcome = "conflict"
            with lock:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["conflict"] * (workers - 1) + ["ok"]
    check = factory()
    try:
        assert check.query(Submission).filter(Submission.exercise_id == exercise_id).count() == 1
    finally:
        check.close()
    engine.dispose()
