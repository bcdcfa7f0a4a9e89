from datetime import datetime, timedelta

from conftest import choice_question
from virtuclass.models.live_session import LiveSession
from virtuclass.services import grading
from virtuclass.services.dashboard import _growth, _month_start
from virtuclass.timeutils import utcnow


def _live_session(db, course, teacher, minutes_ago=5, duration=30):
    live = LiveSession(title="Live", course_id=course.id, teacher_id=teacher.id,
                       meeting_id="evt-{}".format(course.id), meeting_url="https://meet.example/x",
                       start_time=utcnow() - timedelta(minutes=minutes_ago), duration=duration)
    db.add(live)
    db.commit()
    return live


def test_growth_and_month_helpers():
    assert _growth(10, 5) == 100
    assert _growth(3, 0) == 100
    assert _growth(0, 0) == 0
    assert _month_start(datetime(2024, 2, 15), 3) == datetime(2023, 11, 1)
    assert _month_start(datetime(2024, 12, 15), -1) == datetime(2025, 1, 1)


def test_admin_dashboard_counts(client, db, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    student = make_user("student")
    course = make_course(teacher=teacher, students=[student])
    assessment = make_assessment(teacher, course, questions=[choice_question(correct="B", points=2)])
    _live_session(db, course, teacher)

    submission, questions, _ = grading.start_attempt(db, assessment.id, student)
    grading.submit_attempt(db, submission.id, student, [{"question_id": questions[0]["id"], "answer": "B"}])

    resp = client.get("/api/dashboard/stats", headers=auth_headers(make_user("admin")))
    assert resp.status_code == 200
    body = resp.json()
    assert body["role"] == "admin"
    stats = body["stats"]
    assert stats["total_courses"] == 1
    assert stats["total_students"] == 1
    assert stats["total_teachers"] == 1
    assert stats["active_sessions"] == 1
    assert stats["published_assessments"] == 1
    assert stats["average_grade"] == 100
    assert stats["trends"]["sessions_this_week"] == 1


def test_teacher_and_student_dashboards(client, db, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    student = make_user("student")
    course = make_course(teacher=teacher, students=[student])
    make_assessment(teacher, course)
    make_assessment(teacher, course, publish=False)
    _live_session(db, course, teacher, minutes_ago=60, duration=30)

    teacher_stats = client.get("/api/dashboard/stats", headers=auth_headers(teacher)).json()["stats"]
    assert teacher_stats["total_courses"] == 1
    assert teacher_stats["total_students"] == 1
    assert teacher_stats["total_assessments"] == 2
    assert teacher_stats["active_sessions"] == 0

    student_stats = client.get("/api/dashboard/stats", headers=auth_headers(student)).json()["stats"]
    assert student_stats["total_courses"] == 1
    assert student_stats["pending_assessments"] == 1
    assert student_stats["average_grade"] == 0


def test_analytics_is_admin_only(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    make_course(teacher=teacher, students=[make_user("student"), make_user("student")])
    assert client.get("/api/analytics/data", headers=auth_headers(teacher)).status_code == 403

    data = client.get("/api/analytics/data", headers=auth_headers(make_user("admin"))).json()["data"]
    assert data["roles"] == {"students": 2, "teachers": 1, "admins": 1}
    assert len(data["monthly_growth"]) == 6
    assert data["monthly_growth"][-1]["students"] == 2
    assert data["platform_usage"]["daily_active_users"] == 2
    assert data["course_analytics"]["courses"][0]["enrollments"] == 2
    assert data["course_analytics"]["average_enrollment"] == 2


def test_student_performance(client, db, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    strong = make_user("student", name="Alice")
    weak = make_user("student", name="Bob")
    idle = make_user("student", name="Carol")
    course = make_course(teacher=teacher, students=[strong, weak, idle])
    assessment = make_assessment(teacher, course, questions=[
        choice_question("One", correct="A", points=2),
        choice_question("Two", correct="B", points=2),
    ])

    for student, answers in ((strong, ("A", "B")), (weak, ("A", "C"))):
        submission, questions, _ = grading.start_attempt(db, assessment.id, student)
        by_text = {q["question"]: q["id"] for q in questions}
        grading.submit_attempt(db, submission.id, student, [
            {"question_id": by_text["One"], "answer": answers[0]},
            {"question_id": by_text["Two"], "answer": answers[1]},
        ])

    rows = client.get("/api/teacher/students/performance", headers=auth_headers(teacher)).json()["students"]
    assert [r["name"] for r in rows] == ["Alice", "Bob", "Carol"]
    assert rows[0]["average_percent"] == 100
    assert rows[1]["average_percent"] == 50
    assert rows[1]["type_averages"] == {"quiz": 50}
    assert rows[2]["total_assessments"] == 0
    assert rows[2]["average_percent"] == 0
