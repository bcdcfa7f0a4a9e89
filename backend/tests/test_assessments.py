from datetime import timedelta

from conftest import choice_question, essay_question
from virtuclass.models.assessment import Assessment
from virtuclass.services import grading
from virtuclass.timeutils import utcnow


def _payload(course_id, **overrides):
    now = utcnow()
    data = {
        "title": "Fractions quiz",
        "type": "quiz",
        "course_id": course_id,
        "start_date": (now - timedelta(hours=1)).isoformat(),
        "end_date": (now + timedelta(days=1)).isoformat(),
        "duration": 20,
        "questions": [
            choice_question(points=2),
            {"question": "Half of 1 is 0.5", "type": "true_false", "correct_answer": True, "points": 1},
            essay_question(points=5),
        ],
    }
    data.update(overrides)
    return data


def test_create_assessment_starts_as_draft_with_total_points(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    resp = client.post("/api/assessments", headers=auth_headers(teacher), json=_payload(course.id))
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "draft"
    assert body["total_points"] == 8
    assert [q["type"] for q in body["questions"]] == ["multiple_choice", "true_false", "essay"]
    true_false = body["questions"][1]
    assert true_false["options"] == ["true", "false"]
    assert true_false["correct_answer"] == "true"
    assert body["questions"][2]["correct_answer"] is None


def test_only_course_teacher_can_create(client, make_user, auth_headers, make_course):
    owner = make_user("teacher")
    other = make_user("teacher")
    course = make_course(teacher=owner)
    resp = client.post("/api/assessments", headers=auth_headers(other), json=_payload(course.id))
    assert resp.status_code == 403

    student = make_user("student")
    resp = client.post("/api/assessments", headers=auth_headers(student), json=_payload(course.id))
    assert resp.status_code == 403


def test_assessment_validation(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    headers = auth_headers(teacher)
    now = utcnow()

    backwards = _payload(course.id, start_date=now.isoformat(),
                         end_date=(now - timedelta(hours=1)).isoformat())
    assert client.post("/api/assessments", headers=headers, json=backwards).status_code == 400
    assert client.post("/api/assessments", headers=headers,
                       json=_payload(course.id, attempts=11)).status_code == 400
    assert client.post("/api/assessments", headers=headers,
                       json=_payload(course.id, duration=0)).status_code == 400
    assert client.post("/api/assessments", headers=headers,
                       json=_payload(course.id, type="homework")).status_code == 400

    bad_answer = _payload(course.id, questions=[choice_question(correct="Z")])
    assert client.post("/api/assessments", headers=headers, json=bad_answer).status_code == 400
    one_option = _payload(course.id, questions=[choice_question(correct="A", options=("A",))])
    assert client.post("/api/assessments", headers=headers, json=one_option).status_code == 400
    negative = _payload(course.id, questions=[choice_question(points=-1)])
    assert client.post("/api/assessments", headers=headers, json=negative).status_code == 400


def test_total_points_follow_question_edits(client, db, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    headers = auth_headers(teacher)
    created = client.post("/api/assessments", headers=headers, json=_payload(course.id)).json()

    kept = created["questions"][0]
    resp = client.put("/api/assessments/{}".format(created["id"]), headers=headers, json={
        "questions": [
            {**{k: kept[k] for k in ("id", "question", "type", "options", "correct_answer")}, "points": 10},
            essay_question(points=3),
        ],
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["total_points"] == 13
    assert body["questions"][0]["id"] == kept["id"]

    # Direct edits to a question row are reflected on flush as well
    assessment = db.get(Assessment, created["id"])
    assessment.questions[1].points = 7
    db.commit()
    db.refresh(assessment)
    assert assessment.total_points == 17


def test_update_keeps_unsent_fields_and_validates_merged_dates(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    headers = auth_headers(teacher)
    created = client.post("/api/assessments", headers=headers,
                          json=_payload(course.id, passing_score=50)).json()

    resp = client.put("/api/assessments/{}".format(created["id"]), headers=headers,
                      json={"title": "Renamed"})
    assert resp.json()["title"] == "Renamed"
    assert resp.json()["passing_score"] == 50
    assert resp.json()["total_points"] == created["total_points"]

    too_late = (utcnow() + timedelta(days=5)).isoformat()
    resp = client.put("/api/assessments/{}".format(created["id"]), headers=headers,
                      json={"start_date": too_late})
    assert resp.status_code == 400


def test_publish_requires_questions(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    headers = auth_headers(teacher)
    empty = client.post("/api/assessments", headers=headers, json=_payload(course.id, questions=[])).json()
    assert empty["total_points"] == 0

    resp = client.patch("/api/assessments/{}/publish".format(empty["id"]), headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_STATE"


def test_published_assessment_cannot_drop_all_questions(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    student = make_user("student")
    course = make_course(teacher=teacher, students=[student])
    headers = auth_headers(teacher)
    created = client.post("/api/assessments", headers=headers, json=_payload(course.id)).json()
    url = "/api/assessments/{}".format(created["id"])
    client.patch(url + "/publish", headers=headers)

    resp = client.put(url, headers=headers, json={"questions": []})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_STATE"

    current = client.get(url, headers=headers).json()
    assert current["status"] == "published"
    assert len(current["questions"]) == 3

    started = client.post(url + "/start", headers=auth_headers(student))
    assert len(started.json()["assessment"]["questions"]) == 3

    # Drafts may still be emptied
    draft = client.post("/api/assessments", headers=headers, json=_payload(course.id)).json()
    resp = client.put("/api/assessments/{}".format(draft["id"]), headers=headers, json={"questions": []})
    assert resp.status_code == 200
    assert resp.json()["total_points"] == 0


def test_publish_unpublish_close_lifecycle(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    headers = auth_headers(teacher)
    created = client.post("/api/assessments", headers=headers, json=_payload(course.id)).json()
    url = "/api/assessments/{}".format(created["id"])

    assert client.patch(url + "/publish", headers=headers).json()["status"] == "published"
    assert client.patch(url + "/publish", headers=headers).json()["status"] == "published"
    assert client.patch(url + "/unpublish", headers=headers).json()["status"] == "draft"
    assert client.patch(url + "/close", headers=headers).status_code == 400

    client.patch(url + "/publish", headers=headers)
    assert client.patch(url + "/close", headers=headers).json()["status"] == "closed"
    assert client.patch(url + "/publish", headers=headers).status_code == 400


def test_unpublish_and_edit_blocked_once_a_student_started(client, db, make_user, auth_headers,
                                                           make_course, make_assessment):
    teacher = make_user("teacher")
    student = make_user("student")
    course = make_course(teacher=teacher, students=[student])
    assessment = make_assessment(teacher, course)
    grading.start_attempt(db, assessment.id, student)

    headers = auth_headers(teacher)
    url = "/api/assessments/{}".format(assessment.id)
    assert client.patch(url + "/unpublish", headers=headers).status_code == 400
    assert client.put(url, headers=headers, json={"title": "Changed"}).status_code == 400


def test_soft_deleted_assessment_disappears(client, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    assessment = make_assessment(teacher, course)
    headers = auth_headers(teacher)

    assert client.delete("/api/assessments/{}".format(assessment.id), headers=headers).status_code == 200
    assert client.get("/api/assessments/{}".format(assessment.id), headers=headers).status_code == 404
    assert client.get("/api/assessments/teacher", headers=headers).json() == []


def test_teacher_listing_filters(client, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    make_assessment(teacher, course, title="Published quiz")
    make_assessment(teacher, course, publish=False, title="Draft exam", type="exam")
    other = make_user("teacher")
    make_assessment(other, make_course(teacher=other), title="Someone else's quiz")
    headers = auth_headers(teacher)

    everything = client.get("/api/assessments/teacher", headers=headers).json()
    assert len(everything) == 2
    drafts = client.get("/api/assessments/teacher", headers=headers, params={"status": "draft"}).json()
    assert [a["title"] for a in drafts] == ["Draft exam"]
    exams = client.get("/api/assessments/teacher", headers=headers, params={"type": "exam"}).json()
    assert [a["title"] for a in exams] == ["Draft exam"]
    assert everything[0]["submission_count"] == 0


def test_student_sees_published_assessments_of_own_courses_without_answers(
        client, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    student = make_user("student")
    outsider = make_user("student")
    course = make_course(teacher=teacher, students=[student])
    published = make_assessment(teacher, course, attempts=2)
    draft = make_assessment(teacher, course, publish=False)

    headers = auth_headers(student)
    listed = client.get("/api/assessments/student", headers=headers).json()
    assert [a["id"] for a in listed] == [published.id]
    assert listed[0]["attempt_count"] == 0
    assert listed[0]["can_take_again"] is True
    assert listed[0]["is_available"] is True
    assert listed[0]["latest_submission"] is None

    detail = client.get("/api/assessments/{}".format(published.id), headers=headers).json()
    assert "correct_answer" not in detail["questions"][0]

    assert client.get("/api/assessments/{}".format(draft.id), headers=headers).status_code == 404
    assert client.get("/api/assessments/{}".format(published.id),
                      headers=auth_headers(outsider)).status_code == 403


def test_assessment_stats(client, db, make_user, auth_headers, make_course, make_assessment):
    teacher = make_user("teacher")
    first = make_user("student")
    second = make_user("student")
    course = make_course(teacher=teacher, students=[first, second])
    assessment = make_assessment(teacher, course, passing_score=60,
                                 questions=[choice_question(correct="B", points=2)])

    submission, questions, _ = grading.start_attempt(db, assessment.id, first)
    grading.submit_attempt(db, submission.id, first,
                           [{"question_id": questions[0]["id"], "answer": "B"}])
    grading.start_attempt(db, assessment.id, second)

    resp = client.get("/api/assessments/{}/stats".format(assessment.id), headers=auth_headers(teacher))
    assert resp.status_code == 200
    stats = resp.json()
    assert stats["total_submissions"] == 1
    assert stats["in_progress"] == 1
    assert stats["graded"] == 1
    assert stats["average_percentage"] == 100
    assert stats["passed"] == 1
    assert stats["submissions"][0]["student"]["id"] == first.id
