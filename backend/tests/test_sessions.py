from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from virtuclass.models.live_session import LiveSession
from virtuclass.models.user import User
from virtuclass.timeutils import utcnow


def _session_payload(course_id, **overrides):
    data = {
        "title": "Weekly review",
        "course_id": course_id,
        "start_time": (utcnow() + timedelta(hours=2)).isoformat(),
        "duration": 45,
    }
    data.update(overrides)
    return data


def _connected_teacher(make_user):
    return make_user("teacher", google_refresh_token="google-refresh")


def test_teacher_schedules_session_with_meet_link(client, calendar, make_user, auth_headers, make_course):
    teacher = _connected_teacher(make_user)
    course = make_course(teacher=teacher)
    resp = client.post("/api/sessions", headers=auth_headers(teacher), json=_session_payload(course.id))
    assert resp.status_code == 201, resp.text
    session = resp.json()["session"]
    assert session["status"] == "scheduled"
    assert session["meeting_url"].startswith("https://meet.example/")
    assert session["is_live_now"] is False
    assert calendar.events[0]["refresh_token"] == "google-refresh"
    assert calendar.events[0]["duration"] == 45


def test_admin_schedules_on_behalf_of_course_teacher(client, calendar, make_user, auth_headers, make_course):
    teacher = _connected_teacher(make_user)
    course = make_course(teacher=teacher)
    resp = client.post("/api/sessions", headers=auth_headers(make_user("admin")),
                       json=_session_payload(course.id))
    assert resp.status_code == 201
    assert resp.json()["session"]["teacher"]["id"] == teacher.id

    orphan = make_course()
    resp = client.post("/api/sessions", headers=auth_headers(make_user("admin")),
                       json=_session_payload(orphan.id))
    assert resp.status_code == 400


def test_session_validation(client, calendar, make_user, auth_headers, make_course):
    teacher = _connected_teacher(make_user)
    course = make_course(teacher=teacher)
    headers = auth_headers(teacher)
    past = (utcnow() - timedelta(minutes=5)).isoformat()

    assert client.post("/api/sessions", headers=headers,
                       json=_session_payload(course.id, start_time=past)).status_code == 400
    assert client.post("/api/sessions", headers=headers,
                       json=_session_payload(course.id, duration=4)).status_code == 400
    assert client.post("/api/sessions", headers=headers,
                       json=_session_payload(course.id, duration=481)).status_code == 400
    assert client.post("/api/sessions", headers=headers,
                       json=_session_payload(course.id, title="  ")).status_code == 400
    assert calendar.events == []


def test_session_requires_google_connection_and_own_course(client, make_user, auth_headers, make_course):
    teacher = make_user("teacher")
    course = make_course(teacher=teacher)
    resp = client.post("/api/sessions", headers=auth_headers(teacher), json=_session_payload(course.id))
    assert resp.status_code == 400
    assert "Google" in resp.json()["detail"]

    other = _connected_teacher(make_user)
    resp = client.post("/api/sessions", headers=auth_headers(other), json=_session_payload(course.id))
    assert resp.status_code == 403


def test_calendar_failure_stores_nothing(client, db, calendar, make_user, auth_headers, make_course):
    teacher = _connected_teacher(make_user)
    course = make_course(teacher=teacher)
    calendar.fail = True
    resp = client.post("/api/sessions", headers=auth_headers(teacher), json=_session_payload(course.id))
    assert resp.status_code == 500
    assert resp.json()["code"] == "DEPENDENCY_ERROR"
    assert db.query(LiveSession).count() == 0


def test_session_visibility_and_join(client, make_user, auth_headers, make_course):
    teacher = _connected_teacher(make_user)
    student = make_user("student")
    outsider = make_user("student")
    course = make_course(teacher=teacher, students=[student])
    created = client.post("/api/sessions", headers=auth_headers(teacher),
                          json=_session_payload(course.id)).json()["session"]
    url = "/api/sessions/{}".format(created["id"])

    student_headers = auth_headers(student)
    assert [s["id"] for s in client.get("/api/sessions", headers=student_headers).json()] == [created["id"]]
    assert client.get("/api/sessions", headers=auth_headers(outsider)).json() == []
    assert client.get(url, headers=auth_headers(outsider)).status_code == 403

    joined = client.post(url + "/join", headers=student_headers)
    assert joined.status_code == 200
    assert joined.json()["meeting_url"] == created["meeting_url"]
    client.post(url + "/join", headers=student_headers)

    detail = client.get(url, headers=auth_headers(teacher)).json()
    assert [p["user_id"] for p in detail["participants"]] == [student.id]
    assert client.post(url + "/join", headers=auth_headers(outsider)).status_code == 403


def test_status_update_and_delete_by_owner_only(client, make_user, auth_headers, make_course):
    teacher = _connected_teacher(make_user)
    course = make_course(teacher=teacher)
    created = client.post("/api/sessions", headers=auth_headers(teacher),
                          json=_session_payload(course.id)).json()["session"]
    url = "/api/sessions/{}".format(created["id"])
    other = auth_headers(_connected_teacher(make_user))

    assert client.patch(url + "/status", headers=other, json={"status": "live"}).status_code == 403
    assert client.patch(url + "/status", headers=auth_headers(teacher),
                        json={"status": "finished"}).status_code == 400
    resp = client.patch(url + "/status", headers=auth_headers(teacher), json={"status": "live"})
    assert resp.json()["session"]["status"] == "live"

    assert client.delete(url, headers=other).status_code == 403
    assert client.delete(url, headers=auth_headers(make_user("admin"))).status_code == 200
    assert client.get(url, headers=auth_headers(teacher)).status_code == 404


def test_live_now_is_derived_from_the_clock(db, make_user, make_course):
    teacher = _connected_teacher(make_user)
    course = make_course(teacher=teacher)
    live = LiveSession(title="Now", course_id=course.id, teacher_id=teacher.id, meeting_id="evt-now",
                       meeting_url="https://meet.example/now", start_time=utcnow() - timedelta(minutes=10),
                       duration=30)
    db.add(live)
    db.commit()
    assert live.status == "scheduled"
    assert live.is_live_at(utcnow()) is True
    assert live.is_live_at(utcnow() + timedelta(minutes=25)) is False


def test_google_connection_flow(client, db, make_user, auth_headers):
    teacher = make_user("teacher")
    headers = auth_headers(teacher)
    assert client.get("/api/google/status", headers=headers).json() == {"connected": False}

    url = client.get("/api/google/auth-url", headers=headers).json()["url"]
    state = parse_qs(urlparse(url).query)["state"][0]

    resp = client.get("/api/google/oauth/callback", params={"code": "abc", "state": state},
                      follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"].endswith("/sessions?google=connected")

    db.expire_all()
    assert db.get(User, teacher.id).google_refresh_token == "google-refresh-abc"
    assert client.get("/api/google/status", headers=headers).json() == {"connected": True}


def test_google_callback_rejects_bad_state(client):
    assert client.get("/api/google/oauth/callback",
                      params={"code": "abc", "state": "forged"}).status_code == 400
    assert client.get("/api/google/oauth/callback", params={"code": "abc"}).status_code == 400
