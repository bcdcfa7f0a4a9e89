from datetime import timedelta

from conftest import PASSWORD
from virtuclass.models.user import RefreshToken, User
from virtuclass.timeutils import utcnow


def _register(client, email, role="student", password=PASSWORD):
    return client.post("/api/auth/register", json={
        "email": email, "password": password, "name": "New User", "role": role,
    })


def _verify(client, mailer, email):
    sent = [token for to, token in mailer.verifications if to == email]
    resp = client.get("/api/auth/verify-email", params={"email": email, "token": sent[-1]})
    assert resp.status_code == 200, resp.text


def test_register_student_is_approved_immediately(client, mailer):
    resp = _register(client, "Alice@School.test")
    assert resp.status_code == 201
    body = resp.json()
    assert body["requires_approval"] is False
    assert body["user"]["email"] == "alice@school.test"
    assert body["user"]["is_approved"] is True
    assert body["user"]["email_verified"] is False
    assert mailer.verifications[0][0] == "alice@school.test"


def test_register_teacher_waits_for_approval(client):
    resp = _register(client, "teach@school.test", role="teacher")
    assert resp.status_code == 201
    assert resp.json()["requires_approval"] is True
    assert resp.json()["user"]["is_approved"] is False


def test_register_admin_is_approved(client):
    resp = _register(client, "boss@school.test", role="admin")
    assert resp.json()["user"]["is_approved"] is True


def test_register_rejects_duplicate_email_case_insensitively(client):
    assert _register(client, "dup@school.test").status_code == 201
    resp = _register(client, "DUP@school.test")
    assert resp.status_code == 409
    assert resp.json()["code"] == "CONFLICT"


def test_register_validates_input(client):
    assert _register(client, "not-an-email").status_code == 400
    assert _register(client, "short@school.test", password="123").status_code == 400
    assert _register(client, "x@school.test", role="janitor").status_code == 400


def test_register_rejects_unknown_fields(client):
    resp = client.post("/api/auth/register", json={
        "email": "a@school.test", "password": PASSWORD, "name": "A", "isAdmin": True,
    })
    assert resp.status_code == 422


def test_login_requires_verified_email(client, mailer):
    _register(client, "late@school.test")
    resp = client.post("/api/auth/login", json={"email": "late@school.test", "password": PASSWORD})
    assert resp.status_code == 403
    assert resp.json()["code"] == "EMAIL_NOT_VERIFIED"

    _verify(client, mailer, "late@school.test")
    resp = client.post("/api/auth/login", json={"email": "late@school.test", "password": PASSWORD})
    assert resp.status_code == 200
    assert resp.json()["user"]["email_verified"] is True


def test_unapproved_teacher_cannot_login_until_approved(client, mailer, make_user, auth_headers):
    _register(client, "pending@school.test", role="teacher")
    _verify(client, mailer, "pending@school.test")

    resp = client.post("/api/auth/login", json={"email": "pending@school.test", "password": PASSWORD})
    assert resp.status_code == 403
    assert resp.json()["code"] == "PENDING_APPROVAL"

    admin = auth_headers(make_user("admin"))
    pending = client.get("/api/auth/pending-teachers", headers=admin).json()
    assert [t["email"] for t in pending] == ["pending@school.test"]

    resp = client.put("/api/auth/approve-teacher/{}".format(pending[0]["id"]), headers=admin)
    assert resp.status_code == 200
    assert resp.json()["user"]["is_approved"] is True

    resp = client.post("/api/auth/login", json={"email": "pending@school.test", "password": PASSWORD})
    assert resp.status_code == 200


def test_reject_teacher_removes_account(client, db, make_user, auth_headers):
    teacher = make_user("teacher", is_approved=False)
    admin = auth_headers(make_user("admin"))
    resp = client.delete("/api/auth/reject-teacher/{}".format(teacher.id), headers=admin)
    assert resp.status_code == 200
    db.expire_all()
    assert db.get(User, teacher.id) is None


def test_approve_rejects_non_teacher(client, make_user, auth_headers):
    student = make_user("student")
    admin = auth_headers(make_user("admin"))
    assert client.put("/api/auth/approve-teacher/{}".format(student.id), headers=admin).status_code == 400
    assert client.put("/api/auth/approve-teacher/missing", headers=admin).status_code == 404


def test_wrong_password_and_unknown_email_look_the_same(client, make_user):
    user = make_user("student")
    wrong = client.post("/api/auth/login", json={"email": user.email, "password": "nope-nope"})
    unknown = client.post("/api/auth/login", json={"email": "ghost@school.test", "password": PASSWORD})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_verify_email_rejects_bad_and_expired_tokens(client, db, mailer):
    _register(client, "v@school.test")
    resp = client.get("/api/auth/verify-email", params={"email": "v@school.test", "token": "bogus"})
    assert resp.status_code == 400

    user = db.query(User).filter(User.email == "v@school.test").one()
    user.verification_expires_at = utcnow() - timedelta(minutes=1)
    db.commit()
    token = mailer.verifications[-1][1]
    resp = client.get("/api/auth/verify-email", params={"email": "v@school.test", "token": token})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Token expired"


def test_refresh_token_is_single_use(client, make_user):
    user = make_user("student")
    tokens = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).json()

    first = client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]})
    assert first.status_code == 200
    assert first.json()["refresh"] != tokens["refresh"]

    reused = client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]})
    assert reused.status_code == 401
    assert reused.json()["code"] == "INVALID_TOKEN"

    again = client.post("/api/auth/refresh", json={"refresh": first.json()["refresh"]})
    assert again.status_code == 200


def test_logout_revokes_refresh_token(client, make_user):
    user = make_user("student")
    tokens = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).json()
    assert client.post("/api/auth/logout", json={"refresh": tokens["refresh"]}).status_code == 200
    assert client.post("/api/auth/logout", json={"refresh": tokens["refresh"]}).status_code == 200
    assert client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]}).status_code == 401


def test_password_reset_flow(client, db, mailer, make_user):
    user = make_user("student")
    tokens = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).json()

    assert client.post("/api/auth/forgot-password", json={"email": "nobody@school.test"}).status_code == 200
    assert mailer.resets == []

    client.post("/api/auth/forgot-password", json={"email": user.email})
    token = mailer.resets[-1][1]

    bad = client.post("/api/auth/reset-password",
                      json={"email": user.email, "token": "wrong", "password": "newpassword"})
    assert bad.status_code == 400

    resp = client.post("/api/auth/reset-password",
                       json={"email": user.email, "token": token, "password": "newpassword"})
    assert resp.status_code == 200

    # Old sessions are dropped and only the new password works
    assert client.post("/api/auth/refresh", json={"refresh": tokens["refresh"]}).status_code == 401
    assert db.query(RefreshToken).filter(RefreshToken.user_id == user.id).count() == 0
    assert client.post("/api/auth/login",
                       json={"email": user.email, "password": PASSWORD}).status_code == 401
    assert client.post("/api/auth/login",
                       json={"email": user.email, "password": "newpassword"}).status_code == 200


def test_me_requires_a_valid_bearer_token(client, make_user, auth_headers):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401

    user = make_user("teacher")
    resp = client.get("/api/auth/me", headers=auth_headers(user))
    assert resp.status_code == 200
    assert resp.json()["role"] == "teacher"


def test_role_gate_rejects_other_roles(client, make_user, auth_headers):
    student = auth_headers(make_user("student"))
    resp = client.get("/api/auth/pending-teachers", headers=student)
    assert resp.status_code == 403
    assert resp.json() == {"detail": "Forbidden", "code": "FORBIDDEN"}


def test_token_is_refused_after_role_change(client, db, make_user, auth_headers):
    user = make_user("teacher")
    headers = auth_headers(user)
    user.role = "student"
    db.commit()
    assert client.get("/api/auth/me", headers=headers).status_code == 401
