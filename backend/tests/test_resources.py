from virtuclass import config
from virtuclass.models.resource import Resource


def _create(client, headers, **overrides):
    data = {"name": "Syllabus", "type": "link", "url": "https://example.test/syllabus"}
    data.update(overrides)
    return client.post("/api/resources", headers=headers, json=data)


def test_create_and_list_resources(client, make_user, auth_headers):
    teacher = make_user("teacher", name="Uploader")
    headers = auth_headers(teacher)
    resp = _create(client, headers, class_code="ab1")
    assert resp.status_code == 201, resp.text
    resource = resp.json()["resource"]
    assert resource["class_code"] == "AB1"
    assert resource["uploaded_by"]["name"] == "Uploader"

    _create(client, headers, name="Open notes")
    assert len(client.get("/api/resources", headers=headers).json()) == 2
    scoped = client.get("/api/resources", headers=headers, params={"class_code": "ab1"}).json()
    assert [r["name"] for r in scoped] == ["Syllabus"]


def test_create_resource_validation(client, make_user, auth_headers):
    headers = auth_headers(make_user("teacher"))
    assert _create(client, headers, type="podcast").status_code == 400
    assert _create(client, headers, name=" ").status_code == 400
    assert _create(client, headers, class_code="ABCD").status_code == 400
    assert _create(client, auth_headers(make_user("student"))).status_code == 403


def test_students_see_unscoped_and_their_class_resources(client, make_user, auth_headers):
    teacher = auth_headers(make_user("teacher"))
    shared = _create(client, teacher, name="Everyone").json()["resource"]
    mine = _create(client, teacher, name="Mine", class_code="AB1").json()["resource"]
    other = _create(client, teacher, name="Other", class_code="CD2").json()["resource"]

    student = auth_headers(make_user("student", class_code="AB1"))
    visible = {r["id"] for r in client.get("/api/resources/student", headers=student).json()}
    assert visible == {shared["id"], mine["id"]}

    no_code = auth_headers(make_user("student"))
    assert [r["id"] for r in client.get("/api/resources/student", headers=no_code).json()] == [shared["id"]]

    download = client.get("/api/resources/{}/download".format(mine["id"]), headers=student,
                          follow_redirects=False)
    assert download.status_code == 302
    assert download.headers["location"] == "https://example.test/syllabus"
    blocked = client.get("/api/resources/{}/download".format(other["id"]), headers=student,
                         follow_redirects=False)
    assert blocked.status_code == 403


def test_upload_validates_type_and_returns_file_info(client, storage, make_user, auth_headers):
    headers = auth_headers(make_user("teacher"))
    resp = client.post("/api/resources/upload", headers=headers,
                       files={"file": ("notes.pdf", b"%PDF-1.4 data", "application/pdf")},
                       data={"type": "document"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["public_id"] == "virtuclass/resources/notes.pdf"
    assert body["file_size"] == len(b"%PDF-1.4 data")
    assert body["original_name"] == "notes.pdf"
    assert storage.uploads == [("notes.pdf", "application/pdf", "document")]

    wrong = client.post("/api/resources/upload", headers=headers,
                        files={"file": ("clip.mp4", b"\x00\x01", "video/mp4")},
                        data={"type": "document"})
    assert wrong.status_code == 400

    unknown = client.post("/api/resources/upload", headers=headers,
                          files={"file": ("run.exe", b"MZ", "application/x-msdownload")})
    assert unknown.status_code == 400

    empty = client.post("/api/resources/upload", headers=headers,
                        files={"file": ("empty.pdf", b"", "application/pdf")})
    assert empty.status_code == 400


def test_delete_is_soft_and_restricted_to_uploader_or_admin(client, db, storage, make_user, auth_headers):
    owner = auth_headers(make_user("teacher"))
    created = _create(client, owner, type="document", storage_public_id="virtuclass/resources/a.pdf")
    resource_id = created.json()["resource"]["id"]

    other = auth_headers(make_user("teacher"))
    assert client.delete("/api/resources/{}".format(resource_id), headers=other).status_code == 403

    assert client.delete("/api/resources/{}".format(resource_id), headers=owner).status_code == 200
    assert storage.destroyed == ["virtuclass/resources/a.pdf"]
    assert client.get("/api/resources", headers=owner).json() == []
    assert db.get(Resource, resource_id).is_active is False
    assert client.delete("/api/resources/{}".format(resource_id), headers=owner).status_code == 404


def test_delete_survives_storage_failure(client, storage, make_user, auth_headers):
    storage.fail_destroy = True
    headers = auth_headers(make_user("teacher"))
    created = _create(client, headers, type="image", storage_public_id="virtuclass/resources/b.png")
    resource_id = created.json()["resource"]["id"]

    admin = auth_headers(make_user("admin"))
    assert client.delete("/api/resources/{}".format(resource_id), headers=admin).status_code == 200
    assert client.get("/api/resources", headers=headers).json() == []


def test_upload_over_the_size_limit_is_rejected(client, storage, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 8)
    headers = auth_headers(make_user("teacher"))

    resp = client.post("/api/resources/upload", headers=headers,
                       files={"file": ("big.pdf", b"x" * 64, "application/pdf")})
    assert resp.status_code == 400
    assert "limit" in resp.json()["detail"]

    at_limit = client.post("/api/resources/upload", headers=headers,
                           files={"file": ("small.pdf", b"x" * 8, "application/pdf")})
    assert at_limit.status_code == 200
    assert at_limit.json()["file_size"] == 8
    assert storage.uploads == [("small.pdf", "application/pdf", "application")]
