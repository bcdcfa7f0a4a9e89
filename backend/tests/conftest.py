import os

# Must be set before virtuclass is imported: config reads the environment once
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"

from datetime import timedelta
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from virtuclass.database import create_tables, enable_sqlite_pragmas, get_db
from virtuclass.errors import DependencyError
from virtuclass.main import app
from virtuclass.services import assessments as assessment_service
from virtuclass.services import courses as course_service
from virtuclass.services.google_calendar import get_calendar
from virtuclass.services.mailer import get_mailer
from virtuclass.services.storage import get_storage
from virtuclass.services.users import create_user
from virtuclass.timeutils import utcnow

PASSWORD = "password123"

_ids = count(1)


class FakeMailer:
    def __init__(self):
        self.verifications = []
        self.resets = []

    def send_verification_email(self, email, token):
        self.verifications.append((email, token))
        return True

    def send_reset_email(self, email, token):
        self.resets.append((email, token))
        return True


class FakeCalendar:
    def __init__(self):
        self.events = []
        self.fail = False

    def build_auth_url(self, state):
        return "https://accounts.example/auth?state={}".format(state)

    def exchange_code(self, code):
        return {"access_token": "access", "refresh_token": "google-refresh-{}".format(code)}

    def create_meet_event(self, refresh_token, summary, start, duration_minutes, description=None):
        if self.fail:
            raise DependencyError("Failed to create Google Meet event")
        event_id = "evt-{}".format(next(_ids))
        self.events.append({"refresh_token": refresh_token, "summary": summary,
                            "start": start, "duration": duration_minutes})
        return {"event_id": event_id, "meet_url": "https://meet.example/{}".format(event_id)}


class FakeStorage:
    def __init__(self):
        self.uploads = []
        self.destroyed = []
        self.fail_destroy = False

    def upload(self, content, filename, mime_type, resource_type):
        public_id = "virtuclass/resources/{}".format(filename)
        self.uploads.append((filename, mime_type, resource_type))
        return {"url": "https://cdn.example/{}".format(public_id), "public_id": public_id,
                "bytes": len(content)}

    def destroy(self, public_id, resource_type):
        if self.fail_destroy:
            raise DependencyError("Failed to delete file from storage")
        self.destroyed.append(public_id)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_pragmas(engine)
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def calendar():
    return FakeCalendar()


@pytest.fixture()
def storage():
    return FakeStorage()


@pytest.fixture()
def client(session_factory, mailer, calendar, storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_calendar] = lambda: calendar
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db):
    """Create a verified, approved account directly; extra keyword args are set on the row."""
    def factory(role="student", name=None, **fields):
        n = next(_ids)
        user = create_user(db, "{}{}@school.test".format(role, n), PASSWORD,
                           name or "{} {}".format(role.title(), n), role)
        for key, value in fields.items():
            setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user
    return factory


@pytest.fixture()
def auth_headers(client):
    def factory(user):
        resp = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        return {"Authorization": "Bearer {}".format(resp.json()["access"])}
    return factory


@pytest.fixture()
def make_course(db):
    def factory(teacher=None, students=(), code=None, year_group=1, name="Mathematics"):
        return course_service.create_course(
            db,
            name=name,
            code=code or "AB{}".format(next(_ids)),
            year_group=year_group,
            teacher_id=teacher.id if teacher else None,
            student_ids=[s.id for s in students],
        )
    return factory


def choice_question(text="2 + 2 = ?", correct="B", points=2, options=("A", "B", "C")):
    return {"question": text, "type": "multiple_choice", "options": list(options),
            "correct_answer": correct, "points": points}


def essay_question(text="Explain your reasoning.", points=5):
    return {"question": text, "type": "essay", "points": points}


@pytest.fixture()
def make_assessment(db):
    """Create an assessment that is open right now; published unless publish=False."""
    def factory(teacher, course, questions=None, publish=True, **fields):
        now = utcnow()
        data = {
            "title": "Unit test",
            "type": "quiz",
            "start_date": now - timedelta(hours=1),
            "end_date": now + timedelta(hours=1),
            "duration": 30,
        }
        data.update(fields)
        if questions is None:
            questions = [choice_question()]
        assessment = assessment_service.create_assessment(db, teacher, course.id, data, questions)
        if publish:
            assessment = assessment_service.publish_assessment(db, assessment.id, teacher)
        return assessment
    return factory
