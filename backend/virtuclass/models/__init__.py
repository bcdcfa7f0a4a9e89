from virtuclass.models.user import User, RefreshToken
from virtuclass.models.course import Course, course_enrollments
from virtuclass.models.assessment import Assessment, Question
from virtuclass.models.submission import Submission
from virtuclass.models.live_session import LiveSession, SessionParticipant
from virtuclass.models.resource import Resource

__all__ = [
    "User", "RefreshToken", "Course", "course_enrollments", "Assessment",
    "Question", "Submission", "LiveSession", "SessionParticipant", "Resource",
]
