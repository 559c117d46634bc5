"""Curriculum models: subjects, route/class requirements, student records."""

from .student import StudentSubjectRecord, UserProfile
from .subject import ClassSubject, RouteSubject, Subject

__all__ = [
    "ClassSubject",
    "RouteSubject",
    "StudentSubjectRecord",
    "Subject",
    "UserProfile",
]
