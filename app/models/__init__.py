"""Database models for the lesson scheduling and hybrid booking system."""

from app.models.audit_log import AuditLog
from app.models.enrollment import LessonEnrollment
from app.models.family import Family, Parent
from app.models.hybrid_booking import ACTIVE_BOOKING_STATUSES, HybridBooking, HybridBookingStatus
from app.models.hybrid_pattern import HybridPattern, HybridPatternKind
from app.models.lesson import Lesson, LessonCategory, WEEKDAY_NAMES
from app.models.notification import NotificationOutbox, NotificationStatus, NotificationType
from app.models.room import Room
from app.models.school import School
from app.models.student import Student
from app.models.teacher import Teacher
from app.models.term import Term

__all__ = [
    "School",
    "Teacher",
    "Room",
    "Term",
    "Family",
    "Parent",
    "Student",
    "Lesson",
    "LessonCategory",
    "WEEKDAY_NAMES",
    "LessonEnrollment",
    "HybridPattern",
    "HybridPatternKind",
    "HybridBooking",
    "HybridBookingStatus",
    "ACTIVE_BOOKING_STATUSES",
    "NotificationOutbox",
    "NotificationStatus",
    "NotificationType",
    "AuditLog",
]
