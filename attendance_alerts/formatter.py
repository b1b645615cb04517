"""Role- and type-specific notification text."""

from typing import Callable, Dict, Optional, Tuple

from .models import AlertItem, AlertType, Role

DEFAULT_TITLE = "New Alert"
DEFAULT_BODY = "You have a new alert."


def first_name(name: Optional[str], default: str) -> str:
    """First whitespace-delimited word of a name, or the role noun."""
    words = str(name or "").split()
    return words[0] if words else default


def _in_parens(value: Optional[str]) -> str:
    return f" ({value})" if value else ""


def _student(alert: AlertItem) -> str:
    return first_name(alert.student_name, "Student")


def _parent(alert: AlertItem) -> str:
    return first_name(alert.parent_name, "Parent")


def _class(alert: AlertItem) -> str:
    return alert.subject or "class"


def _on_day(alert: AlertItem) -> str:
    return f" on {alert.day}" if alert.day else ""


def _schedule_updated(alert: AlertItem) -> str:
    change = alert.time or ""
    if alert.previous_time and alert.time:
        change = f"{alert.previous_time} → {alert.time}"
    elif alert.previous_time:
        change = f"was {alert.previous_time}"
    return f"{_student(alert)}'s {_class(alert)}{_on_day(alert)} updated{_in_parens(change)}."


def _schedule_deleted(alert: AlertItem) -> str:
    was = f" (was {alert.previous_time})" if alert.previous_time else ""
    return f"{_student(alert)}'s {_class(alert)}{_on_day(alert)} removed{was}."


def _scan_direction(alert: AlertItem) -> str:
    return "out" if (alert.direction or "").lower() == "out" else "in"


BodyBuilder = Callable[[AlertItem], str]

TEMPLATES: Dict[Tuple[Role, AlertType], Tuple[str, BodyBuilder]] = {
    (Role.STUDENT, AlertType.SCHEDULE_CURRENT): (
        "Class Happening Now",
        lambda a: f"Your {_class(a)} is happening now{_in_parens(a.time)}.",
    ),
    (Role.STUDENT, AlertType.LINK_REQUEST): (
        "Parent Link Request",
        lambda a: f"{_parent(a)} wants to link to your account.",
    ),
    (Role.STUDENT, AlertType.LINK_RESPONSE): (
        "Link Request Update",
        lambda a: f"Link request with {_parent(a)} was updated.",
    ),
    (Role.STUDENT, AlertType.LINK_UNLINKED): (
        "Unlinked Parent",
        lambda a: f"Link with {_parent(a)} was removed.",
    ),
    (Role.STUDENT, AlertType.SCHEDULE_ADDED): (
        "Schedule Added",
        lambda a: "A class was added to your schedule.",
    ),
    (Role.STUDENT, AlertType.SCHEDULE_UPDATED): (
        "Schedule Updated",
        lambda a: "A class in your schedule was updated.",
    ),
    (Role.STUDENT, AlertType.SCHEDULE_DELETED): (
        "Schedule Deleted",
        lambda a: "A class was removed from your schedule.",
    ),
    (Role.STUDENT, AlertType.ATTENDANCE_SCAN): (
        "Attendance Recorded",
        lambda a: "Your attendance has been recorded.",
    ),
    (Role.STUDENT, AlertType.QR_GENERATED): (
        "QR Code Generated",
        lambda a: "Your QR code has been generated.",
    ),
    (Role.STUDENT, AlertType.QR_CHANGED): (
        "QR Code Changed",
        lambda a: "Your QR code has been updated.",
    ),
    (Role.STUDENT, AlertType.SCHEDULE_PERMISSION_RESPONSE): (
        "Schedule Permission Response",
        lambda a: "Your schedule permission request has been responded to.",
    ),
    (Role.PARENT, AlertType.LINK_REQUEST): (
        "Student Link Request",
        lambda a: f"{_student(a)} wants to link to your account.",
    ),
    (Role.PARENT, AlertType.LINK_RESPONSE): (
        "Link Request Update",
        lambda a: f"Link request with {_student(a)} was updated.",
    ),
    (Role.PARENT, AlertType.LINK_UNLINKED): (
        "Unlinked Student",
        lambda a: f"Link with {_student(a)} was removed.",
    ),
    (Role.PARENT, AlertType.ATTENDANCE_SCAN): (
        "Attendance Scan",
        lambda a: f"{_student(a)} scanned {_scan_direction(a)}.",
    ),
    (Role.PARENT, AlertType.SCHEDULE_CURRENT): (
        "Class Happening Now",
        lambda a: f"{_student(a)}'s {_class(a)} is happening now{_in_parens(a.time)}.",
    ),
    (Role.PARENT, AlertType.SCHEDULE_ADDED): (
        "Schedule Added",
        lambda a: f"{_student(a)}'s {_class(a)}{_on_day(a)} added{_in_parens(a.time)}.",
    ),
    (Role.PARENT, AlertType.SCHEDULE_UPDATED): ("Schedule Updated", _schedule_updated),
    (Role.PARENT, AlertType.SCHEDULE_DELETED): ("Schedule Deleted", _schedule_deleted),
    (Role.PARENT, AlertType.SCHEDULE_PERMISSION_REQUEST): (
        "Schedule Permission Request",
        lambda a: f"{_student(a)} is requesting permission to modify their schedule.",
    ),
    (Role.PARENT, AlertType.SCHEDULE_PERMISSION_RESPONSE): (
        "Schedule Permission Response",
        lambda a: f"Schedule permission request for {_student(a)} has been updated.",
    ),
    (Role.ADMIN, AlertType.QR_REQUEST): (
        "QR Code Generation Request",
        lambda a: f"{first_name(a.student_name, 'A student')} is requesting QR code generation.",
    ),
}


def format_alert(
    role: Role, alert: AlertItem, alert_type: Optional[AlertType] = None
) -> Tuple[str, str]:
    """
    Title and body for one alert as seen by `role`.

    `alert_type` overrides the type stored on the alert.
    A stored message always wins over the template body. Unknown
    (role, type) pairs use the stored title and message, with an
    admin-specific default for the admin inbox.
    """
    template = TEMPLATES.get((role, alert_type or alert.type))
    if template is None:
        if role == Role.ADMIN:
            return alert.title or "Admin Alert", alert.message or "You have a new admin alert."
        return alert.title or DEFAULT_TITLE, alert.message or DEFAULT_BODY

    title, build_body = template
    return title, alert.message or build_body(alert)
