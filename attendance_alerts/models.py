"""Data models for alerts, recipients and schedules."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    """Recipient roles that own an alert record."""
    STUDENT = "student"
    PARENT = "parent"
    ADMIN = "admin"


class AlertType(str, Enum):
    """Closed set of alert types the formatter knows about."""
    LINK_REQUEST = "link_request"
    LINK_RESPONSE = "link_response"
    LINK_UNLINKED = "link_unlinked"
    SCHEDULE_ADDED = "schedule_added"
    SCHEDULE_UPDATED = "schedule_updated"
    SCHEDULE_DELETED = "schedule_deleted"
    SCHEDULE_CURRENT = "schedule_current"
    ATTENDANCE_SCAN = "attendance_scan"
    QR_GENERATED = "qr_generated"
    QR_CHANGED = "qr_changed"
    QR_REQUEST = "qr_request"
    SCHEDULE_PERMISSION_REQUEST = "schedule_permission_request"
    SCHEDULE_PERMISSION_RESPONSE = "schedule_permission_response"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AlertType":
        """Map a stored type string onto the closed set (unknown -> GENERIC)."""
        raw = str(value or "").strip().lower()
        raw = _TYPE_ALIASES.get(raw, raw)
        try:
            return cls(raw)
        except ValueError:
            return cls.GENERIC


# "_self" variants are written to the actor's own record
_TYPE_ALIASES = {
    "link_response_self": "link_response",
    "link_unlinked_self": "link_unlinked",
    "schedule_permission_response_self": "schedule_permission_response",
}

UNREAD = "unread"
READ = "read"


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class AlertItem:
    """One notification-worthy event stored in a recipient's record."""
    id: str
    type: AlertType
    title: Optional[str] = None
    message: Optional[str] = None
    status: str = UNREAD
    created_at: Optional[str] = None  # ISO8601 as written by the store
    raw_type: Optional[str] = None    # original type string before folding
    student_name: Optional[str] = None
    parent_name: Optional[str] = None
    subject: Optional[str] = None
    time: Optional[str] = None
    previous_time: Optional[str] = None
    day: Optional[str] = None
    student_id: Optional[str] = None
    parent_id: Optional[str] = None
    direction: Optional[str] = None   # attendance scan "in" / "out"
    current_key: Optional[str] = None

    @property
    def is_unread(self) -> bool:
        return self.status == UNREAD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["AlertItem"]:
        """
        Build an AlertItem from a raw stored dict.

        Returns None when the dict has no usable id.
        """
        if not isinstance(data, dict):
            return None
        alert_id = _opt_str(data.get("id") or data.get("alertId"))
        if not alert_id:
            return None

        raw_type = _opt_str(data.get("type") or data.get("alertType"))
        entry = data.get("entry") if isinstance(data.get("entry"), dict) else {}

        return cls(
            id=alert_id,
            type=AlertType.parse(raw_type),
            title=_opt_str(data.get("title")),
            message=_opt_str(data.get("message")),
            status=str(data.get("status") or UNREAD).lower(),
            created_at=_opt_str(data.get("createdAt")),
            raw_type=raw_type,
            student_name=_opt_str(data.get("studentName")),
            parent_name=_opt_str(data.get("parentName")),
            subject=_opt_str(data.get("subject")),
            time=_opt_str(data.get("time")),
            previous_time=_opt_str(data.get("previousTime")),
            day=_opt_str(data.get("day")),
            student_id=_opt_str(data.get("studentId")),
            parent_id=_opt_str(data.get("parentId")),
            direction=_opt_str(data.get("direction") or entry.get("direction")),
            current_key=_opt_str(data.get("currentKey")),
        )


@dataclass(frozen=True)
class RecipientKey:
    """Identifies one recipient's alert record."""
    role: Role
    doc_id: str

    def __str__(self) -> str:
        return f"{self.role.value}_alerts/{self.doc_id}"


@dataclass
class RecipientRecord:
    """One recipient's alert document: an ordered list of raw items."""
    key: RecipientKey
    items: List[Dict[str, Any]] = field(default_factory=list)
    exists: bool = True


@dataclass
class Snapshot:
    """An update event emitted by the alert store for one record."""
    key: RecipientKey
    items: Any = None           # raw "items" field, may be malformed
    exists: bool = True
    from_cache: bool = False
    has_pending_writes: bool = False


@dataclass
class ScheduleEntry:
    """One weekly class slot."""
    subject: str
    day: str
    time_range: str


@dataclass
class UpcomingEntry:
    """A ranked schedule entry; `when` is None for ongoing entries."""
    subject: str
    day: str
    time: str
    ongoing: bool
    when: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "day": self.day,
            "time": self.time,
            "ongoing": self.ongoing,
        }


@dataclass
class Notification:
    """A formatted notification ready for a push transport."""
    target_id: str
    role: Role
    title: str
    body: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetId": self.target_id,
            "role": self.role.value,
            "title": self.title,
            "body": self.body,
            "metadata": self.metadata,
        }
