"""
Firestore document models using Python dataclasses.

Each model includes:
  - A `to_dict()` instance method for serialization into a Firestore document
  - A `from_dict(data, doc_id)` classmethod for deserialization
  - Sensible defaults for all fields

Datetime fields are kept as native datetime objects since Firestore
handles them natively. Calendar days used for daily resets are stored as
ISO date strings (YYYY-MM-DD).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


DEVICE_PARENT = "parent"
DEVICE_CHILD = "child"
DEVICE_UNKNOWN = "unknown"

PARTITION_TO_PARENT = "to-parent"
PARTITION_TO_CHILD = "to-child"

PRIORITY_NORMAL = "normal"
PRIORITY_HIGH = "high"
PRIORITIES = (PRIORITY_NORMAL, PRIORITY_HIGH)

DELIVERY_DELIVERED = "delivered"
DELIVERY_SKIPPED = "skipped"
DELIVERY_FAILED = "failed"


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _parse_datetime(value) -> Optional[datetime]:
    """Convert a value to datetime. Accepts datetime objects, ISO-format
    strings, and Firestore DatetimeWithNanoseconds objects."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        value = value.replace("Z", "+00:00")
        try:
            return datetime.fromisoformat(value)
        except (ValueError, TypeError):
            return None
    return None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_device_type(value) -> str:
    if isinstance(value, str) and value.strip().lower() in (DEVICE_PARENT, DEVICE_CHILD):
        return value.strip().lower()
    return DEVICE_UNKNOWN


# ===========================================================================
# 1. Device registration  (collection: deviceRegistrations)
# ===========================================================================

@dataclass
class DeviceRegistration:
    id: Optional[str] = None
    device_type: str = DEVICE_UNKNOWN
    push_token: Optional[str] = None
    family_id: Optional[str] = None
    linked_to: Optional[str] = None
    registered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def kind(self) -> str:
        return normalize_device_type(self.device_type)

    def is_parent(self) -> bool:
        return self.kind == DEVICE_PARENT

    def is_child(self) -> bool:
        return self.kind == DEVICE_CHILD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_type": self.device_type,
            "push_token": self.push_token,
            "family_id": self.family_id,
            "linked_to": self.linked_to,
            "registered_at": self.registered_at or _now(),
            "updated_at": self.updated_at or _now(),
        }

    def to_api(self) -> Dict[str, Any]:
        return {
            "device_id": self.id,
            "device_type": self.kind,
            "family_id": self.family_id,
            "linked_to": self.linked_to,
            "has_push_token": bool(self.push_token),
            "registered_at": _iso(self.registered_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> DeviceRegistration:
        return cls(
            id=doc_id,
            device_type=data.get("device_type") or DEVICE_UNKNOWN,
            push_token=data.get("push_token"),
            family_id=data.get("family_id"),
            linked_to=data.get("linked_to"),
            registered_at=_parse_datetime(data.get("registered_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


# ===========================================================================
# 2. Device link edge  (collection: deviceLinks)
# ===========================================================================

@dataclass
class DeviceLink:
    id: Optional[str] = None
    parent_id: str = ""
    child_id: str = ""
    linked_at: Optional[datetime] = None

    @staticmethod
    def make_id(parent_id: str, child_id: str) -> str:
        return f"{parent_id}_{child_id}"

    def peer_of(self, device_id: str) -> Optional[str]:
        if device_id == self.parent_id:
            return self.child_id
        if device_id == self.child_id:
            return self.parent_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parent_id": self.parent_id,
            "child_id": self.child_id,
            "linked_at": self.linked_at or _now(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> DeviceLink:
        return cls(
            id=doc_id,
            parent_id=data.get("parent_id", ""),
            child_id=data.get("child_id", ""),
            linked_at=_parse_datetime(data.get("linked_at")),
        )


# ===========================================================================
# 3. Notification  (collections: parentNotifications / childNotifications)
# ===========================================================================

@dataclass
class Notification:
    id: Optional[str] = None
    user_id: str = ""
    title: str = ""
    body: str = ""
    type: str = "info"
    is_read: bool = False
    priority: str = PRIORITY_NORMAL
    data: Dict[str, Any] = field(default_factory=dict)
    from_parent_id: Optional[str] = None
    from_child_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    read_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "type": self.type,
            "is_read": self.is_read,
            "priority": self.priority,
            "data": self.data,
            "timestamp": self.timestamp or _now(),
        }
        # At most one sender field is ever written
        if self.from_parent_id:
            d["from_parent_id"] = self.from_parent_id
        elif self.from_child_id:
            d["from_child_id"] = self.from_child_id
        return d

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "type": self.type,
            "read": self.is_read,
            "priority": self.priority,
            "data": self.data,
            "from_parent_id": self.from_parent_id,
            "from_child_id": self.from_child_id,
            "timestamp": _iso(self.timestamp),
            "read_at": _iso(self.read_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: Optional[str] = None) -> Notification:
        return cls(
            id=doc_id,
            user_id=data.get("user_id", ""),
            title=data.get("title", ""),
            body=data.get("body", ""),
            type=data.get("type", "info"),
            is_read=data.get("is_read", False),
            priority=data.get("priority", PRIORITY_NORMAL),
            data=data.get("data") or {},
            from_parent_id=data.get("from_parent_id"),
            from_child_id=data.get("from_child_id"),
            timestamp=_parse_datetime(data.get("timestamp")),
            read_at=_parse_datetime(data.get("read_at")),
        )


@dataclass
class Delivery:
    """Outcome of the best-effort push that follows a persisted notification."""
    status: str = DELIVERY_SKIPPED
    push_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "push_id": self.push_id, "reason": self.reason}


@dataclass
class SendResult:
    notification_id: str
    partition: str
    delivery: Delivery = field(default_factory=Delivery)

    @property
    def push_id(self) -> Optional[str]:
        if self.delivery.status == DELIVERY_DELIVERED:
            return self.delivery.push_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "push_id": self.push_id,
            "partition": self.partition,
            "delivery": self.delivery.to_dict(),
        }


# ===========================================================================
# 4. Usage state  (collection: devices)
# ===========================================================================

@dataclass
class AppUsageEntry:
    name: str = ""
    package_name: str = ""
    limit_minutes: Optional[int] = None
    usage_minutes: int = 0
    blocked: bool = False
    last_reset_date: Optional[str] = None
    status: str = "active"
    time_period: str = "daily"

    def apply_limit(self, limit_minutes: Optional[int], today: str) -> None:
        """Set a new cap, lazily rolling usage over when the day changed."""
        reset_needed = self.last_reset_date != today
        usage = 0 if reset_needed else (self.usage_minutes or 0)
        self.limit_minutes = limit_minutes
        self.usage_minutes = usage
        self.blocked = False if reset_needed else (limit_minutes is not None and usage >= limit_minutes)
        self.last_reset_date = today
        self.status = "active"
        self.time_period = "daily"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "package_name": self.package_name,
            "limit_minutes": self.limit_minutes,
            "usage_minutes": self.usage_minutes,
            "blocked": self.blocked,
            "last_reset_date": self.last_reset_date,
            "status": self.status,
            "time_period": self.time_period,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppUsageEntry:
        return cls(
            name=data.get("name", ""),
            package_name=data.get("package_name") or "",
            limit_minutes=data.get("limit_minutes"),
            usage_minutes=data.get("usage_minutes") or 0,
            blocked=data.get("blocked", False),
            last_reset_date=data.get("last_reset_date"),
            status=data.get("status", "active"),
            time_period=data.get("time_period", "daily"),
        )


@dataclass
class ScreenTime:
    limit: Optional[int] = None
    total_minutes: int = 0
    last_reset_date: Optional[str] = None
    status: str = "active"
    time_period: str = "daily"

    def apply_limit(self, limit: Optional[int], today: str) -> None:
        if self.last_reset_date != today:
            self.total_minutes = 0
        self.limit = limit
        self.last_reset_date = today
        self.status = "active"
        self.time_period = "daily"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "total_minutes": self.total_minutes,
            "last_reset_date": self.last_reset_date,
            "status": self.status,
            "time_period": self.time_period,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> ScreenTime:
        data = data or {}
        return cls(
            limit=data.get("limit"),
            total_minutes=data.get("total_minutes") or 0,
            last_reset_date=data.get("last_reset_date"),
            status=data.get("status", "active"),
            time_period=data.get("time_period", "daily"),
        )
