"""
Session, queue and tracking data types.

Session is the single source of truth for who is logged in. It is either
fully present (token + user + company) or absent; `Session.from_record`
refuses to build a partial one. Wire/persisted records use the backend's
camelCase field names.
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


# ─── Timestamps ──────────────────────────────────────────────────

def utc_now():
    return datetime.now(timezone.utc)


def to_iso(dt):
    """ISO-8601 UTC with millisecond precision and a `Z` suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value):
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"Not a timestamp: {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class AuthState(enum.Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATED = "AUTHENTICATED"
    REFRESHING = "REFRESHING"


# ─── Session ─────────────────────────────────────────────────────

@dataclass
class User:
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = ""
    selected_role: str = None
    org_id: str = ""

    @classmethod
    def from_record(cls, data):
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("user record without id")
        return cls(
            id=str(data["id"]),
            email=data.get("email") or "",
            first_name=data.get("firstName") or "",
            last_name=data.get("lastName") or "",
            role=data.get("role") or "",
            selected_role=data.get("selectedRole"),
            org_id=data.get("imsOrgId") or "",
        )

    def to_record(self):
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "selectedRole": self.selected_role,
            "imsOrgId": self.org_id,
        }

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.email


@dataclass
class Company:
    id: str
    domain: str = ""
    name: str = ""
    extra: dict = field(default_factory=dict)  # fields the client does not interpret

    @classmethod
    def from_record(cls, data):
        if not isinstance(data, dict) or not data.get("id"):
            raise ValueError("company record without id")
        extra = {k: v for k, v in data.items() if k not in ("id", "domain", "name")}
        return cls(
            id=str(data["id"]),
            domain=data.get("domain") or "",
            name=data.get("name") or "",
            extra=extra,
        )

    def to_record(self):
        record = dict(self.extra)
        record.update({"id": self.id, "domain": self.domain, "name": self.name})
        return record


@dataclass
class Session:
    token: str
    expires_at: datetime
    user: User
    company: Company

    @classmethod
    def from_record(cls, data):
        """Build from `{sessionToken, expiresAt, user, company}`. Raises ValueError."""
        if not isinstance(data, dict):
            raise ValueError("session record is not an object")
        token = data.get("sessionToken")
        if not isinstance(token, str) or not token:
            raise ValueError("session record without token")
        return cls(
            token=token,
            expires_at=parse_iso(data.get("expiresAt")),
            user=User.from_record(data.get("user")),
            company=Company.from_record(data.get("company")),
        )

    def to_record(self):
        return {
            "sessionToken": self.token,
            "expiresAt": to_iso(self.expires_at),
            "user": self.user.to_record(),
            "company": self.company.to_record(),
        }

    def is_expired(self, now=None):
        return self.expires_at <= (now or utc_now())

    def with_token(self, token, expires_at):
        return replace(self, token=token, expires_at=expires_at)

    def with_selected_role(self, role):
        return replace(self, user=replace(self.user, selected_role=role))


# ─── Activity queue ──────────────────────────────────────────────

@dataclass
class Activity:
    """Wire form posted to /activities."""

    type: str
    metadata: dict = field(default_factory=dict)

    def to_payload(self):
        return {"type": self.type, "metadata": self.metadata}


@dataclass
class QueuedEvent:
    type: str
    metadata: dict = field(default_factory=dict)
    queued_at: str = field(default_factory=lambda: to_iso(utc_now()))
    attempts: int = 0

    @classmethod
    def from_activity(cls, activity):
        return cls(type=activity.type, metadata=dict(activity.metadata))

    @classmethod
    def from_record(cls, data):
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise ValueError("queued event without type")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError("queued event metadata is not an object")
        return cls(
            type=data["type"],
            metadata=metadata,
            queued_at=data.get("queuedAt") or to_iso(utc_now()),
            attempts=int(data.get("attempts", 0)),
        )

    def to_record(self):
        return {
            "type": self.type,
            "metadata": self.metadata,
            "queuedAt": self.queued_at,
            "attempts": self.attempts,
        }

    def to_activity(self):
        return Activity(type=self.type, metadata=self.metadata)


# ─── Tracking inputs ─────────────────────────────────────────────

@dataclass
class PageContext:
    url: str
    path: str = "/"
    title: str = ""
    referrer: str = ""


@dataclass
class Interaction:
    """A click on something that may be trackable (link, button, opted-in element)."""

    tag: str
    href: str = None
    element_id: str = None
    text: str = ""
    track: str = None          # opt-in activity type
    track_meta: str = None     # JSON object merged into metadata
    page_url: str = ""

    @property
    def is_trackable(self):
        return self.tag.lower() in ("a", "button") or bool(self.track)
