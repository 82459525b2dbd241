"""User activity record model and the batch captured for delivery."""

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


def _as_str(value) -> str:
    return value if isinstance(value, str) else ""


def _as_float(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


@dataclass
class LoginEvent:
    time: str = ""
    ip: str = ""

    @classmethod
    def from_dict(cls, data) -> "LoginEvent":
        data = _as_dict(data)
        return cls(time=_as_str(data.get("time")), ip=_as_str(data.get("ip")))

    def to_dict(self) -> dict:
        return {"time": self.time, "ip": self.ip}


@dataclass
class PhoneNumbers:
    home: str = ""
    mobile: str = ""

    @classmethod
    def from_dict(cls, data) -> "PhoneNumbers":
        data = _as_dict(data)
        return cls(home=_as_str(data.get("home")), mobile=_as_str(data.get("mobile")))

    def to_dict(self) -> dict:
        return {"home": self.home, "mobile": self.mobile}


@dataclass
class LogRecord:
    """One activity report for a user.

    Only ``user_id`` is meaningful to the batcher. Everything else is carried
    through to the collector untouched, except ``logins`` which accumulates
    across records for the same user.
    """

    user_id: int
    total: float = 0.0
    title: str = ""
    logins: list[LoginEvent] = field(default_factory=list)
    phone_numbers: PhoneNumbers = field(default_factory=PhoneNumbers)
    completed: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "LogRecord":
        """Build a record from its JSON form.

        Malformed optional fields fall back to empty or zero values instead
        of failing; ``user_id`` is expected to be validated beforehand.
        """
        meta = _as_dict(data.get("meta"))
        raw_logins = meta.get("logins")
        if not isinstance(raw_logins, list):
            raw_logins = []
        completed = data.get("completed")
        return cls(
            user_id=int(data["user_id"]),
            total=_as_float(data.get("total")),
            title=_as_str(data.get("title")),
            logins=[LoginEvent.from_dict(item) for item in raw_logins],
            phone_numbers=PhoneNumbers.from_dict(meta.get("phone_numbers")),
            completed=completed if isinstance(completed, bool) else False,
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total": self.total,
            "title": self.title,
            "meta": {
                "logins": [login.to_dict() for login in self.logins],
                "phone_numbers": self.phone_numbers.to_dict(),
            },
            "completed": self.completed,
        }

    def merge(self, other: "LogRecord") -> None:
        """Fold a later record for the same user into this one.

        Only login events are appended; all other fields keep the values of
        the first record seen.
        """
        self.logins.extend(other.logins)


@dataclass(frozen=True)
class Batch:
    """Read-only snapshot of the store, keyed by user id."""

    records: Mapping[int, LogRecord] = field(default_factory=dict)
    captured_at: float = field(default_factory=time.time)

    def __post_init__(self):
        object.__setattr__(self, "records", MappingProxyType(dict(self.records)))

    def __len__(self) -> int:
        return len(self.records)

    def __bool__(self) -> bool:
        return bool(self.records)

    def to_payload(self) -> dict:
        """JSON-ready mapping of user id to record."""
        return {str(user_id): record.to_dict() for user_id, record in self.records.items()}
