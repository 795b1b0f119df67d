"""Data models for the job feed.

Models:
- Job: A listing that needs one or more workers
- JobApplication: A worker's application to a job
- AlgorithmSettings: The active feed ranking policy
- RotationRecord: Front-page exposure record for one job
- HiddenJob: A job a user chose to hide from their feed

Rows coming from a database are normalized here (``from_row``) so the rest
of the package only ever sees one canonical field per concept.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a database timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


# =============================================================================
# Enums
# =============================================================================


class JobStatus(str, Enum):
    """Job lifecycle status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ApplicationStatus(str, Enum):
    """Application lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AlgorithmType(str, Enum):
    """Feed ranking policies."""

    NEWEST_FIRST = "newest_first"
    TIME_ROTATION = "time_rotation"


# Applications occupying a worker slot
SLOT_HOLDING_STATUSES = frozenset({ApplicationStatus.ACCEPTED.value, ApplicationStatus.COMPLETED.value})

VALID_APPLICATION_TRANSITIONS = {
    ApplicationStatus.PENDING.value: {
        ApplicationStatus.ACCEPTED.value,
        ApplicationStatus.REJECTED.value,
        ApplicationStatus.CANCELLED.value,
    },
    ApplicationStatus.ACCEPTED.value: {
        ApplicationStatus.COMPLETED.value,
        ApplicationStatus.CANCELLED.value,
    },
}

VALID_JOB_STATUSES = frozenset(s.value for s in JobStatus)
VALID_APPLICATION_STATUSES = frozenset(s.value for s in ApplicationStatus)
KNOWN_ALGORITHM_TYPES = frozenset(a.value for a in AlgorithmType)


# =============================================================================
# Models
# =============================================================================


@dataclass
class Job:
    """A job listing in the open-jobs feed."""

    id: str
    owner_id: str
    title: str = ""
    description: str = ""
    category: Optional[str] = None
    location: Optional[str] = None
    is_remote: bool = False
    budget: Optional[float] = None
    workers_needed: int = 1
    status: str = JobStatus.OPEN.value
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        if self.status not in VALID_JOB_STATUSES:
            raise ValueError(f"Invalid job status: {self.status}")
        if self.workers_needed < 1:
            raise ValueError("Workers needed must be at least 1")
        if self.created_at is None:
            self.created_at = utc_now()

    @property
    def last_activity_at(self) -> datetime:
        """The later of creation and last update."""
        if self.updated_at is None:
            return self.created_at
        return max(self.created_at, self.updated_at)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Job":
        """Build a Job from a database row."""
        return cls(
            id=str(row["id"]),
            owner_id=str(_first(row, "owner_id", "user_id")),
            title=row.get("title") or "",
            description=row.get("description") or "",
            category=row.get("category"),
            location=row.get("location"),
            is_remote=bool(row.get("is_remote") or False),
            budget=float(row["budget"]) if row.get("budget") is not None else None,
            workers_needed=int(_first(row, "workers_needed", "workersNeeded") or 1),
            status=row.get("status") or JobStatus.OPEN.value,
            created_at=parse_timestamp(_first(row, "created_at", "createdAt")),
            updated_at=parse_timestamp(_first(row, "updated_at", "updatedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "location": self.location,
            "is_remote": self.is_remote,
            "budget": self.budget,
            "workers_needed": self.workers_needed,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class JobApplication:
    """An application to work on a job."""

    id: str
    job_id: str
    applicant_id: str
    status: str = ApplicationStatus.PENDING.value
    cover_letter: str = ""
    proposed_budget: Optional[float] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, ApplicationStatus):
            self.status = self.status.value
        if self.status not in VALID_APPLICATION_STATUSES:
            raise ValueError(f"Invalid application status: {self.status}")
        if self.created_at is None:
            self.created_at = utc_now()

    @property
    def holds_slot(self) -> bool:
        return self.status in SLOT_HOLDING_STATUSES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_APPLICATION_TRANSITIONS.get(self.status, set())

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JobApplication":
        """Build an application from a database row."""
        return cls(
            id=str(row["id"]),
            job_id=str(row["job_id"]),
            applicant_id=str(row["applicant_id"]),
            status=row.get("status") or ApplicationStatus.PENDING.value,
            cover_letter=row.get("cover_letter") or "",
            proposed_budget=(
                float(row["proposed_budget"]) if row.get("proposed_budget") is not None else None
            ),
            created_at=parse_timestamp(_first(row, "created_at", "createdAt")),
            accepted_at=parse_timestamp(row.get("accepted_at")),
            rejected_at=parse_timestamp(row.get("rejected_at")),
            completed_at=parse_timestamp(row.get("completed_at")),
            cancelled_at=parse_timestamp(row.get("cancelled_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        def _iso(dt: Optional[datetime]) -> Optional[str]:
            return dt.isoformat() if dt else None

        return {
            "id": self.id,
            "job_id": self.job_id,
            "applicant_id": self.applicant_id,
            "status": self.status,
            "cover_letter": self.cover_letter,
            "proposed_budget": self.proposed_budget,
            "created_at": _iso(self.created_at),
            "accepted_at": _iso(self.accepted_at),
            "rejected_at": _iso(self.rejected_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
        }


@dataclass
class AlgorithmSettings:
    """The deployment-wide feed ranking policy.

    ``algorithm_type`` is kept as a plain string: values written by older
    admin tooling are tolerated and rank as a no-op.
    """

    algorithm_type: str = AlgorithmType.NEWEST_FIRST.value
    is_enabled: bool = True
    rotation_hours: float = 8
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.algorithm_type, AlgorithmType):
            self.algorithm_type = self.algorithm_type.value
        if self.rotation_hours <= 0:
            raise ValueError("Rotation hours must be positive")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AlgorithmSettings":
        return cls(
            algorithm_type=row.get("algorithm_type") or AlgorithmType.NEWEST_FIRST.value,
            is_enabled=bool(row.get("is_enabled", True)),
            rotation_hours=float(row.get("rotation_hours") or 8),
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )


@dataclass
class RotationRecord:
    """When a job last held a front-page slot."""

    job_id: str
    last_front_page_at: datetime
    front_page_duration_minutes: int
    rotation_cycle: int = 1

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RotationRecord":
        return cls(
            job_id=str(row["job_id"]),
            last_front_page_at=parse_timestamp(row["last_front_page_at"]),
            front_page_duration_minutes=int(row.get("front_page_duration_minutes") or 0),
            rotation_cycle=int(row.get("rotation_cycle") or 1),
        )


@dataclass
class HiddenJob:
    """A job hidden from one user's feed."""

    user_id: str
    job_id: str
    reason: Optional[str] = None
    hidden_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HiddenJob":
        return cls(
            user_id=str(row["user_id"]),
            job_id=str(row["job_id"]),
            reason=row.get("reason"),
            hidden_at=parse_timestamp(row.get("hidden_at")) or utc_now(),
        )
