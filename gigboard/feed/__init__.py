"""Job feed subsystem for Gigboard.

Ranks the open-jobs feed and manages worker capacity.

Models:
- Job: A listing needing one or more workers
- JobApplication: An application to work on a job
- AlgorithmSettings: Active ranking policy
- RotationRecord: Front-page exposure per job

Components:
- CapacityEvaluator: Application admission checks
- RankEngine: newest_first / time_rotation ordering
- RotationTracker: Front-page exposure stamping
- StatusResolver: open / in_progress / completed derivation

Service:
- JobFeedService: Feed, apply, accept, complete, worker-count operations
"""

from gigboard.feed.capacity import AvailabilityResult, CapacityEvaluator, evaluate_availability
from gigboard.feed.models import (
    AlgorithmSettings,
    AlgorithmType,
    ApplicationStatus,
    HiddenJob,
    Job,
    JobApplication,
    JobStatus,
    RotationRecord,
)
from gigboard.feed.ranking import RankEngine, rank_jobs
from gigboard.feed.rotation import RotationStampError, RotationTracker
from gigboard.feed.service import (
    AcceptanceResult,
    AlgorithmInfo,
    ApplicationNotFoundError,
    ApplicationRejectedError,
    ApplicationUpdate,
    FeedResult,
    FeedServiceError,
    FeedValidationError,
    InvalidSettingsError,
    InvalidTransitionError,
    JobFeedService,
    JobNotFoundError,
    NotJobOwnerError,
    WorkerCountChange,
    WorkerCountError,
)
from gigboard.feed.status import StatusChange, StatusResolver, resolve_status
from gigboard.feed.storage import (
    AcceptOutcome,
    AlgorithmSettingsStore,
    DuplicateApplicationError,
    FeedFilters,
    InMemoryJobRepository,
    JobRepository,
    RotationStore,
)

__all__ = [
    # Models
    "Job",
    "JobApplication",
    "JobStatus",
    "ApplicationStatus",
    "AlgorithmType",
    "AlgorithmSettings",
    "RotationRecord",
    "HiddenJob",
    # Components
    "AvailabilityResult",
    "CapacityEvaluator",
    "evaluate_availability",
    "RankEngine",
    "rank_jobs",
    "RotationTracker",
    "RotationStampError",
    "StatusChange",
    "StatusResolver",
    "resolve_status",
    # Storage
    "JobRepository",
    "AlgorithmSettingsStore",
    "RotationStore",
    "InMemoryJobRepository",
    "FeedFilters",
    "AcceptOutcome",
    "DuplicateApplicationError",
    # Service
    "JobFeedService",
    "FeedResult",
    "AlgorithmInfo",
    "AcceptanceResult",
    "ApplicationUpdate",
    "WorkerCountChange",
    "FeedServiceError",
    "FeedValidationError",
    "JobNotFoundError",
    "ApplicationNotFoundError",
    "NotJobOwnerError",
    "ApplicationRejectedError",
    "WorkerCountError",
    "InvalidTransitionError",
    "InvalidSettingsError",
]
