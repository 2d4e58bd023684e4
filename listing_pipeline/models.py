from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class StepName(str, Enum):
    VALIDATION = "validation"
    SETTINGS = "settings"
    WATERMARKING = "watermarking"
    VIDEO_CREATE = "video_create"
    COLLAGE = "collage"
    PACKAGING = "packaging"
    DRIVE_UPLOAD = "drive_upload"
    AI_METADATA = "ai_metadata"
    ETSY_LISTING = "etsy_listing"
    FINALIZATION = "finalization"
    ERROR = "error"


STAGE_ORDER = (
    StepName.VALIDATION,
    StepName.SETTINGS,
    StepName.WATERMARKING,
    StepName.VIDEO_CREATE,
    StepName.COLLAGE,
    StepName.PACKAGING,
    StepName.DRIVE_UPLOAD,
    StepName.AI_METADATA,
    StepName.ETSY_LISTING,
    StepName.FINALIZATION,
)


class StepStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    COMPLETED_WITH_WARNINGS = "completed_with_warnings"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    INSUFFICIENT_IMAGES = "insufficient_images"
    DISABLED = "disabled"
    NOT_AUTHENTICATED = "not_authenticated"


QUEUED = "queued"


@dataclass(frozen=True)
class ImageItem:
    content: bytes
    media_type: str
    size: int
    name: str


@dataclass(frozen=True)
class AuthContext:
    user_id: str = "default"
    google_access_token: Optional[str] = None
    etsy_access_token: Optional[str] = None
    etsy_shop_id: Optional[str] = None

    @property
    def has_google(self) -> bool:
        return bool(self.google_access_token)

    @property
    def has_etsy(self) -> bool:
        return bool(self.etsy_access_token)


@dataclass(frozen=True)
class SubmissionOptions:
    price: float = 10.00
    quantity: int = 1


@dataclass(frozen=True)
class StepRecord:
    step: StepName
    status: StepStatus
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.data,
            "step": self.step.value,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class JobStatus:
    job_id: str
    start_time: datetime
    current_step: Optional[StepName] = None
    current_status: str = QUEUED
    steps: List[StepRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.job_id,
            "startTime": self.start_time.isoformat(),
            "currentStep": self.current_step.value if self.current_step else None,
            "currentStatus": self.current_status,
            "steps": [record.to_dict() for record in self.steps],
        }

    @property
    def is_terminal(self) -> bool:
        if not self.steps:
            return False
        return self.steps[-1].step in {StepName.FINALIZATION, StepName.ERROR}

    def record_for(self, step: StepName) -> Optional[StepRecord]:
        return next((record for record in self.steps if record.step == step), None)


# Stage outcomes. Every stage returns exactly one of these and the
# orchestrator turns it into a step record and a continue/halt decision.


@dataclass(frozen=True)
class Success:
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Degraded:
    payload: Dict[str, Any] = field(default_factory=dict)
    warnings: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class Skipped:
    reason: SkipReason
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Failed:
    """A recoverable stage failure; later stages still run."""

    error: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Fatal:
    """A failure that ends the job."""

    error: str
    payload: Dict[str, Any] = field(default_factory=dict)


StageOutcome = Union[Success, Degraded, Skipped, Failed, Fatal]


def outcome_record(step: StepName, outcome: StageOutcome, timestamp: datetime) -> StepRecord:
    if isinstance(outcome, Success):
        return StepRecord(step, StepStatus.COMPLETED, timestamp, dict(outcome.payload))
    if isinstance(outcome, Degraded):
        data = {**outcome.payload, "warnings": list(outcome.warnings)}
        return StepRecord(step, StepStatus.COMPLETED_WITH_WARNINGS, timestamp, data)
    if isinstance(outcome, Skipped):
        data = {**outcome.payload, "reason": outcome.reason.value}
        return StepRecord(step, StepStatus.SKIPPED, timestamp, data)
    if isinstance(outcome, (Failed, Fatal)):
        data = {**outcome.payload, "error": outcome.error}
        return StepRecord(step, StepStatus.FAILED, timestamp, data)
    raise TypeError(f"Unknown stage outcome {outcome!r}")
