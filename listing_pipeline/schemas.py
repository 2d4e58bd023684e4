from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    file_count: int = Field(alias="fileCount")
    estimated_time: str = Field(alias="estimatedTime")
    status_url: str = Field(alias="statusUrl")


class StepRecordSchema(BaseModel):
    # Stage diagnostics (warnings, reason, error, ...) ride along as extra keys.
    model_config = ConfigDict(extra="allow")

    step: str
    status: str
    timestamp: datetime


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    start_time: datetime = Field(alias="startTime")
    current_step: Optional[str] = Field(default=None, alias="currentStep")
    current_status: str = Field(alias="currentStatus")
    steps: List[StepRecordSchema]


class HealthResponse(BaseModel):
    status: str
    services: Dict[str, str]
