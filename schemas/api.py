"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import RunStatus


# ============================================================================
# Health Check Schemas
# ============================================================================

class CheckpointInfo(BaseModel):
    """Live checkpoint of an unfinished run"""
    model_config = ConfigDict(from_attributes=True)

    owner_id: str
    last_processed_unit_id: Optional[str]
    completed_units: int
    failed_units: int = 0
    total_units: int
    derived_record_count: int
    source_kind: Optional[str] = None
    start_time: datetime
    last_checkpoint_time: datetime
    stale: bool = False

    @classmethod
    def from_snapshot(cls, snapshot, stale: bool = False) -> "CheckpointInfo":
        return cls(
            owner_id=snapshot.owner_id,
            last_processed_unit_id=snapshot.last_processed_unit_id,
            completed_units=snapshot.completed_count,
            failed_units=len(snapshot.failed_unit_ids),
            total_units=snapshot.total_units,
            derived_record_count=snapshot.derived_record_count,
            source_kind=snapshot.source_kind,
            start_time=snapshot.start_time,
            last_checkpoint_time=snapshot.last_checkpoint_time,
            stale=stale,
        )


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    active_checkpoints: List[CheckpointInfo] = Field(default_factory=list)
    stale_checkpoints: int = 0
    runs_in_progress: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.stale_checkpoints > 0:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "stale_checkpoints": 0,
                "runs_in_progress": ["clinic_42"],
                "active_checkpoints": [
                    {
                        "owner_id": "clinic_42",
                        "last_processed_unit_id": "P000100",
                        "completed_units": 100,
                        "failed_units": 2,
                        "total_units": 120,
                        "derived_record_count": 412,
                        "start_time": "2024-01-15T10:00:00Z",
                        "last_checkpoint_time": "2024-01-15T10:20:00Z",
                        "stale": False
                    }
                ]
            }
        }
    )


# ============================================================================
# Run Schemas
# ============================================================================

class RunRequest(BaseModel):
    """Optional body for POST /runs/{owner_id}"""
    checkpoint_interval: Optional[int] = Field(None, ge=1, le=10000)


class ExtractionRunItem(BaseModel):
    """One row of run history"""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    run_id: str
    owner_id: str
    status: RunStatus
    resumed: bool
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total_units: int = 0
    units_processed: int = 0
    units_skipped: int = 0
    units_failed: int = 0
    records_added: int = 0
    records_skipped: int = 0
    error_message: Optional[str] = None


class RunHistoryResponse(BaseModel):
    """Recent runs, newest first"""
    runs: List[ExtractionRunItem]
    total: int


# ============================================================================
# Reference Import Schemas
# ============================================================================

class SymptomImportRequest(BaseModel):
    """Rows of the symptom library to import"""
    rows: List[Dict[str, Any]] = Field(..., min_length=1, max_length=10000)


class ImportResponse(BaseModel):
    """Summary of an import batch"""
    added: int
    skipped: int
    errored: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
