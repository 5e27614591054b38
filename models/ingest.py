"""
Batch ingestion models.

ChunkRequest/ChunkResponse are the wire contract of the chunk-processing
endpoint (camelCase on the wire). RunState is the progress value threaded
through the ingestion loop: every batch produces a new RunState.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(str, Enum):
    """Ingestion run lifecycle: IDLE → RUNNING → COMPLETED | FAILED | CANCELLED."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class ChunkRequest(BaseModel):
    """One window of rows to apply: [offset, offset + limit)."""

    model_config = ConfigDict(populate_by_name=True)

    upload_id: int = Field(..., alias="uploadId")
    effective_date: str = Field(
        ...,
        alias="effectiveDate",
        pattern=r"^\d{2}-\d{2}-\d{4}$",
        description="DD-MM-YYYY"
    )
    offset: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    mapping: dict[str, str] = Field(default_factory=dict)


class ChunkResponse(BaseModel):
    """Endpoint answer for one window."""

    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    processed: int = Field(0, ge=0)
    next_offset: Optional[int] = Field(None, alias="nextOffset")
    total_rows: Optional[int] = Field(None, alias="totalRows")
    done: bool = False
    errors: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def is_last(self) -> bool:
        return self.done or self.next_offset is None


class RunState(BaseModel):
    """
    Progress of one ingestion run.

    Timings are in milliseconds. eta_ms stays None until the endpoint has
    reported totalRows.
    """

    run_id: str
    upload_id: int
    effective_date: str
    batch_size: int = Field(..., ge=1)
    status: RunStatus = RunStatus.IDLE

    next_offset: Optional[int] = 0
    completed_batches: int = 0
    processed_rows: int = 0
    total_rows: Optional[int] = None
    total_batches: Optional[int] = None

    last_batch_ms: float = 0
    elapsed_ms: float = 0
    avg_batch_ms: float = 0
    eta_ms: Optional[float] = None

    retries: int = 0
    failed_offset: Optional[int] = None
    error: Optional[str] = None
    row_errors: list[dict[str, Any]] = Field(default_factory=list)
    cancel_requested: bool = False

    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def remaining_batches(self) -> Optional[int]:
        if self.total_batches is None:
            return None
        return max(0, self.total_batches - self.completed_batches)
