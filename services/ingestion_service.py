"""
Batch ingestion coordinator.

Drives one ingestion run against the chunk endpoint: windows of
batch_size rows are applied strictly in sequence, each starting at the
nextOffset returned by the previous one. A failed window is retried once
after a short pause; a second consecutive failure fails the run at that
offset. Windows applied before the failure stay applied.

Progress is carried in a RunState value. Every finished window yields a
new RunState (elapsed, last/average batch time, ETA once totalRows is
known), so callers observe progress between batches and can cancel there.
"""

import math
import threading
import time
import uuid
from datetime import date, datetime
from typing import Callable, Iterator, Mapping, Optional, Protocol
import structlog

from config import settings
from exceptions import AppError, TransportError
from models.ingest import ChunkRequest, ChunkResponse, RunState, RunStatus
from services.column_mapping_service import wire_mapping
from utils.date_utils import format_effective_date

logger = structlog.get_logger(__name__)

# First attempt + one retry
MAX_ATTEMPTS = 2


class ChunkEndpoint(Protocol):
    def process_chunk(self, request: ChunkRequest) -> ChunkResponse: ...


def total_batches_for(total_rows: int, batch_size: int) -> int:
    """Batches needed for total_rows (at least one)."""
    return max(1, math.ceil(total_rows / batch_size))


def should_retry(attempt: int, error: Exception) -> bool:
    """Retry policy: transport failures get one more attempt."""
    return isinstance(error, TransportError) and attempt < MAX_ATTEMPTS


def advance_run_state(
    state: RunState,
    response: ChunkResponse,
    batch_ms: float,
    elapsed_ms: float,
) -> RunState:
    """
    Fold one successful window into the run state.

    Args:
        state: State before the window
        response: Endpoint answer for the window
        batch_ms: Wall time of this window (including a retry)
        elapsed_ms: Wall time since the run started

    Returns:
        New RunState; COMPLETED when the endpoint reports the last window
    """
    total_rows = state.total_rows
    total_batches = state.total_batches
    if total_rows is None and response.total_rows is not None:
        total_rows = response.total_rows
        total_batches = total_batches_for(total_rows, state.batch_size)

    completed = state.completed_batches + 1
    avg_ms = elapsed_ms / completed

    eta_ms = None
    if total_batches is not None:
        eta_ms = max(0, total_batches - completed) * avg_ms

    next_offset = None if response.is_last else response.next_offset

    return state.model_copy(update={
        "status": RunStatus.COMPLETED if next_offset is None else RunStatus.RUNNING,
        "next_offset": next_offset,
        "completed_batches": completed,
        "processed_rows": state.processed_rows + response.processed,
        "total_rows": total_rows,
        "total_batches": total_batches,
        "last_batch_ms": batch_ms,
        "elapsed_ms": elapsed_ms,
        "avg_batch_ms": avg_ms,
        "eta_ms": eta_ms,
        "row_errors": state.row_errors + list(response.errors),
    })


def fail_run_state(state: RunState, offset: int, error: Exception, retries: int) -> RunState:
    """Terminal FAILED state at offset."""
    return state.model_copy(update={
        "status": RunStatus.FAILED,
        "failed_offset": offset,
        "error": str(error),
        "retries": state.retries + retries,
        "finished_at": datetime.utcnow(),
    })


class BatchIngestionCoordinator:
    """
    Sequential chunk loop for one upload.

    Usage:
        coordinator = BatchIngestionCoordinator(ChunkEndpointClient())
        state = coordinator.new_run(upload_id, date.today())
        for state in coordinator.iter_run(state, mapping):
            print(state.completed_batches, state.eta_ms)
    """

    def __init__(
        self,
        endpoint: ChunkEndpoint,
        batch_size: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.endpoint = endpoint
        self.batch_size = batch_size or settings.ingest_batch_size
        self.retry_backoff_seconds = (
            settings.ingest_retry_backoff_seconds
            if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self.clock = clock
        self.sleep = sleep

    def new_run(
        self,
        upload_id: int,
        effective_date: date,
        run_id: Optional[str] = None
    ) -> RunState:
        """Fresh IDLE state; batch size is fixed here for the whole run."""
        return RunState(
            run_id=run_id or str(uuid.uuid4()),
            upload_id=upload_id,
            effective_date=format_effective_date(effective_date),
            batch_size=self.batch_size,
        )

    def iter_run(
        self,
        state: RunState,
        mapping: Mapping[str, Optional[str]],
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[RunState]:
        """
        Run the loop, yielding the state after every window.

        The first yield is the RUNNING state before any request. The last
        yield is terminal (COMPLETED, FAILED or CANCELLED). A store-side
        AppError yields a FAILED state and is then re-raised.
        """
        mapping = wire_mapping(mapping)
        state = state.model_copy(update={
            "status": RunStatus.RUNNING,
            "started_at": datetime.utcnow(),
        })
        logger.info(
            "ingestion_run_started",
            run_id=state.run_id,
            upload_id=state.upload_id,
            batch_size=state.batch_size,
            effective_date=state.effective_date
        )
        yield state

        started = self.clock()

        while state.next_offset is not None:
            if cancel_event is not None and cancel_event.is_set():
                state = state.model_copy(update={
                    "status": RunStatus.CANCELLED,
                    "cancel_requested": True,
                    "finished_at": datetime.utcnow(),
                })
                logger.info(
                    "ingestion_run_cancelled",
                    run_id=state.run_id,
                    next_offset=state.next_offset,
                    completed_batches=state.completed_batches
                )
                yield state
                return

            offset = state.next_offset
            request = ChunkRequest(
                upload_id=state.upload_id,
                effective_date=state.effective_date,
                offset=offset,
                limit=state.batch_size,
                mapping=mapping,
            )
            batch_started = self.clock()

            try:
                response, retries = self._call_with_retry(request, state.run_id)
            except TransportError as e:
                state = fail_run_state(state, offset, e, retries=MAX_ATTEMPTS - 1)
                logger.error(
                    "ingestion_run_failed",
                    run_id=state.run_id,
                    offset=offset,
                    completed_batches=state.completed_batches,
                    error=str(e)
                )
                yield state
                return
            except AppError as e:
                state = fail_run_state(state, offset, e, retries=0)
                logger.error(
                    "ingestion_run_store_failure",
                    run_id=state.run_id,
                    offset=offset,
                    error=str(e),
                    error_type=type(e).__name__
                )
                yield state
                raise

            if not response.is_last and response.next_offset <= offset:
                error = TransportError(
                    f"Endpoint did not advance past offset {offset}",
                    offset=offset
                )
                state = fail_run_state(state, offset, error, retries=retries)
                logger.error("ingestion_offset_stalled", run_id=state.run_id, offset=offset)
                yield state
                return

            now = self.clock()
            state = advance_run_state(
                state,
                response,
                batch_ms=(now - batch_started) * 1000,
                elapsed_ms=(now - started) * 1000,
            )
            if retries:
                state = state.model_copy(update={"retries": state.retries + retries})
            if state.status == RunStatus.COMPLETED:
                state = state.model_copy(update={"finished_at": datetime.utcnow()})

            logger.info(
                "ingestion_batch_completed",
                run_id=state.run_id,
                batch=state.completed_batches,
                total_batches=state.total_batches,
                processed=response.processed,
                next_offset=state.next_offset,
                last_batch_ms=round(state.last_batch_ms),
                eta_ms=None if state.eta_ms is None else round(state.eta_ms)
            )
            yield state

        logger.info(
            "ingestion_run_completed",
            run_id=state.run_id,
            batches=state.completed_batches,
            processed_rows=state.processed_rows,
            elapsed_ms=round(state.elapsed_ms),
            retries=state.retries
        )

    def run(
        self,
        state: RunState,
        mapping: Mapping[str, Optional[str]],
        on_progress: Optional[Callable[[RunState], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunState:
        """Run to a terminal state, reporting every intermediate state."""
        for state in self.iter_run(state, mapping, cancel_event):
            if on_progress is not None:
                on_progress(state)
        return state

    def _call_with_retry(self, request: ChunkRequest, run_id: str) -> tuple[ChunkResponse, int]:
        """Call the endpoint; returns (response, retries used)."""
        attempt = 1
        while True:
            try:
                return self.endpoint.process_chunk(request), attempt - 1
            except TransportError as e:
                if not should_retry(attempt, e):
                    raise
                logger.warning(
                    "ingestion_batch_retrying",
                    run_id=run_id,
                    offset=request.offset,
                    attempt=attempt,
                    backoff_seconds=self.retry_backoff_seconds,
                    error=str(e)
                )
                self.sleep(self.retry_backoff_seconds)
                attempt += 1
