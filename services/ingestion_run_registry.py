"""
In-memory registry of ingestion runs.
Holds the latest RunState per run plus its cancel flag so the API can
report progress and request cancellation while a run executes in the
background. Single-process only; state is lost on restart. Finished runs
are kept for RUN_TTL_MINUTES after they end, then dropped.
"""
import threading
from datetime import date, datetime, timedelta
from typing import Mapping, Optional
import structlog

from exceptions import AppError, IngestionRunNotFoundError
from models.ingest import RunState
from services.ingestion_service import BatchIngestionCoordinator, fail_run_state

logger = structlog.get_logger(__name__)

RUN_TTL_MINUTES = 60

_runs: dict[str, RunState] = {}
_cancel_events: dict[str, threading.Event] = {}
_lock = threading.Lock()


def register_run(state: RunState) -> RunState:
    """Track a new run."""
    with _lock:
        _cleanup_expired()
        _runs[state.run_id] = state
        _cancel_events[state.run_id] = threading.Event()
    return state


def update_run(state: RunState) -> None:
    """Replace the stored state of a run, keeping a pending cancel request visible."""
    with _lock:
        event = _cancel_events.get(state.run_id)
        if event is not None and event.is_set() and not state.cancel_requested:
            state = state.model_copy(update={"cancel_requested": True})
        _runs[state.run_id] = state


def get_run(run_id: str) -> RunState:
    """Latest state of a run, or IngestionRunNotFoundError."""
    with _lock:
        state = _runs.get(run_id)
    if state is None:
        raise IngestionRunNotFoundError(run_id)
    return state


def request_cancel(run_id: str) -> RunState:
    """Ask a run to stop before its next batch."""
    state = get_run(run_id)
    if state.status.is_terminal:
        return state
    with _lock:
        _cancel_events[run_id].set()
        state = _runs[run_id].model_copy(update={"cancel_requested": True})
        _runs[run_id] = state
    logger.info("ingestion_cancel_requested", run_id=run_id)
    return state


def cancel_event_for(run_id: str) -> Optional[threading.Event]:
    with _lock:
        return _cancel_events.get(run_id)


def start_run(
    coordinator: BatchIngestionCoordinator,
    upload_id: int,
    effective_date: date,
) -> RunState:
    """Create and register an IDLE run for an upload."""
    return register_run(coordinator.new_run(upload_id, effective_date))


def execute_run(
    coordinator: BatchIngestionCoordinator,
    run_id: str,
    mapping: Mapping[str, Optional[str]],
) -> RunState:
    """
    Drive a registered run to completion, publishing every state.

    Intended for background execution; failures are logged here since
    there is no caller left to report them to. Any failure leaves the run
    in a terminal state.
    """
    state = get_run(run_id)
    try:
        return coordinator.run(
            state,
            mapping,
            on_progress=update_run,
            cancel_event=cancel_event_for(run_id),
        )
    except AppError as e:
        logger.error(
            "background_ingestion_failed",
            run_id=run_id,
            error=e.message,
            code=e.code
        )
        return get_run(run_id)
    except Exception as e:
        logger.error(
            "background_ingestion_crashed",
            run_id=run_id,
            error=str(e),
            error_type=type(e).__name__
        )
        current = get_run(run_id)
        offset = current.next_offset if current.next_offset is not None else current.processed_rows
        failed = fail_run_state(current, offset, e, retries=0)
        update_run(failed)
        return failed


def clear_runs() -> None:
    """Forget all runs."""
    with _lock:
        _runs.clear()
        _cancel_events.clear()


def _cleanup_expired() -> None:
    """Remove finished runs older than RUN_TTL_MINUTES. Caller holds _lock."""
    cutoff = datetime.utcnow() - timedelta(minutes=RUN_TTL_MINUTES)
    expired = [
        run_id for run_id, state in _runs.items()
        if state.status.is_terminal and state.finished_at is not None and state.finished_at < cutoff
    ]
    for run_id in expired:
        del _runs[run_id]
        _cancel_events.pop(run_id, None)
    if expired:
        logger.debug("ingestion_runs_expired", count=len(expired))
