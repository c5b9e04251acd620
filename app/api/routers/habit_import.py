"""
app/api/routers/habit_import.py

Loop Habits import endpoint.

POST /import/loop-habits

Form fields
-----------
import_format        : "root" | "per-habit" (detected from file names when omitted)
habits               : Habits.csv      (root)
checkmarks           : Checkmarks.csv  (root)
scores               : Scores.csv      (root, optional)
files                : repeated <NNN Habit Name>/Checkmarks.csv (per-habit)
conflict_resolutions : optional JSON list of {habit_name, resolution, new_name}

Response
--------
application/x-ndjson, one event object per line:
{"type": "progress", ...} until a single terminal "conflicts", "complete"
or "error" event.

The import runs in a producer thread with its own database session; the
response generator only drains the event queue, so events arrive in order
and the sink never has concurrent writers.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from app.api.dependencies import ensure_csv_upload, get_current_user_id
from app.config import get_habit_import_settings
from app.domain.habit_import import ConflictResolution, ImportProgress, ImportSummary, PerHabitFile, RawFileSet
from app.repositories.habit_repository import HabitRepository
from app.repositories.habit_store import HabitStore
from app.schemas.habit_import import (
    CompleteEvent,
    ConflictRecordResponse,
    ConflictResolutionList,
    ConflictsEvent,
    ErrorEvent,
    ImportProgressResponse,
    ImportSummaryResponse,
    ProgressEvent,
)
from app.services.habit_import_orchestrator import (
    HabitImportOrchestrator,
    ProgressSink,
    get_habit_import_orchestrator,
)
from app.services.per_habit_import_service import (
    ImportFormat,
    PerHabitImportService,
    detect_import_format,
    get_per_habit_import_service,
)
from db.session import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["habit-import"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"

ImportJob = Callable[[ProgressSink], ImportSummary]
StoreOpener = Callable[[], AbstractContextManager[HabitStore]]

_STREAM_END = object()


# ---------------------------------------------------------------------------
# Event encoding
# ---------------------------------------------------------------------------


def progress_line(progress: ImportProgress) -> str:
    return ProgressEvent(progress=ImportProgressResponse.from_domain(progress)).model_dump_json() + "\n"


def terminal_line(summary: ImportSummary) -> str:
    """
    ``conflicts`` when the run is waiting on the user, ``complete`` otherwise.
    """

    if summary.requires_resolution:
        event = ConflictsEvent(conflicts=[ConflictRecordResponse.from_domain(c) for c in summary.conflicts])
    else:
        event = CompleteEvent(summary=ImportSummaryResponse.from_domain(summary))
    return event.model_dump_json() + "\n"


def error_line(message: str) -> str:
    return ErrorEvent(message=message).model_dump_json() + "\n"


def stream_import_events(job: ImportJob) -> Iterator[str]:
    """
    Run ``job`` on a producer thread and yield its events as NDJSON lines.

    The stream ends right after the first terminal event.
    """

    # Items are (line, is_terminal) pairs, or _STREAM_END once the producer exits.
    events: queue.Queue[tuple[str, bool] | object] = queue.Queue()

    def _produce() -> None:
        try:
            summary = job(lambda progress: events.put((progress_line(progress), False)))
            events.put((terminal_line(summary), True))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Habit import stream failed")
            events.put((error_line(f"Import failed: {exc}"), True))
        finally:
            events.put(_STREAM_END)

    producer = threading.Thread(target=_produce, name="habit-import", daemon=True)
    producer.start()

    while True:
        item = events.get()
        if item is _STREAM_END:
            break
        line, is_terminal = item
        yield line
        if is_terminal:
            break


def parse_conflict_resolutions(raw: str | None) -> list[ConflictResolution] | None:
    """
    Decode the ``conflict_resolutions`` form field.

    Absent or malformed input returns None, which lets conflicts suspend
    the run again instead of silently merging.
    """

    if raw is None or not raw.strip():
        return None
    try:
        requests = ConflictResolutionList.validate_python(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring malformed conflict_resolutions: %s", exc)
        return None
    return [request.to_domain() for request in requests]


class UploadRejected(ValueError):
    """
    An upload that cannot be handed to the importer as text.
    """


def get_max_upload_bytes() -> int:
    return get_habit_import_settings().max_file_bytes


def read_upload(file: UploadFile, max_bytes: int) -> str:
    """
    Read at most ``max_bytes`` of an upload and decode it as strict UTF-8.

    A leading byte order mark is dropped. Oversized or undecodable uploads
    raise UploadRejected instead of reaching the importer.
    """

    name = file.filename or "upload"
    try:
        data = file.file.read(max_bytes + 1)
    finally:
        file.file.close()
    if len(data) > max_bytes:
        raise UploadRejected(f"{name} exceeds the {max_bytes} byte limit")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UploadRejected(f"{name} is not valid UTF-8 (invalid byte at offset {exc.start})") from exc


@contextmanager
def open_habit_store() -> Iterator[HabitStore]:
    """
    Store backed by a fresh session, owned by whichever thread runs the import.
    """

    db = SessionLocal()
    try:
        yield HabitRepository(db)
    finally:
        db.close()


def get_habit_store_opener() -> StoreOpener:
    return open_habit_store


def _error_response(message: str) -> StreamingResponse:
    logger.warning("Habit import rejected: %s", message)
    return StreamingResponse(content=iter([error_line(message)]), media_type=NDJSON_MEDIA_TYPE)


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


@router.post("/import/loop-habits", summary="Import a Loop Habits Tracker export")
def import_loop_habits(
    import_format: ImportFormat | None = Form(default=None),
    habits: UploadFile | None = File(default=None),
    checkmarks: UploadFile | None = File(default=None),
    scores: UploadFile | None = File(default=None),
    files: list[UploadFile] | None = File(default=None),
    conflict_resolutions: str | None = Form(default=None),
    user_id: str = Depends(get_current_user_id),
    orchestrator: HabitImportOrchestrator = Depends(get_habit_import_orchestrator),
    per_habit_service: PerHabitImportService = Depends(get_per_habit_import_service),
    open_store: StoreOpener = Depends(get_habit_store_opener),
    max_upload_bytes: int = Depends(get_max_upload_bytes),
) -> StreamingResponse:
    """
    Stream a Loop Habits import as NDJSON progress events.

    Re-submit the same files with ``conflict_resolutions`` after a
    ``conflicts`` event to continue the import.
    """

    uploads: Sequence[UploadFile] = [upload for upload in (habits, checkmarks, scores) if upload is not None]
    per_habit_uploads = list(files or [])
    for upload in [*uploads, *per_habit_uploads]:
        ensure_csv_upload(upload)

    resolved_format = import_format or detect_import_format(
        upload.filename or "" for upload in [*uploads, *per_habit_uploads]
    )
    resolutions = parse_conflict_resolutions(conflict_resolutions)
    logger.info(
        "Habit import request user=%s format=%s resolutions=%s",
        user_id,
        resolved_format.value,
        "none" if resolutions is None else len(resolutions),
    )

    if resolved_format is ImportFormat.PER_HABIT:
        if not per_habit_uploads:
            return _error_response("No per-habit Checkmarks.csv files were uploaded")
        try:
            habit_files = [
                PerHabitFile(path=upload.filename or "", content=read_upload(upload, max_upload_bytes))
                for upload in per_habit_uploads
            ]
        except UploadRejected as exc:
            return _error_response(str(exc))

        def job(sink: ProgressSink) -> ImportSummary:
            with open_store() as store:
                return per_habit_service.run(
                    habit_files,
                    store=store,
                    user_id=user_id,
                    conflict_resolutions=resolutions,
                    progress=sink,
                )

    else:
        if habits is None or checkmarks is None:
            return _error_response("Habits.csv and Checkmarks.csv are required")
        try:
            raw_files = RawFileSet(
                habits=read_upload(habits, max_upload_bytes),
                checkmarks=read_upload(checkmarks, max_upload_bytes),
                scores=read_upload(scores, max_upload_bytes) if scores is not None else "",
            )
        except UploadRejected as exc:
            return _error_response(str(exc))

        def job(sink: ProgressSink) -> ImportSummary:
            with open_store() as store:
                return orchestrator.run(
                    raw_files,
                    store=store,
                    user_id=user_id,
                    conflict_resolutions=resolutions,
                    progress=sink,
                )

    return StreamingResponse(
        content=stream_import_events(job),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
