from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from lead_crm_svc.models import User, get_db
from lead_crm_svc.routers.auth import require
from lead_crm_svc.schemas.common import ApiResponse
from lead_crm_svc.schemas.student import ImportResult, StudentList, StudentResponse
from lead_crm_svc.services import student_import
from lead_crm_svc.services.policy import Operation

logger = logging.getLogger(__name__)

students_router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5


async def _watch_disconnect(request: Request, cancel_event: threading.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling student import")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@students_router.post("/import", response_model=ApiResponse[ImportResult])
async def import_students(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageStudents)),
) -> ApiResponse[ImportResult]:
    """Import students from an ``.xlsx`` or ``.csv`` upload.

    Parsing and inserts run in a worker thread; the import stops between
    batches if the client goes away.
    """
    cancel_event = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        result = await run_in_threadpool(
            student_import.import_students, db, file.file, file.filename or "", cancel_event
        )
    finally:
        cancel_event.set()
        watcher.cancel()
        await file.close()

    if result.duplicates:
        message = f"Imported {result.imported} students. {result.duplicates} duplicates skipped."
    else:
        message = f"Imported {result.imported} students successfully"
    return ApiResponse(message=message, data=result)


@students_router.get("/", response_model=ApiResponse[StudentList])
def list_students(
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageStudents)),
) -> ApiResponse[StudentList]:
    students, pagination = student_import.list_students(db, search=search, page=page, limit=limit)
    data = StudentList(students=[StudentResponse.model_validate(s) for s in students], pagination=pagination)
    return ApiResponse(message="Students retrieved successfully", data=data)
