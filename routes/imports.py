"""
Import wizard API routes.

One session per operator import:

    POST /sessions → POST /file → PUT /columns → PUT /slots
        → GET /preview → POST /confirm → POST /execute

See services/import_session.py for the state machine behind these steps.
"""

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from typing import Optional
import structlog

from config import settings
from models.imports import (
    ColumnMapping,
    CreateSessionRequest,
    ImportMode,
    ImportSessionResponse,
    ImportSummary,
    PreviewRow,
    SheetSlotSuggestion,
    SlotMappingRequest,
)
from parsers.workbook_parser import parse_workbook
from services.employee_service import get_employee_service
from services.import_service import get_import_service
from services.import_session import ImportSession
from services.session_cache_service import retrieve_session, store_session
from services.template_service import TEMPLATE_FILENAME, build_employee_template
from exceptions import AppError, ImportSessionNotFoundError, UnreadableWorkbookError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])

ALLOWED_EXTENSIONS = (".xlsx", ".xls")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def get_session(session_id: str) -> ImportSession:
    session = retrieve_session(session_id)
    if session is None:
        raise ImportSessionNotFoundError(session_id)
    # Refresh the TTL on every touch
    store_session(session)
    return session


# ===================
# SESSIONS
# ===================

@router.post("/sessions", response_model=ImportSessionResponse, status_code=201)
def create_session(data: CreateSessionRequest):
    """
    Start an import for an issuing.

    Raises:
        404: Issuing not found
    """
    try:
        service = get_employee_service()
        issuing = service.get_issuing(data.issuing_id)
        slots = service.select_gift_slots(issuing.id)

        session = ImportSession()
        session.select_issuing(issuing, slots)
        store_session(session)

        logger.info(
            "import_session_created",
            session_id=session.session_id,
            issuing_id=issuing.id,
            slots=len(slots),
        )
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}", response_model=ImportSessionResponse)
async def get_session_state(session_id: str):
    """Current state of an import session."""
    try:
        return get_session(session_id).to_response()
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/file", response_model=ImportSessionResponse)
def upload_workbook(
    session_id: str,
    file: UploadFile = File(...),
    mode: ImportMode = Form(ImportMode.EMPLOYEE_TABLE),
):
    """
    Upload the workbook to import.

    Parsing is CPU-bound, so this runs in the worker threadpool.

    Raises:
        422: Not an Excel file, too large, unreadable, or without sheets
        409: Session is not waiting for a file
    """
    logger.info(
        "import_upload_started",
        session_id=session_id,
        filename=file.filename,
        mode=mode.value,
    )

    try:
        session = get_session(session_id)

        filename = file.filename or ""
        if not filename.lower().endswith(ALLOWED_EXTENSIONS):
            raise UnreadableWorkbookError(details={
                "filename": filename,
                "allowed_extensions": list(ALLOWED_EXTENSIONS),
            })

        content = file.file.read()
        if len(content) > settings.max_upload_bytes:
            raise UnreadableWorkbookError(details={
                "filename": filename,
                "max_upload_mb": settings.max_upload_mb,
            })

        workbook = parse_workbook(content, filename=filename)
        session.load_workbook(workbook, filename, mode)

        logger.info(
            "import_upload_completed",
            session_id=session_id,
            sheets=workbook.sheet_names,
        )
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.put("/sessions/{session_id}/columns", response_model=ImportSessionResponse)
async def map_columns(session_id: str, data: ColumnMapping):
    """
    Employee table mode: map the employee columns.

    Raises:
        422: Unknown sheet or column
        409: Session is not at the column mapping step
    """
    try:
        session = get_session(session_id)
        session.map_columns(data)
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.put("/sessions/{session_id}/slots", response_model=ImportSessionResponse)
async def map_slots(session_id: str, data: SlotMappingRequest):
    """
    Map gift slots.

    Employee table mode takes `slot_rules`; gift sheets mode takes
    `sheet_slots`.

    Raises:
        422: Rule or sheet mapping references unknown columns, sheets or slots
        409: Session is not at the slot mapping step
    """
    try:
        session = get_session(session_id)
        session.map_slots(
            slot_rules=data.slot_rules,
            sheet_slots=data.sheet_slots,
        )
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/suggestions", response_model=list[SheetSlotSuggestion])
async def suggest_sheet_slots(session_id: str):
    """Gift sheets mode: suggested slot per sheet (by fuzzy name match)."""
    try:
        return get_session(session_id).suggestions()
    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/preview", response_model=list[PreviewRow])
async def preview_import(
    session_id: str,
    limit: Optional[int] = Query(None, ge=1, le=100),
):
    """First resolved rows of the import, before anything is written."""
    try:
        session = get_session(session_id)
        return session.preview(get_import_service(), limit=limit)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/confirm", response_model=ImportSessionResponse)
async def confirm_import(session_id: str):
    """Freeze the mappings. Next step is /execute."""
    try:
        session = get_session(session_id)
        session.confirm()
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/execute", response_model=ImportSummary)
def execute_import(session_id: str):
    """
    Run the confirmed import.

    Runs in the worker threadpool so /cancel can be served meanwhile.

    Raises:
        409: Not confirmed, or cancelled before the first write
        502: Lookup or write failed (re-running the import is safe)
    """
    try:
        session = get_session(session_id)
        return session.execute(get_import_service())
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/back", response_model=ImportSessionResponse)
async def step_back(session_id: str):
    """Return to the previous step, keeping the workbook and mappings."""
    try:
        session = get_session(session_id)
        session.back()
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/cancel", response_model=ImportSessionResponse)
async def cancel_import(session_id: str):
    """
    Request cancellation.

    Honoured only until the first batch is written; after that the import
    runs to completion.
    """
    try:
        session = get_session(session_id)
        session.request_cancel()
        return session.to_response()
    except Exception as e:
        return handle_error(e)


# ===================
# TEMPLATE
# ===================

@router.get("/template")
async def download_template():
    """Download the master employee import template (.xlsx)."""
    try:
        output = build_employee_template()
        return StreamingResponse(
            output,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
        )
    except Exception as e:
        return handle_error(e)
