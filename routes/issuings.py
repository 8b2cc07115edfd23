"""
Issuing API routes.

Read-only views the import wizard needs before a file is uploaded.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from models.directory import GiftSlotResponse
from services.employee_service import get_employee_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/issuings", tags=["Issuings"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
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


@router.get("/{issuing_id}/slots", response_model=list[GiftSlotResponse])
def list_issuing_slots(issuing_id: str):
    """
    Gift slots of an issuing, in creation order.

    Raises:
        404: Issuing not found
    """
    try:
        service = get_employee_service()
        service.get_issuing(issuing_id)
        return service.select_gift_slots(issuing_id)
    except Exception as e:
        return handle_error(e)
