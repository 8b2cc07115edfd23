"""
Business logic services.

Each service handles one stage of the employee import.
"""

from services.employee_service import EmployeeService, get_employee_service
from services.import_service import ImportService, get_import_service
from services.import_session import ImportSession, ImportState
from services.persist_service import BatchPersister

__all__ = [
    "EmployeeService",
    "get_employee_service",
    "ImportService",
    "get_import_service",
    "ImportSession",
    "ImportState",
    "BatchPersister",
]
