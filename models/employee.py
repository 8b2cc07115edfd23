"""
Employee and entitlement schemas.

Rows written by the import. Both tables are scoped to one issuing:
employees are unique on (issuing_id, employee_number), entitlements on
(employee_id, slot_id).
"""

from typing import Any, Optional
from pydantic import Field

from models.base import BaseSchema


class EmployeeCreate(BaseSchema):
    """Employee row as sent to the store."""

    company_id: str = Field(..., description="Company UUID (always the issuing's company)")
    issuing_id: str = Field(..., description="Issuing UUID")
    employee_number: str = Field(
        ...,
        min_length=1,
        description="Employee number, stored with its first-seen casing",
        examples=["10001", "EMP-042"]
    )
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    extra_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Unmapped columns keyed by header"
    )


class EmployeeRef(BaseSchema):
    """Minimal employee identity returned by lookups and inserts."""

    id: str = Field(..., description="Employee UUID")
    employee_number: str = Field(..., description="Employee number as stored")

    @property
    def dedup_key(self) -> str:
        return self.employee_number.lower()


class EmployeeSlotCreate(BaseSchema):
    """Entitlement: one employee qualifies for one gift slot."""

    employee_id: str = Field(..., description="Employee UUID")
    slot_id: str = Field(..., description="Gift slot UUID")
    company_id: str = Field(..., description="Company UUID")
