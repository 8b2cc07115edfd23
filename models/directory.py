"""
Directory models.

Companies, issuings and gift slots are administered elsewhere; the import
only reads them.
"""

from typing import Optional
from pydantic import Field

from models.base import BaseSchema


class CompanyResponse(BaseSchema):
    """Company owning one or more issuings."""

    id: str = Field(..., description="Company UUID")
    name: str = Field(..., description="Company name")


class IssuingResponse(BaseSchema):
    """A one-off gift issuing event for one company and mine."""

    id: str = Field(..., description="Issuing UUID")
    company_id: str = Field(..., description="Owning company UUID")
    name: str = Field(..., description="Issuing name")
    mine_name: Optional[str] = Field(None, description="Mine the issuing runs at")
    is_active: bool = Field(True, description="Whether the issuing is open")


class GiftSlotResponse(BaseSchema):
    """
    A gift category within an issuing.

    is_choice=True: the recipient picks one of several options at issuance.
    is_choice=False: exactly one option is handed out.
    """

    id: str = Field(..., description="Slot UUID")
    name: str = Field(..., description="Slot name, e.g. 'Lamp'")
    is_choice: bool = Field(False, description="Recipient chooses between options")
    issuing_id: Optional[str] = Field(None, description="Issuing UUID")
