"""Pydantic schemas for Health Reports."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"


class HealthReport(BaseModel):
    """
    A report uploaded by a patient and routed to one doctor.
    Unknown fields are kept so records round-trip through the store unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    user_id: str = Field(alias="userId")
    target_doctor_id: str = Field(alias="targetDoctorId")
    timestamp: float
    status: ReportStatus = ReportStatus.PENDING
    patient_name: str = Field("", alias="patientName")
    file_name: str = Field("", alias="fileName")
    mime_type: Optional[str] = Field(None, alias="mimeType")
    # data: URI produced by the attachment service
    file_data: Optional[str] = Field(None, alias="fileData")
    doctor_notes: Optional[str] = Field(None, alias="doctorNotes")
    updated_at: Optional[str] = Field(None, alias="updatedAt")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ReportUpdate(BaseModel):
    """Review fields a doctor may change. Ownership and routing are immutable."""

    model_config = ConfigDict(populate_by_name=True)

    status: Optional[ReportStatus] = None
    doctor_notes: Optional[str] = Field(None, alias="doctorNotes")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")
