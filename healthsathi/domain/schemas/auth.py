"""Pydantic schemas for User profiles and Auth."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    GUEST = "guest"


# Stored on the user record but never exposed on a profile
PRIVATE_USER_FIELDS = ("_id", "passwordHash")


class UserProfile(BaseModel):
    """A user record as seen by the application, keyed by ``uid``."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    uid: str
    email: str = ""
    name: str = ""
    role: UserRole = UserRole.GUEST
    specialization: str = ""
    blood_group: str = Field("Unknown", alias="bloodGroup")
    age: str = ""
    height: str = ""
    weight: str = ""
    phone: str = ""
    dob: str = ""
    created_at: Optional[str] = Field(None, alias="createdAt")

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserProfile":
        data = {k: v for k, v in record.items() if k not in PRIVATE_USER_FIELDS}
        return cls(uid=record["_id"], **data)


class ProfileUpdate(BaseModel):
    """Mutable profile fields. Role, email and identity are fixed at registration."""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    name: Optional[str] = None
    specialization: Optional[str] = None
    blood_group: Optional[str] = Field(None, alias="bloodGroup")
    age: Optional[str] = None
    height: Optional[str] = None
    weight: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class AuthResult(BaseModel):
    user: UserProfile
    role: UserRole
    name: str
