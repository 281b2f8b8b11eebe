from pydantic import BaseModel, Field, validator, ConfigDict
from datetime import date
from typing import Optional, List, Dict, Any


def parse_attendance_date(value) -> Optional[date]:
    """
    Accept ``YYYY-MM-DD`` or an ISO-8601 timestamp and keep the calendar date as written.

    ``2026-01-20T23:30:00-05:00`` is 2026-01-20; no timezone conversion is applied.
    """
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValueError("date must be an ISO-8601 date such as 2026-01-20")


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# Attendance submission
class AttendanceEntry(CamelModel):
    student_id: str = Field(..., alias="studentId", min_length=1)
    status: str = Field(..., min_length=1, description="Present, Absent, ...")
    roll_number: Optional[str] = Field(None, alias="rollNumber")
    class_value: Optional[str] = Field(None, alias="classValue")
    section_value: Optional[str] = Field(None, alias="sectionValue")

    @validator("student_id", "status", "roll_number", "class_value", "section_value", pre=True)
    def coerce_to_string(cls, v):
        if v is None:
            return v
        return str(v).strip()


class AttendanceSubmission(CamelModel):
    date: Optional[str] = None
    attendances: List[AttendanceEntry] = Field(default_factory=list)
    taken_by: Optional[str] = Field(None, alias="takenBy")


class AttendanceSubmitResponse(BaseModel):
    success: bool
    saved: int
    message: Optional[str] = None


# Roster
class StudentRecord(CamelModel):
    id: str
    name: Optional[str] = None
    account_number: Optional[str] = Field(None, alias="accountNumber")
    class_value: Optional[str] = Field(None, alias="classValue")
    section_value: Optional[str] = Field(None, alias="sectionValue")
    attendance_status: Optional[str] = Field(None, alias="attendanceStatus")


class SessionInfo(CamelModel):
    id: str
    taken_by: Optional[str] = Field(None, alias="takenBy")


class RosterResponse(BaseModel):
    students: List[StudentRecord]
    session: Optional[SessionInfo] = None


# Login
class LoginRequest(BaseModel):
    mobile: Optional[str] = None

    @validator("mobile", pre=True)
    def coerce_mobile(cls, v):
        if v is None:
            return v
        return str(v).strip()


class UserInfo(BaseModel):
    id: str
    name: Optional[str] = None
    role: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool
    user: UserInfo


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    errorCode: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
