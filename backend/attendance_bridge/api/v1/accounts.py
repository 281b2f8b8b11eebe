"""
Roster endpoint: students of a class/section with the day's attendance status.
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional

from attendance_bridge.api.deps import get_attendance_service
from attendance_bridge.schemas.attendance import ErrorResponse, RosterResponse
from attendance_bridge.services import AttendanceSyncService

router = APIRouter()


@router.get(
    "/accounts",
    response_model=RosterResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}
)
async def list_students(
    class_value: Optional[str] = Query(None, alias="classValue"),
    section_value: Optional[str] = Query(None, alias="sectionValue"),
    section: Optional[str] = Query(None, description="Alias of sectionValue"),
    date: Optional[str] = Query(None, description="ISO date; joins that day's attendance"),
    service: AttendanceSyncService = Depends(get_attendance_service)
):
    """Students (Accounts) filtered by class and optional section."""
    return await service.get_roster(class_value, section_value or section, date)
