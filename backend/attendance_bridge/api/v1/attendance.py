"""
Attendance submission endpoint.
"""
from fastapi import APIRouter, Depends

from attendance_bridge.api.deps import get_attendance_service
from attendance_bridge.schemas.attendance import AttendanceSubmission, AttendanceSubmitResponse, ErrorResponse
from attendance_bridge.services import AttendanceSyncService

router = APIRouter()


@router.post(
    "/attendance",
    response_model=AttendanceSubmitResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse, "description": "Batch rolled back; per-operation results in details"},
        502: {"model": ErrorResponse},
    }
)
async def submit_attendance(
    submission: AttendanceSubmission,
    service: AttendanceSyncService = Depends(get_attendance_service)
):
    """Reconcile the day's entries with stored records and save them in one atomic batch."""
    return await service.submit_attendance(
        submission.date,
        submission.attendances,
        submission.taken_by
    )
