from fastapi import Request

from attendance_bridge.services import AttendanceSyncService, LoginService


def get_attendance_service(request: Request) -> AttendanceSyncService:
    return request.app.state.attendance_service


def get_login_service(request: Request) -> LoginService:
    return request.app.state.login_service
