from .attendance_sync import AttendanceSyncService
from .login_service import LoginService

__all__ = [
    "AttendanceSyncService",
    "LoginService",
]
