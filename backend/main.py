from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import aiohttp
import uvicorn
import logging
from contextlib import asynccontextmanager

from attendance_bridge.core.config import settings
from attendance_bridge.api.v1 import accounts, attendance, auth
from attendance_bridge.integrations.salesforce import CredentialCache, SalesforceClient
from attendance_bridge.integrations.salesforce.errors import SalesforceError, log_salesforce_error
from attendance_bridge.services import AttendanceSyncService, LoginService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One HTTP session and one set of caches for the whole process
    http_session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=settings.SF_TIMEOUT_SECONDS),
        headers={'User-Agent': f"{settings.APP_NAME}/{settings.APP_VERSION}"}
    )
    client = SalesforceClient(http_session, CredentialCache(http_session, settings), settings)
    attendance_service = AttendanceSyncService.from_client(client, settings)
    app.state.attendance_service = attendance_service
    app.state.login_service = LoginService(attendance_service.record_store, settings)

    yield

    await http_session.close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Attendance synchronization between the mobile app and Salesforce",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(accounts.router, tags=["students"])
app.include_router(attendance.router, tags=["attendance"])
app.include_router(auth.router, tags=["authentication"])


@app.get("/")
async def root():
    return {"message": "Salesforce Attendance Backend is running", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


@app.exception_handler(SalesforceError)
async def salesforce_exception_handler(request: Request, exc: SalesforceError):
    log_salesforce_error(exc, {'path': request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "ValidationError",
            "message": "Invalid request body or parameters",
            "errorCode": None,
            "details": {"errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()
            ]},
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "status_code": 500}
    )


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug"
    )
