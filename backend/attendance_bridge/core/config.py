from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import validator
from typing import List


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Salesforce Attendance Bridge"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # CORS settings (comma-separated)
    ALLOWED_ORIGINS: str = "*"

    # Salesforce connection
    SF_LOGIN_URL: str = "https://login.salesforce.com/services/oauth2/token"
    SF_CLIENT_ID: str = ""
    SF_CLIENT_SECRET: str = ""
    SF_USERNAME: str = ""
    SF_PASSWORD: str = ""
    SF_SECURITY_TOKEN: str = ""
    SF_API_VERSION: str = "v61.0"
    SF_TIMEOUT_SECONDS: float = 30.0

    # Password-grant responses carry no expires_in; this is the org session timeout
    SF_SESSION_LIFETIME_SECONDS: int = 7200
    TOKEN_REFRESH_MARGIN_SECONDS: int = 300

    SCHEMA_CACHE_TTL_SECONDS: int = 300
    ROSTER_QUERY_LIMIT: int = 300

    # Contact roles allowed to sign in and take attendance (comma-separated)
    AUTHORIZED_ROLES: str = "Teacher,Admin"

    # Region assumed for login mobile numbers typed without a country code
    PHONE_DEFAULT_REGION: str = "IN"

    # Unique external-id field on the session object; empty disables optimistic create
    SF_SESSION_KEY_FIELD: str = ""

    @validator("SF_API_VERSION")
    def validate_api_version(cls, v):
        if not v.startswith("v"):
            return f"v{v}"
        return v

    @property
    def allowed_origins(self) -> List[str]:
        return _split_csv(self.ALLOWED_ORIGINS)

    @property
    def authorized_roles(self) -> List[str]:
        return _split_csv(self.AUTHORIZED_ROLES)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()
