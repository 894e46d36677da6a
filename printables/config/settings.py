# config/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Printables Service"

    # CORS
    ALLOWED_HOSTS: List[str] = ["*"]

    # Auth
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: str = "secret"

    # Env
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Cloudflare R2 (S3-compatible). All four are required; the store refuses to start without them.
    R2_ENDPOINT: Optional[str] = None
    R2_ACCESS_KEY_ID: Optional[str] = None
    R2_SECRET_ACCESS_KEY: Optional[str] = None
    R2_ASSETS_BUCKET_NAME: Optional[str] = None

    # QR codes point at https://{QR_DOMAIN}/e/{accessCode}
    QR_DOMAIN: str = "minimusiker.app"

    # Upload retry policy: delays are BASE * 2**(attempt-1)
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_RETRY_BASE_DELAY: float = 1.0

    # Signed URLs
    PREVIEW_URL_TTL: int = 300
    SIGNED_URL_TTL: int = 1800

    # Workers
    CPU_WORKERS: int = 2
    IO_WORKERS: int = 8
    ENDPOINT_TIMEOUT_SECONDS: int = 120

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

settings = Settings()
