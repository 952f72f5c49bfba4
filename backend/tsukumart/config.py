from pydantic_settings import BaseSettings
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_SECRET: Optional[str] = None
    ALGORITHM: str = "HS256"
    DEBUG: bool = False

    # Access tokens are single-session: issuing a new one revokes the previous
    # token through the marker stored on UserPrivate, so the lifetime can be long.
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30

    # Sign-up tokens are handed to the registration form after the first LINE
    # login of an unknown account. Signed with a separate secret so they can
    # never be replayed as access tokens.
    SEND_EMAIL_TOKEN_SECRET: Optional[str] = None
    SEND_EMAIL_TOKEN_EXPIRE_MINUTES: int = 30
    EMAIL_VERIFICATION_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # One-time states of the LINE login and LINE Notify redirects
    STATE_EXPIRE_MINUTES: int = 30

    # Only university mail addresses may register.
    UNIVERSITY_EMAIL_PATTERN: str = r"^s(\d{7})@[a-zA-Z0-9]+\.tsukuba\.ac\.jp$"

    @property
    def secret_key(self) -> str:
        return self.JWT_SECRET or self.SECRET_KEY

    @property
    def send_email_token_secret(self) -> str:
        return self.SEND_EMAIL_TOKEN_SECRET or f"{self.secret_key}:send-email"

    # DATABASE_URL must be provided via environment (Supabase/Postgres). It is
    # validated when the Store is created, not at import time.
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Supabase API Configuration
    SUPABASE_URL: Optional[str] = None
    SUPABASE_KEY: Optional[str] = None  # Anon key
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None  # Service role key
    IMAGE_BUCKET: str = "images"
    STORAGE_TIMEOUT_SECONDS: float = 20.0
    THUMBNAIL_SIZE: int = 300

    # LINE Login (OpenID Connect). The redirect URI must match the one
    # registered for the channel, e.g. https://api.tsukumart.com/logInReceiver/line
    LINE_LOG_IN_CLIENT_ID: Optional[str] = None
    LINE_LOG_IN_SECRET: Optional[str] = None
    LINE_LOG_IN_REDIRECT_URI: str = "http://localhost:8000/logInReceiver/line"

    # LINE Notify. Delivery tokens obtained through /notifyCallBack are stored
    # encrypted on UserPrivate.
    LINE_NOTIFY_CLIENT_ID: Optional[str] = None
    LINE_NOTIFY_SECRET: Optional[str] = None
    LINE_NOTIFY_REDIRECT_URI: str = "http://localhost:8000/notifyCallBack"
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    FRONTEND_URL: str = "https://tsukumart.com"

    class Config:
        env_file = None
        extra = "ignore"


settings = Settings()
