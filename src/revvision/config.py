"""Centralised configuration via Pydantic Settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide configuration loaded from environment variables."""

    model_config = {"env_prefix": "REVVISION_", "frozen": True}

    # Runtime
    # "production" turns on secure cookies.
    environment: str = "development"

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    # Leave blank to derive from the request host: <scheme>://<host>/api/auth/google/callback
    oauth_redirect_uri: str = ""
    # Space-separated scope list.
    oauth_scopes: str = (
        "https://www.googleapis.com/auth/drive.file "
        "https://www.googleapis.com/auth/userinfo.email "
        "https://www.googleapis.com/auth/userinfo.profile"
    )
    oauth_auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    oauth_token_url: str = "https://oauth2.googleapis.com/token"
    oauth_userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo"

    # Token cookie
    token_cookie_name: str = "google-tokens"
    token_cookie_max_age_days: int = 90
    token_refresh_window_seconds: int = 300

    # Google Drive
    drive_api_url: str = "https://www.googleapis.com/drive/v3"
    drive_upload_url: str = "https://www.googleapis.com/upload/drive/v3"
    drive_folder_name: str = "RevspotVision-Uploads"
    drive_upload_chunk_bytes: int = 256 * 1024

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Remote calls
    http_timeout_seconds: int = 60

    # Frame extraction
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    frame_timeout_seconds: int = 60
    # ffmpeg -q:v scale: 2 (best) .. 31 (worst)
    frame_jpeg_quality: int = 3

    # Pipeline
    # Modes:
    # - local: extract + tag, entries finish without touching Drive
    # - persist: extract + tag + upload (or rename for Drive-picked entries)
    pipeline_mode: str = "local"
    pipeline_concurrency: int = 4
    stage_timeout_seconds: int = 300
    media_dir: str = "./data/media"
    feedback_min_length: int = 5
    notice_history: int = 200

    # HTTP
    # Comma-separated browser origins allowed to call the API; empty disables CORS.
    cors_origins: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple(s for s in self.oauth_scopes.split() if s)

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_settings() -> Settings:
    """Factory — allows overriding in tests."""
    return Settings()
