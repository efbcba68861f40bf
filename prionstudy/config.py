import os
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    environment: str = Field(default="production")
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")

    # Local storage
    data_dir: str = Field(default="data")
    db_path: str = Field(default="")
    credentials_csv: str = Field(default="")

    # Mail (Gmail SMTP)
    email_user: str = Field(default="")
    email_pass: str = Field(default="")
    research_email: str = Field(default="")
    smtp_host: str = Field(default="smtp.gmail.com")
    smtp_port: int = Field(default=587)

    # HTTP surface
    allowed_origins: str = Field(default="")
    submission_token: str = Field(default="")
    admin_token: str = Field(default="")
    session_secret: str = Field(default="change-me-in-production")
    session_max_age: int = Field(default=24 * 60 * 60)
    rate_limit_enabled: bool = Field(default=True)
    submit_rate_limit: str = Field(default="10 per 15 minutes")
    panel_rate_limit: str = Field(default="100 per 15 minutes")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)

    # Dropbox OAuth app
    dropbox_app_key: str = Field(default="")
    dropbox_app_secret: str = Field(default="")
    dropbox_refresh_token: str = Field(default="")
    dropbox_documents_root: str = Field(default="/ConnectingPrion/documents")
    dropbox_backup_root: str = Field(default="/ConnectingPrion/backups")
    dropbox_csv_folder: str = Field(default="/ConnectingPrion/databases")
    sync_csv_on_startup: bool = Field(default=True)

    # Backups
    backup_retention_days: int = Field(default=7)
    backup_daily_hour: int = Field(default=3, ge=0, le=23)
    backup_weekly_hour: int = Field(default=4, ge=0, le=23)
    enable_scheduler: bool = Field(default=False)

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def database_path(self) -> str:
        return self.db_path or os.path.join(self.data_dir, "data.db")

    @property
    def backup_dir(self) -> str:
        return os.path.join(self.data_dir, "backups")

    @property
    def credentials_path(self) -> str:
        return self.credentials_csv or os.path.join(self.data_dir, "credentials.csv")

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def dropbox_configured(self) -> bool:
        return bool(self.dropbox_app_key and self.dropbox_app_secret and self.dropbox_refresh_token)

    @property
    def email_configured(self) -> bool:
        return bool(self.email_user and self.email_pass and self.research_email)

    @property
    def scheduler_enabled(self) -> bool:
        return self.enable_scheduler or self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
