from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from pathlib import Path

class Settings(BaseSettings):
    app_name: str = Field(default="Flight Reservations API", alias="APP_NAME")
    env: str = Field(default="dev", alias="ENV")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    db_echo: bool = Field(default=False, alias="DB_ECHO")
    # Seconds a SQLite writer waits on the database lock before giving up
    db_busy_timeout: float = Field(default=30.0, alias="DB_BUSY_TIMEOUT")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")
    auto_apply_migrations: bool = Field(default=True, alias="AUTO_APPLY_MIGRATIONS")
    seed_demo_data: bool = Field(default=False, alias="SEED_DEMO_DATA")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins_raw: Optional[str] = Field(default=None, alias="CORS_ORIGINS", description="Comma or space separated list of allowed CORS origins")
    ticket_code_max_attempts: int = Field(default=5, ge=1, alias="TICKET_CODE_MAX_ATTEMPTS")
    # Mail delivery. Without SMTP_HOST confirmations are only logged.
    smtp_host: Optional[str] = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, alias="SMTP_USER")
    smtp_password: Optional[str] = Field(default=None, alias="SMTP_PASSWORD")
    smtp_starttls: bool = Field(default=True, alias="SMTP_STARTTLS")
    smtp_timeout: float = Field(default=10.0, alias="SMTP_TIMEOUT")
    mail_from: str = Field(default="reservations@airline.example", alias="MAIL_FROM")
    mail_from_name: str = Field(default="Regional Airline Reservations", alias="MAIL_FROM_NAME")

    class Config:
        # Load env from backend/.env regardless of CWD
        env_file = str(Path(__file__).resolve().parents[2] / ".env")
        case_sensitive = False
        populate_by_name = True

    def _parse_list(self, v: Optional[str]) -> List[str]:
        if v is None:
            return []
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                import json
                loaded = json.loads(s)
                if isinstance(loaded, list):
                    return [str(e).strip() for e in loaded if str(e).strip()]
            except ValueError:
                pass
        return [e.strip() for e in s.replace(" ", ",").split(",") if e.strip()]

    @property
    def cors_origins(self) -> List[str]:
        items = self._parse_list(self.cors_origins_raw)
        # Fallback dev defaults if none provided
        if not items:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        # Dev convenience: ensure both localhost and 127.0.0.1 variants for same ports
        augmented = set(items)
        for origin in items:
            if origin.startswith("http://localhost:"):
                augmented.add("http://127.0.0.1:" + origin.rsplit(":", 1)[1])
            elif origin.startswith("http://127.0.0.1:"):
                augmented.add("http://localhost:" + origin.rsplit(":", 1)[1])
        return sorted(augmented)

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.smtp_host)

settings = Settings()  # type: ignore
