"""
Configuration management for the Facility Occupancy & Evacuation service.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Basic app settings
    DEBUG: bool = Field(default=True)
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # CORS settings
    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,http://127.0.0.1:3000")

    @field_validator('ALLOWED_ORIGINS', 'NOTIFICATION_RECIPIENTS', mode='before')
    @classmethod
    def join_comma_lists(cls, v):
        if isinstance(v, list):
            return ','.join(v)
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get ALLOWED_ORIGINS as a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(',') if origin.strip()]

    # Storage settings
    LOCAL_STORAGE_PATH: str = Field(default="./local_storage")
    STORAGE_BACKEND: str = Field(default="json", description="json | memory")

    @field_validator('STORAGE_BACKEND')
    @classmethod
    def check_storage_backend(cls, v):
        v = v.lower().strip()
        if v not in ("json", "memory"):
            raise ValueError("STORAGE_BACKEND must be 'json' or 'memory'")
        return v

    # Table names
    LEDGER_TABLE: str = Field(default="Historial")
    PERSONNEL_TABLE: str = Field(default="Base de Datos")
    ADMIN_TABLE: str = Field(default="Clave")
    REAL_AUDIT_TABLE: str = Field(default="Log_Emergencias")
    SIMULATED_AUDIT_TABLE: str = Field(default="Log_Simulacros")
    AUDIT_ERROR_TABLE: str = Field(default="Log_Errores")

    # Evacuation settings
    DEFAULT_OPERATOR: str = Field(default="unknown_operator")
    NOTIFY_EVACUATIONS: bool = Field(default=True)
    NOTIFICATION_RECIPIENTS: str = Field(default="")

    @property
    def notification_recipients_list(self) -> List[str]:
        """Get NOTIFICATION_RECIPIENTS as a list."""
        return [r.strip() for r in self.NOTIFICATION_RECIPIENTS.split(',') if r.strip()]

    # Twilio settings
    TWILIO_ACCOUNT_SID: Optional[str] = Field(default=None)
    TWILIO_AUTH_TOKEN: Optional[str] = Field(default=None)
    TWILIO_FROM_NUMBER: Optional[str] = Field(default=None)

    # Error logs
    ERROR_LOG_DIR: str = Field(default="./local_storage/logs/errors")

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
