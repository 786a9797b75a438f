"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "data/logs"

    # API
    # Stored as string to avoid pydantic-settings JSON parsing; use cors_origins_list property
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Device registry
    REGISTRY_BACKEND: str = "memory"  # 'memory' or 'sql'
    DATABASE_URL: str = "sqlite:///./data/coursepush.db"
    ROSTER_FILE: Optional[str] = None  # JSON roster; built-in roster when unset

    @field_validator('REGISTRY_BACKEND', mode='after')
    @classmethod
    def validate_registry_backend(cls, v: str) -> str:
        """Validate registry backend name."""
        valid_backends = ['memory', 'sql']
        if v not in valid_backends:
            raise ValueError(f"REGISTRY_BACKEND must be one of {valid_backends}")
        return v

    # FCM partner credentials, e.g. "poc1=/secrets/poc1.json,poc2=/secrets/poc2.json"
    FCM_PARTNER_CREDENTIALS: str = ""
    FCM_CHANNEL_ID: str = "fcm_default_channel"

    @field_validator('FCM_PARTNER_CREDENTIALS', mode='after')
    @classmethod
    def validate_partner_credentials(cls, v: str) -> str:
        """Validate every partner=path entry is well formed and unique."""
        seen = set()
        for entry in v.split(","):
            entry = entry.strip()
            if not entry:
                continue
            partner, sep, path = entry.partition("=")
            partner, path = partner.strip(), path.strip()
            if not sep or not partner or not path:
                raise ValueError(
                    f"Malformed FCM_PARTNER_CREDENTIALS entry '{entry}', expected partner=path"
                )
            if partner in seen:
                raise ValueError(f"Duplicate partner '{partner}' in FCM_PARTNER_CREDENTIALS")
            seen.add(partner)
        return v

    @property
    def partner_credentials_map(self) -> Dict[str, str]:
        """Parse FCM_PARTNER_CREDENTIALS into a partner -> credentials path mapping"""
        mapping: Dict[str, str] = {}
        for entry in self.FCM_PARTNER_CREDENTIALS.split(","):
            if not entry.strip():
                continue
            partner, _, path = entry.partition("=")
            mapping[partner.strip()] = path.strip()
        return mapping

    # Delivery gateway
    PUSH_SEND_TIMEOUT_SECONDS: float = 10.0
    PUSH_MAX_RETRIES: int = 3

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


# Global settings instance
settings = Settings()
